"""
Health check endpoint.
"""
from datetime import datetime, timezone
import logging

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
async def health_check(request: Request):
    """Health check — verifies Solana RPC connectivity."""
    solana_client = getattr(request.app.state, "solana_client", None)
    connected = solana_client is not None and await solana_client.is_connected()
    if connected:
        return {
            "status": "healthy",
            "solana_connected": True,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    logger.error("Health check failed: Solana RPC node unreachable")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "unhealthy",
            "solana_connected": False,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )
