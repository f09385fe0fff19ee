"""
NFT Marketplace — FastAPI Application

Solana is the source of truth for ownership; the relational store tracks
accounts, linked wallets, drafts, listings and purchases.
"""
import logging
import os
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi import HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import settings
from routes import health, nfts, uploads, users
from services.blob_service import PinataBlobStore
from services.chain_reader import ChainReader
from services.metadata_service import MetadataResolver
from services.ownership_service import OwnershipVerifier
from solana_client import SolanaClient

# ── Logging ─────────────────────────────────────────────────────────

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan ────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: create DB tables, build chain/blob services. Shutdown: close clients."""
    # Ensure data/ directory exists for SQLite
    os.makedirs("data", exist_ok=True)

    settings.validate_production_settings()

    from database import init_db
    await init_db()
    logger.info("Database initialized")

    solana_client = SolanaClient.from_settings(settings)
    http_client = httpx.AsyncClient(timeout=settings.metadata_fetch_timeout_seconds)
    reader = ChainReader.from_solana_client(solana_client)

    app.state.settings = settings
    app.state.solana_client = solana_client
    app.state.http_client = http_client
    app.state.chain_reader = reader
    app.state.ownership_verifier = OwnershipVerifier.from_settings(reader, settings)
    app.state.metadata_resolver = MetadataResolver(reader, http_client)
    app.state.blob_store = PinataBlobStore.from_settings(http_client, settings)

    yield  # app runs here

    await http_client.aclose()
    await solana_client.close()
    logger.info("Shutting down")


# ── App Factory ─────────────────────────────────────────────────────

app = FastAPI(
    title="NFT Marketplace API",
    description="NFT listing and purchase ledger with on-chain ownership verification on Solana",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routes ──────────────────────────────────────────────────────────

app.include_router(health.router)
app.include_router(nfts.router)
app.include_router(users.router)
app.include_router(uploads.router)


# ── Exception Handlers ──────────────────────────────────────────────


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """
    Catch-all for unhandled exceptions.

    Never return raw exception details to clients; the full traceback is
    logged server-side.
    """
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": {
                "code": "internal_server_error",
                "message": "Internal server error",
            },
        },
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc: HTTPException):
    """
    Standardize HTTPException responses for frontend consumers.

    Keeps the original HTTP status code, but wraps the payload.
    """
    if hasattr(exc, "message") and hasattr(exc, "details"):
        # DomainError: NotFoundError → "notfound", ConflictError → "conflict", ...
        error_code = exc.__class__.__name__.replace("Error", "").lower()
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "success": False,
                "error": {
                    "code": error_code,
                    "message": exc.message,
                    "details": exc.details,
                },
            },
        )

    detail = exc.detail
    message = detail if isinstance(detail, str) else "Request failed"
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": {
                "code": "http_error",
                "message": message,
                "details": detail if not isinstance(detail, str) else None,
            },
        },
    )


# ── Entrypoint ──────────────────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn
    port = int(os.environ.get("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port, log_level="info")
