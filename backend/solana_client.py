"""
Solana RPC client handle.

Constructed explicitly during application startup (see main.lifespan) and
passed to the services that need it. There is no module-level instance.
"""
import logging

from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment

from config import Settings

logger = logging.getLogger(__name__)


class SolanaClient:
    """Owns one async JSON-RPC connection to a Solana node."""

    def __init__(self, rpc_url: str, commitment: str = "confirmed", timeout: float = 10.0):
        if not rpc_url or not rpc_url.strip():
            raise ValueError("SOLANA_RPC_URL is not defined or is empty")
        self.rpc_url = rpc_url.strip()
        self.commitment = Commitment(commitment)
        self._client = AsyncClient(self.rpc_url, commitment=self.commitment, timeout=timeout)
        logger.info(f"Solana RPC client configured (endpoint: {self.rpc_url}, commitment: {commitment})")

    @classmethod
    def from_settings(cls, settings: Settings) -> "SolanaClient":
        return cls(
            rpc_url=settings.solana_rpc_url,
            commitment=settings.solana_commitment,
            timeout=settings.solana_rpc_timeout_seconds,
        )

    @property
    def client(self) -> AsyncClient:
        """Get the underlying solana-py AsyncClient."""
        return self._client

    async def is_connected(self) -> bool:
        """Health check against the RPC node. Never raises."""
        try:
            return await self._client.is_connected()
        except Exception as e:
            logger.error(f"Solana RPC health check failed: {e}")
            return False

    async def close(self) -> None:
        await self._client.close()
        logger.info("Solana RPC client closed")
