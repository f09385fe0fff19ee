"""
Configuration management for the NFT Marketplace backend.

Loads settings from .env via pydantic-settings.

Notes:
    - Ownership verification retry budget is configurable (attempts + delay)
    - validate_production_settings() enforces strict CORS and a JWT secret in production
"""
import logging

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ── Solana RPC ──────────────────────────────────────────────────
    solana_rpc_url: str = "https://api.devnet.solana.com"
    solana_commitment: str = "confirmed"
    solana_rpc_timeout_seconds: float = 10.0

    # ── Ownership verification ──────────────────────────────────────
    ownership_max_attempts: int = 3
    ownership_retry_delay_ms: int = 1000

    # ── Off-chain metadata ──────────────────────────────────────────
    metadata_fetch_timeout_seconds: float = 10.0

    # ── Pinata IPFS (blob storage) ──────────────────────────────────
    pinata_api_key: str = ""
    pinata_secret: str = ""
    pinata_gateway: str = "https://gateway.pinata.cloud/ipfs"

    # ── Database ────────────────────────────────────────────────────
    database_url: str = "sqlite:///./data/marketplace.db"

    # ── Marketplace ─────────────────────────────────────────────────
    recently_sold_days: int = 7  # sold/unlisted NFTs stay visible this long

    # ── Application ─────────────────────────────────────────────────
    environment: str = "development"

    # ── Auth (JWT) ──────────────────────────────────────────────────
    jwt_secret: str = ""
    jwt_issuer: str = "nft-marketplace-api"
    jwt_access_ttl_minutes: int = 180

    # ── CORS ────────────────────────────────────────────────────────
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173,http://127.0.0.1:5173"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # allow unknown .env keys without crashing
    )

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def ownership_retry_delay_seconds(self) -> float:
        return self.ownership_retry_delay_ms / 1000.0

    def validate_production_settings(self):
        """
        Validate settings for production safety.

        Enforces strict CORS and a signing secret in production.
        Called during app startup.
        """
        if self.environment == "production":
            if "*" in self.cors_origins:
                raise ValueError(
                    "CORS_ORIGINS must not contain '*' in production. "
                    "Set explicit allowed origins."
                )
            if not self.jwt_secret:
                raise ValueError(
                    "JWT_SECRET must be set in production. "
                    "It is used to verify access tokens issued by the session layer."
                )
            if not self.solana_rpc_url.startswith("https://"):
                raise ValueError("SOLANA_RPC_URL must use https in production.")
            logger.info("✅ Production settings validated")
        else:
            warnings = []
            if "*" in self.cors_origins:
                warnings.append("CORS_ORIGINS contains '*' (open access)")
            if not self.jwt_secret:
                warnings.append("JWT_SECRET is empty (authenticated routes will fail)")
            if not self.pinata_api_key:
                warnings.append("PINATA_API_KEY is empty (uploads disabled)")
            for w in warnings:
                logger.warning(f"⚠️  {w}")


# Global settings instance
settings = Settings()
