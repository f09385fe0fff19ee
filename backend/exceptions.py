"""
Custom exception classes for Solana RPC operations.

Every raw SDK / transport error is translated into a ChainReaderError once,
at the ChainReader boundary. Downstream code switches on `kind` only.
"""
from enum import Enum


class ChainErrorKind(str, Enum):
    INVALID_ADDRESS = "invalid_address"  # malformed base58 input, never retried
    UNAVAILABLE = "unavailable"          # network / RPC node failure, retryable
    NOT_FOUND = "not_found"              # account does not exist on-chain
    UNKNOWN = "unknown"


class ChainReaderError(Exception):
    """Raised by ChainReader for any failed on-chain query."""

    def __init__(self, kind: ChainErrorKind, message: str, *, address: str | None = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.address = address

    @property
    def retryable(self) -> bool:
        return self.kind == ChainErrorKind.UNAVAILABLE

    def __repr__(self) -> str:
        return f"ChainReaderError(kind={self.kind.value!r}, message={self.message!r})"


class MetadataParseError(Exception):
    """Raised when an on-chain metadata account cannot be decoded."""
    pass
