"""
Custom domain exceptions for consistent error handling.

These exceptions are mapped to HTTP status codes by the global exception handler
in main.py.
"""
from fastapi import HTTPException, status

from domain.enums import ConflictReason


class DomainError(HTTPException):
    """Base class for all domain-specific errors."""
    def __init__(self, message: str, status_code: int = status.HTTP_400_BAD_REQUEST, details: dict | None = None):
        super().__init__(status_code=status_code, detail=message)
        self.message = message
        self.details = details or {}


class NotFoundError(DomainError):
    """Resource not found (404)."""
    def __init__(self, resource_type: str, identifier: str, details: dict | None = None):
        message = f"{resource_type} not found: {identifier}"
        super().__init__(message, status_code=status.HTTP_404_NOT_FOUND, details=details)


class ListingNotAvailableError(NotFoundError):
    """Listing is missing, delisted, or already sold (404)."""
    def __init__(self, mint_address: str):
        super().__init__("Listed NFT", mint_address, details={"reason": "not_listed_or_sold"})
        self.message = f"NFT not found, not listed, or already sold: {mint_address}"
        self.detail = self.message


class ValidationError(DomainError):
    """Validation error (400)."""
    def __init__(self, message: str, field: str | None = None, details: dict | None = None):
        if field:
            message = f"Validation error on {field}: {message}"
        super().__init__(message, status_code=status.HTTP_400_BAD_REQUEST, details=details)


class InvalidPriceError(ValidationError):
    """Paid price is below the listed price (400)."""
    def __init__(self, paid_price, listed_price):
        super().__init__(
            f"Paid price ({paid_price}) is less than listed price ({listed_price}).",
            details={"paid_price": str(paid_price), "listed_price": str(listed_price)},
        )


class PermissionDeniedError(DomainError):
    """Permission denied (403)."""
    def __init__(self, message: str = "Permission denied", details: dict | None = None):
        super().__init__(message, status_code=status.HTTP_403_FORBIDDEN, details=details)


class UnauthorizedError(DomainError):
    """Unauthorized access (401)."""
    def __init__(self, message: str = "Unauthorized", details: dict | None = None):
        super().__init__(message, status_code=status.HTTP_401_UNAUTHORIZED, details=details)


class ConflictError(DomainError):
    """Resource conflict (409)."""
    def __init__(self, message: str, reason: ConflictReason | None = None, details: dict | None = None):
        details = dict(details or {})
        if reason is not None:
            details.setdefault("reason", reason.value)
        super().__init__(message, status_code=status.HTTP_409_CONFLICT, details=details)
        self.reason = reason


class AlreadyProcessedError(ConflictError):
    """Transaction signature was already recorded (409, safe to treat as a no-op)."""
    def __init__(self, transaction_signature: str):
        super().__init__(
            "This transaction signature has already been processed.",
            reason=ConflictReason.ALREADY_PROCESSED,
            details={"transaction_signature": transaction_signature},
        )


class ServiceUnavailableError(DomainError):
    """Dependency temporarily unreachable (503)."""
    def __init__(self, message: str = "Service temporarily unavailable", details: dict | None = None):
        super().__init__(message, status_code=status.HTTP_503_SERVICE_UNAVAILABLE, details=details)


class BlockchainError(DomainError):
    """Blockchain/on-chain operation error (502)."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, status_code=status.HTTP_502_BAD_GATEWAY, details=details)
