"""
Input validation utilities for the NFT Marketplace.

Provides reusable validators for Solana addresses, prices and signatures.
"""
from decimal import Decimal, InvalidOperation

from fastapi import Path, Query
from solders.pubkey import Pubkey

from domain.errors import ValidationError

# base58 signatures are 64 bytes → 86-88 chars; allow some slack for other encodings
MAX_SIGNATURE_LENGTH = 128


def validate_solana_address(address: str, field: str = "wallet_address") -> str:
    """
    Validate a base58 Solana address (32-byte public key).

    Returns:
        The stripped address

    Raises:
        ValidationError (400) if the address is missing or malformed
    """
    if not address or not address.strip():
        raise ValidationError("Address is required", field=field)

    address = address.strip()
    if not 32 <= len(address) <= 44:
        raise ValidationError(
            f"Invalid Solana address: expected 32-44 characters, got {len(address)}",
            field=field,
        )
    try:
        Pubkey.from_string(address)
    except ValueError:
        raise ValidationError(f"Invalid Solana address: {address[:12]}...", field=field)

    return address


def validate_price(value, field: str = "price") -> Decimal:
    """Parse a positive decimal price (SOL)."""
    if value is None or value == "":
        raise ValidationError("Price is required", field=field)
    try:
        price = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid price: {value!r}", field=field)
    if not price.is_finite() or price <= 0:
        raise ValidationError("Price must be greater than zero", field=field)
    return price


def validate_signature(signature: str) -> str:
    if not signature or not signature.strip():
        raise ValidationError("Transaction signature is required", field="transaction_signature")
    signature = signature.strip()
    if len(signature) > MAX_SIGNATURE_LENGTH:
        raise ValidationError("Transaction signature is too long", field="transaction_signature")
    return signature


def validated_wallet(wallet_address: str = Path(..., description="Solana wallet address")) -> str:
    """FastAPI dependency for validating wallet path parameters."""
    return validate_solana_address(wallet_address)


def validated_mint(mint_address: str = Path(..., description="Solana mint address")) -> str:
    """FastAPI dependency for validating mint path parameters."""
    return validate_solana_address(mint_address, field="mint_address")


def validated_wallet_query(wallet: str = Query(..., description="Solana wallet address")) -> str:
    """FastAPI dependency for validating wallet query parameters."""
    return validate_solana_address(wallet)
