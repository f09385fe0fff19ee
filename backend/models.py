"""
Pydantic models for request/response validation.
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class APIBase(BaseModel):
    """Shared base — allows construction by Python name or alias, and from ORM rows."""
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


# ── Listing Models ──────────────────────────────────────────────────

class ListNFTRequest(APIBase):
    """List (or relist) an NFT already held by one of the caller's wallets."""
    mint_address: str = Field(..., min_length=32, max_length=44)
    price: Decimal = Field(..., gt=0, description="Asking price in SOL")
    owner_wallet_address: str = Field(..., min_length=32, max_length=44)
    image_url: str = Field(..., min_length=1)
    metadata_url: str = Field(..., min_length=1)
    collection_name: Optional[str] = None


class PurchaseRequest(APIBase):
    buyer_wallet_address: str = Field(..., min_length=32, max_length=44)
    transaction_signature: str = Field(..., min_length=1, max_length=128)
    paid_price: Decimal = Field(..., gt=0)


class NFTListingResponse(APIBase):
    id: int
    mint_address: str
    name: Optional[str] = None
    symbol: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    metadata_url: Optional[str] = None
    attributes: Optional[Any] = None
    collection_name: Optional[str] = None
    owner_wallet_address: str
    owner_user_id: Optional[int] = None
    price: Optional[Decimal] = None
    is_listed: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PurchaseRecordResponse(APIBase):
    id: int
    nft_id: int
    seller_wallet_address: str
    buyer_wallet_address: str
    price: Decimal
    transaction_signature: str
    created_at: Optional[datetime] = None


class PurchaseResponse(APIBase):
    message: str
    nft_id: int
    buyer: str
    purchase: PurchaseRecordResponse


# ── Draft Models ────────────────────────────────────────────────────

class DraftCreateRequest(APIBase):
    name: str = Field(..., min_length=1, max_length=200)
    image_url: str = Field(..., min_length=1)
    metadata_json_url: str = Field(..., min_length=1)
    price: Decimal = Field(..., gt=0)
    symbol: Optional[str] = Field(default=None, max_length=10)
    description: Optional[str] = None
    attributes: Optional[List[Any]] = None
    collection_name: Optional[str] = None


class FinalizeMintRequest(APIBase):
    mint_address: str = Field(..., min_length=32, max_length=44)
    owner_wallet_address: str = Field(..., min_length=32, max_length=44)


class DraftResponse(APIBase):
    id: int
    creator_user_id: int
    name: str
    symbol: Optional[str] = None
    description: Optional[str] = None
    image_url: str
    metadata_json_url: str
    price: Optional[Decimal] = None
    attributes: Optional[Any] = None
    collection_name: Optional[str] = None
    status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# ── User / Wallet Models ────────────────────────────────────────────

class UserResponse(APIBase):
    id: int
    email: str
    username: Optional[str] = None
    contact_wallet_address: Optional[str] = None
    phone_number: Optional[str] = None
    is_2fa_enabled: bool = False
    profile_picture_url: Optional[str] = None
    created_at: Optional[datetime] = None


class PublicUserResponse(APIBase):
    """Profile fields visible to anyone who knows a wallet."""
    id: int
    username: Optional[str] = None
    contact_wallet_address: Optional[str] = None
    profile_picture_url: Optional[str] = None
    created_at: Optional[datetime] = None


class UpdateProfileRequest(APIBase):
    username: Optional[str] = Field(default=None, max_length=100)
    phone_number: Optional[str] = Field(default=None, max_length=32)
    is_2fa_enabled: Optional[bool] = None
    profile_picture_url: Optional[str] = None


class LinkWalletRequest(APIBase):
    wallet_address: str = Field(..., min_length=1)


class WalletResponse(APIBase):
    wallet_address: str
    is_primary: bool
    linked_at: Optional[datetime] = None


# ── Upload Models ───────────────────────────────────────────────────

class UploadResponse(APIBase):
    message: str
    url: str
    key: Optional[str] = None
