"""
User endpoints — profile, linked wallets, per-wallet listings and drafts.

`/me` routes act on the authenticated user; `/{wallet_address}` routes are
public lookups by any wallet the account has linked.
"""
import logging

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from deps import get_db, require_user_id
from domain.responses import success_response
from models import (
    DraftResponse,
    LinkWalletRequest,
    NFTListingResponse,
    PublicUserResponse,
    UpdateProfileRequest,
    UserResponse,
    WalletResponse,
)
from services import listing_service, user_service, wallet_service
from utils.validators import validated_wallet

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["users"])


# ── /api/users/me ──────────────────────────────────────────────────

@router.get("/me", response_model=UserResponse)
async def get_me(user_id: int = Depends(require_user_id), db: AsyncSession = Depends(get_db)):
    return await user_service.get_user(db, user_id)


@router.put("/me", response_model=UserResponse)
async def update_me(
    request: UpdateProfileRequest,
    user_id: int = Depends(require_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Partial profile update. Only fields present in the body are applied."""
    updates = request.model_dump(exclude_unset=True)
    return await user_service.update_profile(db, user_id, updates)


@router.get("/me/drafts", response_model=list[DraftResponse])
async def get_my_drafts(user_id: int = Depends(require_user_id), db: AsyncSession = Depends(get_db)):
    return await listing_service.list_user_drafts(db, user_id)


# ── /api/users/me/wallets ──────────────────────────────────────────

@router.get("/me/wallets", response_model=list[WalletResponse])
async def get_my_wallets(user_id: int = Depends(require_user_id), db: AsyncSession = Depends(get_db)):
    return await wallet_service.list_wallets(db, user_id)


@router.post("/me/wallets", response_model=WalletResponse)
async def link_my_wallet(
    request: LinkWalletRequest,
    response: Response,
    user_id: int = Depends(require_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Link a wallet (201). Linking a wallet the caller already owns returns it (200)."""
    result = await wallet_service.link_wallet(db, user_id, request.wallet_address)
    response.status_code = status.HTTP_201_CREATED if result["created"] else status.HTTP_200_OK
    return result["link"]


@router.put("/me/wallets/{wallet_address}/set-primary", response_model=WalletResponse)
async def set_my_primary_wallet(
    wallet_address: str = Depends(validated_wallet),
    user_id: int = Depends(require_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await wallet_service.set_primary_wallet(db, user_id, wallet_address)


@router.delete("/me/wallets/{wallet_address}")
async def unlink_my_wallet(
    wallet_address: str = Depends(validated_wallet),
    user_id: int = Depends(require_user_id),
    db: AsyncSession = Depends(get_db),
):
    await wallet_service.unlink_wallet(db, user_id, wallet_address)
    return success_response({"wallet_address": wallet_address, "unlinked": True})


# ── /api/users/{wallet_address} ────────────────────────────────────

@router.get("/{wallet_address}", response_model=PublicUserResponse)
async def get_user_by_wallet(
    wallet_address: str = Depends(validated_wallet),
    db: AsyncSession = Depends(get_db),
):
    return await user_service.get_user_by_wallet(db, wallet_address)


@router.get("/{wallet_address}/nfts", response_model=list[NFTListingResponse])
async def get_user_listings(
    wallet_address: str = Depends(validated_wallet),
    db: AsyncSession = Depends(get_db),
):
    """Active listings of the account behind this wallet ([] for unknown wallets)."""
    return await listing_service.list_user_listings(db, wallet_address)


@router.get("/{wallet_address}/drafts", response_model=list[DraftResponse])
async def get_user_drafts(
    wallet_address: str = Depends(validated_wallet),
    user_id: int = Depends(require_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Drafts are private: the wallet must be linked to the caller."""
    await wallet_service.require_linked_wallet(db, user_id, wallet_address)
    return await listing_service.list_user_drafts(db, user_id)
