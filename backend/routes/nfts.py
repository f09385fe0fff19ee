"""
NFT endpoints — browse, list/relist, drafts, finalize-mint, purchase.

Routes only parse input and resolve services; every rule lives in
services.listing_service. Domain errors carry their own status codes.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from config import Settings
from deps import (
    Pagination,
    get_blob_store,
    get_db,
    get_resolver,
    get_settings,
    get_verifier,
    pagination_params,
    require_user_id,
)
from domain.errors import DomainError, NotFoundError, ValidationError
from domain.responses import paginated_response, success_response
from exceptions import ChainErrorKind, ChainReaderError
from models import (
    DraftCreateRequest,
    DraftResponse,
    FinalizeMintRequest,
    ListNFTRequest,
    NFTListingResponse,
    PurchaseRecordResponse,
    PurchaseRequest,
    PurchaseResponse,
)
from services import listing_service
from services.blob_service import PinataBlobStore
from services.metadata_service import MetadataError, MetadataResolver, merge_listing_metadata
from services.ownership_service import OwnershipVerifier
from utils.validators import validated_mint, validated_wallet_query

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/nfts", tags=["nfts"])


def _listing(nft) -> dict:
    return NFTListingResponse.model_validate(nft).model_dump()


# ── GET /api/nfts ──────────────────────────────────────────────────

@router.get("")
async def browse_nfts(
    name: Optional[str] = Query(None, max_length=200, description="Case-insensitive name filter"),
    page: Pagination = Depends(pagination_params),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Listed NFTs plus ones sold within the recently-sold window."""
    nfts = await listing_service.browse_listings(
        db,
        name=name,
        recently_sold_days=settings.recently_sold_days,
        limit=page["limit"],
        offset=page["offset"],
    )
    return paginated_response([_listing(n) for n in nfts], limit=page["limit"], offset=page["offset"])


# ── GET /api/nfts/{nft_id} ─────────────────────────────────────────

@router.get("/{nft_id}", response_model=NFTListingResponse)
async def get_nft(nft_id: int, db: AsyncSession = Depends(get_db)):
    return await listing_service.get_listing_by_id(db, nft_id)


# ── GET /api/nfts/mint/{mint_address} ──────────────────────────────

@router.get("/mint/{mint_address}")
async def get_nft_by_mint(
    mint_address: str = Depends(validated_mint),
    db: AsyncSession = Depends(get_db),
    resolver: MetadataResolver = Depends(get_resolver),
):
    """
    Stored listing, with the owner's username and primary wallet, merged
    with live Metaplex metadata.

    On-chain fields win when present. If live metadata cannot be fetched,
    the stored row is served with `solana_fetch_error` set.
    """
    nft = await listing_service.get_listing(db, mint_address)
    stored = None
    if nft is not None:
        stored = {**_listing(nft), **await listing_service.owner_contact(db, nft)}

    metadata = await resolver.resolve_metadata(mint_address)
    if isinstance(metadata, MetadataError) and stored is None:
        raise DomainError(metadata.error, status_code=metadata.status)

    combined = merge_listing_metadata(stored, metadata, mint_address)
    if combined is None:
        raise NotFoundError("NFT", mint_address)
    return success_response(combined)


# ── GET /api/nfts/mint/{mint_address}/metadata ─────────────────────

@router.get("/mint/{mint_address}/metadata")
async def get_nft_metadata(
    mint_address: str = Depends(validated_mint),
    resolver: MetadataResolver = Depends(get_resolver),
):
    """Live on-chain + off-chain metadata only (no marketplace state)."""
    metadata = await resolver.resolve_metadata(mint_address)
    if isinstance(metadata, MetadataError):
        raise DomainError(metadata.error, status_code=metadata.status)
    return success_response(metadata.to_dict())


# ── GET /api/nfts/mint/{mint_address}/verify-owner ─────────────────

@router.get("/mint/{mint_address}/verify-owner")
async def verify_owner(
    mint_address: str = Depends(validated_mint),
    wallet: str = Depends(validated_wallet_query),
    verifier: OwnershipVerifier = Depends(get_verifier),
):
    try:
        outcome = await verifier.verify(mint_address, wallet)
    except ChainReaderError as e:
        if e.kind == ChainErrorKind.INVALID_ADDRESS:
            raise ValidationError(e.message)
        raise
    return success_response({
        "mint_address": mint_address,
        "wallet_address": wallet,
        "owned": outcome.owned,
        "attempts": outcome.attempts,
        "used_fallback": outcome.used_fallback,
    })


# ── POST /api/nfts ─────────────────────────────────────────────────

@router.post("", response_model=NFTListingResponse)
async def list_nft(
    request: ListNFTRequest,
    response: Response,
    user_id: int = Depends(require_user_id),
    db: AsyncSession = Depends(get_db),
    verifier: OwnershipVerifier = Depends(get_verifier),
    resolver: MetadataResolver = Depends(get_resolver),
):
    """List an NFT held by one of the caller's linked wallets (201), or relist it (200)."""
    result = await listing_service.list_nft(
        db,
        verifier,
        user_id=user_id,
        mint_address=request.mint_address,
        price=request.price,
        owner_wallet_address=request.owner_wallet_address,
        image_url=request.image_url,
        metadata_url=request.metadata_url,
        collection_name=request.collection_name,
        resolver=resolver,
    )
    response.status_code = status.HTTP_201_CREATED if result["created"] else status.HTTP_200_OK
    return result["nft"]


# ── POST /api/nfts/mint/{mint_address}/buy ─────────────────────────

@router.post("/mint/{mint_address}/buy", response_model=PurchaseResponse)
async def buy_nft(
    request: PurchaseRequest,
    mint_address: str = Depends(validated_mint),
    db: AsyncSession = Depends(get_db),
):
    """
    Record a purchase the buyer has already settled on-chain.

    No session is required; the transaction signature is the idempotency key.
    """
    result = await listing_service.purchase(
        db,
        mint_address=mint_address,
        buyer_wallet_address=request.buyer_wallet_address,
        transaction_signature=request.transaction_signature,
        paid_price=request.paid_price,
    )
    nft = result["nft"]
    return PurchaseResponse(
        message="Purchase recorded",
        nft_id=nft.id,
        buyer=nft.owner_wallet_address,
        purchase=PurchaseRecordResponse.model_validate(result["purchase"]),
    )


# ── GET /api/nfts/mint/{mint_address}/purchases ────────────────────

@router.get("/mint/{mint_address}/purchases", response_model=list[PurchaseRecordResponse])
async def get_purchase_history(
    mint_address: str = Depends(validated_mint),
    db: AsyncSession = Depends(get_db),
):
    return await listing_service.purchase_history(db, mint_address)


# ── POST /api/nfts/draft ───────────────────────────────────────────

@router.post("/draft", response_model=DraftResponse, status_code=status.HTTP_201_CREATED)
async def create_draft(
    request: DraftCreateRequest,
    user_id: int = Depends(require_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await listing_service.create_draft(
        db,
        user_id=user_id,
        name=request.name,
        image_url=request.image_url,
        metadata_json_url=request.metadata_json_url,
        price=request.price,
        symbol=request.symbol,
        description=request.description,
        attributes=request.attributes,
        collection_name=request.collection_name,
    )


# ── POST /api/nfts/finalize-mint/{draft_id} ────────────────────────

@router.post(
    "/finalize-mint/{draft_id}",
    response_model=NFTListingResponse,
    status_code=status.HTTP_201_CREATED,
)
async def finalize_mint(
    draft_id: int,
    request: FinalizeMintRequest,
    user_id: int = Depends(require_user_id),
    db: AsyncSession = Depends(get_db),
    verifier: OwnershipVerifier = Depends(get_verifier),
):
    """Promote a draft to a listed NFT once the mint sits in the creator's wallet."""
    return await listing_service.finalize_mint(
        db,
        verifier,
        draft_id=draft_id,
        user_id=user_id,
        mint_address=request.mint_address,
        owner_wallet_address=request.owner_wallet_address,
    )


# ── DELETE /api/nfts/drafts/{draft_id} ─────────────────────────────

@router.delete("/drafts/{draft_id}")
async def delete_draft(
    draft_id: int,
    user_id: int = Depends(require_user_id),
    db: AsyncSession = Depends(get_db),
    blob_store: PinataBlobStore = Depends(get_blob_store),
):
    result = await listing_service.delete_draft(db, blob_store, draft_id=draft_id, user_id=user_id)
    return success_response(result)
