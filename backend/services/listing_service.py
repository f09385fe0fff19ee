"""
Listing Service — the draft → minted → listed → sold state machine.

Gated transitions (each one database transaction, rolled back on any failure):

    list_nft       wallet linked + on-chain ownership → upsert listing, is_listed=True
    finalize_mint  draft owner + wallet linked + on-chain ownership
                   → insert listing AND mark draft finalized, together
    purchase       replayed signature → AlreadyProcessed (no state change)
                   row lock on the listed row → owner=buyer, price/listing cleared,
                   PurchaseRecord inserted (unique signature = idempotency guard)
    delete_draft   draft owner → delete row, then best-effort blob cleanup

Lifecycle:
    draft ──finalize──▶ listed ──purchase──▶ sold (unlisted)
                          ▲                     │
                          └──────── list ───────┘   (explicit relist only)

Metadata enrichment is best-effort and never gates a transition.
"""
import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy import and_, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from database import transaction
from db_models import DraftNFT, NFTListing, PurchaseRecord, User, UserWallet
from domain.enums import ConflictReason, DraftStatus
from domain.errors import (
    AlreadyProcessedError,
    ConflictError,
    InvalidPriceError,
    ListingNotAvailableError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from exceptions import ChainErrorKind, ChainReaderError
from services import wallet_service
from services.metadata_service import MetadataError, MetadataResolver
from services.ownership_service import OwnershipVerifier
from utils.validators import validate_price, validate_signature, validate_solana_address

logger = logging.getLogger(__name__)


# ── Helpers ─────────────────────────────────────────────────────────

async def _require_ownership(verifier: OwnershipVerifier, mint_address: str, wallet: str, message: str) -> None:
    try:
        owned = await verifier.verify_ownership(mint_address, wallet)
    except ChainReaderError as e:
        if e.kind == ChainErrorKind.INVALID_ADDRESS:
            raise ValidationError(e.message)
        raise
    if not owned:
        raise PermissionDeniedError(
            message,
            details={"mint_address": mint_address, "wallet_address": wallet},
        )


async def _enrich(resolver: Optional[MetadataResolver], mint_address: str) -> dict:
    """On-chain name/symbol/description/attributes, or {} when unavailable."""
    if resolver is None:
        return {}
    try:
        metadata = await resolver.resolve_metadata(mint_address)
    except Exception as e:
        logger.warning(f"Metadata enrichment crashed for {mint_address}: {e}")
        return {}
    if isinstance(metadata, MetadataError):
        logger.warning(
            f"Could not fetch live Solana metadata for {mint_address} during listing: "
            f"{metadata.error}. Proceeding with provided data."
        )
        return {}
    return {
        "name": metadata.name or None,
        "symbol": metadata.symbol or None,
        "description": metadata.description,
        "attributes": metadata.attributes,
    }


async def _lock_draft(db: AsyncSession, draft_id: int) -> DraftNFT:
    result = await db.execute(
        select(DraftNFT).where(DraftNFT.id == draft_id).with_for_update()
    )
    draft = result.scalar_one_or_none()
    if draft is None:
        raise NotFoundError("Draft NFT", str(draft_id))
    return draft


async def get_listing(db: AsyncSession, mint_address: str) -> Optional[NFTListing]:
    result = await db.execute(select(NFTListing).where(NFTListing.mint_address == mint_address))
    return result.scalar_one_or_none()


async def get_listing_by_id(db: AsyncSession, nft_id: int) -> NFTListing:
    nft = await db.get(NFTListing, nft_id)
    if nft is None:
        raise NotFoundError("NFT", str(nft_id))
    return nft


async def owner_contact(db: AsyncSession, nft: NFTListing) -> dict:
    """Owner username and primary wallet, both None for an owner without an account."""
    contact = {"owner_username": None, "primary_contact_wallet": None}
    if nft.owner_user_id is None:
        return contact
    result = await db.execute(
        select(User.username, UserWallet.wallet_address)
        .outerjoin(UserWallet, and_(UserWallet.user_id == User.id, UserWallet.is_primary.is_(True)))
        .where(User.id == nft.owner_user_id)
    )
    row = result.first()
    if row is not None:
        contact["owner_username"], contact["primary_contact_wallet"] = row
    return contact


async def signature_recorded(db: AsyncSession, transaction_signature: str) -> bool:
    result = await db.execute(
        select(PurchaseRecord.id).where(PurchaseRecord.transaction_signature == transaction_signature)
    )
    return result.first() is not None


# ── List / Relist ───────────────────────────────────────────────────

async def list_nft(
    db: AsyncSession,
    verifier: OwnershipVerifier,
    *,
    user_id: int,
    mint_address: str,
    price,
    owner_wallet_address: str,
    image_url: str,
    metadata_url: str,
    collection_name: Optional[str] = None,
    resolver: Optional[MetadataResolver] = None,
) -> dict:
    """
    List (or relist) an NFT for sale.

    Returns:
        dict: {nft, created} — created is False when an existing row was relisted.
    """
    mint_address = validate_solana_address(mint_address, field="mint_address")
    owner_wallet_address = validate_solana_address(owner_wallet_address, field="owner_wallet_address")
    price = validate_price(price)
    if not image_url or not metadata_url:
        raise ValidationError("image_url and metadata_url are required")

    async with transaction(db):
        await wallet_service.require_linked_wallet(db, user_id, owner_wallet_address)
        await _require_ownership(
            verifier,
            mint_address,
            owner_wallet_address,
            f"Wallet {owner_wallet_address} does not own the NFT with mint address "
            f"{mint_address}, or the NFT has a zero balance.",
        )

        enriched = await _enrich(resolver, mint_address)
        fields = {
            "price": price,
            "owner_wallet_address": owner_wallet_address,
            "owner_user_id": user_id,
            "is_listed": True,
            "name": enriched.get("name") or mint_address,
            "symbol": enriched.get("symbol") or "",
            "description": enriched.get("description") or "",
            "attributes": enriched.get("attributes") or [],
            "image_url": image_url,
            "metadata_url": metadata_url,
            "collection_name": collection_name,
            "updated_at": datetime.utcnow(),
        }

        nft = await get_listing(db, mint_address)
        created = nft is None
        if created:
            nft = NFTListing(mint_address=mint_address, **fields)
            db.add(nft)
        else:
            for key, value in fields.items():
                setattr(nft, key, value)

        try:
            await db.flush()
        except IntegrityError:
            raise ConflictError(
                f"NFT {mint_address} was listed concurrently; retry the request.",
                reason=ConflictReason.ALREADY_LISTED,
            )

    logger.info(
        f"NFT {mint_address} {'listed' if created else 'relisted'} at {price} SOL "
        f"by user {user_id} ({owner_wallet_address[:8]}...)"
    )
    return {"nft": nft, "created": created}


# ── Drafts ──────────────────────────────────────────────────────────

async def create_draft(
    db: AsyncSession,
    *,
    user_id: int,
    name: str,
    image_url: str,
    metadata_json_url: str,
    price,
    symbol: Optional[str] = None,
    description: Optional[str] = None,
    attributes: Optional[list] = None,
    collection_name: Optional[str] = None,
) -> DraftNFT:
    if not name or not image_url or not metadata_json_url:
        raise ValidationError("Missing required fields: name, image_url, metadata_json_url, price")
    price = validate_price(price)

    async with transaction(db):
        draft = DraftNFT(
            creator_user_id=user_id,
            name=name,
            symbol=symbol,
            description=description,
            image_url=image_url,
            metadata_json_url=metadata_json_url,
            price=price,
            attributes=attributes,
            collection_name=collection_name,
            status=DraftStatus.DRAFT.value,
        )
        db.add(draft)
        await db.flush()

    logger.info(f"Draft {draft.id} created by user {user_id}: '{name}'")
    return draft


async def list_user_drafts(db: AsyncSession, user_id: int) -> list[DraftNFT]:
    result = await db.execute(
        select(DraftNFT)
        .where(DraftNFT.creator_user_id == user_id, DraftNFT.status == DraftStatus.DRAFT.value)
        .order_by(DraftNFT.created_at.desc(), DraftNFT.id.desc())
    )
    return list(result.scalars().all())


async def finalize_mint(
    db: AsyncSession,
    verifier: OwnershipVerifier,
    *,
    draft_id: int,
    user_id: int,
    mint_address: str,
    owner_wallet_address: str,
) -> NFTListing:
    """Turn a draft into a listed NFT once the mint is confirmed in the creator's wallet."""
    mint_address = validate_solana_address(mint_address, field="mint_address")
    owner_wallet_address = validate_solana_address(owner_wallet_address, field="owner_wallet_address")

    async with transaction(db):
        draft = await _lock_draft(db, draft_id)
        if draft.creator_user_id != user_id:
            raise PermissionDeniedError("Forbidden: You are not the creator of this draft.")
        if draft.status != DraftStatus.DRAFT.value:
            raise ConflictError(
                f"Draft {draft_id} has already been finalized.",
                reason=ConflictReason.ALREADY_FINALIZED,
            )

        link = await wallet_service.get_wallet_link(db, user_id, owner_wallet_address)
        if link is None:
            raise PermissionDeniedError(
                f"Wallet {owner_wallet_address} is not linked to your account. "
                f"Please link it before finalizing."
            )

        await _require_ownership(
            verifier,
            mint_address,
            owner_wallet_address,
            f"On-chain verification failed: Wallet {owner_wallet_address} does not own the NFT "
            f"with mint address {mint_address}, or the NFT has a zero balance.",
        )

        if await get_listing(db, mint_address) is not None:
            raise ConflictError(
                f"NFT {mint_address} is already recorded in the marketplace.",
                reason=ConflictReason.ALREADY_LISTED,
            )

        nft = NFTListing(
            mint_address=mint_address,
            name=draft.name,
            symbol=draft.symbol,
            image_url=draft.image_url,
            metadata_url=draft.metadata_json_url,
            description=draft.description,
            price=draft.price,
            owner_wallet_address=owner_wallet_address,
            owner_user_id=user_id,
            attributes=draft.attributes,
            collection_name=draft.collection_name,
            is_listed=draft.price is not None,
        )
        db.add(nft)
        draft.status = DraftStatus.FINALIZED.value

        try:
            await db.flush()
        except IntegrityError:
            raise ConflictError(
                f"NFT {mint_address} is already recorded in the marketplace.",
                reason=ConflictReason.ALREADY_LISTED,
            )

    logger.info(f"Draft {draft_id} finalized as NFT {nft.id} (mint {mint_address}) by user {user_id}")
    return nft


async def delete_draft(db: AsyncSession, blob_store, *, draft_id: int, user_id: int) -> dict:
    """
    Delete a draft, then best-effort remove its stored image and metadata.

    Returns:
        dict: {draft_id, blobs_deleted, blob_failures}
    """
    async with transaction(db):
        draft = await _lock_draft(db, draft_id)
        if draft.creator_user_id != user_id:
            raise PermissionDeniedError("Forbidden: You are not the creator of this draft.")
        if draft.status != DraftStatus.DRAFT.value:
            raise ConflictError(
                f"Draft {draft_id} has been finalized and can no longer be deleted.",
                reason=ConflictReason.ALREADY_FINALIZED,
            )
        blob_urls = [draft.image_url, draft.metadata_json_url]
        await db.delete(draft)

    logger.info(f"Draft {draft_id} deleted by user {user_id}")

    deleted, failures = [], []
    if blob_store is None:
        return {"draft_id": draft_id, "blobs_deleted": deleted, "blob_failures": failures}

    for url in blob_urls:
        key = blob_store.key_from_url(url)
        if not key:
            continue
        try:
            await blob_store.delete(key)
            deleted.append(key)
        except Exception as e:
            # The row is already gone; orphaned blobs are acceptable
            logger.warning(f"Failed to delete draft blob {url}: {e}")
            failures.append(key)

    return {"draft_id": draft_id, "blobs_deleted": deleted, "blob_failures": failures}


# ── Purchase ────────────────────────────────────────────────────────

async def purchase(
    db: AsyncSession,
    *,
    mint_address: str,
    buyer_wallet_address: str,
    transaction_signature: str,
    paid_price,
) -> dict:
    """
    Record a completed on-chain purchase.

    Raises:
        AlreadyProcessedError     signature already recorded (no state change)
        ListingNotAvailableError  not found, not listed, or already sold
        InvalidPriceError         paid_price below the listed price

    Returns:
        dict: {nft, purchase}
    """
    buyer_wallet_address = validate_solana_address(buyer_wallet_address, field="buyer_wallet_address")
    transaction_signature = validate_signature(transaction_signature)
    paid = validate_price(paid_price, field="paid_price")

    async with transaction(db):
        if await signature_recorded(db, transaction_signature):
            raise AlreadyProcessedError(transaction_signature)

        # Exclusive row lock until commit: concurrent buyers serialize here
        result = await db.execute(
            select(NFTListing)
            .where(NFTListing.mint_address == mint_address, NFTListing.is_listed.is_(True))
            .with_for_update()
        )
        nft = result.scalar_one_or_none()
        if nft is None:
            raise ListingNotAvailableError(mint_address)

        listed_price = Decimal(nft.price)
        if paid < listed_price:
            raise InvalidPriceError(paid, listed_price)

        seller_wallet_address = nft.owner_wallet_address
        buyer_user_id = await wallet_service.find_user_id_for_wallet(db, buyer_wallet_address)

        updated = await db.execute(
            update(NFTListing)
            .where(NFTListing.id == nft.id, NFTListing.is_listed.is_(True))
            .values(
                owner_wallet_address=buyer_wallet_address,
                owner_user_id=buyer_user_id,
                is_listed=False,
                price=None,
                updated_at=datetime.utcnow(),
            )
        )
        if updated.rowcount == 0:
            raise ListingNotAvailableError(mint_address)

        record = PurchaseRecord(
            nft_id=nft.id,
            seller_wallet_address=seller_wallet_address,
            buyer_wallet_address=buyer_wallet_address,
            price=paid,
            transaction_signature=transaction_signature,
        )
        db.add(record)
        try:
            await db.flush()
        except IntegrityError:
            raise AlreadyProcessedError(transaction_signature)

    await db.refresh(nft)
    logger.info(
        f"NFT {mint_address} sold: {seller_wallet_address[:8]}... → {buyer_wallet_address[:8]}... "
        f"for {paid} SOL (sig {transaction_signature[:12]}...)"
    )
    return {"nft": nft, "purchase": record}


# ── Queries ─────────────────────────────────────────────────────────

async def browse_listings(
    db: AsyncSession,
    *,
    name: Optional[str] = None,
    recently_sold_days: int = 7,
    limit: int = 50,
    offset: int = 0,
) -> list[NFTListing]:
    """Listed NFTs plus ones unlisted within the window; listed first, newest first."""
    cutoff = datetime.utcnow() - timedelta(days=recently_sold_days)
    query = select(NFTListing).where(
        or_(
            NFTListing.is_listed.is_(True),
            and_(NFTListing.is_listed.is_(False), NFTListing.updated_at > cutoff),
        )
    )
    if name:
        query = query.where(NFTListing.name.ilike(f"%{name}%"))
    query = (
        query.order_by(NFTListing.is_listed.desc(), NFTListing.updated_at.desc(), NFTListing.id.desc())
        .limit(limit)
        .offset(offset)
    )
    result = await db.execute(query)
    return list(result.scalars().all())


async def list_user_listings(db: AsyncSession, wallet_address: str) -> list[NFTListing]:
    """Active listings of the account that owns `wallet_address` ([] if none)."""
    user_id = await wallet_service.find_user_id_for_wallet(db, wallet_address)
    if user_id is None:
        return []
    result = await db.execute(
        select(NFTListing)
        .where(NFTListing.owner_user_id == user_id, NFTListing.is_listed.is_(True))
        .order_by(NFTListing.created_at.desc(), NFTListing.id.desc())
    )
    return list(result.scalars().all())


async def purchase_history(db: AsyncSession, mint_address: str) -> list[PurchaseRecord]:
    nft = await get_listing(db, mint_address)
    if nft is None:
        raise NotFoundError("NFT", mint_address)
    result = await db.execute(
        select(PurchaseRecord)
        .where(PurchaseRecord.nft_id == nft.id)
        .order_by(PurchaseRecord.created_at.desc(), PurchaseRecord.id.desc())
    )
    return list(result.scalars().all())
