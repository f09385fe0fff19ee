"""
Wallet Service — links Solana wallets to marketplace accounts.

Rules:
    - A wallet address belongs to at most one user (global uniqueness)
    - A user has at most one primary wallet, mirrored in users.contact_wallet_address
    - Unlinking the primary wallet clears contact_wallet_address

Every mutation runs in a single transaction (commit on success, rollback on error).
"""
import logging
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from database import transaction
from db_models import User, UserWallet
from domain.enums import ConflictReason
from domain.errors import ConflictError, NotFoundError, PermissionDeniedError
from utils.validators import validate_solana_address

logger = logging.getLogger(__name__)


async def get_wallet_link(db: AsyncSession, user_id: int, wallet_address: str) -> Optional[UserWallet]:
    result = await db.execute(
        select(UserWallet).where(
            UserWallet.user_id == user_id,
            UserWallet.wallet_address == wallet_address,
        )
    )
    return result.scalar_one_or_none()


async def require_linked_wallet(db: AsyncSession, user_id: int, wallet_address: str) -> UserWallet:
    """Raise PermissionDeniedError unless `wallet_address` is linked to `user_id`."""
    link = await get_wallet_link(db, user_id, wallet_address)
    if link is None:
        raise PermissionDeniedError(
            f"Wallet {wallet_address} is not linked to your account or you do not own it.",
            details={"wallet_address": wallet_address},
        )
    return link


async def find_user_id_for_wallet(db: AsyncSession, wallet_address: str) -> Optional[int]:
    result = await db.execute(
        select(UserWallet.user_id).where(UserWallet.wallet_address == wallet_address)
    )
    return result.scalar_one_or_none()


async def list_wallets(db: AsyncSession, user_id: int) -> list[UserWallet]:
    """Primary wallet first, then most recently linked."""
    result = await db.execute(
        select(UserWallet)
        .where(UserWallet.user_id == user_id)
        .order_by(UserWallet.is_primary.desc(), UserWallet.linked_at.desc(), UserWallet.id.desc())
    )
    return list(result.scalars().all())


async def link_wallet(db: AsyncSession, user_id: int, wallet_address: str) -> dict:
    """
    Link a wallet to a user.

    Returns:
        dict: {link, created} — created is False when the wallet was already
        linked to this user (idempotent no-op).

    Raises:
        NotFoundError if the user does not exist
        ConflictError if the wallet is linked to another account
    """
    wallet_address = validate_solana_address(wallet_address)

    async with transaction(db):
        user = await db.get(User, user_id)
        if user is None:
            raise NotFoundError("User", str(user_id))

        existing = await db.execute(
            select(UserWallet).where(UserWallet.wallet_address == wallet_address)
        )
        link = existing.scalar_one_or_none()
        if link is not None:
            if link.user_id == user_id:
                return {"link": link, "created": False}
            raise ConflictError(
                "This wallet address is already associated with another user account.",
                reason=ConflictReason.WALLET_LINKED_ELSEWHERE,
            )

        has_primary = await db.execute(
            select(UserWallet.id).where(UserWallet.user_id == user_id, UserWallet.is_primary.is_(True))
        )
        make_primary = has_primary.first() is None

        link = UserWallet(user_id=user_id, wallet_address=wallet_address, is_primary=make_primary)
        db.add(link)
        if make_primary:
            user.contact_wallet_address = wallet_address
        try:
            await db.flush()
        except IntegrityError:
            # Race: another account linked the same wallet between check and insert
            raise ConflictError(
                "This wallet address is already associated with another user account.",
                reason=ConflictReason.WALLET_LINKED_ELSEWHERE,
            )

    logger.info(f"Wallet {wallet_address[:8]}... linked to user {user_id} (primary={make_primary})")
    return {"link": link, "created": True}


async def set_primary_wallet(db: AsyncSession, user_id: int, wallet_address: str) -> UserWallet:
    async with transaction(db):
        link = await get_wallet_link(db, user_id, wallet_address)
        if link is None:
            raise NotFoundError("Linked wallet", wallet_address)

        await db.execute(
            update(UserWallet).where(UserWallet.user_id == user_id).values(is_primary=False)
        )
        await db.execute(
            update(UserWallet).where(UserWallet.id == link.id).values(is_primary=True)
        )
        await db.execute(
            update(User).where(User.id == user_id).values(contact_wallet_address=wallet_address)
        )

    await db.refresh(link)
    logger.info(f"Wallet {wallet_address[:8]}... set as primary for user {user_id}")
    return link


async def unlink_wallet(db: AsyncSession, user_id: int, wallet_address: str) -> None:
    async with transaction(db):
        link = await get_wallet_link(db, user_id, wallet_address)
        if link is None:
            raise NotFoundError("Linked wallet", wallet_address)
        was_primary = link.is_primary

        await db.delete(link)
        if was_primary:
            await db.execute(
                update(User)
                .where(User.id == user_id, User.contact_wallet_address == wallet_address)
                .values(contact_wallet_address=None)
            )

    logger.info(f"Wallet {wallet_address[:8]}... unlinked from user {user_id} (was_primary={was_primary})")
