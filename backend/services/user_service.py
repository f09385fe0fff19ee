"""
User Service — account records and profile updates.

Password hashing and session issuance belong to the credential layer; this
module stores the already-hashed credential it is given.
"""
import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from database import transaction
from db_models import User, UserWallet
from domain.enums import ConflictReason
from domain.errors import ConflictError, NotFoundError, ValidationError
from utils.validators import validate_solana_address

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("username", "phone_number", "is_2fa_enabled", "profile_picture_url")


async def register_user(
    db: AsyncSession,
    *,
    email: str,
    hashed_password: str,
    username: Optional[str] = None,
    contact_wallet_address: Optional[str] = None,
    phone_number: Optional[str] = None,
) -> User:
    """
    Create a user; an initial wallet becomes the primary link in the same transaction.

    Raises:
        ValidationError on missing email / credential
        ConflictError for a taken email, username or wallet
    """
    if not email or not hashed_password:
        raise ValidationError("Email and password are required")
    if contact_wallet_address:
        contact_wallet_address = validate_solana_address(contact_wallet_address)

    async with transaction(db):
        if (await db.execute(select(User.id).where(User.email == email))).first():
            raise ConflictError("User already exists with this email", reason=ConflictReason.EMAIL_TAKEN)
        if username and (await db.execute(select(User.id).where(User.username == username))).first():
            raise ConflictError("Username already taken.", reason=ConflictReason.USERNAME_TAKEN)
        if contact_wallet_address and (
            await db.execute(select(UserWallet.id).where(UserWallet.wallet_address == contact_wallet_address))
        ).first():
            raise ConflictError(
                "This wallet address is already associated with another user account.",
                reason=ConflictReason.WALLET_LINKED_ELSEWHERE,
            )

        user = User(
            email=email,
            hashed_password=hashed_password,
            username=username,
            contact_wallet_address=contact_wallet_address,
            phone_number=phone_number,
        )
        db.add(user)
        await db.flush()

        if contact_wallet_address:
            db.add(UserWallet(user_id=user.id, wallet_address=contact_wallet_address, is_primary=True))

        try:
            await db.flush()
        except IntegrityError:
            raise ConflictError("Email, username or wallet is already registered.")

    logger.info(f"User {user.id} registered ({email})")
    return user


async def get_user(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("User", str(user_id))
    return user


async def get_user_by_wallet(db: AsyncSession, wallet_address: str) -> User:
    result = await db.execute(
        select(User)
        .join(UserWallet, UserWallet.user_id == User.id)
        .where(UserWallet.wallet_address == wallet_address)
    )
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFoundError("User for wallet", wallet_address)
    return user


async def update_profile(db: AsyncSession, user_id: int, updates: dict) -> User:
    """Apply the provided profile fields. Keys outside PROFILE_FIELDS are rejected."""
    fields = {k: v for k, v in updates.items() if k in PROFILE_FIELDS}
    unknown = set(updates) - set(PROFILE_FIELDS)
    if unknown:
        raise ValidationError(f"Unsupported fields: {', '.join(sorted(unknown))}")
    if not fields:
        raise ValidationError("No fields provided for update.")

    async with transaction(db):
        user = await get_user(db, user_id)
        username = fields.get("username")
        if username and username != user.username:
            taken = await db.execute(select(User.id).where(User.username == username, User.id != user_id))
            if taken.first():
                raise ConflictError("Username already taken.", reason=ConflictReason.USERNAME_TAKEN)
        for key, value in fields.items():
            setattr(user, key, value)

    return user
