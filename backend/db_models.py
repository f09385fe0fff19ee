"""
SQLAlchemy ORM models for the NFT Marketplace.

Tables:
    users         — marketplace accounts (credential hash, profile, 2FA flag)
    user_wallets  — Solana wallets linked to an account (one primary per user)
    draft_nfts    — pre-mint intents created by a user before the on-chain mint
    nfts          — canonical record of a minted asset (one row per mint address)
    transactions  — immutable purchase audit rows (signature is the dedup key)
"""
from datetime import datetime

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Text, ForeignKey, Numeric, JSON,
    Index,
)
from sqlalchemy.orm import relationship

from database import Base
from domain.enums import DraftStatus

# Prices are in SOL; 9 decimal places covers lamport precision.
PRICE_TYPE = Numeric(20, 9, asdecimal=True)


class User(Base):
    """Marketplace account. Credentials are managed by the session layer."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    hashed_password = Column(String(255), nullable=False)
    username = Column(String(100), unique=True, nullable=True)
    contact_wallet_address = Column(String(44), nullable=True)  # mirrors the primary wallet
    phone_number = Column(String(32), nullable=True)
    is_2fa_enabled = Column(Boolean, nullable=False, default=False)
    profile_picture_url = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    wallets = relationship(
        "UserWallet",
        back_populates="user",
        lazy="select",
        cascade="all, delete-orphan",
    )


class UserWallet(Base):
    """A Solana wallet linked to exactly one user account."""
    __tablename__ = "user_wallets"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    wallet_address = Column(String(44), unique=True, nullable=False, index=True)
    is_primary = Column(Boolean, nullable=False, default=False)
    linked_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    user = relationship("User", back_populates="wallets")

    __table_args__ = (
        Index("ix_user_wallets_user_primary", "user_id", "is_primary"),
    )


class DraftNFT(Base):
    """
    Pre-mint intent. Becomes `finalized` exactly once, in the same
    transaction that creates the matching NFTListing row.
    """
    __tablename__ = "draft_nfts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    creator_user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    symbol = Column(String(10), nullable=True)
    description = Column(Text, nullable=True)
    image_url = Column(Text, nullable=False)
    metadata_json_url = Column(Text, nullable=False)
    price = Column(PRICE_TYPE, nullable=True)
    attributes = Column(JSON, nullable=True)
    collection_name = Column(String(200), nullable=True)
    status = Column(String(20), nullable=False, default=DraftStatus.DRAFT.value)  # "draft" | "finalized"
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_draft_nfts_creator_status", "creator_user_id", "status"),
    )


class NFTListing(Base):
    """
    Canonical record of a minted asset — one row per mint address.

    is_listed=True always carries a price; a sale clears both.
    """
    __tablename__ = "nfts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    mint_address = Column(String(44), unique=True, nullable=False, index=True)
    name = Column(String(200), nullable=True)
    symbol = Column(String(10), nullable=True)
    description = Column(Text, nullable=True)
    image_url = Column(Text, nullable=True)
    metadata_url = Column(Text, nullable=True)
    attributes = Column(JSON, nullable=True)
    collection_name = Column(String(200), nullable=True)
    owner_wallet_address = Column(String(44), nullable=False, index=True)
    owner_user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    price = Column(PRICE_TYPE, nullable=True)
    is_listed = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, index=True)

    # Relationships
    purchases = relationship("PurchaseRecord", back_populates="nft", lazy="select")

    __table_args__ = (
        # Marketplace browse: listed first, newest first
        Index("ix_nfts_listed_updated", "is_listed", "updated_at"),
    )


class PurchaseRecord(Base):
    """Immutable purchase audit row. transaction_signature is the idempotency key."""
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    nft_id = Column(Integer, ForeignKey("nfts.id"), nullable=False, index=True)
    seller_wallet_address = Column(String(44), nullable=False, index=True)
    buyer_wallet_address = Column(String(44), nullable=False, index=True)
    price = Column(PRICE_TYPE, nullable=False)
    transaction_signature = Column(String(128), unique=True, nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    nft = relationship("NFTListing", back_populates="purchases")
