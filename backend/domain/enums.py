"""
Domain enums (minimal set used for clarity in services).
"""

from enum import Enum


class DraftStatus(str, Enum):
    DRAFT = "draft"
    FINALIZED = "finalized"


class VerificationStage(str, Enum):
    """Stages of the ownership verification state machine."""
    RETRYING = "retrying"
    FALLBACK_CHECK = "fallback_check"
    RESOLVED = "resolved"


class ConflictReason(str, Enum):
    ALREADY_PROCESSED = "already_processed"
    ALREADY_LISTED = "already_listed"
    ALREADY_FINALIZED = "already_finalized"
    WALLET_LINKED_ELSEWHERE = "wallet_linked_elsewhere"
    EMAIL_TAKEN = "email_taken"
    USERNAME_TAKEN = "username_taken"
