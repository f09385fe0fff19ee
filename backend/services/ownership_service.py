"""
Ownership Service — decides whether a wallet currently holds ≥1 unit of a mint.

RPC indexing lag means the bulk token-account listing can be transiently
wrong, so verification is two-tier:

    RETRYING(1..N)  getTokenAccountsByOwner, scan for (mint, amount > 0).
                    Fixed delay between attempts. INVALID_ADDRESS aborts.
    FALLBACK_CHECK  derive the associated token account and fetch it directly.
                    Requires exact mint, exact owner and amount > 0.
    RESOLVED(bool)  any fallback error resolves to False.

A negative result is never an exception; only malformed input raises.
Each call owns its own state, so concurrent verifications share nothing.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from config import Settings
from domain.enums import VerificationStage
from exceptions import ChainErrorKind, ChainReaderError
from services.chain_reader import ChainReader, TokenAccount, to_pubkey

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_RETRY_DELAY_SECONDS = 1.0

SleepFn = Callable[[float], Awaitable[None]]


@dataclass
class VerificationState:
    """Mutable cursor of one verification run."""
    stage: VerificationStage = VerificationStage.RETRYING
    attempt: int = 1
    owned: Optional[bool] = None
    trail: list[str] = field(default_factory=list)

    def record(self) -> None:
        if self.stage == VerificationStage.RETRYING:
            self.trail.append(f"{self.stage.value}({self.attempt})")
        elif self.stage == VerificationStage.RESOLVED:
            self.trail.append(f"{self.stage.value}({self.owned})")
        else:
            self.trail.append(self.stage.value)


@dataclass(frozen=True)
class VerificationOutcome:
    owned: bool
    attempts: int
    used_fallback: bool
    stages: tuple[str, ...]


def holds_mint(accounts: list[TokenAccount], mint: str) -> bool:
    return any(acc.mint == mint and acc.has_balance for acc in accounts)


class OwnershipVerifier:
    """Retry-then-fallback ownership check over an injected ChainReader."""

    def __init__(
        self,
        reader: ChainReader,
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        retry_delay: float = DEFAULT_RETRY_DELAY_SECONDS,
        sleep: SleepFn = asyncio.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.reader = reader
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self._sleep = sleep

    @classmethod
    def from_settings(cls, reader: ChainReader, settings: Settings, **kwargs) -> "OwnershipVerifier":
        return cls(
            reader,
            max_attempts=settings.ownership_max_attempts,
            retry_delay=settings.ownership_retry_delay_seconds,
            **kwargs,
        )

    async def verify_ownership(self, mint: str, owner: str) -> bool:
        outcome = await self.verify(mint, owner)
        return outcome.owned

    async def verify(self, mint: str, owner: str) -> VerificationOutcome:
        """
        Run the verification state machine to completion.

        Raises:
            ChainReaderError(INVALID_ADDRESS) for malformed mint/owner input.
        """
        to_pubkey(mint, "mint address")
        to_pubkey(owner, "owner address")
        logger.info(f"Verifying ownership of mint {mint} by {owner[:8]}...")
        state = VerificationState()
        used_fallback = False

        while state.stage != VerificationStage.RESOLVED:
            state.record()
            if state.stage == VerificationStage.RETRYING:
                await self._primary_step(state, mint, owner)
            elif state.stage == VerificationStage.FALLBACK_CHECK:
                used_fallback = True
                state.owned = await self._fallback_step(mint, owner)
                state.stage = VerificationStage.RESOLVED
        state.record()

        attempts = min(state.attempt, self.max_attempts)
        if state.owned:
            logger.info(f"Ownership CONFIRMED for mint {mint} by {owner[:8]}... ({'fallback' if used_fallback else f'attempt {attempts}'})")
        else:
            logger.info(f"Ownership verification FAILED for mint {mint} by {owner[:8]}...")

        return VerificationOutcome(
            owned=bool(state.owned),
            attempts=attempts,
            used_fallback=used_fallback,
            stages=tuple(state.trail),
        )

    async def _primary_step(self, state: VerificationState, mint: str, owner: str) -> None:
        attempt = state.attempt
        try:
            accounts = await self.reader.list_token_accounts(owner)
        except ChainReaderError as e:
            if e.kind == ChainErrorKind.INVALID_ADDRESS:
                raise
            logger.warning(f"[Attempt {attempt}/{self.max_attempts}] Token account listing failed: {e.message}")
        else:
            logger.debug(f"[Attempt {attempt}/{self.max_attempts}] {len(accounts)} token accounts for {owner[:8]}...")
            if holds_mint(accounts, mint):
                state.owned = True
                state.stage = VerificationStage.RESOLVED
                return
            logger.info(f"[Attempt {attempt}/{self.max_attempts}] No matching token account for mint {mint}")

        if attempt >= self.max_attempts:
            logger.info("Listing lookups exhausted without a match; proceeding to direct ATA check")
            state.stage = VerificationStage.FALLBACK_CHECK
            return
        state.attempt += 1
        await self._sleep(self.retry_delay)

    async def _fallback_step(self, mint: str, owner: str) -> bool:
        try:
            account = await self.reader.resolve_associated_account(mint, owner)
        except Exception as e:
            logger.error(f"[Direct Check] Error during ATA check for mint {mint}: {e}", exc_info=True)
            return False

        if account is None:
            logger.info(f"[Direct Check] ATA for mint {mint} and owner {owner[:8]}... does not exist or is not a token account")
            return False

        if account.mint == mint and account.owner == owner and account.has_balance:
            return True

        logger.info(
            f"[Direct Check] Ownership MISMATCH or ZERO BALANCE for ATA {account.address}: "
            f"mint={account.mint}, owner={account.owner}, amount={account.amount}"
        )
        return False
