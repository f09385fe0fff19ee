"""
Chain Reader — the two on-chain read capabilities the marketplace relies on.

    list_token_accounts(owner)              → getTokenAccountsByOwner (jsonParsed)
    resolve_associated_account(mint, owner) → derive ATA + getAccountInfo (jsonParsed)

Both are pure reads against an eventually-consistent ledger. All raw
solana-py / httpx errors are translated into ChainReaderError here, once:

    malformed base58 input   → INVALID_ADDRESS (raised before any RPC call)
    transport / node failure → UNAVAILABLE
    anything else            → UNKNOWN
"""
import asyncio
import json
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Awaitable, Callable, Optional, TypeVar

import httpx
from solana.exceptions import SolanaRpcException
from solana.rpc.commitment import Commitment
from solana.rpc.core import RPCException
from solana.rpc.models import TokenAccountOpts
from solders.pubkey import Pubkey

from domain.constants import (
    ASSOCIATED_TOKEN_PROGRAM_ID,
    SPL_TOKEN_PROGRAM_TAG,
    TOKEN_PROGRAM_ID,
)
from exceptions import ChainErrorKind, ChainReaderError

logger = logging.getLogger(__name__)

TOKEN_PROGRAM = Pubkey.from_string(TOKEN_PROGRAM_ID)
ASSOCIATED_TOKEN_PROGRAM = Pubkey.from_string(ASSOCIATED_TOKEN_PROGRAM_ID)

T = TypeVar("T")


@dataclass(frozen=True)
class TokenAccount:
    """A parsed SPL token account balance."""
    mint: str
    owner: str
    amount: int  # raw base units
    decimals: int = 0
    address: Optional[str] = None

    @property
    def has_balance(self) -> bool:
        return self.amount > 0


def to_pubkey(address: str, label: str = "address") -> Pubkey:
    """Parse a base58 address, raising INVALID_ADDRESS on malformed input."""
    if not isinstance(address, str) or not address.strip():
        raise ChainReaderError(
            ChainErrorKind.INVALID_ADDRESS, f"Missing {label}", address=address
        )
    try:
        return Pubkey.from_string(address.strip())
    except (ValueError, TypeError) as e:
        raise ChainReaderError(
            ChainErrorKind.INVALID_ADDRESS,
            f"Invalid {label} format: {address}",
            address=address,
        ) from e


def derive_associated_address(mint: str, owner: str) -> str:
    """Derive the associated token account address for (mint, owner)."""
    mint_pk = to_pubkey(mint, "mint address")
    owner_pk = to_pubkey(owner, "owner address")
    ata, _bump = Pubkey.find_program_address(
        [bytes(owner_pk), bytes(TOKEN_PROGRAM), bytes(mint_pk)],
        ASSOCIATED_TOKEN_PROGRAM,
    )
    return str(ata)


def _parse_amount(token_amount: dict, decimals: int) -> int:
    raw = token_amount.get("amount")
    if raw is not None:
        try:
            return int(raw)
        except (TypeError, ValueError):
            pass
    ui = token_amount.get("uiAmountString")
    if ui is None and token_amount.get("uiAmount") is not None:
        ui = str(token_amount["uiAmount"])
    if ui is None:
        return 0
    try:
        return int(Decimal(ui) * (10 ** decimals))
    except (InvalidOperation, ValueError):
        return 0


def parse_token_account(data: Any, address: Optional[str] = None) -> Optional[TokenAccount]:
    """
    Parse jsonParsed account data into a TokenAccount.

    Returns None for anything that is not a parsed SPL token account.
    """
    program = getattr(data, "program", None)
    parsed = getattr(data, "parsed", None)
    if program != SPL_TOKEN_PROGRAM_TAG or parsed is None:
        return None
    if isinstance(parsed, str):
        try:
            parsed = json.loads(parsed)
        except ValueError:
            return None
    if not isinstance(parsed, dict):
        return None

    info = parsed.get("info") or {}
    mint = info.get("mint")
    owner = info.get("owner")
    if not mint or not owner:
        return None

    token_amount = info.get("tokenAmount") or {}
    decimals = int(token_amount.get("decimals") or 0)
    return TokenAccount(
        mint=mint,
        owner=owner,
        amount=_parse_amount(token_amount, decimals),
        decimals=decimals,
        address=address,
    )


class ChainReader:
    """
    Thin capability over a solana-py AsyncClient.

    The client is injected; this class never creates or caches one.
    """

    def __init__(self, client, commitment: str = "confirmed"):
        self._client = client
        self._commitment = Commitment(commitment)

    @classmethod
    def from_solana_client(cls, solana_client) -> "ChainReader":
        return cls(solana_client.client, commitment=solana_client.commitment)

    async def list_token_accounts(self, owner: str) -> list[TokenAccount]:
        """All SPL token accounts held by `owner`, with parsed balances."""
        owner_pk = to_pubkey(owner, "owner address")
        resp = await self._call(
            "getTokenAccountsByOwner",
            lambda: self._client.get_token_accounts_by_owner_json_parsed(
                owner_pk,
                TokenAccountOpts(program_id=TOKEN_PROGRAM),
                commitment=self._commitment,
            ),
        )

        accounts: list[TokenAccount] = []
        for keyed in resp.value or []:
            try:
                account = parse_token_account(keyed.account.data, address=str(keyed.pubkey))
            except (AttributeError, TypeError, ValueError) as e:
                logger.debug(f"Skipping unparsable token account for {owner[:8]}...: {e}")
                continue
            if account is not None:
                accounts.append(account)
        return accounts

    async def resolve_associated_account(self, mint: str, owner: str) -> Optional[TokenAccount]:
        """Fetch the (mint, owner) associated token account, or None if it does not exist."""
        ata = derive_associated_address(mint, owner)
        resp = await self._call(
            "getAccountInfo",
            lambda: self._client.get_account_info_json_parsed(
                Pubkey.from_string(ata), commitment=self._commitment
            ),
        )
        if resp.value is None:
            return None
        return parse_token_account(resp.value.data, address=ata)

    async def fetch_account_data(self, address: str) -> Optional[bytes]:
        """Raw account bytes for `address`, or None if the account does not exist."""
        pubkey = to_pubkey(address)
        resp = await self._call(
            "getAccountInfo",
            lambda: self._client.get_account_info(pubkey, commitment=self._commitment),
        )
        if resp.value is None or resp.value.data is None:
            return None
        return bytes(resp.value.data)

    async def _call(self, operation: str, request: Callable[[], Awaitable[T]]) -> T:
        try:
            return await request()
        except ChainReaderError:
            raise
        except (SolanaRpcException, httpx.HTTPError, asyncio.TimeoutError, OSError) as e:
            raise ChainReaderError(
                ChainErrorKind.UNAVAILABLE, f"{operation} failed: {e}"
            ) from e
        except RPCException as e:
            raise _translate_rpc_exception(operation, e) from e
        except Exception as e:
            raise ChainReaderError(
                ChainErrorKind.UNKNOWN, f"{operation} failed unexpectedly: {e}"
            ) from e


def _translate_rpc_exception(operation: str, exc: RPCException) -> ChainReaderError:
    """Node-side JSON-RPC errors: bad params are input errors, the rest are transient."""
    message = str(exc)
    lower = message.lower()
    if "invalid param" in lower or "invalid public key" in lower or "wrongsize" in lower:
        return ChainReaderError(ChainErrorKind.INVALID_ADDRESS, f"{operation} rejected input: {message}")
    if "could not find account" in lower:
        return ChainReaderError(ChainErrorKind.NOT_FOUND, f"{operation}: {message}")
    return ChainReaderError(ChainErrorKind.UNAVAILABLE, f"{operation} RPC error: {message}")
