"""
Metadata Service — on-chain Metaplex metadata + off-chain (URI-linked) JSON.

Flow:
    1. Derive the Token Metadata PDA for the mint and fetch its raw bytes
    2. Decode the Metaplex `Metadata` account (borsh layout)
    3. Fetch the off-chain JSON the `uri` points at (image, description, attributes)
    4. Return NFTMetadata — or MetadataError(error, status) for the caller to surface

Missing/unreachable off-chain JSON never fails the call: on-chain fields are
returned with image/description None and attributes [].

Error classes:
    404 — no metadata account for the mint
    400 — malformed mint address
    502 — upstream fetch failure (RPC node unavailable)
    500 — anything unexpected
"""
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Optional, Union

import httpx
from borsh_construct import Bool, CStruct, Option, String, U8, U16, Vec
from construct import ConstructError, GreedyBytes
from solders.pubkey import Pubkey

from domain.constants import TOKEN_METADATA_PROGRAM_ID
from exceptions import ChainErrorKind, ChainReaderError, MetadataParseError
from services.chain_reader import ChainReader, to_pubkey

logger = logging.getLogger(__name__)

TOKEN_METADATA_PROGRAM = Pubkey.from_string(TOKEN_METADATA_PROGRAM_ID)

METADATA_V1_KEY = 4

TOKEN_STANDARDS = {
    0: "NonFungible",
    1: "FungibleAsset",
    2: "Fungible",
    3: "NonFungibleEdition",
    4: "ProgrammableNonFungible",
    5: "ProgrammableNonFungibleEdition",
}


@dataclass
class Creator:
    address: str
    verified: bool
    share: int


@dataclass
class Collection:
    key: str
    verified: bool


@dataclass
class OnChainMetadata:
    """Decoded Metaplex Metadata account."""
    update_authority: str
    mint: str
    name: str
    symbol: str
    uri: str
    seller_fee_basis_points: int
    creators: list[Creator] = field(default_factory=list)
    primary_sale_happened: bool = False
    is_mutable: bool = True
    token_standard: Optional[str] = None
    collection: Optional[Collection] = None


@dataclass
class NFTMetadata:
    mint_address: str
    name: str
    symbol: str
    uri: str
    is_mutable: bool
    primary_sale_happened: bool
    seller_fee_basis_points: str
    creators: list[dict]
    token_standard: str
    collection: Optional[dict]
    json: Optional[dict]
    image: Optional[str]
    description: Optional[str]
    attributes: list

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class MetadataError:
    error: str
    status: int


MetadataResult = Union[NFTMetadata, MetadataError]


# ── Decoding ────────────────────────────────────────────────────────

# Metaplex Token Metadata `Metadata` account. Strings are NUL-padded to
# fixed widths; `tail` holds the fields later program versions appended.
CreatorLayout = CStruct(
    "address" / U8[32],
    "verified" / Bool,
    "share" / U8,
)
MetadataLayout = CStruct(
    "key" / U8,
    "update_authority" / U8[32],
    "mint" / U8[32],
    "name" / String,
    "symbol" / String,
    "uri" / String,
    "seller_fee_basis_points" / U16,
    "creators" / Option(Vec(CreatorLayout)),
    "primary_sale_happened" / Bool,
    "is_mutable" / Bool,
    "tail" / GreedyBytes,
)
CollectionLayout = CStruct(
    "verified" / Bool,
    "key" / U8[32],
)
# Optional tail, in on-chain order. Decoding stops at the first field that
# is missing or cut short.
TAIL_FIELDS = (
    ("edition_nonce", Option(U8)),
    ("token_standard", Option(U8)),
    ("collection", Option(CollectionLayout)),
)


def _pubkey(raw) -> str:
    return str(Pubkey.from_bytes(bytes(raw)))


def _text(value: str) -> str:
    return value.rstrip("\x00")


def _parse_tail(tail: bytes) -> dict:
    fields = {}
    for name, layout in TAIL_FIELDS:
        if not tail:
            break
        try:
            value = layout.parse(tail)
        except ConstructError:
            break
        fields[name] = value
        tail = tail[len(layout.build(value)):]
    return fields


def derive_metadata_address(mint: str) -> str:
    mint_pk = to_pubkey(mint, "mint address")
    pda, _bump = Pubkey.find_program_address(
        [b"metadata", bytes(TOKEN_METADATA_PROGRAM), bytes(mint_pk)],
        TOKEN_METADATA_PROGRAM,
    )
    return str(pda)


def parse_metadata_account(data: bytes) -> OnChainMetadata:
    """
    Decode a Metaplex Metadata account.

    Fields after `is_mutable` were added over several program versions, so a
    short tail is accepted and the missing optionals stay None.
    """
    try:
        parsed = MetadataLayout.parse(data)
    except (ConstructError, UnicodeDecodeError) as e:
        raise MetadataParseError(f"Metadata account could not be decoded: {e}")
    if parsed.key != METADATA_V1_KEY:
        raise MetadataParseError(f"Not a metadata account (key={parsed.key})")

    meta = OnChainMetadata(
        update_authority=_pubkey(parsed.update_authority),
        mint=_pubkey(parsed.mint),
        name=_text(parsed.name),
        symbol=_text(parsed.symbol),
        uri=_text(parsed.uri),
        seller_fee_basis_points=parsed.seller_fee_basis_points,
        creators=[
            Creator(address=_pubkey(c.address), verified=c.verified, share=c.share)
            for c in parsed.creators or []
        ],
        primary_sale_happened=parsed.primary_sale_happened,
        is_mutable=parsed.is_mutable,
    )

    tail = _parse_tail(parsed.tail)
    standard = tail.get("token_standard")
    if standard is not None:
        meta.token_standard = TOKEN_STANDARDS.get(standard, f"Unknown({standard})")
    collection = tail.get("collection")
    if collection is not None:
        meta.collection = Collection(key=_pubkey(collection.key), verified=collection.verified)
    if len(tail) < len(TAIL_FIELDS) and parsed.tail:
        logger.debug(f"Metadata tail truncated for mint {meta.mint}; optional fields left unset")

    return meta


# ── Resolver ────────────────────────────────────────────────────────

class MetadataResolver:
    """Fetches and normalizes NFT metadata. Never gates marketplace correctness."""

    def __init__(self, reader: ChainReader, http_client: httpx.AsyncClient):
        self.reader = reader
        self.http = http_client

    async def resolve_metadata(self, mint: str) -> MetadataResult:
        try:
            metadata_address = derive_metadata_address(mint)
            raw = await self.reader.fetch_account_data(metadata_address)
        except ChainReaderError as e:
            return _error_for_chain_failure(mint, e)
        except Exception as e:
            logger.error(f"Error fetching metadata for mint {mint}: {e}", exc_info=True)
            return MetadataError(f"An unexpected error occurred while fetching NFT metadata: {e}", 500)

        if raw is None:
            logger.info(f"No metadata account found for mint {mint}")
            return MetadataError(
                f"NFT data not found on-chain for mint: {mint}. It might not be a valid Metaplex NFT.", 404
            )

        try:
            on_chain = parse_metadata_account(raw)
        except MetadataParseError as e:
            logger.warning(f"Could not decode metadata account for mint {mint}: {e}")
            return MetadataError(f"NFT data not found on-chain for mint: {mint}. {e}", 404)
        except Exception as e:
            logger.error(f"Unexpected metadata decode failure for mint {mint}: {e}", exc_info=True)
            return MetadataError(f"An unexpected error occurred while fetching NFT metadata: {e}", 500)

        off_chain = await self.fetch_offchain_json(on_chain.uri, mint)
        return _build_metadata(mint, on_chain, off_chain)

    async def fetch_offchain_json(self, uri: str, mint: str = "") -> Optional[dict]:
        """GET the JSON document at `uri`. Any failure yields None."""
        if not uri:
            logger.warning(f"Off-chain JSON metadata not available for {mint}: empty URI")
            return None
        try:
            response = await self.http.get(uri)
            response.raise_for_status()
            document = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Off-chain JSON metadata not loaded for {mint}. URI: {uri} ({e})")
            return None
        if not isinstance(document, dict):
            logger.warning(f"Off-chain JSON metadata for {mint} is not an object. URI: {uri}")
            return None
        return document


def _error_for_chain_failure(mint: str, e: ChainReaderError) -> MetadataError:
    if e.kind == ChainErrorKind.INVALID_ADDRESS:
        return MetadataError(f"Invalid mint address format: {mint}", 400)
    if e.kind == ChainErrorKind.NOT_FOUND:
        return MetadataError(f"NFT data not found on-chain for mint: {mint}.", 404)
    if e.kind == ChainErrorKind.UNAVAILABLE:
        logger.error(f"Solana RPC unavailable while fetching metadata for {mint}: {e.message}")
        return MetadataError(f"Failed to fetch metadata for {mint}. The Solana RPC node is unavailable.", 502)
    logger.error(f"Unexpected chain error fetching metadata for {mint}: {e.message}")
    return MetadataError(f"An unexpected error occurred while fetching NFT metadata: {e.message}", 500)


def _build_metadata(mint: str, on_chain: OnChainMetadata, off_chain: Optional[dict]) -> NFTMetadata:
    attributes = (off_chain or {}).get("attributes") or []
    return NFTMetadata(
        mint_address=on_chain.mint or mint,
        name=on_chain.name,
        symbol=on_chain.symbol,
        uri=on_chain.uri,
        is_mutable=on_chain.is_mutable,
        primary_sale_happened=on_chain.primary_sale_happened,
        seller_fee_basis_points=str(on_chain.seller_fee_basis_points),
        creators=[asdict(c) for c in on_chain.creators],
        token_standard=on_chain.token_standard or "Unknown",
        collection=asdict(on_chain.collection) if on_chain.collection else None,
        json=off_chain,
        image=(off_chain or {}).get("image") or None,
        description=(off_chain or {}).get("description") or None,
        attributes=attributes if isinstance(attributes, list) else [],
    )


# ── Merge with stored listing ───────────────────────────────────────

def merge_listing_metadata(listing: Optional[dict[str, Any]], metadata: Optional[MetadataResult], mint: str) -> Optional[dict]:
    """
    Combine a stored listing row with live metadata.

    On-chain name/image/description/attributes win when non-null; stored
    values fill the gaps. Returns None when neither source knows the mint.
    """
    if isinstance(metadata, MetadataError):
        if listing is None:
            return None
        logger.warning(f"Error fetching live Solana metadata for {mint}: {metadata.error}. Serving DB data.")
        return {**listing, "solana_fetch_error": metadata.error}

    if metadata is None and listing is None:
        return None

    live = metadata.to_dict() if metadata is not None else {}
    stored = listing or {}
    combined = {
        **live,
        **stored,
        "name": live.get("name") or stored.get("name"),
        "image_url": live.get("image") or stored.get("image_url"),
        "description": live.get("description") or stored.get("description"),
        "attributes": live.get("attributes") or stored.get("attributes"),
        "mint_address": mint,
    }
    if listing is None:
        combined["is_listed"] = False
        combined["price"] = None
    return combined
