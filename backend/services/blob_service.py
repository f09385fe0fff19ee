"""
Blob Service — binary storage for draft images and metadata JSON on Pinata IPFS.

Contract used by the marketplace:
    put(data, key, content_type) → url
    delete(key)                  → unpin; raises BlobStoreError on failure
    key_from_url(url)            → the CID a stored URL refers to

Stored URLs have the form {gateway}/{cid}; the CID is the blob key.
"""
import json
import logging
import time
from typing import Optional

import httpx

from config import Settings
from domain.constants import IMAGE_PREFIX, METADATA_PREFIX

logger = logging.getLogger(__name__)

PINATA_BASE = "https://api.pinata.cloud"


class BlobStoreError(Exception):
    """Raised when the blob backend rejects or cannot complete a request."""
    pass


class PinataBlobStore:
    """Pinata pinning API over a shared httpx.AsyncClient."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        api_key: str,
        secret: str,
        gateway: str = "https://gateway.pinata.cloud/ipfs",
        base_url: str = PINATA_BASE,
    ):
        self.http = http_client
        self.api_key = api_key
        self.secret = secret
        self.gateway = gateway.rstrip("/")
        self.base_url = base_url.rstrip("/")

    @classmethod
    def from_settings(cls, http_client: httpx.AsyncClient, settings: Settings) -> "PinataBlobStore":
        return cls(
            http_client,
            api_key=settings.pinata_api_key,
            secret=settings.pinata_secret,
            gateway=settings.pinata_gateway,
        )

    def _headers(self) -> dict:
        """Build Pinata authentication headers."""
        if not self.api_key or not self.secret:
            raise BlobStoreError(
                "Pinata API key and secret must be set in .env "
                "(PINATA_API_KEY, PINATA_SECRET)"
            )
        return {
            "pinata_api_key": self.api_key,
            "pinata_secret_api_key": self.secret,
        }

    def url_for(self, cid: str) -> str:
        return f"{self.gateway}/{cid}"

    def key_from_url(self, url: Optional[str]) -> Optional[str]:
        """Extract the CID from a gateway or ipfs:// URL. Unknown shapes yield None."""
        if not url:
            return None
        if url.startswith("ipfs://"):
            return url[len("ipfs://"):].split("/", 1)[0] or None
        if url.startswith(self.gateway + "/"):
            return url[len(self.gateway) + 1:].split("/", 1)[0] or None
        marker = "/ipfs/"
        if marker in url:
            return url.split(marker, 1)[1].split("/", 1)[0] or None
        return None

    async def put(self, data: bytes, key: str, content_type: str = "application/octet-stream") -> str:
        """Pin `data` under the display name `key`. Returns the gateway URL."""
        try:
            response = await self.http.post(
                f"{self.base_url}/pinning/pinFileToIPFS",
                headers=self._headers(),
                files={"file": (key.rsplit("/", 1)[-1], data, content_type)},
                data={
                    "pinataOptions": json.dumps({"cidVersion": 1}),
                    "pinataMetadata": json.dumps({"name": key}),
                },
                timeout=60.0,
            )
            response.raise_for_status()
            result = response.json()
        except httpx.HTTPError as e:
            raise BlobStoreError(f"Failed to pin {key}: {e}") from e

        cid = result["IpfsHash"]
        logger.info(f"Blob pinned to IPFS: {key} → {cid} ({result.get('PinSize', 0)} bytes)")
        return self.url_for(cid)

    async def delete(self, key: str) -> None:
        """Unpin a CID. Raises BlobStoreError if Pinata does not confirm."""
        try:
            response = await self.http.delete(
                f"{self.base_url}/pinning/unpin/{key}",
                headers=self._headers(),
                timeout=10.0,
            )
        except httpx.HTTPError as e:
            raise BlobStoreError(f"Failed to unpin {key}: {e}") from e
        if response.status_code != 200:
            raise BlobStoreError(f"Failed to unpin {key}: HTTP {response.status_code}")
        logger.info(f"Blob unpinned: {key}")


def _safe_name(original_name: str) -> str:
    return "_".join(original_name.split())


async def upload_image(store: PinataBlobStore, data: bytes, original_name: str, content_type: str) -> dict:
    """Upload a draft image. Returns {url, key}."""
    key = f"{IMAGE_PREFIX}{int(time.time() * 1000)}-{_safe_name(original_name)}"
    url = await store.put(data, key, content_type)
    return {"url": url, "key": store.key_from_url(url)}


async def upload_metadata(store: PinataBlobStore, metadata: dict) -> dict:
    """Upload a metadata JSON document. Returns {url, key}."""
    body = json.dumps(metadata, indent=2).encode("utf-8")
    key = f"{METADATA_PREFIX}{int(time.time() * 1000)}-metadata.json"
    url = await store.put(body, key, "application/json")
    return {"url": url, "key": store.key_from_url(url)}
