"""
API tests over the ASGI app — envelopes, status codes and auth on every router.

Services run against the in-memory database and the fakes from conftest;
the lifespan is not started, so no RPC node or Pinata is contacted.
"""
import os, sys
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from decimal import Decimal

import pytest

from services.metadata_service import derive_metadata_address
from tests.fakes import (
    IMAGE_URL,
    METADATA_URL,
    MINT_1,
    MINT_2,
    MINT_3,
    WALLET_1,
    WALLET_2,
    WALLET_3,
    auth_headers,
    metadata_account_bytes,
)


def listing_body(mint: str = MINT_1, wallet: str = WALLET_1, price: str = "2.0") -> dict:
    return {
        "mint_address": mint,
        "price": price,
        "owner_wallet_address": wallet,
        "image_url": IMAGE_URL,
        "metadata_url": METADATA_URL,
    }


def purchase_body(sig: str = "S1", wallet: str = WALLET_2, paid: str = "2.0") -> dict:
    return {"buyer_wallet_address": wallet, "transaction_signature": sig, "paid_price": paid}


def draft_body(**overrides) -> dict:
    body = {
        "name": "Genesis",
        "image_url": IMAGE_URL,
        "metadata_json_url": METADATA_URL,
        "price": "1.5",
        "symbol": "GEN",
        "attributes": [{"trait_type": "tier", "value": "gold"}],
    }
    body.update(overrides)
    return body


class StubSolanaClient:
    def __init__(self, connected: bool):
        self.connected = connected

    async def is_connected(self) -> bool:
        return self.connected


# ── Health ──────────────────────────────────────────────────────────


class TestHealth:

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_unhealthy_without_rpc_client(self, client):
        response = await client.get("/health")
        assert response.status_code == 503
        assert response.json()["status"] == "unhealthy"

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_healthy_when_rpc_reachable(self, client):
        from main import app
        app.state.solana_client = StubSolanaClient(connected=True)

        response = await client.get("/health")
        body = response.json()
        assert response.status_code == 200
        assert body["status"] == "healthy"
        assert body["solana_connected"] is True
        assert "timestamp" in body

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_unhealthy_when_rpc_unreachable(self, client):
        from main import app
        app.state.solana_client = StubSolanaClient(connected=False)

        response = await client.get("/health")
        assert response.status_code == 503
        assert response.json()["solana_connected"] is False


# ── Listing & Purchase ──────────────────────────────────────────────


class TestListingRoutes:

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_listing_requires_auth(self, client):
        response = await client.post("/api/nfts", json=listing_body())
        body = response.json()
        assert response.status_code == 401
        assert body["success"] is False
        assert body["error"]["code"] == "unauthorized"

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_list_then_relist(self, client, chain, seller_id):
        chain.give(WALLET_1, MINT_1)

        first = await client.post("/api/nfts", json=listing_body(), headers=auth_headers(seller_id))
        assert first.status_code == 201
        nft = first.json()
        assert nft["mint_address"] == MINT_1
        assert nft["is_listed"] is True
        assert nft["owner_user_id"] == seller_id
        # no metadata account on the fake chain, so the name falls back to the mint
        assert nft["name"] == MINT_1

        second = await client.post(
            "/api/nfts", json=listing_body(price="3.5"), headers=auth_headers(seller_id)
        )
        assert second.status_code == 200
        assert second.json()["id"] == nft["id"]
        assert Decimal(str(second.json()["price"])) == Decimal("3.5")

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_listing_without_ownership_is_forbidden(self, client, seller_id):
        response = await client.post("/api/nfts", json=listing_body(), headers=auth_headers(seller_id))
        body = response.json()
        assert response.status_code == 403
        assert body["error"]["code"] == "permissiondenied"
        assert body["error"]["details"]["mint_address"] == MINT_1

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_listing_from_unlinked_wallet_is_forbidden(self, client, chain, seller_id, buyer_id):
        chain.give(WALLET_2, MINT_1)
        response = await client.post(
            "/api/nfts", json=listing_body(wallet=WALLET_2), headers=auth_headers(seller_id)
        )
        assert response.status_code == 403

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_zero_price_rejected_by_schema(self, client, chain, seller_id):
        chain.give(WALLET_1, MINT_1)
        response = await client.post(
            "/api/nfts", json=listing_body(price="0"), headers=auth_headers(seller_id)
        )
        assert response.status_code == 422

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_buy_then_replay(self, client, chain, seller_id, buyer_id):
        chain.give(WALLET_1, MINT_1)
        await client.post("/api/nfts", json=listing_body(), headers=auth_headers(seller_id))

        bought = await client.post(
            f"/api/nfts/mint/{MINT_1}/buy", json=purchase_body(), headers=auth_headers(buyer_id)
        )
        assert bought.status_code == 200
        body = bought.json()
        assert body["buyer"] == WALLET_2
        assert body["purchase"]["transaction_signature"] == "S1"
        assert body["purchase"]["seller_wallet_address"] == WALLET_1

        replay = await client.post(
            f"/api/nfts/mint/{MINT_1}/buy", json=purchase_body(), headers=auth_headers(buyer_id)
        )
        error = replay.json()["error"]
        assert replay.status_code == 409
        assert error["code"] == "alreadyprocessed"
        assert error["details"]["reason"] == "already_processed"

        history = await client.get(f"/api/nfts/mint/{MINT_1}/purchases")
        assert history.status_code == 200
        assert [p["transaction_signature"] for p in history.json()] == ["S1"]

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_second_buyer_finds_listing_gone(self, client, chain, seller_id, buyer_id):
        chain.give(WALLET_1, MINT_1)
        await client.post("/api/nfts", json=listing_body(), headers=auth_headers(seller_id))
        await client.post(f"/api/nfts/mint/{MINT_1}/buy", json=purchase_body(), headers=auth_headers(buyer_id))

        response = await client.post(
            f"/api/nfts/mint/{MINT_1}/buy",
            json=purchase_body(sig="S2", wallet=WALLET_3),
            headers=auth_headers(buyer_id),
        )
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "listingnotavailable"

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_underpaying_is_rejected(self, client, chain, seller_id, buyer_id):
        chain.give(WALLET_1, MINT_1)
        await client.post("/api/nfts", json=listing_body(), headers=auth_headers(seller_id))

        response = await client.post(
            f"/api/nfts/mint/{MINT_1}/buy", json=purchase_body(paid="1.0"), headers=auth_headers(buyer_id)
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "invalidprice"

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_buy_needs_no_session(self, client, chain, seller_id, buyer_id):
        chain.give(WALLET_1, MINT_1)
        await client.post("/api/nfts", json=listing_body(), headers=auth_headers(seller_id))

        response = await client.post(f"/api/nfts/mint/{MINT_1}/buy", json=purchase_body())
        assert response.status_code == 200
        assert response.json()["purchase"]["buyer_wallet_address"] == WALLET_2


# ── Browse & Lookup ─────────────────────────────────────────────────


class TestBrowseRoutes:

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_browse_returns_paginated_envelope(self, client, chain, seller_id):
        chain.give(WALLET_1, MINT_1)
        await client.post("/api/nfts", json=listing_body(), headers=auth_headers(seller_id))

        response = await client.get("/api/nfts", params={"limit": 10})
        body = response.json()
        assert response.status_code == 200
        assert body["success"] is True
        assert [n["mint_address"] for n in body["data"]] == [MINT_1]
        assert body["meta"]["limit"] == 10
        assert body["meta"]["hasMore"] is False

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_get_by_id(self, client, chain, seller_id):
        chain.give(WALLET_1, MINT_1)
        created = await client.post("/api/nfts", json=listing_body(), headers=auth_headers(seller_id))
        nft_id = created.json()["id"]

        response = await client.get(f"/api/nfts/{nft_id}")
        assert response.status_code == 200
        assert response.json()["mint_address"] == MINT_1

        missing = await client.get("/api/nfts/9999")
        assert missing.status_code == 404
        assert missing.json()["error"]["code"] == "notfound"

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_get_by_mint_serves_stored_row_when_chain_has_no_metadata(self, client, chain, seller_id):
        chain.give(WALLET_1, MINT_1)
        await client.post("/api/nfts", json=listing_body(), headers=auth_headers(seller_id))

        response = await client.get(f"/api/nfts/mint/{MINT_1}")
        data = response.json()["data"]
        assert response.status_code == 200
        assert data["mint_address"] == MINT_1
        assert data["is_listed"] is True
        assert "solana_fetch_error" in data
        assert data["owner_username"] == "seller"
        assert data["primary_contact_wallet"] == WALLET_1

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_get_by_mint_with_live_metadata_only(self, client, chain):
        chain.accounts[derive_metadata_address(MINT_2)] = metadata_account_bytes(MINT_2, name="Live Name")

        response = await client.get(f"/api/nfts/mint/{MINT_2}")
        data = response.json()["data"]
        assert response.status_code == 200
        assert data["name"] == "Live Name"
        assert data["is_listed"] is False
        assert data["price"] is None

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_get_by_unknown_mint_is_404(self, client):
        response = await client.get(f"/api/nfts/mint/{MINT_3}")
        assert response.status_code == 404
        assert response.json()["success"] is False

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_invalid_mint_in_path_is_400(self, client):
        response = await client.get("/api/nfts/mint/not-a-mint/metadata")
        assert response.status_code == 400

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_metadata_endpoint(self, client, chain):
        chain.accounts[derive_metadata_address(MINT_2)] = metadata_account_bytes(MINT_2, symbol="LIVE")

        response = await client.get(f"/api/nfts/mint/{MINT_2}/metadata")
        data = response.json()["data"]
        assert response.status_code == 200
        assert data["symbol"] == "LIVE"
        assert data["mint_address"] == MINT_2

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_verify_owner(self, client, chain):
        chain.give(WALLET_1, MINT_1)

        owned = await client.get(f"/api/nfts/mint/{MINT_1}/verify-owner", params={"wallet": WALLET_1})
        assert owned.status_code == 200
        assert owned.json()["data"]["owned"] is True
        assert owned.json()["data"]["attempts"] == 1
        assert owned.json()["data"]["used_fallback"] is False

        not_owned = await client.get(f"/api/nfts/mint/{MINT_1}/verify-owner", params={"wallet": WALLET_2})
        assert not_owned.json()["data"]["owned"] is False
        assert not_owned.json()["data"]["used_fallback"] is True


# ── Drafts ──────────────────────────────────────────────────────────


class TestDraftRoutes:

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_create_list_and_finalize(self, client, chain, seller_id):
        created = await client.post("/api/nfts/draft", json=draft_body(), headers=auth_headers(seller_id))
        assert created.status_code == 201
        draft = created.json()
        assert draft["status"] == "draft"
        assert draft["creator_user_id"] == seller_id

        mine = await client.get("/api/users/me/drafts", headers=auth_headers(seller_id))
        assert [d["id"] for d in mine.json()] == [draft["id"]]

        chain.give(WALLET_1, MINT_3)
        finalized = await client.post(
            f"/api/nfts/finalize-mint/{draft['id']}",
            json={"mint_address": MINT_3, "owner_wallet_address": WALLET_1},
            headers=auth_headers(seller_id),
        )
        assert finalized.status_code == 201
        nft = finalized.json()
        assert nft["mint_address"] == MINT_3
        assert nft["name"] == "Genesis"
        assert nft["is_listed"] is True

        again = await client.post(
            f"/api/nfts/finalize-mint/{draft['id']}",
            json={"mint_address": MINT_3, "owner_wallet_address": WALLET_1},
            headers=auth_headers(seller_id),
        )
        assert again.status_code == 409

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_finalize_by_other_user_is_forbidden(self, client, chain, seller_id, buyer_id):
        created = await client.post("/api/nfts/draft", json=draft_body(), headers=auth_headers(seller_id))
        chain.give(WALLET_2, MINT_3)

        response = await client.post(
            f"/api/nfts/finalize-mint/{created.json()['id']}",
            json={"mint_address": MINT_3, "owner_wallet_address": WALLET_2},
            headers=auth_headers(buyer_id),
        )
        assert response.status_code == 403

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_delete_draft_cleans_up_blobs(self, client, blob_store, seller_id):
        created = await client.post("/api/nfts/draft", json=draft_body(), headers=auth_headers(seller_id))

        response = await client.delete(
            f"/api/nfts/drafts/{created.json()['id']}", headers=auth_headers(seller_id)
        )
        data = response.json()["data"]
        assert response.status_code == 200
        assert data["blob_failures"] == []
        assert sorted(blob_store.deleted) == ["bafyimagecid", "bafymetadatacid"]

        missing = await client.delete(
            f"/api/nfts/drafts/{created.json()['id']}", headers=auth_headers(seller_id)
        )
        assert missing.status_code == 404

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_draft_requires_all_fields(self, client, seller_id):
        body = draft_body()
        del body["metadata_json_url"]
        response = await client.post("/api/nfts/draft", json=body, headers=auth_headers(seller_id))
        assert response.status_code == 422


# ── Users & Wallets ─────────────────────────────────────────────────


class TestUserRoutes:

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_me(self, client, seller_id):
        response = await client.get("/api/users/me", headers=auth_headers(seller_id))
        body = response.json()
        assert response.status_code == 200
        assert body["email"] == "seller@example.com"
        assert body["contact_wallet_address"] == WALLET_1

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_me_requires_auth(self, client):
        response = await client.get("/api/users/me")
        assert response.status_code == 401

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_update_me(self, client, seller_id):
        response = await client.put(
            "/api/users/me", json={"username": "renamed"}, headers=auth_headers(seller_id)
        )
        assert response.status_code == 200
        assert response.json()["username"] == "renamed"

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_public_profile_hides_email(self, client, seller_id):
        response = await client.get(f"/api/users/{WALLET_1}")
        body = response.json()
        assert response.status_code == 200
        assert body["id"] == seller_id
        assert "email" not in body

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_public_profile_unknown_wallet(self, client):
        response = await client.get(f"/api/users/{WALLET_3}")
        assert response.status_code == 404

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_user_listings(self, client, chain, seller_id):
        chain.give(WALLET_1, MINT_1)
        await client.post("/api/nfts", json=listing_body(), headers=auth_headers(seller_id))

        response = await client.get(f"/api/users/{WALLET_1}/nfts")
        assert [n["mint_address"] for n in response.json()] == [MINT_1]

        unknown = await client.get(f"/api/users/{WALLET_3}/nfts")
        assert unknown.json() == []

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_drafts_of_foreign_wallet_are_forbidden(self, client, seller_id, buyer_id):
        response = await client.get(f"/api/users/{WALLET_2}/drafts", headers=auth_headers(seller_id))
        assert response.status_code == 403

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_wallet_lifecycle(self, client, seller_id, buyer_id):
        headers = auth_headers(seller_id)

        linked = await client.post("/api/users/me/wallets", json={"wallet_address": WALLET_3}, headers=headers)
        assert linked.status_code == 201
        assert linked.json()["is_primary"] is False

        relinked = await client.post("/api/users/me/wallets", json={"wallet_address": WALLET_3}, headers=headers)
        assert relinked.status_code == 200

        taken = await client.post("/api/users/me/wallets", json={"wallet_address": WALLET_2}, headers=headers)
        assert taken.status_code == 409
        assert taken.json()["error"]["details"]["reason"] == "wallet_linked_elsewhere"

        primary = await client.put(f"/api/users/me/wallets/{WALLET_3}/set-primary", headers=headers)
        assert primary.status_code == 200
        assert primary.json()["is_primary"] is True

        wallets = await client.get("/api/users/me/wallets", headers=headers)
        assert [(w["wallet_address"], w["is_primary"]) for w in wallets.json()] == [
            (WALLET_3, True),
            (WALLET_1, False),
        ]

        removed = await client.delete(f"/api/users/me/wallets/{WALLET_1}", headers=headers)
        assert removed.status_code == 200
        assert removed.json()["data"]["unlinked"] is True


# ── Uploads ─────────────────────────────────────────────────────────


class TestUploadRoutes:

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_upload_image(self, client, blob_store, seller_id):
        response = await client.post(
            "/api/upload/image",
            files={"file": ("cat.png", b"\x89PNG\r\n\x1a\n", "image/png")},
            headers=auth_headers(seller_id),
        )
        body = response.json()
        assert response.status_code == 201
        assert body["url"].startswith(blob_store.gateway + "/")
        assert body["key"] in blob_store.stored

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_upload_rejects_non_image(self, client, seller_id):
        response = await client.post(
            "/api/upload/image",
            files={"file": ("notes.txt", b"hello", "text/plain")},
            headers=auth_headers(seller_id),
        )
        assert response.status_code == 400

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_upload_requires_auth(self, client):
        response = await client.post(
            "/api/upload/image", files={"file": ("cat.png", b"\x89PNG", "image/png")}
        )
        assert response.status_code == 401

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_upload_metadata(self, client, seller_id):
        response = await client.post(
            "/api/upload/metadata",
            json={"name": "Genesis", "image": IMAGE_URL, "attributes": []},
            headers=auth_headers(seller_id),
        )
        assert response.status_code == 201
        assert response.json()["key"]

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_upload_metadata_requires_name(self, client, seller_id):
        response = await client.post(
            "/api/upload/metadata", json={"attributes": []}, headers=auth_headers(seller_id)
        )
        assert response.status_code == 400
