"""
Shared FastAPI dependencies.

Centralizes common dependencies so routers import from a single place:
DB session, authenticated user, pagination, and the chain / metadata /
blob services constructed at startup and kept on app.state.
"""

from __future__ import annotations

from typing import TypedDict

from fastapi import Query, Request

from config import Settings, settings
from database import get_db  # noqa: F401  (re-exported for routers)
from domain.errors import ServiceUnavailableError
from middleware.auth import require_user_id  # noqa: F401
from services.blob_service import PinataBlobStore
from services.chain_reader import ChainReader
from services.metadata_service import MetadataResolver
from services.ownership_service import OwnershipVerifier


class Pagination(TypedDict):
    limit: int
    offset: int


def pagination_params(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0, le=100_000),
) -> Pagination:
    return {"limit": limit, "offset": offset}


def _from_state(request: Request, name: str):
    service = getattr(request.app.state, name, None)
    if service is None:
        raise ServiceUnavailableError(f"{name.replace('_', ' ')} is not configured")
    return service


def get_chain_reader(request: Request) -> ChainReader:
    return _from_state(request, "chain_reader")


def get_verifier(request: Request) -> OwnershipVerifier:
    return _from_state(request, "ownership_verifier")


def get_resolver(request: Request) -> MetadataResolver:
    return _from_state(request, "metadata_resolver")


def get_blob_store(request: Request) -> PinataBlobStore:
    return _from_state(request, "blob_store")


def get_settings(request: Request) -> Settings:
    return getattr(request.app.state, "settings", settings)
