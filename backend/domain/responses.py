"""
Response envelopes shared by the routers.

    success:   {"success": true, "data": <payload>, "meta": {...}}
    paginated: {"success": true, "data": [...], "meta": {limit, offset, total, hasMore}}

Errors use {"success": false, "error": {code, message, details}} and are
produced by the exception handlers in main.py, not here.
"""
from typing import Any


def success_response(data: Any, meta: dict[str, Any] | None = None) -> dict[str, Any]:
    response = {"success": True, "data": data}
    if meta:
        response["meta"] = meta
    return response


def paginated_response(
    items: list[Any],
    limit: int,
    offset: int = 0,
    total: int | None = None,
) -> dict[str, Any]:
    """
    Wrap one page of results.

    Without an explicit `total`, hasMore is inferred from whether the
    page came back full.
    """
    if total is None:
        total = offset + len(items) + (1 if len(items) >= limit else 0)
    return success_response(
        items,
        meta={
            "limit": limit,
            "offset": offset,
            "total": total,
            "hasMore": (offset + limit) < total,
        },
    )
