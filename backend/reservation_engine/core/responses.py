"""Standardized API response helpers.

Every endpoint returns the same envelope:
    {"success": true, "data": ..., "message": <optional str>}

Paginated endpoints add a pagination block:
    {"success": true, "data": [...], "pagination": {"page", "page_size",
     "total_count", "total_pages", "has_next", "has_prev"}}
"""

import math
from typing import Any, Optional


def success_response(data: Any = None, message: Optional[str] = None, **extra: Any) -> dict:
    """Wrap a payload in the standard success envelope."""
    body: dict[str, Any] = {"success": True}
    if message:
        body["message"] = message
    body["data"] = data
    body.update(extra)
    return body


def pagination_block(page: int, page_size: int, total_count: int) -> dict:
    """Build the pagination block for a 1-based page."""
    total_pages = math.ceil(total_count / page_size) if page_size else 0
    return {
        "page": page,
        "page_size": page_size,
        "total_count": total_count,
        "total_pages": total_pages,
        "has_next": page < total_pages,
        "has_prev": page > 1,
    }


def paginated_response(
    items: list,
    total_count: int,
    page: int,
    page_size: int,
    **extra: Any,
) -> dict:
    """Wrap a page of serialized items in the standard envelope.

    Args:
        items: The page of serialized items.
        total_count: Total count across all pages.
        page: 1-based page number.
        page_size: Page size used for the query.
        extra: Additional top-level keys (e.g. echoed filters).
    """
    return success_response(items, pagination=pagination_block(page, page_size, total_count), **extra)
