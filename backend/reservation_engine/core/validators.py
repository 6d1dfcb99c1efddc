"""Reusable parameter validators and request-context helpers."""

import uuid
from dataclasses import dataclass
from typing import Annotated, Optional

from fastapi import Depends, Path, Query, Request

from reservation_engine.core.config import settings

# Positive integer ID validator for path parameters
PositiveIntId = Annotated[int, Path(gt=0, description="Resource ID (must be positive)")]

# Field definition key in path parameters
FieldKey = Annotated[str, Path(min_length=1, max_length=100, description="Field definition key")]

PageParam = Annotated[int, Query(ge=1, description="1-based page number")]


def clamp_page_size(page_size: Optional[int]) -> int:
    """Clamp a requested page size into [1, max_page_size]."""
    if page_size is None:
        return settings.default_page_size
    return max(1, min(int(page_size), settings.max_page_size))


@dataclass
class RequestContext:
    """Who is acting and how to correlate the request in the audit log."""

    actor: str = "system"
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    request_id: str = ""

    def __post_init__(self):
        if not self.request_id:
            self.request_id = f"req_{uuid.uuid4().hex[:16]}"


def get_request_context(request: Request) -> RequestContext:
    """Build the audit context from request headers."""
    actor = request.headers.get("X-Actor", "").strip() or "system"
    return RequestContext(
        actor=actor[:100],
        ip_address=request.client.host if request.client else None,
        user_agent=(request.headers.get("User-Agent") or None),
        request_id=getattr(request.state, "request_id", None) or request.headers.get("X-Request-ID", "").strip()[:100],
    )


ActorContext = Annotated[RequestContext, Depends(get_request_context)]
