"""Shared rate limiter instance for use across route files."""

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from reservation_engine.core.config import settings


def get_actor_or_ip(request: Request) -> str:
    """Rate limit by acting user when the caller names one, else by IP."""
    actor = request.headers.get("X-Actor", "").strip()
    if actor:
        return f"actor:{actor}"
    return get_remote_address(request)


limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limit_enabled)
