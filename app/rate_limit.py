"""Shared SlowAPI limiter keyed on the client IP."""

from __future__ import annotations

import os

from slowapi import Limiter
from starlette.requests import Request


def get_client_ip(request: Request) -> str:
    """Extract a best-effort client IP for rate limiting.

    Prefer ``X-Forwarded-For`` (first hop) if present, otherwise use the
    socket peer address.
    """

    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client is None:
        return "unknown"
    return request.client.host


def _enabled() -> bool:
    return os.getenv("RATE_LIMIT_ENABLED", "true").lower() in {"1", "true", "yes"}


LOGIN_RATE_LIMIT = os.getenv("LOGIN_RATE_LIMIT", "10/minute")
MAGIC_LINK_RATE_LIMIT = os.getenv("MAGIC_LINK_RATE_LIMIT", "5/minute")

limiter = Limiter(key_func=get_client_ip, enabled=_enabled())

__all__ = ["LOGIN_RATE_LIMIT", "MAGIC_LINK_RATE_LIMIT", "get_client_ip", "limiter"]
