"""Request-scoped organization context.

``OrgContextMiddleware`` stores the organization and user of the current
request in a :class:`contextvars.ContextVar` and restores the previous value
once the response has been produced.  Services can call
``get_current_org_id`` without access to the request object.
"""

from __future__ import annotations

from contextvars import ContextVar, Token
from typing import TypedDict

__all__ = [
    "OrgRuntimeContext",
    "get_current_org_id",
    "get_current_user_id",
    "reset_org_context",
    "set_org_context",
]


class OrgRuntimeContext(TypedDict):
    """Values stored in the organization context during a request."""

    org_id: str
    user_id: str


_org_context: ContextVar[OrgRuntimeContext | None] = ContextVar(
    "org_runtime_context", default=None
)


def set_org_context(org_id: str, user_id: str) -> Token[OrgRuntimeContext | None]:
    """Store the organization metadata and return the reset token."""

    return _org_context.set({"org_id": org_id, "user_id": user_id})


def reset_org_context(token: Token[OrgRuntimeContext | None]) -> None:
    _org_context.reset(token)


def get_current_org_id() -> str | None:
    """Return the organization identifier for the current execution context."""

    context = _org_context.get()
    if context is None:
        return None
    return context["org_id"]


def get_current_user_id() -> str | None:
    context = _org_context.get()
    if context is None:
        return None
    return context["user_id"]
