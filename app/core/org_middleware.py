"""Middleware wiring the organization context into each request."""

from __future__ import annotations

import logging
import os
from collections.abc import Awaitable, Callable, Mapping

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from app.messages import localize_error

from .auth import get_org_context
from .org_context import reset_org_context, set_org_context

__all__ = ["OrgContextMiddleware"]

logger = logging.getLogger(__name__)

_PUBLIC_ENDPOINTS = frozenset(
    {
        "/api/health",
        "/api/version",
        "/api/config",
        "/api/metrics",
        "/api/invitations/accept",
    }
)
_PUBLIC_ACCOUNT_ACTIONS = frozenset(
    {"register", "verify-email", "login", "magic-link", "callback", "refresh"}
)


def _unauthorized(
    detail: str,
    status_code: int = status.HTTP_401_UNAUTHORIZED,
    extra_headers: Mapping[str, str] | None = None,
) -> JSONResponse:
    headers = dict(extra_headers or {})
    if status_code == status.HTTP_401_UNAUTHORIZED:
        headers.setdefault("WWW-Authenticate", "Bearer")
    return JSONResponse(
        status_code=status_code,
        content={"detail": detail, "message": localize_error(detail)},
        headers=headers or None,
    )


class OrgContextMiddleware(BaseHTTPMiddleware):
    """Reject unauthenticated API calls and expose the caller's organization.

    The decoded ids are stored on ``request.state`` and in the context
    variable from :mod:`app.core.org_context`.  Session revocation and role
    checks happen in the route dependencies.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:  # type: ignore[override]
        if not self._is_configured() or self._should_bypass(request):
            return await call_next(request)

        authorization = request.headers.get("Authorization")
        if not authorization:
            return _unauthorized("Missing Authorization header.")

        scheme, _, credentials = authorization.partition(" ")
        if not credentials or scheme.lower() != "bearer":
            return _unauthorized("Authorization header must use Bearer scheme.")

        try:
            payload = await get_org_context(request)
        except HTTPException as exc:
            return _unauthorized(str(exc.detail), exc.status_code, exc.headers)

        request.state.org_id = payload["org_id"]
        request.state.user_id = payload["user_id"]

        context_token = set_org_context(payload["org_id"], payload["user_id"])
        try:
            return await call_next(request)
        finally:
            reset_org_context(context_token)

    @staticmethod
    def _is_configured() -> bool:
        required = (
            os.getenv("AUTH_TOKEN_SECRET"),
            os.getenv("AUTH_TOKEN_AUDIENCE"),
            os.getenv("AUTH_TOKEN_ISSUER"),
        )
        if not all(required):
            logger.debug("Token settings missing; skipping organization middleware.")
            return False
        return True

    @staticmethod
    def _should_bypass(request: Request) -> bool:
        if request.method.upper() == "OPTIONS":
            return True

        path = request.url.path.rstrip("/") or "/"
        if not path.startswith("/api/"):
            return True
        if path in _PUBLIC_ENDPOINTS:
            return True

        if path.startswith("/api/invitations/") and path.endswith("/details"):
            return True

        if not path.startswith("/api/accounts/"):
            return False

        action = path.removeprefix("/api/accounts/").split("/", 1)[0]
        return action in _PUBLIC_ACCOUNT_ACTIONS
