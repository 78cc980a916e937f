"""JWT-backed authentication dependencies for FastAPI routers."""

from __future__ import annotations

import uuid
from collections.abc import Iterator
from typing import Callable

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session, sessionmaker

from app.core.auth import OrgTokenPayload, get_org_context
from app.models import User
from app.models.org import ROLE_MEMBER, ROLE_OWNER
from app.models.session import get_sessionmaker

from .tokens import is_session_active

_ROLE_LEVELS = {ROLE_MEMBER: 0, ROLE_OWNER: 1}
_SESSION_FACTORY: sessionmaker[Session] | None = None


def get_session_factory() -> sessionmaker[Session]:
    global _SESSION_FACTORY
    if _SESSION_FACTORY is None:
        _SESSION_FACTORY = get_sessionmaker()
    return _SESSION_FACTORY


def reset_session_factory() -> None:
    """Forget the cached session factory so ``DATABASE_URL`` is re-read."""

    global _SESSION_FACTORY
    if _SESSION_FACTORY is not None:
        _SESSION_FACTORY.kw["bind"].dispose()
    _SESSION_FACTORY = None


def get_db_session() -> Iterator[Session]:
    """Yield a SQLAlchemy session for request-scoped dependencies."""

    session = get_session_factory()()
    try:
        yield session
    finally:
        session.close()


async def get_current_token_payload(request: Request) -> OrgTokenPayload:
    """Decode and validate the bearer token from ``request``."""

    payload = await get_org_context(request)
    token_type = payload.get("type")
    if token_type and token_type != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access token required.",
        )
    return payload


async def get_current_user(
    payload: OrgTokenPayload = Depends(get_current_token_payload),
    session: Session = Depends(get_db_session),
) -> User:
    """Resolve the authenticated :class:`~app.models.User` from the token payload.

    The token's ``sid`` must reference a login session that has not been
    revoked, so access tokens stop working as soon as the user logs out.
    """

    try:
        user_id = uuid.UUID(payload["user_id"])
    except (KeyError, ValueError) as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user identifier in token.",
        ) from exc

    if not is_session_active(session, payload.get("sid")):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Session has been revoked or has expired.",
        )

    user = session.get(User, user_id)
    if user is None or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User is inactive or no longer exists.",
        )

    if str(user.organization_id) != payload.get("org_id"):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Token organization mismatch.",
        )

    return user


def _highest_role(roles: list[str]) -> str | None:
    ranked = sorted({role for role in roles if role in _ROLE_LEVELS}, key=_ROLE_LEVELS.get)
    return ranked[-1] if ranked else None


def require_role(min_role: str) -> Callable[..., User]:
    """Create a dependency ensuring the caller has at least ``min_role`` privileges.

    The stored role wins over the token claim, so a demoted owner loses access
    before their access token expires.
    """

    if min_role not in _ROLE_LEVELS:
        raise ValueError(f"Unknown role: {min_role}")

    async def dependency(user: User = Depends(get_current_user)) -> User:
        highest = _highest_role([user.role])
        if highest is None:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="No roles assigned to user.",
            )
        if _ROLE_LEVELS[highest] < _ROLE_LEVELS[min_role]:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient role.",
            )
        return user

    return dependency


__all__ = [
    "get_current_token_payload",
    "get_current_user",
    "get_db_session",
    "require_role",
    "reset_session_factory",
]
