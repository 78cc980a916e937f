"""Decoding of organization-scoped access tokens."""

from __future__ import annotations

import os
from typing import cast

from typing_extensions import TypedDict

import jwt
from fastapi import HTTPException, Request, status
from jwt import ExpiredSignatureError, InvalidTokenError

__all__ = [
    "OrgTokenPayload",
    "TokenConfigurationError",
    "TokenValidationError",
    "decode_access_token",
    "get_org_context",
]


class TokenConfigurationError(RuntimeError):
    """Raised when token configuration is invalid."""


class TokenValidationError(ValueError):
    """Raised when the provided access token cannot be validated."""


class _OrgTokenRequiredClaims(TypedDict):
    org_id: str
    user_id: str


class OrgTokenPayload(_OrgTokenRequiredClaims, total=False):
    """Decoded JWT payload for organization-scoped authentication."""

    aud: str | list[str]
    email: str
    exp: int
    iat: int
    iss: str
    name: str
    roles: list[str]
    sid: str
    type: str


def _get_env(name: str, *, required: bool = True, default: str | None = None) -> str:
    """Fetch an environment variable with optional requirement enforcement.

    Args:
        name: Name of the environment variable to read.
        required: Whether to raise when the variable is missing or empty.
        default: Value to use when ``required`` is ``False`` and the variable is
            undefined.

    Returns:
        str: Stripped environment variable value or provided default.

    Raises:
        TokenConfigurationError: If ``required`` is ``True`` and the variable
            is missing or blank.
    """

    value = os.getenv(name, default)
    if required and (value is None or not value.strip()):
        raise TokenConfigurationError(
            f"Environment variable '{name}' must be set for access token validation.",
        )
    if value is None:
        return ""
    return value.strip()


def decode_access_token(token: str) -> OrgTokenPayload:
    """Decode and validate an access token.

    Args:
        token: Encoded JWT string from the ``Authorization`` header.

    Returns:
        OrgTokenPayload: Parsed payload containing organization, user and
        session identifiers.

    Raises:
        TokenConfigurationError: If mandatory environment configuration is missing.
        TokenValidationError: If signature, claims or expiry are invalid.
    """

    secret_key = _get_env("AUTH_TOKEN_SECRET")
    audience = _get_env("AUTH_TOKEN_AUDIENCE")
    issuer = _get_env("AUTH_TOKEN_ISSUER")
    algorithm = _get_env("AUTH_TOKEN_ALGORITHM", required=False, default="HS256")

    try:
        payload = jwt.decode(
            token,
            secret_key,
            algorithms=[algorithm],
            audience=audience,
            issuer=issuer,
            options={"require": ["exp", "aud", "iss"]},
        )
    except ExpiredSignatureError as exc:
        raise TokenValidationError("Access token has expired.") from exc
    except InvalidTokenError as exc:
        raise TokenValidationError("Access token is invalid.") from exc

    if "org_id" not in payload or "user_id" not in payload:
        raise TokenValidationError(
            "Access token payload must include 'org_id' and 'user_id'.",
        )
    type_claim = payload.get("type")
    if type_claim and type_claim != "access":
        raise TokenValidationError("Token must be an access token.")

    return cast(OrgTokenPayload, payload)


async def get_org_context(request: Request) -> OrgTokenPayload:
    """Extract the organization context from the ``Authorization`` header.

    Raises:
        HTTPException: With status ``401`` when the header is missing or invalid,
            or ``500`` if the token configuration is incorrect.
    """

    authorization = request.headers.get("Authorization")
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing Authorization header.",
        )

    scheme, _, credentials = authorization.partition(" ")
    if not credentials or scheme.lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header must use Bearer scheme.",
        )

    try:
        return decode_access_token(credentials)
    except TokenConfigurationError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(exc),
        ) from exc
    except TokenValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
        ) from exc
