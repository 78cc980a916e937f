"""Conversion of service results into API payloads."""

from __future__ import annotations

import datetime as dt

from app.models import Organization, User
from app.security.tokens import as_utc

from .schemas import (
    AuthenticatedResponse,
    OrganizationPayload,
    TokenEnvelope,
    UserPayload,
)
from .service import AuthResult


def user_payload(user: User) -> UserPayload:
    return UserPayload.model_validate(user)


def organization_payload(organization: Organization) -> OrganizationPayload:
    return OrganizationPayload.model_validate(organization)


def token_envelope(result: AuthResult) -> TokenEnvelope:
    now = dt.datetime.now(dt.timezone.utc)
    access_expires_at = as_utc(result.access_expires_at)
    refresh_expires_at = as_utc(result.refresh_expires_at)
    return TokenEnvelope(
        access_token=result.access_token,
        refresh_token=result.refresh_token,
        expires_in=max(int((access_expires_at - now).total_seconds()), 0),
        refresh_expires_in=max(int((refresh_expires_at - now).total_seconds()), 0),
        roles=[result.user.role],
    )


def authenticated_response(result: AuthResult) -> AuthenticatedResponse:
    return AuthenticatedResponse(
        organization=organization_payload(result.organization),
        user=user_payload(result.user),
        tokens=token_envelope(result),
        created_organization=result.created_organization,
    )


__all__ = [
    "authenticated_response",
    "organization_payload",
    "token_envelope",
    "user_payload",
]
