"""Tests for organization-scoped access token helpers."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from app.core.auth import (
    OrgTokenPayload,
    TokenConfigurationError,
    TokenValidationError,
    decode_access_token,
    get_org_context,
)

SECRET = "test-secret-key-with-enough-length"


def _issue_token(
    *,
    secret: str = SECRET,
    audience: str = "sales-knowledge",
    issuer: str = "auth.sales-knowledge",
    org_id: str | None = "org-123",
    user_id: str | None = "user-456",
    expires_in: timedelta = timedelta(minutes=5),
    **extra_claims: str | list[str] | int,
) -> str:
    """Generate a signed JWT for testing purposes."""

    payload: dict[str, object] = {
        "aud": audience,
        "iss": issuer,
        "exp": datetime.now(timezone.utc) + expires_in,
    }
    if org_id is not None:
        payload["org_id"] = org_id
    if user_id is not None:
        payload["user_id"] = user_id
    payload.update(extra_claims)
    return jwt.encode(payload, secret, algorithm="HS256")


def test_decode_access_token_success(token_env: None) -> None:
    token = _issue_token(roles=["owner"], sid="session-1", type="access")

    payload = decode_access_token(token)

    assert payload["org_id"] == "org-123"
    assert payload["user_id"] == "user-456"
    assert payload["roles"] == ["owner"]
    assert payload["sid"] == "session-1"


def test_decode_access_token_missing_required_claims(token_env: None) -> None:
    """Tokens missing organization or user identifiers are rejected."""

    with pytest.raises(TokenValidationError):
        decode_access_token(_issue_token(user_id=None))

    with pytest.raises(TokenValidationError):
        decode_access_token(_issue_token(org_id=None))


def test_decode_access_token_requires_access_type(token_env: None) -> None:
    with pytest.raises(TokenValidationError):
        decode_access_token(_issue_token(type="refresh"))


def test_decode_access_token_expired(token_env: None) -> None:
    token = _issue_token(expires_in=timedelta(minutes=-1))

    with pytest.raises(TokenValidationError, match="expired"):
        decode_access_token(token)


def test_decode_access_token_wrong_audience(token_env: None) -> None:
    with pytest.raises(TokenValidationError):
        decode_access_token(_issue_token(audience="someone-else"))


def test_decode_access_token_configuration_error(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.delenv("AUTH_TOKEN_SECRET", raising=False)
    monkeypatch.delenv("AUTH_TOKEN_AUDIENCE", raising=False)
    monkeypatch.delenv("AUTH_TOKEN_ISSUER", raising=False)

    with pytest.raises(TokenConfigurationError):
        decode_access_token("token")


def _create_test_client() -> TestClient:
    """Create a FastAPI application wired with the organization dependency."""

    app = FastAPI()

    @app.get("/org")
    async def read_org(
        payload: OrgTokenPayload = Depends(get_org_context),
    ) -> OrgTokenPayload:
        return payload

    return TestClient(app)


def test_get_org_context_success(token_env: None) -> None:
    client = _create_test_client()
    token = _issue_token()

    response = client.get("/org", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 200
    assert response.json()["org_id"] == "org-123"


def test_get_org_context_missing_header(token_env: None) -> None:
    response = _create_test_client().get("/org")

    assert response.status_code == 401


def test_get_org_context_invalid_scheme(token_env: None) -> None:
    token = _issue_token()

    response = _create_test_client().get("/org", headers={"Authorization": f"Token {token}"})

    assert response.status_code == 401


def test_get_org_context_invalid_signature(token_env: None) -> None:
    token = _issue_token(secret="another-secret-that-is-long-enough")

    response = _create_test_client().get("/org", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401


def test_get_org_context_configuration_error(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Configuration issues propagate as HTTP 500 errors."""

    monkeypatch.delenv("AUTH_TOKEN_SECRET", raising=False)
    monkeypatch.setenv("AUTH_TOKEN_AUDIENCE", "sales-knowledge")
    monkeypatch.setenv("AUTH_TOKEN_ISSUER", "auth.sales-knowledge")

    response = _create_test_client().get("/org", headers={"Authorization": "Bearer token"})

    assert response.status_code == 500
