"""Integration tests for the organization context middleware."""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any

import jwt
import pytest
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.testclient import TestClient

from app.core.org_context import get_current_org_id
from app.core.org_middleware import OrgContextMiddleware


@pytest.fixture(autouse=True)
def _token_settings(token_env: None) -> None:
    """Enable the middleware by configuring token settings."""


def _create_app() -> FastAPI:
    app = FastAPI()
    app.add_middleware(OrgContextMiddleware)

    @app.get("/api/context")
    async def read_context(request: Request) -> JSONResponse:
        return JSONResponse(
            {
                "org_id": request.state.org_id,
                "user_id": request.state.user_id,
                "context_org": get_current_org_id(),
            }
        )

    @app.get("/api/health")
    async def health() -> JSONResponse:
        return JSONResponse({"status": "ok"})

    @app.post("/api/accounts/login")
    async def login() -> JSONResponse:
        return JSONResponse({"ok": True})

    @app.get("/api/accounts/me")
    async def me() -> JSONResponse:
        return JSONResponse({"ok": True})

    @app.get("/api/invitations/{token}/details")
    async def invitation_details(token: str) -> JSONResponse:
        return JSONResponse({"token": token})

    return app


@pytest.fixture
def client() -> TestClient:
    with TestClient(_create_app(), raise_server_exceptions=False) as test_client:
        yield test_client


@pytest.fixture
def issue_token() -> Callable[..., str]:
    def _issue_token(*, org_id: str = "org-1", user_id: str = "user-1", expires_in: int = 300) -> str:
        payload: dict[str, Any] = {
            "org_id": org_id,
            "user_id": user_id,
            "aud": "sales-knowledge",
            "iss": "auth.sales-knowledge",
            "exp": int(time.time()) + expires_in,
            "type": "access",
        }
        return jwt.encode(payload, "test-secret-key-with-enough-length", algorithm="HS256")

    return _issue_token


def test_middleware_sets_state_and_context(client, issue_token) -> None:
    response = client.get("/api/context", headers={"Authorization": f"Bearer {issue_token()}"})

    assert response.status_code == 200
    assert response.json() == {"org_id": "org-1", "user_id": "user-1", "context_org": "org-1"}
    assert get_current_org_id() is None


def test_missing_token_returns_unauthorized(client) -> None:
    response = client.get("/api/context")

    assert response.status_code == 401
    assert response.headers["WWW-Authenticate"] == "Bearer"
    assert response.json()["detail"] == "Missing Authorization header."
    assert response.json()["message"].startswith("エラー: ")


def test_invalid_token_returns_unauthorized(client, issue_token) -> None:
    invalid_token = issue_token(org_id="org-2")[:-1] + "x"

    response = client.get("/api/context", headers={"Authorization": f"Bearer {invalid_token}"})

    assert response.status_code == 401
    assert get_current_org_id() is None


def test_expired_token_returns_unauthorized(client, issue_token) -> None:
    token = issue_token(expires_in=-60)

    response = client.get("/api/context", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401
    assert response.json()["detail"] == "Access token has expired."


def test_public_endpoints_bypass_auth(client) -> None:
    assert client.get("/api/health").json() == {"status": "ok"}
    assert client.post("/api/accounts/login").status_code == 200
    assert client.get("/api/invitations/abc/details").json() == {"token": "abc"}


def test_private_account_endpoints_require_token(client) -> None:
    response = client.get("/api/accounts/me")

    assert response.status_code == 401


def test_middleware_disabled_without_settings(monkeypatch, client) -> None:
    monkeypatch.delenv("AUTH_TOKEN_SECRET", raising=False)

    response = client.get("/api/accounts/me")

    assert response.status_code == 200
