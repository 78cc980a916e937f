import json
import logging

import pytest
from starlette.testclient import TestClient

from app.app_logging import init_logging
from app.core.org_context import reset_org_context, set_org_context


@pytest.fixture
def fresh_loggers():
    loggers = [logging.getLogger("app"), logging.getLogger("uvicorn.access")]
    saved = [list(logger.handlers) for logger in loggers]
    for logger in loggers:
        logger.handlers.clear()
    yield
    for logger, handlers in zip(loggers, saved):
        for handler in logger.handlers:
            handler.close()
        logger.handlers[:] = handlers


def _flush(name: str) -> None:
    for handler in logging.getLogger(name).handlers:
        handler.flush()


def test_access_line_names_the_signed_in_user(client, org_auth, caplog):
    with caplog.at_level(logging.INFO, logger="uvicorn.access"):
        response = client.get("/api/accounts/me", headers=org_auth.header("member"))

    assert response.status_code == 200
    lines = [json.loads(r.getMessage()) for r in caplog.records if r.name == "uvicorn.access"]
    entry = next(line for line in lines if line["path"] == "/api/accounts/me")
    assert entry["user_id"] == str(org_auth.users["member"])
    assert entry["org_id"] == str(org_auth.organization_id)
    assert entry["headers"]["authorization"] == "***"


def test_sign_in_secrets_never_reach_the_access_log(tmp_path, app_factory, fresh_loggers):
    app = app_factory(tmp_path, log_request_bodies=True)

    with TestClient(app) as client:
        response = client.post(
            "/echo",
            json={
                "code": "magic-code-123",
                "invitation_token": "inv-token-456",
                "email": "hanako@acme.example.com",
                "password": "Passw0rdX",
            },
        )
        assert response.status_code == 200
    _flush("uvicorn.access")

    text = (tmp_path / "access.log").read_text(encoding="utf-8")
    for secret in ("magic-code-123", "inv-token-456", "Passw0rdX", "hanako@"):
        assert secret not in text
    data = json.loads(text.splitlines()[-1].split(": ", 1)[1])
    assert data["body"] == {
        "code": "***",
        "invitation_token": "***",
        "email": "ha***@acme.example.com",
        "password": "***",
    }


def test_app_log_lines_carry_org_context(tmp_path, monkeypatch, fresh_loggers):
    monkeypatch.setenv("LOG_DIR", str(tmp_path))
    monkeypatch.setenv("LOG_JSON", "true")
    init_logging()
    logger = logging.getLogger("app.knowledge")

    token = set_org_context("org-42", "user-7")
    try:
        logger.info("ナレッジを登録しました")
    finally:
        reset_org_context(token)
    logger.info("起動しました")
    _flush("app")

    scoped, unscoped = [
        json.loads(line)
        for line in (tmp_path / "app.log").read_text(encoding="utf-8").splitlines()
    ][-2:]
    assert scoped["org_id"] == "org-42"
    assert scoped["user_id"] == "user-7"
    assert scoped["message"] == "ナレッジを登録しました"
    assert "org_id" not in unscoped
    assert "user_id" not in unscoped
