import hashlib
import hmac
import re
import time
from urllib.parse import urlencode

import pytest
from sqlalchemy import select

from app.models import KnowledgeArticle, User
from app.slack import SlackClient, get_slack_client
from app.slack.client import SlackSettings, reset_slack_settings_cache
from app.slack.commands import (
    ACK_TEXT,
    EMPTY_QUESTION_TEXT,
    NOT_LINKED_TEXT,
    REGISTER_USAGE_TEXT,
    UNKNOWN_COMMAND_TEXT,
)
from app.slack.signature import verify_signature

from conftest import FakeHttp

SECRET = "slack-signing-secret-for-tests"
RESPONSE_URL = "https://hooks.slack.com/commands/T0001/1234/abcd"


def _signature_headers(body: str, *, secret: str = SECRET, timestamp: int | None = None):
    ts = str(int(time.time()) if timestamp is None else timestamp)
    digest = hmac.new(
        secret.encode("utf-8"), f"v0:{ts}:{body}".encode("utf-8"), hashlib.sha256
    ).hexdigest()
    return {
        "X-Slack-Request-Timestamp": ts,
        "X-Slack-Signature": f"v0={digest}",
        "Content-Type": "application/x-www-form-urlencoded",
    }


@pytest.fixture
def slack_http(client, monkeypatch):
    import app.main as main

    monkeypatch.setenv("SLACK_SIGNING_SECRET", SECRET)
    reset_slack_settings_cache()
    http = FakeHttp()
    settings = SlackSettings(signing_secret=SECRET, bot_token="xoxb-test")
    main.app.dependency_overrides[get_slack_client] = lambda: SlackClient(settings, http=http)
    yield http
    main.app.dependency_overrides.pop(get_slack_client, None)
    reset_slack_settings_cache()


def _link(org_auth, role="member", slack_id="U0MEMBER"):
    with org_auth.session_factory.begin() as session:
        session.get(User, org_auth.users[role]).slack_user_id = slack_id


def _command(client, command, text, *, slack_user="U0MEMBER", **fields):
    body = urlencode(
        {
            "command": command,
            "text": text,
            "user_id": slack_user,
            "response_url": RESPONSE_URL,
            **fields,
        }
    )
    return client.post("/slack/commands", content=body, headers=_signature_headers(body))


def test_verify_signature():
    body = b"command=%2Fask&text=hello"
    now = 1_700_000_000
    headers = _signature_headers(body.decode(), timestamp=now)

    assert verify_signature(body, headers, SECRET, now=now)
    assert not verify_signature(body + b"x", headers, SECRET, now=now)
    assert not verify_signature(body, headers, "other-secret", now=now)
    assert not verify_signature(body, headers, SECRET, now=now + 301)
    assert not verify_signature(body, {}, SECRET, now=now)


def test_slash_command_rejects_bad_signature(client, org_auth, slack_http):
    body = urlencode({"command": "/ask", "text": "hi", "response_url": RESPONSE_URL})
    headers = _signature_headers(body, secret="wrong")

    response = client.post("/slack/commands", content=body, headers=headers)

    assert response.status_code == 401
    assert slack_http.calls == []


def test_slash_command_unavailable_without_signing_secret(client, monkeypatch):
    monkeypatch.delenv("SLACK_SIGNING_SECRET", raising=False)
    reset_slack_settings_cache()
    body = urlencode({"command": "/ask", "text": "hi"})

    response = client.post("/slack/commands", content=body, headers=_signature_headers(body))

    assert response.status_code == 503


def test_response_url_must_be_slack(client, org_auth, slack_http):
    _link(org_auth)

    foreign = _command(client, "/ask", "質問", response_url="https://attacker.example.com/hook")
    missing = _command(client, "/ask", "質問", response_url="")

    assert foreign.status_code == 400
    assert missing.status_code == 400
    assert slack_http.calls == []


def test_unlinked_slack_user_gets_hint(client, org_auth, slack_http):
    response = _command(client, "/ask", "営業のコツ", slack_user="U0STRANGER")

    assert response.status_code == 200
    assert response.json() == {"response_type": "ephemeral", "text": NOT_LINKED_TEXT}
    assert slack_http.calls == []


def test_ask_command_replies_through_response_url(client, org_auth, slack_http):
    client.post(
        "/api/knowledge",
        json={"title": "営業のコツ", "content": "相手の課題を先に聞くこと。"},
        headers=org_auth.header("member"),
    )
    _link(org_auth)

    response = _command(client, "/ask", "営業のコツを教えてください")

    assert response.status_code == 200
    assert response.json() == {"response_type": "ephemeral", "text": ACK_TEXT}
    call = slack_http.calls[-1]
    assert call["url"] == RESPONSE_URL
    assert call["json"]["response_type"] == "in_channel"
    assert "• 営業のコツ" in call["json"]["text"]


def test_ask_command_without_matches(client, org_auth, slack_http):
    _link(org_auth)

    _command(client, "/ask", "経費精算")

    assert slack_http.calls[-1]["json"] == {
        "response_type": "ephemeral",
        "text": "関連ナレッジが見つかりませんでした。",
    }


@pytest.mark.parametrize(
    ("command", "text", "expected"),
    [
        ("/ask", "", EMPTY_QUESTION_TEXT),
        ("/register-knowledge", "タイトルだけ", REGISTER_USAGE_TEXT),
        ("/register-knowledge", "|本文だけ", REGISTER_USAGE_TEXT),
        ("/deploy", "prod", UNKNOWN_COMMAND_TEXT),
    ],
)
def test_invalid_commands_are_answered_immediately(
    client, org_auth, slack_http, command, text, expected
):
    _link(org_auth)

    response = _command(client, command, text)

    assert response.json() == {"response_type": "ephemeral", "text": expected}
    assert slack_http.calls == []


def test_register_knowledge_command_creates_article(client, org_auth, slack_http):
    _link(org_auth)

    response = _command(client, "/register-knowledge", "商談メモ|次回は予算を確認する")

    assert response.json()["text"] == ACK_TEXT
    assert slack_http.calls[-1]["json"]["text"] == "ナレッジを登録しました：商談メモ"
    with org_auth.session() as session:
        article = session.execute(select(KnowledgeArticle)).scalar_one()
    assert article.organization_id == org_auth.organization_id
    assert article.user_id == org_auth.users["member"]
    assert article.content == "次回は予算を確認する"


def _dm_code(slack_http) -> str:
    match = re.search(r"\d{6}", slack_http.calls[-1]["json"]["text"])
    assert match
    return match.group(0)


def test_link_slack_account_with_dm_code(client, org_auth, slack_http):
    headers = org_auth.header("member")

    started = client.post("/api/me/slack/start", json={"slack_id": "u0member"}, headers=headers)

    assert started.status_code == 200
    assert started.json() == {"requires_verification": True, "expires_in": 600}
    call = slack_http.calls[-1]
    assert call["url"] == "https://slack.com/api/chat.postMessage"
    assert call["headers"] == {"Authorization": "Bearer xoxb-test"}
    assert call["json"]["channel"] == "U0MEMBER"
    code = _dm_code(slack_http)

    wrong = f"{(int(code) + 1) % 1_000_000:06d}"
    rejected = client.post("/api/me/slack/verify", json={"code": wrong}, headers=headers)
    assert rejected.status_code == 400
    assert rejected.json()["message"] == "認証コードが正しくないか、有効期限が切れています"

    verified = client.post("/api/me/slack/verify", json={"code": code}, headers=headers)
    assert verified.status_code == 200
    assert verified.json() == {"ok": True, "slack_id": "U0MEMBER"}
    me = client.get("/api/accounts/me", headers=headers)
    assert me.json()["user"]["slack_user_id"] == "U0MEMBER"

    unlinked = client.delete("/api/me/slack", headers=headers)
    assert unlinked.status_code == 204
    with org_auth.session() as session:
        assert session.get(User, org_auth.users["member"]).slack_user_id is None


def test_slack_account_linked_elsewhere_conflicts(client, org_auth, slack_http):
    _link(org_auth, role="owner", slack_id="U0OWNER")

    response = client.post(
        "/api/me/slack/start", json={"slack_id": "U0OWNER"}, headers=org_auth.header("member")
    )

    assert response.status_code == 409
    assert slack_http.calls == []


def test_malformed_slack_id_is_rejected(client, org_auth, slack_http):
    response = client.post(
        "/api/me/slack/start", json={"slack_id": "not an id"}, headers=org_auth.header("member")
    )

    assert response.status_code == 400


def test_verification_locks_after_repeated_failures(client, org_auth, slack_http):
    headers = org_auth.header("member")
    client.post("/api/me/slack/start", json={"slack_id": "U0MEMBER"}, headers=headers)
    code = _dm_code(slack_http)
    wrong = f"{(int(code) + 1) % 1_000_000:06d}"

    for _ in range(5):
        assert client.post(
            "/api/me/slack/verify", json={"code": wrong}, headers=headers
        ).status_code == 400

    response = client.post("/api/me/slack/verify", json={"code": code}, headers=headers)
    assert response.status_code == 400
    with org_auth.session() as session:
        assert session.get(User, org_auth.users["member"]).slack_user_id is None
