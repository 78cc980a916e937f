import uuid
from urllib.parse import parse_qs, urlparse

import pytest
import requests
from sqlalchemy import select

from app.accounts.service import AccountService
from app.mailer import MAGIC_LINK_SUBJECT, InvalidEmailError, Mailer, MailSettings
from app.models import EmailEvent, LoginCode, Organization, User
from app.monitoring import EmailMonitor
from app.rate_limit import limiter


def _query(link: str) -> dict[str, str]:
    return {k: v[0] for k, v in parse_qs(urlparse(link).query).items()}


REGISTER_PAYLOAD = {
    "organization_name": "Kanto Sales",
    "representative_name": "Hanako Suzuki",
    "username": "hanako",
    "email": "Hanako@Kanto.example.com",
    "password": "Passw0rdX",
}


def test_register_verify_login_refresh_logout(client, org_auth):
    response = client.post("/api/accounts/register", json=REGISTER_PAYLOAD)
    assert response.status_code == 201
    data = response.json()
    assert data["user"]["email"] == "hanako@kanto.example.com"
    assert data["user"]["role"] == "owner"
    assert data["user"]["email_verified"] is False
    assert data["organization"]["name"] == "Kanto Sales"
    assert data["verification_email_sent"] is True

    credentials = {"email": "hanako@kanto.example.com", "password": "Passw0rdX"}
    unverified = client.post("/api/accounts/login", json=credentials)
    assert unverified.status_code == 403
    assert unverified.json()["message"] == "メール認証が完了していません"

    link = org_auth.http.last_link("/auth/verify-email")
    assert link.startswith("https://app.example.com/auth/verify-email?")
    verified = client.get("/api/accounts/verify-email", params=_query(link))
    assert verified.status_code == 200
    assert verified.json()["user"]["email_verified"] is True

    reused = client.get("/api/accounts/verify-email", params=_query(link))
    assert reused.status_code == 400

    login = client.post("/api/accounts/login", json=credentials)
    assert login.status_code == 200
    tokens = login.json()["tokens"]
    assert tokens["token_type"] == "bearer"
    assert tokens["roles"] == ["owner"]

    refreshed = client.post(
        "/api/accounts/refresh", json={"refresh_token": tokens["refresh_token"]}
    )
    assert refreshed.status_code == 200
    new_tokens = refreshed.json()["tokens"]

    reuse = client.post(
        "/api/accounts/refresh", json={"refresh_token": tokens["refresh_token"]}
    )
    assert reuse.status_code == 401

    headers = {"Authorization": f"Bearer {new_tokens['access_token']}"}
    me = client.get("/api/accounts/me", headers=headers)
    assert me.status_code == 200
    assert me.json()["organization"]["name"] == "Kanto Sales"

    logout = client.post("/api/accounts/logout", headers=headers)
    assert logout.status_code == 204

    after_logout = client.get("/api/accounts/me", headers=headers)
    assert after_logout.status_code == 401

    refresh_after_logout = client.post(
        "/api/accounts/refresh", json={"refresh_token": new_tokens["refresh_token"]}
    )
    assert refresh_after_logout.status_code == 401


def test_register_rejects_duplicate_email(client):
    payload = dict(REGISTER_PAYLOAD, email="owner@acme.example.com")

    response = client.post("/api/accounts/register", json=payload)

    assert response.status_code == 409


def test_register_rejects_weak_password(client, org_auth):
    payload = dict(REGISTER_PAYLOAD, password="alllowercase1")

    response = client.post("/api/accounts/register", json=payload)

    assert response.status_code == 400
    assert response.json()["message"].startswith("エラー: ")
    assert org_auth.http.calls == []


def test_registration_survives_mail_failure(client, org_auth):
    org_auth.http.status_code = 500

    response = client.post("/api/accounts/register", json=REGISTER_PAYLOAD)

    assert response.status_code == 201
    assert response.json()["verification_email_sent"] is False
    with org_auth.session() as session:
        user = session.execute(
            select(User).where(User.email == "hanako@kanto.example.com")
        ).scalar_one()
        assert user.role == "owner"


def test_login_with_wrong_password_is_localized(client):
    response = client.post(
        "/api/accounts/login",
        json={"email": "owner@acme.example.com", "password": "Wrong1234"},
    )

    assert response.status_code == 401
    assert response.json() == {
        "detail": "Invalid login credentials.",
        "message": "メールアドレスまたはパスワードが正しくありません",
    }


def test_login_rejects_inactive_user(client, org_auth):
    with org_auth.session_factory.begin() as session:
        member = session.get(User, org_auth.users["member"])
        member.is_active = False

    response = client.post(
        "/api/accounts/login",
        json={"email": "member@acme.example.com", "password": org_auth.password},
    )

    assert response.status_code == 403


def test_magic_link_bootstraps_organization(client, org_auth):
    response = client.post(
        "/api/accounts/magic-link", json={"email": "newbie@startup.example.com"}
    )
    assert response.status_code == 202
    assert response.json() == {"sent": True, "expires_in": 3600}

    call = org_auth.http.calls[-1]
    assert call["json"]["to"] == ["newbie@startup.example.com"]
    assert call["headers"]["Authorization"] == "Bearer re_test_key"

    params = _query(org_auth.http.last_link("/auth/callback"))
    callback = client.get("/api/accounts/callback", params=params)
    assert callback.status_code == 200
    data = callback.json()
    assert data["created_organization"] is True
    assert data["organization"]["name"] == "newbie"
    assert data["user"]["role"] == "owner"
    assert data["user"]["email_verified"] is True

    again = client.get("/api/accounts/callback", params=params)
    assert again.status_code == 401

    with org_auth.session() as session:
        org = session.get(Organization, uuid.UUID(data["organization"]["id"]))
        assert str(org.owner_id) == data["user"]["id"]


def test_magic_link_for_existing_user_keeps_organization(client, org_auth):
    response = client.post(
        "/api/accounts/magic-link", json={"email": "member@acme.example.com"}
    )
    assert response.status_code == 202

    params = _query(org_auth.http.last_link("/auth/callback"))
    callback = client.get("/api/accounts/callback", params=params)

    assert callback.status_code == 200
    data = callback.json()
    assert data["created_organization"] is False
    assert data["organization"]["id"] == str(org_auth.organization_id)
    assert data["user"]["id"] == str(org_auth.users["member"])


def test_magic_link_rejects_malformed_email_before_sending(client, org_auth):
    response = client.post("/api/accounts/magic-link", json={"email": "not-an-email"})

    assert response.status_code == 422
    assert response.json()["message"] == "無効なメールアドレスです"
    assert org_auth.http.calls == []


def test_magic_link_accepts_apostrophe_in_local_part(client, org_auth):
    response = client.post(
        "/api/accounts/magic-link", json={"email": "o'neil@acme.example.com"}
    )

    assert response.status_code == 202
    assert org_auth.http.calls[-1]["json"]["to"] == ["o'neil@acme.example.com"]


def test_magic_link_to_undeliverable_address_stores_no_login_code(org_auth):
    with org_auth.session_factory.begin() as session:
        mailer = Mailer(
            MailSettings(api_key="re_test_key"), monitor=EmailMonitor(session), http=org_auth.http
        )
        with pytest.raises(InvalidEmailError):
            AccountService(session, mailer=mailer).request_magic_link("not-an-address")

    assert org_auth.http.calls == []
    with org_auth.session() as session:
        assert session.execute(select(LoginCode)).scalars().all() == []
        event = session.execute(select(EmailEvent)).scalar_one()
        assert event.status == "failed"
        assert event.subject == MAGIC_LINK_SUBJECT
        assert event.details == {"kind": "magic_link"}


def test_magic_link_network_error_is_recorded(client, org_auth):
    org_auth.http.error = requests.ConnectionError("boom")

    response = client.post(
        "/api/accounts/magic-link", json={"email": "member@acme.example.com"}
    )

    assert response.status_code == 502
    assert response.json()["message"] == "ネットワークエラーが発生しました。接続を確認してください"
    with org_auth.session() as session:
        event = session.execute(select(EmailEvent)).scalar_one()
        assert event.status == "failed"
        assert event.error == "network error"
        assert event.organization_id == org_auth.organization_id


def test_magic_link_with_unknown_invitation_is_rejected(client, org_auth):
    response = client.post(
        "/api/accounts/magic-link",
        json={"email": "someone@acme.example.com", "invitation_token": "missing"},
    )

    assert response.status_code == 400
    assert org_auth.http.calls == []


def test_me_requires_token(client):
    response = client.get("/api/accounts/me")

    assert response.status_code == 401
    assert response.headers["WWW-Authenticate"] == "Bearer"


def test_login_is_rate_limited(client):
    limiter.reset()
    limiter.enabled = True
    try:
        statuses = [
            client.post(
                "/api/accounts/login",
                json={"email": "owner@acme.example.com", "password": "Wrong1234"},
            ).status_code
            for _ in range(11)
        ]
    finally:
        limiter.enabled = False
        limiter.reset()

    assert statuses[:10] == [401] * 10
    assert statuses[10] == 429
