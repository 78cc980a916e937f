import logging

import pytest
import requests
from sqlalchemy import select

from app.mailer import InvalidEmailError, MailDeliveryError, Mailer, MailSettings
from app.models import EmailEvent
from app.monitoring import EmailMonitor

from conftest import FakeHttp


def _settings(api_key="re_test_key"):
    return MailSettings(api_key=api_key, sender="sales@example.com")


def _events(org_auth):
    with org_auth.session() as session:
        return session.execute(select(EmailEvent)).scalars().all()


def test_send_posts_to_provider_and_records_event(org_auth):
    http = FakeHttp()
    with org_auth.session_factory.begin() as session:
        mailer = Mailer(_settings(), monitor=EmailMonitor(session), http=http, ip_address="10.0.0.1")
        mailer.send_invitation(
            "new@acme.example.com",
            "https://app.example.com/invite/abc?x=1&y=2",
            organization_name="Acme <Sales>",
            message="よろしく",
            organization_id=org_auth.organization_id,
        )

    call = http.calls[0]
    assert call["headers"] == {"Authorization": "Bearer re_test_key"}
    assert call["json"]["from"] == "sales@example.com"
    assert call["json"]["subject"] == "Acme <Sales> への招待"
    assert "Acme &lt;Sales&gt;" in call["json"]["html"]
    assert 'href="https://app.example.com/invite/abc?x=1&amp;y=2"' in call["json"]["html"]

    (event,) = _events(org_auth)
    assert event.status == "sent"
    assert event.event_type == "email_sent"
    assert event.organization_id == org_auth.organization_id
    assert event.ip_address == "10.0.0.1"
    assert event.details["kind"] == "invitation"
    assert event.details["provider_id"].startswith("msg_")


def test_invalid_address_is_rejected_before_sending(org_auth):
    http = FakeHttp()
    with org_auth.session_factory.begin() as session:
        mailer = Mailer(_settings(), monitor=EmailMonitor(session), http=http)
        with pytest.raises(InvalidEmailError):
            mailer.send_magic_link("not-an-address", "https://app.example.com/auth/callback")

    assert http.calls == []
    (event,) = _events(org_auth)
    assert event.status == "failed"
    assert event.error == "invalid email address"


def test_provider_rejection_raises_delivery_error(org_auth):
    http = FakeHttp(status_code=422)
    with org_auth.session_factory.begin() as session:
        mailer = Mailer(_settings(), monitor=EmailMonitor(session), http=http)
        with pytest.raises(MailDeliveryError, match="HTTP 422"):
            mailer.send_verification("new@acme.example.com", "https://app.example.com/verify")

    (event,) = _events(org_auth)
    assert event.status == "failed"
    assert event.error == "provider returned HTTP 422"


def test_network_failure_raises_delivery_error(org_auth):
    http = FakeHttp(error=requests.ConnectionError("boom"))
    with org_auth.session_factory.begin() as session:
        mailer = Mailer(_settings(), monitor=EmailMonitor(session), http=http)
        with pytest.raises(MailDeliveryError):
            mailer.send("new@acme.example.com", "件名", "<p>本文</p>")

    assert _events(org_auth)[0].error == "network error"


def test_without_api_key_message_is_only_logged(org_auth, caplog):
    http = FakeHttp()
    with org_auth.session_factory.begin() as session, caplog.at_level(logging.INFO, logger="app.mailer"):
        mailer = Mailer(_settings(api_key=None), monitor=EmailMonitor(session), http=http)
        mailer.send("new@acme.example.com", "件名", "<p>本文</p>")

    assert http.calls == []
    assert any("ne***@acme.example.com" in record.getMessage() for record in caplog.records)
    (event,) = _events(org_auth)
    assert event.status == "sent"
    assert event.details["transport"] == "log"


def test_mailer_without_monitor_does_not_record():
    http = FakeHttp()

    Mailer(_settings(), http=http).send("new@acme.example.com", "件名", "<p>本文</p>")

    assert len(http.calls) == 1


def test_long_subject_and_user_agent_fit_event_columns(org_auth):
    http = FakeHttp()
    organization_name = "株" * 255
    with org_auth.session_factory.begin() as session:
        mailer = Mailer(
            _settings(),
            monitor=EmailMonitor(session),
            http=http,
            user_agent="Mozilla/5.0 " + "x" * 400,
        )
        mailer.send_invitation(
            "new@acme.example.com",
            "https://app.example.com/invite/abc",
            organization_name=organization_name,
        )

    assert http.calls[0]["json"]["subject"] == f"{organization_name} への招待"
    (event,) = _events(org_auth)
    assert len(event.subject) == 255
    assert event.subject == organization_name
    assert len(event.user_agent) == 255
    assert event.user_agent.startswith("Mozilla/5.0 ")
