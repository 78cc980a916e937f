"""Transactional e-mail delivery through the Resend HTTP API.

Every attempt is written to the e-mail event log so the monitoring dashboard
reflects real traffic.  Without ``RESEND_API_KEY`` the message is only logged,
which keeps local development and CI free of network calls.
"""

from __future__ import annotations

import dataclasses
import html
import logging
import os
from functools import lru_cache
from typing import Any
from uuid import UUID

import requests
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from .monitoring import EmailMonitor
from .rate_limit import get_client_ip
from .security.auth import get_db_session
from .security.validators import is_valid_email, mask_email

logger = logging.getLogger(__name__)

DEFAULT_RESEND_API_URL = "https://api.resend.com/emails"
MAGIC_LINK_SUBJECT = "ログインリンクのお知らせ"


class MailError(RuntimeError):
    """Base class for delivery problems."""


class InvalidEmailError(MailError):
    """Raised before any network call when the recipient is malformed."""


class MailDeliveryError(MailError):
    """Raised when the provider rejects the message or cannot be reached."""


@dataclasses.dataclass(frozen=True)
class MailSettings:
    """Runtime configuration for outgoing mail."""

    api_key: str | None
    api_url: str = DEFAULT_RESEND_API_URL
    sender: str = "no-reply@example.com"
    public_app_url: str = "http://localhost:3000"
    timeout_seconds: float = 10.0


@lru_cache(maxsize=1)
def get_mail_settings() -> MailSettings:
    """Load mail settings from the environment."""

    return MailSettings(
        api_key=os.getenv("RESEND_API_KEY") or None,
        api_url=os.getenv("RESEND_API_URL", DEFAULT_RESEND_API_URL),
        sender=os.getenv("MAIL_FROM", "no-reply@example.com"),
        public_app_url=os.getenv("PUBLIC_APP_URL", "http://localhost:3000").rstrip("/"),
        timeout_seconds=float(os.getenv("MAIL_TIMEOUT_SECONDS", "10")),
    )


def reset_mail_settings_cache() -> None:
    """Clear cached mail settings; useful in tests when env vars change."""

    get_mail_settings.cache_clear()


class Mailer:
    """Send templated messages and record their outcome."""

    def __init__(
        self,
        settings: MailSettings,
        *,
        monitor: EmailMonitor | None = None,
        http: requests.Session | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> None:
        self.settings = settings
        self._monitor = monitor
        self._http = http or requests.Session()
        self._ip_address = ip_address
        self._user_agent = user_agent

    def send(
        self,
        to: str,
        subject: str,
        body_html: str,
        *,
        organization_id: UUID | None = None,
        kind: str = "generic",
    ) -> None:
        """Deliver one message.

        Raises:
            InvalidEmailError: ``to`` is not a valid address; nothing is sent.
            MailDeliveryError: The provider call failed.
        """

        details: dict[str, Any] = {"kind": kind}
        self.validate_recipient(to, subject, organization_id=organization_id, kind=kind)

        if not self.settings.api_key:
            logger.info(
                "Mail transport disabled; not delivering %r to %s", subject, mask_email(to)
            )
            logger.debug("Undelivered message body: %s", body_html)
            details["transport"] = "log"
            self._record("sent", to, subject, organization_id, None, details)
            return

        payload = {
            "from": self.settings.sender,
            "to": [to],
            "subject": subject,
            "html": body_html,
        }
        try:
            response = self._http.post(
                self.settings.api_url,
                json=payload,
                headers={"Authorization": f"Bearer {self.settings.api_key}"},
                timeout=self.settings.timeout_seconds,
            )
        except requests.RequestException as exc:
            logger.warning("Mail provider unreachable for %s: %s", mask_email(to), exc)
            self._record("failed", to, subject, organization_id, "network error", details)
            raise MailDeliveryError("Network error while sending e-mail.") from exc

        if response.status_code >= 400:
            error = f"provider returned HTTP {response.status_code}"
            logger.warning("Mail provider rejected message to %s: %s", mask_email(to), error)
            self._record("failed", to, subject, organization_id, error, details)
            raise MailDeliveryError(f"E-mail delivery failed: {error}.")

        try:
            provider_id = response.json().get("id")
        except ValueError:
            provider_id = None
        if provider_id:
            details["provider_id"] = provider_id
        self._record("sent", to, subject, organization_id, None, details)

    def validate_recipient(
        self,
        to: str,
        subject: str,
        *,
        organization_id: UUID | None = None,
        kind: str = "generic",
    ) -> None:
        """Record a failed event and raise if ``to`` cannot receive mail.

        Callers that persist state before sending use this to fail first.
        """

        if is_valid_email(to):
            return
        self._record(
            "failed", to, subject, organization_id, "invalid email address", {"kind": kind}
        )
        raise InvalidEmailError("Invalid email address.")

    def send_magic_link(
        self, to: str, link: str, *, organization_id: UUID | None = None
    ) -> None:
        self.send(
            to,
            MAGIC_LINK_SUBJECT,
            _render(
                "以下のリンクからログインしてください。リンクの有効期限は1時間です。",
                link,
                "ログインする",
            ),
            organization_id=organization_id,
            kind="magic_link",
        )

    def send_verification(
        self, to: str, link: str, *, organization_id: UUID | None = None
    ) -> None:
        self.send(
            to,
            "メールアドレスの確認",
            _render(
                "ご登録ありがとうございます。以下のリンクからメールアドレスを確認してください。",
                link,
                "メールアドレスを確認する",
            ),
            organization_id=organization_id,
            kind="verification",
        )

    def send_invitation(
        self,
        to: str,
        link: str,
        *,
        organization_name: str,
        message: str | None = None,
        organization_id: UUID | None = None,
    ) -> None:
        intro = f"{organization_name} から招待が届いています。"
        if message:
            intro = f"{intro}\n\n{message}"
        self.send(
            to,
            f"{organization_name} への招待",
            _render(intro, link, "招待を受け入れる"),
            organization_id=organization_id,
            kind="invitation",
        )

    def _record(
        self,
        status: str,
        to: str,
        subject: str,
        organization_id: UUID | None,
        error: str | None,
        details: dict[str, Any],
    ) -> None:
        if self._monitor is None:
            return
        self._monitor.record_event(
            status=status,
            email=to,
            subject=subject,
            organization_id=organization_id,
            error=error,
            details=dict(details),
            ip_address=self._ip_address,
            user_agent=self._user_agent,
        )


def _render(text: str, link: str, label: str) -> str:
    paragraphs = "".join(
        f"<p>{html.escape(part)}</p>" for part in text.split("\n\n") if part
    )
    href = html.escape(link, quote=True)
    return f'{paragraphs}<p><a href="{href}">{html.escape(label)}</a></p>'


def get_mailer(request: Request, session: Session = Depends(get_db_session)) -> Mailer:
    """Build a request-scoped mailer sharing the request's database session."""

    return Mailer(
        get_mail_settings(),
        monitor=EmailMonitor(session),
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("User-Agent"),
    )


__all__ = [
    "InvalidEmailError",
    "MAGIC_LINK_SUBJECT",
    "MailDeliveryError",
    "MailError",
    "MailSettings",
    "Mailer",
    "get_mail_settings",
    "get_mailer",
    "reset_mail_settings_cache",
]
