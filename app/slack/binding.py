"""Linking a signed-in user to their Slack member id.

The user names a Slack member id, a six-digit code is sent to that member by
DM, and the link is stored once the code comes back.  This proves the user
controls the Slack account before slash commands run on their behalf.
"""

from __future__ import annotations

import datetime as dt
import logging
import re
import secrets

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from app.models import SlackBindRequest, User
from app.security.tokens import as_utc, hash_secret

from .client import SlackClient

logger = logging.getLogger(__name__)

BIND_CODE_TTL_SECONDS = 10 * 60
MAX_VERIFY_ATTEMPTS = 5
_SLACK_ID_PATTERN = re.compile(r"^[UW][A-Z0-9]{2,31}$")


class SlackBindingError(RuntimeError):
    def __init__(self, detail: str, status_code: int = 400) -> None:
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def _code_hash(user: User, code: str) -> str:
    return hash_secret(f"{user.id}:{code}")


class SlackBindingService:
    def __init__(self, session: Session, client: SlackClient) -> None:
        self._session = session
        self._client = client

    def start(self, user: User, slack_user_id: str) -> int:
        """Send a verification code to ``slack_user_id``; returns its lifetime."""

        slack_user_id = slack_user_id.strip().upper()
        if not _SLACK_ID_PATTERN.match(slack_user_id):
            raise SlackBindingError("Invalid Slack user ID.")
        self._ensure_available(user, slack_user_id)

        self._session.execute(
            delete(SlackBindRequest).where(
                SlackBindRequest.user_id == user.id,
                SlackBindRequest.consumed_at.is_(None),
            )
        )
        code = f"{secrets.randbelow(1_000_000):06d}"
        self._session.add(
            SlackBindRequest(
                user_id=user.id,
                slack_user_id=slack_user_id,
                code_hash=_code_hash(user, code),
                expires_at=_utcnow() + dt.timedelta(seconds=BIND_CODE_TTL_SECONDS),
            )
        )
        self._session.flush()
        self._client.send_direct_message(
            slack_user_id,
            f"アカウント連携の認証コード: {code}\n有効期限は10分です。",
        )
        return BIND_CODE_TTL_SECONDS

    def verify(self, user: User, code: str) -> str:
        """Store the pending Slack id on ``user`` when ``code`` matches."""

        request = self._session.execute(
            select(SlackBindRequest)
            .where(
                SlackBindRequest.user_id == user.id,
                SlackBindRequest.consumed_at.is_(None),
            )
            .order_by(SlackBindRequest.created_at.desc())
        ).scalars().first()
        if (
            request is None
            or as_utc(request.expires_at) <= _utcnow()
            or request.attempts >= MAX_VERIFY_ATTEMPTS
        ):
            raise SlackBindingError("Invalid or expired verification code.")

        if not secrets.compare_digest(request.code_hash, _code_hash(user, code.strip())):
            request.attempts += 1
            self._session.flush()
            raise SlackBindingError("Invalid or expired verification code.")

        self._ensure_available(user, request.slack_user_id)
        request.consumed_at = _utcnow()
        user.slack_user_id = request.slack_user_id
        self._session.flush()
        logger.info("Linked user %s to Slack member %s", user.id, request.slack_user_id)
        return request.slack_user_id

    def unlink(self, user: User) -> None:
        user.slack_user_id = None
        self._session.flush()

    def _ensure_available(self, user: User, slack_user_id: str) -> None:
        holder = self._session.execute(
            select(User).where(User.slack_user_id == slack_user_id)
        ).scalar_one_or_none()
        if holder is not None and holder.id != user.id:
            raise SlackBindingError(
                "Slack account is already linked to another user.", status_code=409
            )


__all__ = [
    "BIND_CODE_TTL_SECONDS",
    "MAX_VERIFY_ATTEMPTS",
    "SlackBindingError",
    "SlackBindingService",
]
