"""Single-use secrets for magic-link sign-in and e-mail verification."""

from __future__ import annotations

import datetime as dt
import secrets

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models import EmailVerificationToken, LoginCode, User

from .tokens import as_utc, hash_secret

DEFAULT_MAGIC_LINK_TTL_SECONDS = 60 * 60
DEFAULT_VERIFICATION_TTL_SECONDS = 60 * 60 * 24


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def issue_login_code(
    session: Session,
    email: str,
    *,
    ttl_seconds: int = DEFAULT_MAGIC_LINK_TTL_SECONDS,
    invitation_token: str | None = None,
) -> str:
    """Store a hashed login code for ``email`` and return the raw value."""

    raw_code = secrets.token_urlsafe(32)
    session.add(
        LoginCode(
            email=email,
            code_hash=hash_secret(raw_code),
            invitation_token=invitation_token,
            expires_at=_utcnow() + dt.timedelta(seconds=ttl_seconds),
        )
    )
    session.flush()
    return raw_code


def consume_login_code(session: Session, raw_code: str) -> LoginCode | None:
    """Mark the code as used and return it, or ``None`` if unusable."""

    if not raw_code:
        return None
    record = session.execute(
        select(LoginCode).where(LoginCode.code_hash == hash_secret(raw_code))
    ).scalar_one_or_none()
    if record is None or record.consumed_at is not None:
        return None
    now = _utcnow()
    if as_utc(record.expires_at) <= now:
        return None
    record.consumed_at = now
    session.flush()
    return record


def issue_verification_token(
    session: Session,
    user: User,
    *,
    ttl_seconds: int = DEFAULT_VERIFICATION_TTL_SECONDS,
) -> str:
    raw_token = secrets.token_urlsafe(32)
    session.add(
        EmailVerificationToken(
            user_id=user.id,
            token_hash=hash_secret(raw_token),
            expires_at=_utcnow() + dt.timedelta(seconds=ttl_seconds),
        )
    )
    session.flush()
    return raw_token


def consume_verification_token(
    session: Session, raw_token: str
) -> EmailVerificationToken | None:
    """Mark the verification token as used and return it, if still valid."""

    if not raw_token:
        return None
    record = session.execute(
        select(EmailVerificationToken).where(
            EmailVerificationToken.token_hash == hash_secret(raw_token)
        )
    ).scalar_one_or_none()
    if record is None or record.consumed_at is not None:
        return None
    now = _utcnow()
    if as_utc(record.expires_at) <= now:
        return None
    record.consumed_at = now
    session.flush()
    return record


__all__ = [
    "DEFAULT_MAGIC_LINK_TTL_SECONDS",
    "DEFAULT_VERIFICATION_TTL_SECONDS",
    "consume_login_code",
    "consume_verification_token",
    "issue_login_code",
    "issue_verification_token",
]
