"""Authentication flows: registration, logins, sessions and org bootstrap."""

from __future__ import annotations

import dataclasses
import datetime as dt
import logging
import os
import uuid
from functools import lru_cache
from urllib.parse import urlencode

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.mailer import MAGIC_LINK_SUBJECT, Mailer, MailError
from app.models import Invitation, Organization, RefreshToken, User
from app.models.org import ROLE_OWNER
from app.security.login_codes import (
    DEFAULT_MAGIC_LINK_TTL_SECONDS,
    DEFAULT_VERIFICATION_TTL_SECONDS,
    consume_login_code,
    consume_verification_token,
    issue_login_code,
    issue_verification_token,
)
from app.security.passwords import (
    WeakPasswordError,
    hash_password,
    validate_password_strength,
    verify_password,
)
from app.security.tokens import (
    as_utc,
    create_access_token,
    create_refresh_token,
    revoke_refresh_token,
    verify_refresh_token,
)
from app.security.validators import mask_email, normalize_email

from .errors import (
    AccountError,
    DuplicateUserError,
    EmailNotVerifiedError,
    InactiveUserError,
    InvalidCredentialsError,
    InvalidInvitationError,
    InvalidLoginCodeError,
    InvalidRefreshTokenError,
    InvalidVerificationTokenError,
)

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class AccountSettings:
    """Lifetimes of the single-use secrets mailed to users."""

    magic_link_ttl_seconds: int = DEFAULT_MAGIC_LINK_TTL_SECONDS
    verification_ttl_seconds: int = DEFAULT_VERIFICATION_TTL_SECONDS


@lru_cache(maxsize=1)
def get_account_settings() -> AccountSettings:
    return AccountSettings(
        magic_link_ttl_seconds=int(
            os.getenv("MAGIC_LINK_TTL_SECONDS", str(DEFAULT_MAGIC_LINK_TTL_SECONDS))
        ),
        verification_ttl_seconds=int(
            os.getenv(
                "EMAIL_VERIFICATION_TTL_SECONDS", str(DEFAULT_VERIFICATION_TTL_SECONDS)
            )
        ),
    )


def reset_account_settings_cache() -> None:
    get_account_settings.cache_clear()


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


@dataclasses.dataclass
class AuthResult:
    """A freshly opened login session."""

    user: User
    organization: Organization
    access_token: str
    access_expires_at: dt.datetime
    refresh_token: str
    refresh_expires_at: dt.datetime
    session_id: uuid.UUID
    created_organization: bool = False


@dataclasses.dataclass
class RegistrationResult:
    user: User
    organization: Organization
    verification_email_sent: bool


def find_user_by_email(session: Session, email: str) -> User | None:
    return session.execute(
        select(User).where(User.email == normalize_email(email))
    ).scalar_one_or_none()


def find_pending_invitation(session: Session, token: str | None) -> Invitation | None:
    """Return the invitation for ``token`` when it is neither used nor expired."""

    if not token:
        return None
    invitation = session.execute(
        select(Invitation).where(Invitation.token == token)
    ).scalar_one_or_none()
    if invitation is None or invitation.accepted_at is not None:
        return None
    if as_utc(invitation.expires_at) <= _utcnow():
        return None
    return invitation


def open_session(
    session: Session,
    user: User,
    *,
    user_agent: str | None = None,
    created_organization: bool = False,
) -> AuthResult:
    """Persist a refresh token for ``user`` and mint the matching access token."""

    refresh_token, record = create_refresh_token(session, user, user_agent=user_agent)
    access_token, access_expires_at = create_access_token(user, session_id=record.id)
    return AuthResult(
        user=user,
        organization=user.organization,
        access_token=access_token,
        access_expires_at=access_expires_at,
        refresh_token=refresh_token,
        refresh_expires_at=record.expires_at,
        session_id=record.id,
        created_organization=created_organization,
    )


def check_password(password: str) -> None:
    try:
        validate_password_strength(password)
    except WeakPasswordError as exc:
        raise AccountError(str(exc)) from exc


class AccountService:
    """Sign-up, sign-in and session management on one database session."""

    def __init__(
        self,
        session: Session,
        *,
        mailer: Mailer | None = None,
        settings: AccountSettings | None = None,
    ) -> None:
        self._session = session
        self._mailer = mailer
        self._settings = settings or get_account_settings()

    # ------------------------------------------------------------------
    # Password accounts
    # ------------------------------------------------------------------

    def register_organization(
        self,
        *,
        organization_name: str,
        representative_name: str,
        username: str,
        email: str,
        password: str,
    ) -> RegistrationResult:
        """Create an organization, its unverified owner and mail a verification link.

        A failed verification mail is logged and recorded but does not undo the
        registration.
        """

        email = normalize_email(email)
        if find_user_by_email(self._session, email) is not None:
            raise DuplicateUserError()
        check_password(password)

        organization = Organization(
            name=organization_name.strip(),
            representative_name=representative_name.strip(),
        )
        self._session.add(organization)
        self._session.flush()

        user = User(
            organization_id=organization.id,
            username=username.strip(),
            email=email,
            password_hash=hash_password(password),
            role=ROLE_OWNER,
            email_verified=False,
        )
        self._session.add(user)
        self._session.flush()
        organization.owner_id = user.id

        raw_token = issue_verification_token(
            self._session, user, ttl_seconds=self._settings.verification_ttl_seconds
        )
        sent = False
        if self._mailer is not None:
            link = self._link("/auth/verify-email", token=raw_token)
            try:
                self._mailer.send_verification(email, link, organization_id=organization.id)
                sent = True
            except MailError as exc:
                logger.warning(
                    "Verification e-mail to %s failed: %s", mask_email(email), exc
                )
        logger.info("Registered organization %s for %s", organization.id, mask_email(email))
        return RegistrationResult(user=user, organization=organization, verification_email_sent=sent)

    def verify_email(self, token: str) -> User:
        record = consume_verification_token(self._session, token)
        if record is None:
            raise InvalidVerificationTokenError()
        user = self._session.get(User, record.user_id)
        if user is None:
            raise InvalidVerificationTokenError()
        user.email_verified = True
        self._session.flush()
        return user

    def login_with_password(
        self, email: str, password: str, *, user_agent: str | None = None
    ) -> AuthResult:
        user = find_user_by_email(self._session, email)
        if user is None or not verify_password(password, user.password_hash):
            raise InvalidCredentialsError()
        if not user.is_active:
            raise InactiveUserError()
        if not user.email_verified:
            raise EmailNotVerifiedError()
        return open_session(self._session, user, user_agent=user_agent)

    # ------------------------------------------------------------------
    # Magic links
    # ------------------------------------------------------------------

    def request_magic_link(self, email: str, *, invitation_token: str | None = None) -> int:
        """Store a one-time code for ``email`` and mail the sign-in link.

        Returns the lifetime of the link in seconds.  Delivery errors from the
        mailer propagate to the caller.
        """

        if self._mailer is None:
            raise AccountError("Mail delivery is not configured.", status_code=500)

        email = normalize_email(email)
        organization_id: uuid.UUID | None = None
        if invitation_token:
            invitation = find_pending_invitation(self._session, invitation_token)
            if invitation is None:
                raise InvalidInvitationError()
            organization_id = invitation.organization_id
        else:
            existing = find_user_by_email(self._session, email)
            if existing is not None:
                organization_id = existing.organization_id

        self._mailer.validate_recipient(
            email, MAGIC_LINK_SUBJECT, organization_id=organization_id, kind="magic_link"
        )
        ttl = self._settings.magic_link_ttl_seconds
        raw_code = issue_login_code(
            self._session, email, ttl_seconds=ttl, invitation_token=invitation_token
        )
        params = {"code": raw_code}
        if invitation_token:
            params["inv"] = invitation_token
        self._mailer.send_magic_link(
            email,
            self._link("/auth/callback", **params),
            organization_id=organization_id,
        )
        return ttl

    def exchange_code(
        self,
        code: str,
        *,
        invitation_token: str | None = None,
        user_agent: str | None = None,
    ) -> AuthResult:
        """Sign in with a magic-link code, creating the user on first sign-in.

        New users join the inviting organization when a matching invitation is
        supplied; otherwise they get an organization of their own named after
        the local part of their address.
        """

        record = consume_login_code(self._session, code)
        if record is None:
            raise InvalidLoginCodeError()

        email = record.email
        token = invitation_token or record.invitation_token
        invitation = find_pending_invitation(self._session, token)
        user = find_user_by_email(self._session, email)

        if user is not None:
            if token:
                if (
                    invitation is None
                    or invitation.organization_id != user.organization_id
                    or normalize_email(invitation.email) != email
                ):
                    raise InvalidInvitationError()
                invitation.accepted_at = _utcnow()
            if not user.is_active:
                raise InactiveUserError()
            user.email_verified = True
            self._session.flush()
            return open_session(self._session, user, user_agent=user_agent)

        local_part = email.split("@", 1)[0]
        if invitation is not None and normalize_email(invitation.email) == email:
            user = User(
                organization_id=invitation.organization_id,
                username=local_part,
                email=email,
                role=invitation.role,
                email_verified=True,
            )
            self._session.add(user)
            invitation.accepted_at = _utcnow()
            self._session.flush()
            self._session.refresh(user)
            logger.info("%s joined organization %s", mask_email(email), user.organization_id)
            return open_session(self._session, user, user_agent=user_agent)

        organization = Organization(name=local_part)
        self._session.add(organization)
        self._session.flush()
        user = User(
            organization_id=organization.id,
            username=local_part,
            email=email,
            role=ROLE_OWNER,
            email_verified=True,
        )
        self._session.add(user)
        self._session.flush()
        organization.owner_id = user.id
        self._session.refresh(user)
        logger.info("Bootstrapped organization %s for %s", organization.id, mask_email(email))
        return open_session(
            self._session, user, user_agent=user_agent, created_organization=True
        )

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def refresh(self, raw_token: str, *, user_agent: str | None = None) -> AuthResult:
        """Rotate a refresh token; the old one stops working immediately."""

        token = verify_refresh_token(self._session, raw_token)
        if token is None:
            raise InvalidRefreshTokenError()
        user = self._session.get(User, token.user_id)
        if user is None or not user.is_active:
            raise InvalidRefreshTokenError("User is inactive.")
        revoke_refresh_token(token)
        return open_session(self._session, user, user_agent=user_agent)

    def logout(self, user: User, session_id: str | None) -> None:
        """Revoke the login session the caller's access token belongs to."""

        try:
            key = uuid.UUID(str(session_id))
        except ValueError as exc:
            raise InvalidRefreshTokenError("Invalid session.") from exc
        record = self._session.get(RefreshToken, key)
        if record is None or record.user_id != user.id:
            raise InvalidRefreshTokenError("Invalid session.")
        if record.revoked_at is None:
            revoke_refresh_token(record)
        self._session.flush()

    def _link(self, path: str, **params: str) -> str:
        base = self._mailer.settings.public_app_url if self._mailer else ""
        return f"{base}{path}?{urlencode(params)}"


__all__ = [
    "AccountService",
    "AccountSettings",
    "AuthResult",
    "RegistrationResult",
    "check_password",
    "find_pending_invitation",
    "find_user_by_email",
    "get_account_settings",
    "open_session",
    "reset_account_settings_cache",
]
