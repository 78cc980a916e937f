"""Invitations issued by organization owners."""

from __future__ import annotations

import dataclasses
import datetime as dt
import logging
import secrets
import uuid

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.mailer import Mailer, MailError
from app.models import Invitation, Organization, User
from app.security.passwords import hash_password
from app.security.tokens import as_utc
from app.security.validators import mask_email, normalize_email

from .errors import DuplicateUserError, InvalidInvitationError, InvitationNotFoundError
from .service import AuthResult, check_password, find_user_by_email, open_session

logger = logging.getLogger(__name__)


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


@dataclasses.dataclass
class IssuedInvitation:
    invitation: Invitation
    invite_url: str
    email_sent: bool


class InvitationService:
    """Create, inspect, accept and revoke invitations."""

    def __init__(self, session: Session, *, mailer: Mailer | None = None) -> None:
        self._session = session
        self._mailer = mailer

    def create_invitation(
        self,
        inviter: User,
        *,
        email: str,
        role: str,
        expires_in: int,
        message: str | None = None,
    ) -> IssuedInvitation:
        """Issue an invitation, replacing any pending one for the same address."""

        email = normalize_email(email)
        if find_user_by_email(self._session, email) is not None:
            raise DuplicateUserError()

        existing = self._session.execute(
            select(Invitation).where(
                Invitation.organization_id == inviter.organization_id,
                Invitation.email == email,
                Invitation.accepted_at.is_(None),
            )
        ).scalars()
        for stale in existing:
            self._session.delete(stale)
        self._session.flush()

        invitation = Invitation(
            organization_id=inviter.organization_id,
            email=email,
            role=role,
            token=secrets.token_urlsafe(32),
            message=message,
            expires_at=_utcnow() + dt.timedelta(seconds=expires_in),
            invited_by_id=inviter.id,
        )
        self._session.add(invitation)
        self._session.flush()

        base = self._mailer.settings.public_app_url if self._mailer else ""
        invite_url = f"{base}/invite/{invitation.token}"
        sent = False
        if self._mailer is not None:
            try:
                self._mailer.send_invitation(
                    email,
                    invite_url,
                    organization_name=inviter.organization.name,
                    message=message,
                    organization_id=inviter.organization_id,
                )
                sent = True
            except MailError as exc:
                logger.warning("Invitation e-mail to %s failed: %s", mask_email(email), exc)
        return IssuedInvitation(invitation=invitation, invite_url=invite_url, email_sent=sent)

    def list_invitations(self, organization_id: uuid.UUID) -> list[Invitation]:
        """Return invitations of the organization that have not been accepted."""

        stmt = (
            select(Invitation)
            .where(Invitation.organization_id == organization_id)
            .where(Invitation.accepted_at.is_(None))
            .order_by(Invitation.created_at.desc())
        )
        return list(self._session.execute(stmt).scalars())

    def revoke_invitation(self, organization_id: uuid.UUID, invitation_id: uuid.UUID) -> None:
        invitation = self._session.get(Invitation, invitation_id)
        if (
            invitation is None
            or invitation.organization_id != organization_id
            or invitation.accepted_at is not None
        ):
            raise InvitationNotFoundError()
        self._session.delete(invitation)
        self._session.flush()

    def lookup_invitation(self, token: str) -> tuple[Invitation, Organization]:
        """Return a usable invitation with its organization.

        Raises:
            InvitationNotFoundError: The token is unknown.
            InvalidInvitationError: It was already accepted or has expired.
        """

        invitation = self._session.execute(
            select(Invitation).where(Invitation.token == token)
        ).scalar_one_or_none()
        if invitation is None:
            raise InvitationNotFoundError()
        if invitation.accepted_at is not None or as_utc(invitation.expires_at) <= _utcnow():
            raise InvalidInvitationError()
        return invitation, invitation.organization

    def accept_invitation(
        self,
        token: str,
        *,
        username: str,
        password: str,
        user_agent: str | None = None,
    ) -> AuthResult:
        """Create the invited user with a password and sign them in."""

        invitation, _organization = self.lookup_invitation(token)
        email = normalize_email(invitation.email)
        if find_user_by_email(self._session, email) is not None:
            raise DuplicateUserError()
        check_password(password)

        user = User(
            organization_id=invitation.organization_id,
            username=username.strip(),
            email=email,
            password_hash=hash_password(password),
            role=invitation.role,
            email_verified=True,
        )
        self._session.add(user)
        invitation.accepted_at = _utcnow()
        self._session.flush()
        self._session.refresh(user)
        logger.info("Invitation accepted by %s", mask_email(email))
        return open_session(self._session, user, user_agent=user_agent)


__all__ = ["InvitationService", "IssuedInvitation"]
