"""Organization, user and credential models.

Organizations are the tenants of the application.  Users belong to exactly one
organization and either own it or are members of it.  The remaining models
hold the single-use secrets that drive the authentication flows: invitations,
refresh tokens (one row per login session), magic-link login codes and e-mail
verification tokens.  Secrets are stored as SHA-256 digests except for
invitation tokens, which are looked up by value from the invite URL.
"""

from __future__ import annotations

import datetime as dt
import uuid
from typing import List

from sqlalchemy import DateTime, ForeignKey, Index, String, Text, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from . import Base

ROLE_OWNER = "owner"
ROLE_MEMBER = "member"


def _utcnow() -> dt.datetime:
    """Return the current UTC timestamp with timezone awareness."""

    return dt.datetime.now(dt.timezone.utc)


class Organization(Base):
    """A tenant grouping users that share knowledge articles and sales data.

    Attributes:
        id: Primary key generated via ``gen_random_uuid`` in Postgres.
        name: Display name of the organization.
        representative_name: Name of the legal representative, captured at
            registration time.
        owner_id: User that created the organization.  Nullable because the
            organization row is inserted before its first user.
        users: Collection of users that belong to this organization.
    """

    __tablename__ = "organizations"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    name: Mapped[str] = mapped_column(String(length=255), nullable=False)
    representative_name: Mapped[str | None] = mapped_column(
        String(length=255), nullable=True
    )
    owner_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), nullable=True
    )
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )

    users: Mapped[List["User"]] = relationship(
        back_populates="organization",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    invitations: Mapped[List["Invitation"]] = relationship(
        back_populates="organization",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class User(Base):
    """A person signed in to an organization.

    Attributes:
        id: Primary key shared with the authentication identity.
        organization_id: Foreign key that links to the owning organization.
        username: Handle shown in the UI.
        email: Unique, lower-cased e-mail address.
        password_hash: Argon2 hash; ``None`` for magic-link-only accounts.
        role: ``owner`` or ``member``.
        email_verified: Whether the address has been confirmed.
        slack_user_id: Slack member id linked through the DM code check.
    """

    __tablename__ = "users"
    __table_args__ = (
        Index("ix_users_email_unique", "email", unique=True),
        Index("ix_users_organization_id", "organization_id"),
        Index("ix_users_slack_user_id", "slack_user_id", unique=True),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    organization_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
    )
    username: Mapped[str] = mapped_column(String(length=255), nullable=False)
    email: Mapped[str] = mapped_column(String(length=320), nullable=False)
    password_hash: Mapped[str | None] = mapped_column(String(length=255), nullable=True)
    role: Mapped[str] = mapped_column(
        String(length=32),
        nullable=False,
        default=ROLE_MEMBER,
        server_default=text("'member'"),
    )
    email_verified: Mapped[bool] = mapped_column(
        nullable=False,
        default=False,
        server_default=text("false"),
    )
    is_active: Mapped[bool] = mapped_column(
        nullable=False,
        default=True,
        server_default=text("true"),
    )
    slack_user_id: Mapped[str | None] = mapped_column(String(length=32), nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    organization: Mapped[Organization] = relationship(
        back_populates="users",
        lazy="joined",
    )
    refresh_tokens: Mapped[List["RefreshToken"]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class Invitation(Base):
    """Invitation issued by an owner to onboard a user into the organization."""

    __tablename__ = "invitations"
    __table_args__ = (
        Index("ix_invitations_token_unique", "token", unique=True),
        Index("ix_invitations_org", "organization_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    organization_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
    )
    email: Mapped[str] = mapped_column(String(length=320), nullable=False)
    role: Mapped[str] = mapped_column(String(length=32), nullable=False)
    token: Mapped[str] = mapped_column(String(length=255), nullable=False)
    message: Mapped[str | None] = mapped_column(Text(), nullable=True)
    expires_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    accepted_at: Mapped[dt.datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    invited_by_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )

    organization: Mapped[Organization] = relationship(back_populates="invitations")


class RefreshToken(Base):
    """Refresh token backing one login session.

    Access tokens carry the row id as their ``sid`` claim, so revoking the row
    also invalidates the access tokens issued with it.
    """

    __tablename__ = "refresh_tokens"
    __table_args__ = (
        Index("ix_refresh_tokens_user_id", "user_id"),
        Index("ix_refresh_tokens_token_hash", "token_hash", unique=True),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    token_hash: Mapped[str] = mapped_column(String(length=255), nullable=False)
    issued_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )
    expires_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    revoked_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True))
    user_agent: Mapped[str | None] = mapped_column(String(length=255))

    user: Mapped[User] = relationship(back_populates="refresh_tokens")


class LoginCode(Base):
    """One-time code delivered inside a magic link."""

    __tablename__ = "login_codes"
    __table_args__ = (
        Index("ix_login_codes_code_hash", "code_hash", unique=True),
        Index("ix_login_codes_email", "email"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    email: Mapped[str] = mapped_column(String(length=320), nullable=False)
    code_hash: Mapped[str] = mapped_column(String(length=255), nullable=False)
    invitation_token: Mapped[str | None] = mapped_column(String(length=255))
    expires_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    consumed_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )


class EmailVerificationToken(Base):
    """Token mailed after password registration to confirm the address."""

    __tablename__ = "email_verification_tokens"
    __table_args__ = (
        Index("ix_email_verification_tokens_hash", "token_hash", unique=True),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    token_hash: Mapped[str] = mapped_column(String(length=255), nullable=False)
    expires_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    consumed_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True))


__all__ = [
    "ROLE_MEMBER",
    "ROLE_OWNER",
    "EmailVerificationToken",
    "Invitation",
    "LoginCode",
    "Organization",
    "RefreshToken",
    "User",
]
