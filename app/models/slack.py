"""Pending Slack account links."""

from __future__ import annotations

import datetime as dt
import uuid

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from . import Base
from .org import _utcnow


class SlackBindRequest(Base):
    """A verification code sent by DM to the Slack member a user claims.

    The link is stored on :class:`~app.models.User` only once the user types
    the code back.  ``code_hash`` is the SHA-256 of ``"<user id>:<code>"``.
    """

    __tablename__ = "slack_bind_requests"
    __table_args__ = (Index("ix_slack_bind_requests_user_id", "user_id"),)

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
    slack_user_id: Mapped[str] = mapped_column(String(length=32), nullable=False)
    code_hash: Mapped[str] = mapped_column(String(length=255), nullable=False)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    expires_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    consumed_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )


__all__ = ["SlackBindRequest"]
