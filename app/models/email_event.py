"""Delivery log of transactional e-mails."""

from __future__ import annotations

import datetime as dt
import uuid
from typing import Any

from sqlalchemy import JSON, DateTime, Index, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from . import Base
from .org import _utcnow

SUCCESS_STATUSES: frozenset[str] = frozenset({"sent", "delivered"})
FAILURE_STATUSES: frozenset[str] = frozenset({"failed", "bounced"})


class EmailEvent(Base):
    """One delivery attempt (or provider callback) for an outgoing e-mail."""

    __tablename__ = "email_events"
    __table_args__ = (
        Index("ix_email_events_org_created", "organization_id", "created_at"),
        Index("ix_email_events_status", "status"),
    )

    id: Mapped[str] = mapped_column(String(length=64), primary_key=True)
    organization_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), nullable=True
    )
    event_type: Mapped[str] = mapped_column(String(length=32), nullable=False)
    email: Mapped[str] = mapped_column(String(length=320), nullable=False)
    subject: Mapped[str] = mapped_column(String(length=255), nullable=False)
    status: Mapped[str] = mapped_column(String(length=16), nullable=False)
    error: Mapped[str | None] = mapped_column(Text(), nullable=True)
    details: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    ip_address: Mapped[str | None] = mapped_column(String(length=64))
    user_agent: Mapped[str | None] = mapped_column(String(length=255))
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )


__all__ = ["FAILURE_STATUSES", "SUCCESS_STATUSES", "EmailEvent"]
