"""Persistence for e-mail delivery events."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from app.models import EmailEvent


class EmailEventRepository:
    """Reads and writes :class:`~app.models.EmailEvent` rows."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def add(self, event: EmailEvent) -> EmailEvent:
        self._session.add(event)
        self._session.flush()
        return event

    def purge_before(self, cutoff: datetime) -> int:
        """Delete events created before ``cutoff``; returns the number removed."""

        result = self._session.execute(
            delete(EmailEvent)
            .where(EmailEvent.created_at < cutoff)
            .execution_options(synchronize_session=False)
        )
        return int(result.rowcount or 0)

    def list_since(self, organization_id: UUID, since: datetime) -> list[EmailEvent]:
        stmt = (
            select(EmailEvent)
            .where(EmailEvent.organization_id == organization_id)
            .where(EmailEvent.created_at >= since)
            .order_by(EmailEvent.created_at.desc())
        )
        return list(self._session.execute(stmt).scalars())

    def list_recent(
        self,
        organization_id: UUID,
        *,
        limit: int,
        status: str | None = None,
        email: str | None = None,
    ) -> list[EmailEvent]:
        """Return the newest events first, optionally filtered."""

        stmt = select(EmailEvent).where(EmailEvent.organization_id == organization_id)
        if email:
            stmt = stmt.where(EmailEvent.email == email)
        if status:
            stmt = stmt.where(EmailEvent.status == status)
        stmt = stmt.order_by(EmailEvent.created_at.desc(), EmailEvent.id.desc()).limit(limit)
        return list(self._session.execute(stmt).scalars())


__all__ = ["EmailEventRepository"]
