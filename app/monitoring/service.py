"""Metrics and health computed from recorded e-mail events."""

from __future__ import annotations

import itertools
import json
import logging
import os
import time
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from app.models import EmailEvent
from app.models.email_event import FAILURE_STATUSES, SUCCESS_STATUSES
from app.security.tokens import as_utc
from app.security.validators import email_domain, mask_email

from . import schemas
from .repository import EmailEventRepository

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_DAYS = 7
DEFAULT_RECENT_LIMIT = 50
TOP_ENTRIES = 5
MAX_SUBJECT_LENGTH = 255
MAX_USER_AGENT_LENGTH = 255
MAX_IP_LENGTH = 64

_EVENT_TYPES = {
    "sent": "email_sent",
    "delivered": "email_delivered",
    "failed": "email_failed",
    "bounced": "email_bounced",
}
_SEQUENCE = itertools.count()


def get_retention_days() -> int:
    try:
        days = int(os.getenv("EMAIL_EVENT_RETENTION_DAYS", str(DEFAULT_RETENTION_DAYS)))
    except ValueError:
        logger.warning("Invalid EMAIL_EVENT_RETENTION_DAYS; using %s", DEFAULT_RETENTION_DAYS)
        return DEFAULT_RETENTION_DAYS
    return max(days, 1)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_event_id(now: datetime) -> str:
    suffix = f"{time.time_ns() % 1_000_000:06d}{next(_SEQUENCE) % 1000:03d}"
    return f"email_{int(now.timestamp())}_{suffix}"


def _success_rate(sent: int, failed: int) -> float:
    total = sent + failed
    if total == 0:
        return 0.0
    return round(sent / total * 100, 1)


def _top(counts: dict[str, int], limit: int) -> list[tuple[str, int]]:
    return sorted(counts.items(), key=lambda item: (-item[1], item[0]))[:limit]


class EmailMonitor:
    """Records delivery attempts and aggregates them per organization."""

    def __init__(
        self,
        session: Session,
        *,
        retention_days: int | None = None,
        repository: EmailEventRepository | None = None,
    ) -> None:
        self._session = session
        self._repo = repository or EmailEventRepository(session)
        self._retention = timedelta(days=retention_days or get_retention_days())

    def record_event(
        self,
        *,
        status: str,
        email: str,
        subject: str,
        organization_id: UUID | None = None,
        error: str | None = None,
        details: dict[str, Any] | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> EmailEvent:
        """Persist one event and drop the ones older than the retention window."""

        if status not in _EVENT_TYPES:
            raise ValueError(f"Unknown e-mail status: {status}")
        now = _utcnow()
        event = EmailEvent(
            id=_new_event_id(now),
            organization_id=organization_id,
            event_type=_EVENT_TYPES[status],
            email=email,
            subject=subject[:MAX_SUBJECT_LENGTH],
            status=status,
            error=error,
            details=details or {},
            ip_address=(ip_address or "")[:MAX_IP_LENGTH] or None,
            user_agent=(user_agent or "")[:MAX_USER_AGENT_LENGTH] or None,
            created_at=now,
        )
        self._repo.add(event)
        self._log_event(event)
        purged = self._repo.purge_before(now - self._retention)
        if purged:
            logger.debug("Purged %s e-mail events past retention", purged)
        return event

    def metrics(self, organization_id: UUID) -> schemas.EmailMetrics:
        now = _utcnow()
        events = self._repo.list_since(organization_id, now - self._retention)

        sent = failed = last_day = last_hour = 0
        errors: Counter[str] = Counter()
        domains: Counter[str] = Counter()
        for event in events:
            if event.status in SUCCESS_STATUSES:
                sent += 1
                created = as_utc(event.created_at)
                if created > now - timedelta(hours=24):
                    last_day += 1
                if created > now - timedelta(hours=1):
                    last_hour += 1
            elif event.status in FAILURE_STATUSES:
                failed += 1
            if event.error:
                errors[event.error] += 1
            domains[email_domain(event.email)] += 1

        return schemas.EmailMetrics(
            total_sent=sent,
            total_failed=failed,
            success_rate=_success_rate(sent, failed),
            last_24_hours=last_day,
            last_hour=last_hour,
            errors_by_type=dict(errors),
            emails_by_domain=dict(domains),
        )

    def recent_events(
        self,
        organization_id: UUID,
        *,
        limit: int = DEFAULT_RECENT_LIMIT,
        status: str | None = None,
        email: str | None = None,
    ) -> list[schemas.EmailEventOut]:
        rows = self._repo.list_recent(
            organization_id, limit=limit, status=status, email=email
        )
        return [schemas.EmailEventOut.model_validate(row) for row in rows]

    def health(self, organization_id: UUID) -> schemas.EmailHealth:
        """Classify delivery health; needs more than ten sends to degrade."""

        metrics = self.metrics(organization_id)
        status: schemas.HealthStatus = "healthy"
        if metrics.total_sent > 10:
            if metrics.success_rate < 70.0:
                status = "unhealthy"
            elif metrics.success_rate < 90.0:
                status = "degraded"
        return schemas.EmailHealth(
            status=status,
            success_rate=metrics.success_rate,
            total_sent=metrics.total_sent,
            total_failed=metrics.total_failed,
            checked_at=_utcnow(),
        )

    def dashboard(self, organization_id: UUID) -> schemas.Dashboard:
        metrics = self.metrics(organization_id)
        recent = self.recent_events(organization_id, limit=DEFAULT_RECENT_LIMIT)
        summary = schemas.DashboardSummary(
            total_emails=metrics.total_sent + metrics.total_failed,
            success_rate=metrics.success_rate,
            last_24_hours=metrics.last_24_hours,
            last_hour=metrics.last_hour,
            top_domains=[
                schemas.DomainCount(domain=domain, count=count)
                for domain, count in _top(metrics.emails_by_domain, TOP_ENTRIES)
            ],
            common_errors=[
                schemas.ErrorCount(error=error, count=count)
                for error, count in _top(metrics.errors_by_type, TOP_ENTRIES)
            ],
        )
        return schemas.Dashboard(
            metrics=metrics,
            recent_events=recent,
            summary=summary,
            generated_at=_utcnow(),
        )

    @staticmethod
    def _log_event(event: EmailEvent) -> None:
        record: dict[str, Any] = {
            "event_id": event.id,
            "event_type": event.event_type,
            "email": mask_email(event.email),
            "subject": event.subject,
            "status": event.status,
        }
        if event.error:
            record["error"] = event.error
        if event.status in FAILURE_STATUSES:
            logger.warning("[EMAIL] %s", json.dumps(record, ensure_ascii=False))
        else:
            logger.info("[EMAIL] %s", json.dumps(record, ensure_ascii=False))


__all__ = ["DEFAULT_RETENTION_DAYS", "EmailMonitor", "get_retention_days"]
