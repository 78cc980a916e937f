"""E-mail delivery monitoring for organization owners."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.models import User
from app.models.org import ROLE_OWNER
from app.monitoring import EmailMonitor
from app.monitoring import schemas
from app.security.auth import get_db_session, require_role

router = APIRouter(prefix="/api/monitoring", tags=["monitoring"])

SessionDep = Annotated[Session, Depends(get_db_session)]
OwnerDep = Annotated[User, Depends(require_role(ROLE_OWNER))]


def get_monitor(session: SessionDep) -> EmailMonitor:
    return EmailMonitor(session)


MonitorDep = Annotated[EmailMonitor, Depends(get_monitor)]


@router.get("/dashboard", response_model=schemas.Dashboard)
def dashboard(owner: OwnerDep, monitor: MonitorDep) -> schemas.Dashboard:
    """Metrics, recent events and a summary for the caller's organization."""

    return monitor.dashboard(owner.organization_id)


@router.get("/email-events", response_model=schemas.EmailEventList)
def email_events(
    owner: OwnerDep,
    monitor: MonitorDep,
    limit: Annotated[int, Query(ge=1, le=500)] = 100,
    status: Annotated[str | None, Query(max_length=32)] = None,
    email: Annotated[str | None, Query(max_length=254)] = None,
) -> schemas.EmailEventList:
    items = monitor.recent_events(
        owner.organization_id, limit=limit, status=status, email=email
    )
    return schemas.EmailEventList(items=items, count=len(items))


@router.get("/email-health", response_model=schemas.EmailHealth)
def email_health(owner: OwnerDep, monitor: MonitorDep) -> schemas.EmailHealth:
    return monitor.health(owner.organization_id)
