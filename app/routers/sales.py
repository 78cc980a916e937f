"""Sales activity reports, history and goals for the signed-in user."""

from __future__ import annotations

import datetime as dt
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.orm import Session

from app.models import User
from app.models.org import ROLE_MEMBER
from app.sales import SalesNotFoundError, SalesService
from app.sales import schemas
from app.sales.repository import SalesRepository
from app.security.auth import get_db_session, require_role

router = APIRouter(prefix="/api/sales", tags=["sales"])

SessionDep = Annotated[Session, Depends(get_db_session)]
MemberDep = Annotated[User, Depends(require_role(ROLE_MEMBER))]


def get_sales_service(session: SessionDep, user: MemberDep) -> SalesService:
    repository = SalesRepository(
        session, organization_id=user.organization_id, user_id=user.id
    )
    return SalesService(repository)


ServiceDep = Annotated[SalesService, Depends(get_sales_service)]


def _check_range(start: dt.date | None, end: dt.date | None) -> None:
    if start and end and end < start:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="end must not be before start",
        )


@router.put("/reports", response_model=schemas.ReportOut)
def upsert_report(
    payload: schemas.ReportInput,
    session: SessionDep,
    service: ServiceDep,
) -> schemas.ReportOut:
    """Save the day's counters, replacing any earlier report for the same date."""

    report = service.upsert_report(payload)
    session.commit()
    return report


@router.get("/reports", response_model=schemas.ReportList)
def list_reports(
    service: ServiceDep,
    start: Annotated[dt.date | None, Query()] = None,
    end: Annotated[dt.date | None, Query()] = None,
) -> schemas.ReportList:
    _check_range(start, end)
    return service.list_reports(start, end)


@router.get("/reports/{report_date}", response_model=schemas.ReportOut)
def get_report(report_date: dt.date, service: ServiceDep) -> schemas.ReportOut:
    try:
        return service.get_report(report_date)
    except SalesNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc


@router.get("/history", response_model=schemas.HistoryResponse)
def history(
    service: ServiceDep,
    start: Annotated[dt.date | None, Query()] = None,
    end: Annotated[dt.date | None, Query()] = None,
) -> schemas.HistoryResponse:
    _check_range(start, end)
    return service.history(start, end)


@router.post("/goals", response_model=schemas.GoalOut, status_code=status.HTTP_201_CREATED)
def create_goal(
    payload: schemas.GoalInput,
    session: SessionDep,
    service: ServiceDep,
) -> schemas.GoalOut:
    try:
        goal = service.create_goal(payload)
    except ValueError as exc:
        session.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    session.commit()
    return goal


@router.get("/goals", response_model=schemas.GoalList)
def list_goals(session: SessionDep, service: ServiceDep) -> schemas.GoalList:
    goals = service.list_goals()
    session.commit()
    return goals


@router.delete("/goals/{goal_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_goal(goal_id: int, session: SessionDep, service: ServiceDep) -> Response:
    try:
        service.delete_goal(goal_id)
    except SalesNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    session.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
