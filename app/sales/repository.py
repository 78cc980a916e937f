"""Persistence for sales reports and goals."""

from __future__ import annotations

import datetime as dt
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.models import SalesGoal, SalesReport
from app.models.sales import METRIC_FIELDS


class SalesRepository:
    """Per-user access to reports and goals."""

    def __init__(self, session: Session, *, organization_id: UUID, user_id: UUID) -> None:
        self._session = session
        self._organization_id = organization_id
        self._user_id = user_id

    @property
    def organization_id(self) -> UUID:
        return self._organization_id

    @property
    def user_id(self) -> UUID:
        return self._user_id

    def get_report(self, report_date: dt.date) -> SalesReport | None:
        stmt = select(SalesReport).where(
            SalesReport.user_id == self._user_id,
            SalesReport.report_date == report_date,
        )
        return self._session.execute(stmt).scalar_one_or_none()

    def add(self, row: SalesReport | SalesGoal) -> None:
        self._session.add(row)
        self._session.flush()

    def list_reports(
        self,
        start: dt.date,
        end: dt.date | None = None,
        *,
        ascending: bool = False,
    ) -> list[SalesReport]:
        stmt = select(SalesReport).where(
            SalesReport.user_id == self._user_id,
            SalesReport.report_date >= start,
        )
        if end is not None:
            stmt = stmt.where(SalesReport.report_date <= end)
        order = SalesReport.report_date.asc() if ascending else SalesReport.report_date.desc()
        return list(self._session.execute(stmt.order_by(order)).scalars())

    def sum_metric(self, metric: str, start: dt.date, end: dt.date) -> int:
        """Total of ``metric`` over the caller's reports in ``[start, end]``."""

        if metric not in METRIC_FIELDS:
            raise ValueError(f"Unknown metric: {metric}")
        column = getattr(SalesReport, metric)
        stmt = select(func.coalesce(func.sum(column), 0)).where(
            SalesReport.user_id == self._user_id,
            SalesReport.report_date >= start,
            SalesReport.report_date <= end,
        )
        return int(self._session.execute(stmt).scalar_one())

    def list_goals(self) -> list[SalesGoal]:
        stmt = (
            select(SalesGoal)
            .where(SalesGoal.user_id == self._user_id)
            .order_by(SalesGoal.created_at.desc(), SalesGoal.id.desc())
        )
        return list(self._session.execute(stmt).scalars())

    def get_goal(self, goal_id: int) -> SalesGoal | None:
        goal = self._session.get(SalesGoal, goal_id)
        if goal is None or goal.user_id != self._user_id:
            return None
        return goal

    def delete(self, row: SalesReport | SalesGoal) -> None:
        self._session.delete(row)
        self._session.flush()


__all__ = ["SalesRepository"]
