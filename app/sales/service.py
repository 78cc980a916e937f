"""Business logic for sales reports, history statistics and goals."""

from __future__ import annotations

import datetime as dt
import logging
from decimal import ROUND_HALF_UP, Decimal

from app.models import SalesGoal, SalesReport
from app.models.sales import METRIC_FIELDS

from . import schemas
from .repository import SalesRepository

logger = logging.getLogger(__name__)

RECENT_REPORT_DAYS = 14
HISTORY_DAYS = 30
DEFAULT_GOAL_DAYS = 30


class SalesNotFoundError(RuntimeError):
    """Raised when a report or goal does not exist for the caller."""


def round_one(value: float) -> float:
    """Round half up to one decimal place."""

    return float(Decimal(str(value)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def progress_percent(current: int, target: int) -> float:
    """Share of ``target`` reached, capped at 100; zero targets report 0."""

    if target <= 0:
        return 0.0
    return round_one(min(current / target * 100, 100.0))


def _today() -> dt.date:
    return dt.date.today()


def _window(
    start: dt.date | None,
    end: dt.date | None,
    days: int,
    *,
    open_end: bool = False,
) -> tuple[dt.date, dt.date | None]:
    """Fill a missing bound by counting ``days`` from the one given.

    With neither bound ``start`` falls ``days`` before today. A lone
    ``start`` leaves ``end`` unset when ``open_end`` is true.
    """

    if start is None:
        start = (end or _today()) - dt.timedelta(days=days)
    elif end is None and not open_end:
        end = start + dt.timedelta(days=days)
    return start, end


class SalesService:
    def __init__(self, repository: SalesRepository) -> None:
        self._repo = repository

    def upsert_report(self, payload: schemas.ReportInput) -> schemas.ReportOut:
        """Insert or overwrite the caller's report for ``payload.report_date``."""

        report = self._repo.get_report(payload.report_date)
        if report is None:
            report = SalesReport(
                organization_id=self._repo.organization_id,
                user_id=self._repo.user_id,
                report_date=payload.report_date,
            )
        for field in METRIC_FIELDS:
            setattr(report, field, getattr(payload, field))
        self._repo.add(report)
        return schemas.ReportOut.model_validate(report)

    def list_reports(
        self, start: dt.date | None = None, end: dt.date | None = None
    ) -> schemas.ReportList:
        start, end = _window(start, end, RECENT_REPORT_DAYS, open_end=True)
        rows = self._repo.list_reports(start, end)
        return schemas.ReportList(
            items=[schemas.ReportOut.model_validate(row) for row in rows],
            total=len(rows),
            start_date=start,
            end_date=end,
        )

    def get_report(self, report_date: dt.date) -> schemas.ReportOut:
        report = self._repo.get_report(report_date)
        if report is None:
            raise SalesNotFoundError(f"No report for {report_date.isoformat()}")
        return schemas.ReportOut.model_validate(report)

    def history(
        self, start: dt.date | None = None, end: dt.date | None = None
    ) -> schemas.HistoryResponse:
        """Reports in ascending date order plus total, average and max per metric."""

        start, end = _window(start, end, HISTORY_DAYS)
        end = end or _today()
        rows = self._repo.list_reports(start, end, ascending=True)
        stats: dict[str, schemas.MetricStats] = {}
        for field in METRIC_FIELDS:
            values = [getattr(row, field) for row in rows]
            total = sum(values)
            stats[field] = schemas.MetricStats(
                total=total,
                average=round_one(total / len(values)) if values else 0.0,
                max=max(values) if values else 0,
            )
        return schemas.HistoryResponse(
            start_date=start,
            end_date=end,
            items=[schemas.ReportOut.model_validate(row) for row in rows],
            stats=stats,
        )

    def create_goal(self, payload: schemas.GoalInput) -> schemas.GoalOut:
        start = payload.start_date or _today()
        end = payload.end_date or start + dt.timedelta(days=DEFAULT_GOAL_DAYS)
        if end < start:
            raise ValueError("end_date must not be before start_date")
        goal = SalesGoal(
            organization_id=self._repo.organization_id,
            user_id=self._repo.user_id,
            goal_type=payload.goal_type,
            target_value=payload.target_value,
            current_value=self._repo.sum_metric(payload.goal_type, start, end),
            start_date=start,
            end_date=end,
        )
        self._repo.add(goal)
        return self._goal_out(goal)

    def list_goals(self) -> schemas.GoalList:
        """Refresh each goal's ``current_value`` from the reports and return them."""

        goals = self._repo.list_goals()
        for goal in goals:
            current = self._repo.sum_metric(goal.goal_type, goal.start_date, goal.end_date)
            if current != goal.current_value:
                goal.current_value = current
        items = [self._goal_out(goal) for goal in goals]
        return schemas.GoalList(items=items, total=len(items))

    def delete_goal(self, goal_id: int) -> None:
        goal = self._repo.get_goal(goal_id)
        if goal is None:
            raise SalesNotFoundError(f"Goal {goal_id} not found")
        self._repo.delete(goal)

    @staticmethod
    def _goal_out(goal: SalesGoal) -> schemas.GoalOut:
        return schemas.GoalOut(
            id=goal.id,
            goal_type=goal.goal_type,
            target_value=goal.target_value,
            current_value=goal.current_value,
            progress_percent=progress_percent(goal.current_value, goal.target_value),
            start_date=goal.start_date,
            end_date=goal.end_date,
            created_at=goal.created_at,
        )


__all__ = [
    "SalesNotFoundError",
    "SalesService",
    "progress_percent",
    "round_one",
]
