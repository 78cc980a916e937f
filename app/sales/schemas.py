"""Pydantic schemas for the sales metrics APIs."""

from __future__ import annotations

import datetime as dt
import uuid
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

GoalType = Literal["calls", "connects", "docs_sent", "appointments"]
_MAX_COUNT = 100_000


class ReportInput(BaseModel):
    """One day of activity counters."""

    report_date: dt.date
    calls: int = Field(default=0, ge=0, le=_MAX_COUNT)
    connects: int = Field(default=0, ge=0, le=_MAX_COUNT)
    docs_sent: int = Field(default=0, ge=0, le=_MAX_COUNT)
    appointments: int = Field(default=0, ge=0, le=_MAX_COUNT)


class ReportOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: uuid.UUID
    report_date: dt.date
    calls: int
    connects: int
    docs_sent: int
    appointments: int
    created_at: dt.datetime
    updated_at: dt.datetime


class ReportList(BaseModel):
    items: list[ReportOut]
    total: int
    start_date: dt.date
    end_date: dt.date | None = None


class MetricStats(BaseModel):
    total: int
    average: float
    max: int


class HistoryResponse(BaseModel):
    start_date: dt.date
    end_date: dt.date
    items: list[ReportOut]
    stats: dict[str, MetricStats]


class GoalInput(BaseModel):
    goal_type: GoalType
    target_value: int = Field(..., ge=1, le=10_000_000)
    start_date: dt.date | None = None
    end_date: dt.date | None = None

    @model_validator(mode="after")
    def _check_range(self) -> "GoalInput":
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class GoalOut(BaseModel):
    id: int
    goal_type: str
    target_value: int
    current_value: int
    progress_percent: float
    start_date: dt.date
    end_date: dt.date
    created_at: dt.datetime


class GoalList(BaseModel):
    items: list[GoalOut]
    total: int
