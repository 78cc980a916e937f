"""Pydantic schemas for the e-mail monitoring APIs."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

HealthStatus = Literal["healthy", "degraded", "unhealthy"]


class EmailEventOut(BaseModel):
    """A recorded delivery attempt."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    event_type: str
    email: str
    subject: str
    status: str
    error: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)
    ip_address: str | None = None
    user_agent: str | None = None
    created_at: datetime


class EmailEventList(BaseModel):
    items: list[EmailEventOut]
    count: int


class EmailMetrics(BaseModel):
    """Aggregates over the retention window."""

    total_sent: int = 0
    total_failed: int = 0
    success_rate: float = 0.0
    last_24_hours: int = 0
    last_hour: int = 0
    errors_by_type: dict[str, int] = Field(default_factory=dict)
    emails_by_domain: dict[str, int] = Field(default_factory=dict)


class DomainCount(BaseModel):
    domain: str
    count: int


class ErrorCount(BaseModel):
    error: str
    count: int


class DashboardSummary(BaseModel):
    total_emails: int
    success_rate: float
    last_24_hours: int
    last_hour: int
    top_domains: list[DomainCount] = Field(default_factory=list)
    common_errors: list[ErrorCount] = Field(default_factory=list)


class Dashboard(BaseModel):
    """Payload of ``GET /api/monitoring/dashboard``."""

    metrics: EmailMetrics
    recent_events: list[EmailEventOut]
    summary: DashboardSummary
    generated_at: datetime


class EmailHealth(BaseModel):
    status: HealthStatus
    success_rate: float
    total_sent: int
    total_failed: int
    checked_at: datetime
