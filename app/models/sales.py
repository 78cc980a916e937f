"""Sales metrics models: daily reports and goals."""

from __future__ import annotations

import datetime as dt
import uuid

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from . import Base
from .org import _utcnow

METRIC_FIELDS: tuple[str, ...] = ("calls", "connects", "docs_sent", "appointments")


class SalesReport(Base):
    """Daily activity counters for one user; one row per report date."""

    __tablename__ = "sales_reports"
    __table_args__ = (
        UniqueConstraint("user_id", "report_date", name="uq_sales_reports_user_date"),
        Index("ix_sales_reports_org_date", "organization_id", "report_date"),
        CheckConstraint(
            "calls >= 0 AND connects >= 0 AND docs_sent >= 0 AND appointments >= 0",
            name="ck_sales_reports_non_negative",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    report_date: Mapped[dt.date] = mapped_column(Date(), nullable=False)
    calls: Mapped[int] = mapped_column(nullable=False, default=0, server_default=text("0"))
    connects: Mapped[int] = mapped_column(nullable=False, default=0, server_default=text("0"))
    docs_sent: Mapped[int] = mapped_column(nullable=False, default=0, server_default=text("0"))
    appointments: Mapped[int] = mapped_column(
        nullable=False, default=0, server_default=text("0")
    )
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )


class SalesGoal(Base):
    """Target for one metric over a date range."""

    __tablename__ = "sales_goals"
    __table_args__ = (
        Index("ix_sales_goals_user", "user_id"),
        CheckConstraint("end_date >= start_date", name="ck_sales_goals_range"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    goal_type: Mapped[str] = mapped_column(String(length=32), nullable=False)
    target_value: Mapped[int] = mapped_column(Integer, nullable=False)
    current_value: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    start_date: Mapped[dt.date] = mapped_column(Date(), nullable=False)
    end_date: Mapped[dt.date] = mapped_column(Date(), nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )


__all__ = ["METRIC_FIELDS", "SalesGoal", "SalesReport"]
