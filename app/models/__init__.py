"""SQLAlchemy declarative base and the application's models.

This package hosts the SQLAlchemy models used across the backend.  It exposes a
single declarative ``Base`` class that other modules can import when creating
tables.  Individual models live in dedicated modules within this package,
grouped by the feature that owns them.
"""

from __future__ import annotations

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy declarative models."""


# Re-export the models so callers can import them via
# ``from app.models import Organization`` instead of touching private modules.
from .email_event import EmailEvent
from .knowledge import KnowledgeArticle
from .org import (
    EmailVerificationToken,
    Invitation,
    LoginCode,
    Organization,
    RefreshToken,
    User,
)
from .sales import SalesGoal, SalesReport
from .slack import SlackBindRequest


__all__ = [
    "Base",
    "EmailEvent",
    "EmailVerificationToken",
    "Invitation",
    "KnowledgeArticle",
    "LoginCode",
    "Organization",
    "RefreshToken",
    "SalesGoal",
    "SalesReport",
    "SlackBindRequest",
    "User",
]
