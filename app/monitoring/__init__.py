"""E-mail delivery monitoring: event log, metrics and dashboard."""

from .service import EmailMonitor, get_retention_days

__all__ = ["EmailMonitor", "get_retention_days"]
