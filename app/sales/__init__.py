"""Sales activity reports and goals."""

from .service import SalesNotFoundError, SalesService

__all__ = ["SalesNotFoundError", "SalesService"]
