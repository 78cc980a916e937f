"""Accounts: authentication flows, invitations and user administration."""

from .admin import UserAdminService
from .errors import AccountError
from .invitations import InvitationService
from .service import AccountService, AuthResult

__all__ = [
    "AccountError",
    "AccountService",
    "AuthResult",
    "InvitationService",
    "UserAdminService",
]
