"""Domain errors raised by the account services.

Each error carries the HTTP status the API layer should answer with, so the
routers can translate them without a lookup table.
"""

from __future__ import annotations


class AccountError(RuntimeError):
    """Base class for account, invitation and user administration failures."""

    status_code: int = 400

    def __init__(self, detail: str, *, status_code: int | None = None) -> None:
        super().__init__(detail)
        self.detail = detail
        if status_code is not None:
            self.status_code = status_code


class InvalidCredentialsError(AccountError):
    status_code = 401

    def __init__(self, detail: str = "Invalid login credentials.") -> None:
        super().__init__(detail)


class EmailNotVerifiedError(AccountError):
    status_code = 403

    def __init__(self, detail: str = "Email address not verified.") -> None:
        super().__init__(detail)


class InactiveUserError(AccountError):
    status_code = 403

    def __init__(self, detail: str = "User is inactive.") -> None:
        super().__init__(detail)


class DuplicateUserError(AccountError):
    status_code = 409

    def __init__(self, detail: str = "User already exists.") -> None:
        super().__init__(detail)


class InvalidLoginCodeError(AccountError):
    status_code = 401

    def __init__(self, detail: str = "Invalid or expired login code.") -> None:
        super().__init__(detail)


class InvalidRefreshTokenError(AccountError):
    status_code = 401

    def __init__(self, detail: str = "Invalid refresh token.") -> None:
        super().__init__(detail)


class InvalidVerificationTokenError(AccountError):
    status_code = 400

    def __init__(self, detail: str = "Invalid or expired verification token.") -> None:
        super().__init__(detail)


class InvitationNotFoundError(AccountError):
    status_code = 404

    def __init__(self, detail: str = "Invitation not found.") -> None:
        super().__init__(detail)


class InvalidInvitationError(AccountError):
    status_code = 400

    def __init__(self, detail: str = "Invalid or expired invitation.") -> None:
        super().__init__(detail)


class UserNotFoundError(AccountError):
    status_code = 404

    def __init__(self, detail: str = "User not found.") -> None:
        super().__init__(detail)


class LastOwnerError(AccountError):
    status_code = 400

    def __init__(
        self, detail: str = "Organization must keep at least one active owner."
    ) -> None:
        super().__init__(detail)


__all__ = [
    "AccountError",
    "DuplicateUserError",
    "EmailNotVerifiedError",
    "InactiveUserError",
    "InvalidCredentialsError",
    "InvalidInvitationError",
    "InvalidLoginCodeError",
    "InvalidRefreshTokenError",
    "InvalidVerificationTokenError",
    "InvitationNotFoundError",
    "LastOwnerError",
    "UserNotFoundError",
]
