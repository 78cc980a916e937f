"""Password hashing utilities backed by Passlib (Argon2)."""

from __future__ import annotations

import string

from passlib.context import CryptContext

_pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")

MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_LENGTH = 128


class WeakPasswordError(ValueError):
    """Raised when a password does not meet the strength policy."""


def hash_password(password: str) -> str:
    """Return a secure hash for ``password`` using Argon2."""

    if not password:
        raise ValueError("Password must be non-empty.")
    return _pwd_context.hash(password)


def verify_password(password: str, hashed_password: str | None) -> bool:
    """Validate ``password`` against ``hashed_password``."""

    if not hashed_password:
        return False
    return _pwd_context.verify(password, hashed_password)


def validate_password_strength(password: str) -> None:
    """Reject passwords that are too short, too long or lack character variety.

    A valid password mixes upper-case, lower-case and digit characters.
    """

    if len(password) < MIN_PASSWORD_LENGTH:
        raise WeakPasswordError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long."
        )
    if len(password) > MAX_PASSWORD_LENGTH:
        raise WeakPasswordError(
            f"Password must be at most {MAX_PASSWORD_LENGTH} characters long."
        )
    checks = (
        any(ch in string.ascii_uppercase for ch in password),
        any(ch in string.ascii_lowercase for ch in password),
        any(ch in string.digits for ch in password),
    )
    if not all(checks):
        raise WeakPasswordError(
            "Password must contain upper-case, lower-case and numeric characters."
        )


__all__ = [
    "MAX_PASSWORD_LENGTH",
    "MIN_PASSWORD_LENGTH",
    "WeakPasswordError",
    "hash_password",
    "validate_password_strength",
    "verify_password",
]
