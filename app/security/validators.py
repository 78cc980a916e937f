"""Input validation and masking helpers."""

from __future__ import annotations

import re

from email_validator import EmailNotValidError, validate_email

_TAG_PATTERN = re.compile(r"<[^>]*>")
_CONTROL_PATTERN = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
MAX_EMAIL_LENGTH = 254


def normalize_email(value: str) -> str:
    return value.strip().lower()


def is_valid_email(value: str | None) -> bool:
    """Return ``True`` when ``value`` is a syntactically valid address.

    DNS is not consulted; the same rules back ``EmailStr`` request fields.
    """

    if not value or len(value) > MAX_EMAIL_LENGTH:
        return False
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def sanitize_text(value: str) -> str:
    """Strip HTML tags and control characters, then surrounding whitespace.

    Newlines and tabs are kept so article bodies retain their layout.
    """

    cleaned = _TAG_PATTERN.sub("", value)
    cleaned = _CONTROL_PATTERN.sub("", cleaned)
    return cleaned.strip()


def mask_email(value: str) -> str:
    """Mask the local part of an address for log output (``ab***@domain``)."""

    if not value:
        return ""
    local, sep, domain = value.partition("@")
    if not sep:
        return "***"
    return f"{local[:2]}***@{domain}"


def email_domain(value: str) -> str:
    _, sep, domain = value.partition("@")
    return domain.lower() if sep else "unknown"


__all__ = [
    "MAX_EMAIL_LENGTH",
    "email_domain",
    "is_valid_email",
    "mask_email",
    "normalize_email",
    "sanitize_text",
]
