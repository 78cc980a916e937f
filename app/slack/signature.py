"""Verification of Slack request signatures (``v0`` scheme)."""

from __future__ import annotations

import hashlib
import hmac
import time
from collections.abc import Mapping

MAX_CLOCK_SKEW_SECONDS = 60 * 5


def verify_signature(
    body: bytes,
    headers: Mapping[str, str],
    secret: str,
    *,
    now: float | None = None,
) -> bool:
    """Return ``True`` when ``body`` was signed by Slack with ``secret``.

    Requests whose timestamp is more than five minutes away from ``now`` are
    rejected so captured requests cannot be replayed.
    """

    timestamp = headers.get("X-Slack-Request-Timestamp")
    received = headers.get("X-Slack-Signature")
    if not timestamp or not received:
        return False
    try:
        sent_at = int(timestamp)
    except ValueError:
        return False
    current = time.time() if now is None else now
    if abs(current - sent_at) > MAX_CLOCK_SKEW_SECONDS:
        return False

    basestring = b"v0:" + timestamp.encode("utf-8") + b":" + body
    digest = hmac.new(secret.encode("utf-8"), basestring, hashlib.sha256).hexdigest()
    return hmac.compare_digest(received, f"v0={digest}")


__all__ = ["MAX_CLOCK_SKEW_SECONDS", "verify_signature"]
