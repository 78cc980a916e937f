"""Slack Web API client and runtime settings.

Without ``SLACK_BOT_TOKEN`` direct messages are only logged, the same way the
mailer behaves without a Resend key.  Replies to slash commands go to the
``response_url`` Slack hands out with each command and need no token.
"""

from __future__ import annotations

import dataclasses
import logging
import os
from functools import lru_cache
from typing import Any
from urllib.parse import urlparse

import requests

logger = logging.getLogger(__name__)

DEFAULT_SLACK_API_URL = "https://slack.com/api"
_RESPONSE_URL_HOSTS = ("hooks.slack.com",)


class SlackDeliveryError(RuntimeError):
    """Raised when Slack rejects a message or cannot be reached."""


@dataclasses.dataclass(frozen=True)
class SlackSettings:
    signing_secret: str | None
    bot_token: str | None = None
    api_url: str = DEFAULT_SLACK_API_URL
    timeout_seconds: float = 10.0


@lru_cache(maxsize=1)
def get_slack_settings() -> SlackSettings:
    """Load Slack settings from the environment."""

    return SlackSettings(
        signing_secret=os.getenv("SLACK_SIGNING_SECRET") or None,
        bot_token=os.getenv("SLACK_BOT_TOKEN") or None,
        api_url=os.getenv("SLACK_API_URL", DEFAULT_SLACK_API_URL).rstrip("/"),
        timeout_seconds=float(os.getenv("SLACK_TIMEOUT_SECONDS", "10")),
    )


def reset_slack_settings_cache() -> None:
    get_slack_settings.cache_clear()


def is_slack_response_url(url: str) -> bool:
    """Only Slack's own webhook host may receive command replies."""

    parsed = urlparse(url)
    return parsed.scheme == "https" and parsed.hostname in _RESPONSE_URL_HOSTS


class SlackClient:
    def __init__(
        self, settings: SlackSettings, *, http: requests.Session | None = None
    ) -> None:
        self.settings = settings
        self._http = http or requests.Session()

    def respond(self, response_url: str, payload: dict[str, Any]) -> None:
        """Post a delayed reply to a slash command."""

        self._post(response_url, payload, headers={})

    def send_direct_message(self, slack_user_id: str, text: str) -> None:
        if not self.settings.bot_token:
            logger.info("Slack bot token missing; not sending DM to %s", slack_user_id)
            logger.debug("Undelivered Slack message: %s", text)
            return
        self._post(
            f"{self.settings.api_url}/chat.postMessage",
            {"channel": slack_user_id, "text": text},
            headers={"Authorization": f"Bearer {self.settings.bot_token}"},
        )

    def _post(self, url: str, payload: dict[str, Any], *, headers: dict[str, str]) -> None:
        try:
            response = self._http.post(
                url, json=payload, headers=headers, timeout=self.settings.timeout_seconds
            )
        except requests.RequestException as exc:
            logger.warning("Slack unreachable: %s", exc)
            raise SlackDeliveryError("Network error while contacting Slack.") from exc

        if response.status_code >= 400:
            raise SlackDeliveryError(f"Slack returned HTTP {response.status_code}.")
        try:
            body = response.json()
        except ValueError:
            # response_url replies answer with a plain "ok"
            return
        if isinstance(body, dict) and body.get("ok") is False:
            raise SlackDeliveryError(f"Slack API error: {body.get('error', 'unknown')}.")


def get_slack_client() -> SlackClient:
    return SlackClient(get_slack_settings())


__all__ = [
    "SlackClient",
    "SlackDeliveryError",
    "SlackSettings",
    "get_slack_client",
    "get_slack_settings",
    "is_slack_response_url",
    "reset_slack_settings_cache",
]
