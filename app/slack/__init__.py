"""Slack slash commands and account linking."""

from .binding import SlackBindingError, SlackBindingService
from .client import SlackClient, SlackDeliveryError, get_slack_client, get_slack_settings
from .signature import verify_signature

__all__ = [
    "SlackBindingError",
    "SlackBindingService",
    "SlackClient",
    "SlackDeliveryError",
    "get_slack_client",
    "get_slack_settings",
    "verify_signature",
]
