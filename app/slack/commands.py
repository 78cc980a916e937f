"""Slash commands answered from the knowledge base.

``/ask <question>`` posts an answer built from the organization's articles to
the channel.  ``/register-knowledge タイトル|本文`` stores a new article
authored by the linked user.  Slack expects an acknowledgement within three
seconds, so the endpoint checks the command, acknowledges with
:data:`ACK_TEXT` and sends the result later to the command's
``response_url``.
"""

from __future__ import annotations

import dataclasses
import logging
import uuid
from typing import Any
from urllib.parse import parse_qs

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from app.knowledge.schemas import ArticleInput
from app.knowledge.service import build_service
from app.models import User

from .client import SlackClient, SlackDeliveryError

logger = logging.getLogger(__name__)

ASK_COMMAND = "/ask"
REGISTER_COMMAND = "/register-knowledge"

ACK_TEXT = "処理中です…少々お待ちください。"
EMPTY_QUESTION_TEXT = "質問内容を入力してください。"
NO_MATCH_TEXT = "関連ナレッジが見つかりませんでした。"
REGISTER_USAGE_TEXT = "登録形式: `/register-knowledge タイトル|本文`"
UNKNOWN_COMMAND_TEXT = "不明なコマンドです。"
NOT_LINKED_TEXT = "Slackアカウントが連携されていません。Webアプリの設定画面から連携してください。"
FAILURE_TEXT = "エラーが発生しました。時間をおいて再度お試しください。"
RELATED_TITLES_SHOWN = 3


@dataclasses.dataclass(frozen=True)
class SlashCommand:
    command: str
    text: str
    slack_user_id: str
    response_url: str

    @classmethod
    def from_form(cls, body: bytes) -> SlashCommand:
        """Parse the ``application/x-www-form-urlencoded`` body Slack posts."""

        fields = parse_qs(body.decode("utf-8"), keep_blank_values=True)

        def first(name: str) -> str:
            values = fields.get(name)
            return values[0].strip() if values else ""

        return cls(
            command=first("command").lower(),
            text=first("text"),
            slack_user_id=first("user_id"),
            response_url=first("response_url"),
        )


def reply(text: str, *, in_channel: bool = False) -> dict[str, Any]:
    return {"response_type": "in_channel" if in_channel else "ephemeral", "text": text}


def parse_registration(text: str) -> ArticleInput | None:
    title, sep, content = text.partition("|")
    if not sep:
        return None
    try:
        return ArticleInput(title=title, content=content)
    except ValidationError:
        return None


def find_linked_user(session: Session, slack_user_id: str) -> User | None:
    if not slack_user_id:
        return None
    user = session.execute(
        select(User).where(User.slack_user_id == slack_user_id)
    ).scalar_one_or_none()
    if user is None or not user.is_active:
        return None
    return user


def precheck(command: SlashCommand) -> dict[str, Any] | None:
    """Return the immediate reply for commands that cannot run, else ``None``."""

    if command.command == ASK_COMMAND:
        return None if command.text else reply(EMPTY_QUESTION_TEXT)
    if command.command == REGISTER_COMMAND:
        return None if parse_registration(command.text) else reply(REGISTER_USAGE_TEXT)
    return reply(UNKNOWN_COMMAND_TEXT)


def execute(session: Session, command: SlashCommand, user: User) -> dict[str, Any]:
    service = build_service(session, user.organization_id)
    if command.command == REGISTER_COMMAND:
        payload = parse_registration(command.text)
        if payload is None:
            return reply(REGISTER_USAGE_TEXT)
        article = service.create_article(user, payload)
        logger.info("Registered knowledge article %s from Slack", article.id)
        return reply(f"ナレッジを登録しました：{article.title}")

    result = service.ask(command.text)
    if result.found_count == 0:
        return reply(NO_MATCH_TEXT)
    titles = "\n".join(f"• {item.title}" for item in result.related[:RELATED_TITLES_SHOWN])
    return reply(f"{result.answer}\n\n参考ナレッジ:\n{titles}", in_channel=True)


def run_command(
    command: SlashCommand,
    user_id: uuid.UUID,
    client: SlackClient,
    session_factory: sessionmaker[Session],
) -> None:
    """Run ``command`` for ``user_id`` and post the outcome to its response URL."""

    try:
        with session_factory.begin() as session:
            user = session.get(User, user_id)
            if user is None or not user.is_active:
                payload = reply(NOT_LINKED_TEXT)
            else:
                payload = execute(session, command, user)
    except Exception:
        logger.exception("Slack command %s failed", command.command)
        payload = reply(FAILURE_TEXT)

    try:
        client.respond(command.response_url, payload)
    except SlackDeliveryError as exc:
        logger.warning("Could not deliver Slack reply: %s", exc)


__all__ = [
    "ACK_TEXT",
    "SlashCommand",
    "find_linked_user",
    "precheck",
    "reply",
    "run_command",
]
