"""Answer generation for knowledge questions.

With ``OPENAI_API_KEY`` set the model is prompted with the related articles;
otherwise a deterministic reply is built so the feature keeps working in
development and CI without network access.
"""

from __future__ import annotations

import logging
import os

from langdetect import LangDetectException, detect
from openai import OpenAI, OpenAIError

from app.models import KnowledgeArticle

logger = logging.getLogger(__name__)

MAX_ANSWER_CHARS = 200
MAX_SNIPPET_CHARS = 150
NO_KNOWLEDGE = "該当するナレッジがありません。"

_SYSTEM_PROMPT = (
    "あなたは社内ナレッジベース専用のアシスタントです。"
    "回答は必ず200文字以内にしてください。"
    "提供されたナレッジベースの情報のみを使用し、"
    "情報がない場合は「関連するナレッジが見つかりませんでした」と回答してください。"
)


def truncate(text: str, limit: int) -> str:
    """Cut ``text`` to ``limit`` characters, marking the cut with ``...``."""

    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


def build_context(articles: list[KnowledgeArticle]) -> str:
    if not articles:
        return NO_KNOWLEDGE
    parts = ["登録されたナレッジベース情報:\n"]
    for article in articles:
        parts.append(f"【{article.title}】\n{truncate(article.content, MAX_SNIPPET_CHARS)}\n")
    return "\n".join(parts)


def _language_instruction(question: str) -> str:
    lang = os.getenv("OPENAI_LANG")
    if not lang:
        try:
            lang = detect(question)
        except LangDetectException:
            lang = None
    return f"Reply in {lang}." if lang else "Reply in the same language as the question."


class AnswerGenerator:
    """Produce a short answer from related articles."""

    def __init__(self, client: OpenAI | None = None, *, model: str | None = None) -> None:
        self._client = client
        self._model = model or os.getenv("OPENAI_MODEL", "gpt-4o-mini")

    @classmethod
    def from_env(cls) -> "AnswerGenerator":
        client = OpenAI() if os.getenv("OPENAI_API_KEY") else None
        return cls(client)

    def answer(self, question: str, articles: list[KnowledgeArticle]) -> tuple[str, bool]:
        """Return ``(answer, used_llm)``."""

        context = build_context(articles)
        if self._client is not None:
            try:
                completion = self._client.chat.completions.create(
                    model=self._model,
                    messages=[
                        {
                            "role": "system",
                            "content": f"{_SYSTEM_PROMPT} {_language_instruction(question)}",
                        },
                        {
                            "role": "user",
                            "content": f"質問: {question}\n\nナレッジベース:\n{context}",
                        },
                    ],
                )
                content = completion.choices[0].message.content or ""
                if content.strip():
                    return truncate(content.strip(), MAX_ANSWER_CHARS), True
            except OpenAIError as exc:
                logger.warning("OpenAI chat completion failed: %s", exc)

        if articles:
            answer = f"質問「{question}」について、登録されたナレッジから回答します：{context}"
        else:
            answer = (
                "申し訳ございません。関連するナレッジが見つかりませんでした。"
                "別のキーワードで検索するか、新しいナレッジを登録してください。"
            )
        return truncate(answer, MAX_ANSWER_CHARS), False


__all__ = [
    "MAX_ANSWER_CHARS",
    "MAX_SNIPPET_CHARS",
    "NO_KNOWLEDGE",
    "AnswerGenerator",
    "build_context",
    "truncate",
]
