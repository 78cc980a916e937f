"""Business logic for knowledge articles."""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy.orm import Session

from app.models import KnowledgeArticle, User

from . import retrieval, schemas
from .answer import AnswerGenerator
from .repository import KnowledgeRepository

logger = logging.getLogger(__name__)

ASK_RELATED_LIMIT = 10


class KnowledgeNotFoundError(RuntimeError):
    """Raised when an article does not exist in the caller's organization."""


class KnowledgeService:
    def __init__(
        self,
        repository: KnowledgeRepository,
        *,
        answer_generator: AnswerGenerator | None = None,
    ) -> None:
        self._repo = repository
        self._answers = answer_generator

    def list_articles(self, q: str | None = None) -> list[schemas.ArticleOut]:
        rows = self._repo.search(q.strip()) if q and q.strip() else self._repo.list_all()
        return [schemas.ArticleOut.model_validate(row) for row in rows]

    def get_article(self, article_id: int) -> schemas.ArticleOut:
        return schemas.ArticleOut.model_validate(self._require(article_id))

    def create_article(self, author: User, payload: schemas.ArticleInput) -> schemas.ArticleOut:
        article = KnowledgeArticle(
            organization_id=author.organization_id,
            user_id=author.id,
            title=payload.title,
            content=payload.content,
            search_terms=retrieval.index_terms(payload.title, payload.content),
        )
        self._repo.add(article)
        logger.info("Created knowledge article %s", article.id)
        return schemas.ArticleOut.model_validate(article)

    def update_article(
        self, article_id: int, payload: schemas.ArticleInput
    ) -> schemas.ArticleOut:
        article = self._require(article_id)
        article.title = payload.title
        article.content = payload.content
        article.search_terms = retrieval.index_terms(payload.title, payload.content)
        self._repo.add(article)
        return schemas.ArticleOut.model_validate(article)

    def delete_article(self, article_id: int) -> None:
        self._repo.delete(self._require(article_id))

    def search(self, q: str, limit: int = 10) -> list[schemas.ArticleOut]:
        rows = self._repo.search(q.strip(), limit=limit)
        return [schemas.ArticleOut.model_validate(row) for row in rows]

    def regenerate_index(self) -> int:
        """Recompute the stored search terms of every article; returns the count."""

        articles = self._repo.list_all()
        for article in articles:
            article.search_terms = retrieval.index_terms(article.title, article.content)
            self._repo.add(article)
        logger.info("Regenerated search terms for %s knowledge articles", len(articles))
        return len(articles)

    def ask(self, question: str) -> schemas.AskResponse:
        """Answer ``question`` from at most ten related articles.

        Articles are ranked by BM25 over their stored terms.  When no term
        matches, a literal substring search on the whole question is used.
        """

        related = retrieval.rank(question, self._repo.list_all(), limit=ASK_RELATED_LIMIT)
        if not related:
            related = self._repo.search(question.strip(), limit=ASK_RELATED_LIMIT)
        generator = self._answers or AnswerGenerator.from_env()
        answer, used_llm = generator.answer(question, related)
        return schemas.AskResponse(
            answer=answer,
            related=[schemas.ArticleOut.model_validate(row) for row in related],
            found_count=len(related),
            used_llm=used_llm,
        )

    def _require(self, article_id: int) -> KnowledgeArticle:
        article = self._repo.get(article_id)
        if article is None:
            raise KnowledgeNotFoundError(f"Knowledge article {article_id} not found")
        return article


def build_service(session: Session, organization_id: UUID) -> KnowledgeService:
    return KnowledgeService(KnowledgeRepository(session, organization_id=organization_id))


__all__ = ["ASK_RELATED_LIMIT", "KnowledgeNotFoundError", "KnowledgeService", "build_service"]
