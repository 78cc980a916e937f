"""Persistence for knowledge articles."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import Select, case, select
from sqlalchemy.orm import Session

from app.models import KnowledgeArticle


class KnowledgeRepository:
    """Organization-scoped access to :class:`~app.models.KnowledgeArticle`."""

    def __init__(self, session: Session, *, organization_id: UUID) -> None:
        self._session = session
        self._organization_id = organization_id

    def _scoped(self) -> Select[tuple[KnowledgeArticle]]:
        return select(KnowledgeArticle).where(
            KnowledgeArticle.organization_id == self._organization_id
        )

    def list_all(self) -> list[KnowledgeArticle]:
        stmt = self._scoped().order_by(
            KnowledgeArticle.created_at.desc(), KnowledgeArticle.id.desc()
        )
        return list(self._session.execute(stmt).scalars())

    def get(self, article_id: int) -> KnowledgeArticle | None:
        article = self._session.get(KnowledgeArticle, article_id)
        if article is None or article.organization_id != self._organization_id:
            return None
        return article

    def add(self, article: KnowledgeArticle) -> KnowledgeArticle:
        self._session.add(article)
        self._session.flush()
        return article

    def delete(self, article: KnowledgeArticle) -> None:
        self._session.delete(article)
        self._session.flush()

    def search(self, query: str, *, limit: int | None = None) -> list[KnowledgeArticle]:
        """Case-insensitive substring match; title hits rank before body hits."""

        title_match = KnowledgeArticle.title.icontains(query, autoescape=True)
        content_match = KnowledgeArticle.content.icontains(query, autoescape=True)
        stmt = (
            self._scoped()
            .where(title_match | content_match)
            .order_by(
                case((title_match, 1), else_=2),
                KnowledgeArticle.created_at.desc(),
                KnowledgeArticle.id.desc(),
            )
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self._session.execute(stmt).scalars())


__all__ = ["KnowledgeRepository"]
