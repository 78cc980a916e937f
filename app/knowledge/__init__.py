"""Knowledge base articles, search and question answering."""

from .service import KnowledgeNotFoundError, KnowledgeService

__all__ = ["KnowledgeNotFoundError", "KnowledgeService"]
