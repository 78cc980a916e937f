"""Keyword retrieval behind the ask endpoint.

Questions are matched against per-article term lists with BM25.  Latin text is
split on non-alphanumeric characters.  Japanese has no word boundaries, so
runs of kana and kanji become overlapping character bigrams; bigrams made only
of hiragana are dropped since they are mostly particles and verb endings.
"""

from __future__ import annotations

import itertools
import unicodedata
from collections.abc import Iterator, Sequence

from rank_bm25 import BM25Plus

from app.models import KnowledgeArticle

TITLE_WEIGHT = 2


def _is_cjk(char: str) -> bool:
    code = ord(char)
    return (
        0x3040 <= code <= 0x30FF  # hiragana and katakana
        or 0x3400 <= code <= 0x4DBF
        or 0x4E00 <= code <= 0x9FFF
        or 0xF900 <= code <= 0xFAFF
        or code == 0x3005  # 々
    )


def _is_hiragana(char: str) -> bool:
    return 0x3040 <= ord(char) <= 0x309F


def _split_word(word: str) -> Iterator[str]:
    for is_cjk, group in itertools.groupby(word, key=_is_cjk):
        run = "".join(group)
        if not is_cjk:
            if len(run) > 1:
                yield run
        elif len(run) == 1:
            if not _is_hiragana(run):
                yield run
        else:
            for start in range(len(run) - 1):
                bigram = run[start : start + 2]
                if not all(_is_hiragana(char) for char in bigram):
                    yield bigram


def tokenize(text: str) -> list[str]:
    normalized = unicodedata.normalize("NFKC", text).lower()
    words = "".join(c if c.isalnum() else " " for c in normalized).split()
    return [token for word in words for token in _split_word(word)]


def index_terms(title: str, content: str) -> str:
    """Space-separated terms stored with an article; title terms count double."""

    return " ".join(tokenize(title) * TITLE_WEIGHT + tokenize(content))


def rank(
    question: str, articles: Sequence[KnowledgeArticle], *, limit: int
) -> list[KnowledgeArticle]:
    """Return up to ``limit`` articles sharing a term with ``question``, best first.

    Ties keep the order of ``articles``.
    """

    query = tokenize(question)
    if not query:
        return []
    wanted = set(query)
    candidates: list[tuple[KnowledgeArticle, list[str]]] = []
    for article in articles:
        terms = (article.search_terms or index_terms(article.title, article.content)).split()
        if wanted.intersection(terms):
            candidates.append((article, terms))
    if not candidates:
        return []

    # BM25Plus keeps IDF positive when a term occurs in every candidate.
    scores = BM25Plus([terms for _, terms in candidates]).get_scores(query)
    order = sorted(range(len(candidates)), key=lambda i: scores[i], reverse=True)
    return [candidates[i][0] for i in order[:limit]]


__all__ = ["index_terms", "rank", "tokenize"]
