"""Knowledge base API scoped to the caller's organization."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.orm import Session

from app.knowledge import KnowledgeNotFoundError, KnowledgeService
from app.knowledge import schemas
from app.knowledge.service import build_service
from app.models import User
from app.models.org import ROLE_MEMBER, ROLE_OWNER
from app.security.auth import get_db_session, require_role

router = APIRouter(prefix="/api/knowledge", tags=["knowledge"])

SessionDep = Annotated[Session, Depends(get_db_session)]
MemberDep = Annotated[User, Depends(require_role(ROLE_MEMBER))]
OwnerDep = Annotated[User, Depends(require_role(ROLE_OWNER))]


def get_knowledge_service(session: SessionDep, user: MemberDep) -> KnowledgeService:
    return build_service(session, user.organization_id)


ServiceDep = Annotated[KnowledgeService, Depends(get_knowledge_service)]


def _not_found(exc: KnowledgeNotFoundError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))


@router.get("", response_model=schemas.ArticleList)
def list_articles(
    service: ServiceDep,
    q: Annotated[str | None, Query(max_length=200)] = None,
) -> schemas.ArticleList:
    items = service.list_articles(q)
    return schemas.ArticleList(items=items, total=len(items))


@router.post("", response_model=schemas.ArticleOut, status_code=status.HTTP_201_CREATED)
def create_article(
    payload: schemas.ArticleInput,
    session: SessionDep,
    user: MemberDep,
    service: ServiceDep,
) -> schemas.ArticleOut:
    article = service.create_article(user, payload)
    session.commit()
    return article


@router.get("/search", response_model=schemas.ArticleList)
def search_articles(
    service: ServiceDep,
    q: Annotated[str, Query(min_length=1, max_length=200)],
    limit: Annotated[int, Query(ge=1, le=50)] = 10,
) -> schemas.ArticleList:
    items = service.search(q, limit=limit)
    return schemas.ArticleList(items=items, total=len(items))


@router.post("/ask", response_model=schemas.AskResponse)
def ask(payload: schemas.AskRequest, service: ServiceDep) -> schemas.AskResponse:
    """Answer a question from the organization's articles."""

    return service.ask(payload.question)


@router.post("/regenerate-index", response_model=schemas.ReindexResponse)
def regenerate_index(
    session: SessionDep, owner: OwnerDep, service: ServiceDep
) -> schemas.ReindexResponse:
    """Rebuild the search terms used by ask for every article in the organization."""

    count = service.regenerate_index()
    session.commit()
    return schemas.ReindexResponse(reindexed=count)


@router.get("/{article_id}", response_model=schemas.ArticleOut)
def get_article(article_id: int, service: ServiceDep) -> schemas.ArticleOut:
    try:
        return service.get_article(article_id)
    except KnowledgeNotFoundError as exc:
        raise _not_found(exc) from exc


@router.put("/{article_id}", response_model=schemas.ArticleOut)
def update_article(
    article_id: int,
    payload: schemas.ArticleInput,
    session: SessionDep,
    service: ServiceDep,
) -> schemas.ArticleOut:
    try:
        article = service.update_article(article_id, payload)
    except KnowledgeNotFoundError as exc:
        raise _not_found(exc) from exc
    session.commit()
    return article


@router.delete("/{article_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_article(article_id: int, session: SessionDep, service: ServiceDep) -> Response:
    try:
        service.delete_article(article_id)
    except KnowledgeNotFoundError as exc:
        raise _not_found(exc) from exc
    session.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
