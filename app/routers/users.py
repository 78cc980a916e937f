"""User administration API for organization owners."""

from __future__ import annotations

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.accounts import schemas
from app.accounts.admin import UserAdminService
from app.accounts.errors import AccountError
from app.accounts.responses import user_payload
from app.models import User
from app.models.org import ROLE_OWNER
from app.security.auth import get_db_session, require_role

router = APIRouter(prefix="/api/admin/users", tags=["admin-users"])

SessionDep = Annotated[Session, Depends(get_db_session)]
OwnerDep = Annotated[User, Depends(require_role(ROLE_OWNER))]


@router.get("", response_model=schemas.UserList)
def list_users(session: SessionDep, owner: OwnerDep) -> schemas.UserList:
    users = UserAdminService(session).list_users(owner.organization_id)
    return schemas.UserList(items=[user_payload(user) for user in users], total=len(users))


@router.patch("/{user_id}", response_model=schemas.UserPayload)
def update_user(
    user_id: uuid.UUID,
    payload: schemas.UpdateUserRequest,
    session: SessionDep,
    owner: OwnerDep,
) -> schemas.UserPayload:
    """Change a member's role or activation inside the caller's organization."""

    try:
        user = UserAdminService(session).update_user(
            owner.organization_id,
            user_id,
            role=payload.role,
            is_active=payload.is_active,
        )
        session.commit()
    except AccountError as exc:
        session.rollback()
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc
    return user_payload(user)
