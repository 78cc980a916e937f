"""User administration for organization owners."""

from __future__ import annotations

import uuid

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.models import User
from app.models.org import ROLE_OWNER
from app.security.tokens import revoke_all_refresh_tokens

from .errors import LastOwnerError, UserNotFoundError


class UserAdminService:
    def __init__(self, session: Session) -> None:
        self._session = session

    def list_users(self, organization_id: uuid.UUID) -> list[User]:
        stmt = (
            select(User)
            .where(User.organization_id == organization_id)
            .order_by(User.created_at.asc())
        )
        return list(self._session.execute(stmt).scalars())

    def update_user(
        self,
        organization_id: uuid.UUID,
        user_id: uuid.UUID,
        *,
        role: str | None = None,
        is_active: bool | None = None,
    ) -> User:
        """Change a user's role or activation.

        Deactivated users lose their login sessions.  The update is refused when
        it would leave the organization without an active owner.
        """

        user = self._session.get(User, user_id)
        if user is None or user.organization_id != organization_id:
            raise UserNotFoundError()

        if role is not None:
            user.role = role
        if is_active is not None:
            user.is_active = is_active
        self._session.flush()

        active_owners = self._session.execute(
            select(func.count())
            .select_from(User)
            .where(User.organization_id == organization_id)
            .where(User.role == ROLE_OWNER)
            .where(User.is_active.is_(True))
        ).scalar_one()
        if active_owners < 1:
            raise LastOwnerError()

        if is_active is False:
            revoke_all_refresh_tokens(self._session, user)
        return user


__all__ = ["UserAdminService"]
