"""Invitation API: owners invite, invitees inspect and accept."""

from __future__ import annotations

import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy.orm import Session

from app.accounts import schemas
from app.accounts.errors import AccountError
from app.accounts.invitations import InvitationService
from app.accounts.responses import authenticated_response
from app.mailer import Mailer, get_mailer
from app.models import User
from app.models.org import ROLE_OWNER
from app.security.auth import get_db_session, require_role

router = APIRouter(prefix="/api/invitations", tags=["invitations"])

SessionDep = Annotated[Session, Depends(get_db_session)]
OwnerDep = Annotated[User, Depends(require_role(ROLE_OWNER))]
MailerDep = Annotated[Mailer, Depends(get_mailer)]


@contextmanager
def _service_context(session: Session) -> Iterator[None]:
    try:
        yield
        session.commit()
    except AccountError as exc:
        session.rollback()
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc
    except Exception:
        session.rollback()
        raise


@router.post("", response_model=schemas.InviteResponse, status_code=status.HTTP_201_CREATED)
def create_invitation(
    payload: schemas.InviteUserRequest,
    session: SessionDep,
    owner: OwnerDep,
    mailer: MailerDep,
) -> schemas.InviteResponse:
    """Invite someone into the caller's organization and e-mail the link."""

    with _service_context(session):
        issued = InvitationService(session, mailer=mailer).create_invitation(
            owner,
            email=payload.email,
            role=payload.role,
            expires_in=payload.expires_in,
            message=payload.message,
        )
    invitation = issued.invitation
    return schemas.InviteResponse(
        id=invitation.id,
        token=invitation.token,
        email=invitation.email,
        role=invitation.role,
        expires_at=invitation.expires_at,
        invite_url=issued.invite_url,
        email_sent=issued.email_sent,
    )


@router.get("", response_model=schemas.InvitationList)
def list_invitations(session: SessionDep, owner: OwnerDep) -> schemas.InvitationList:
    with _service_context(session):
        rows = InvitationService(session).list_invitations(owner.organization_id)
    items = [schemas.InvitationPayload.model_validate(row) for row in rows]
    return schemas.InvitationList(items=items, total=len(items))


@router.delete("/{invitation_id}", status_code=status.HTTP_204_NO_CONTENT)
def revoke_invitation(
    invitation_id: uuid.UUID,
    session: SessionDep,
    owner: OwnerDep,
) -> Response:
    with _service_context(session):
        InvitationService(session).revoke_invitation(owner.organization_id, invitation_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{token}/details", response_model=schemas.InvitationDetails)
def invitation_details(token: str, session: SessionDep) -> schemas.InvitationDetails:
    """Public lookup used by the invite page before the user signs in."""

    with _service_context(session):
        invitation, organization = InvitationService(session).lookup_invitation(token)
    return schemas.InvitationDetails(
        email=invitation.email,
        role=invitation.role,
        organization_name=organization.name,
        message=invitation.message,
        expires_at=invitation.expires_at,
    )


@router.post("/accept", response_model=schemas.AuthenticatedResponse)
def accept_invitation(
    payload: schemas.AcceptInviteRequest,
    request: Request,
    session: SessionDep,
) -> schemas.AuthenticatedResponse:
    """Create the invited account with a password and sign it in."""

    with _service_context(session):
        result = InvitationService(session).accept_invitation(
            payload.token,
            username=payload.username,
            password=payload.password,
            user_agent=request.headers.get("User-Agent"),
        )
    return authenticated_response(result)
