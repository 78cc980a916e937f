"""Slack slash command endpoint and account linking for the signed-in user."""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.models import User
from app.models.org import ROLE_MEMBER
from app.security.auth import get_db_session, get_session_factory, require_role
from app.slack import (
    SlackBindingError,
    SlackBindingService,
    SlackClient,
    SlackDeliveryError,
    get_slack_client,
    get_slack_settings,
    verify_signature,
)
from app.slack.client import is_slack_response_url
from app.slack.commands import (
    ACK_TEXT,
    NOT_LINKED_TEXT,
    SlashCommand,
    find_linked_user,
    precheck,
    reply,
    run_command,
)

router = APIRouter(tags=["slack"])

SessionDep = Annotated[Session, Depends(get_db_session)]
MemberDep = Annotated[User, Depends(require_role(ROLE_MEMBER))]
SlackClientDep = Annotated[SlackClient, Depends(get_slack_client)]


class SlackStartRequest(BaseModel):
    slack_id: str = Field(..., min_length=1, max_length=32)


class SlackStartResponse(BaseModel):
    requires_verification: bool = True
    expires_in: int


class SlackVerifyRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=16)


class SlackVerifyResponse(BaseModel):
    ok: bool = True
    slack_id: str


@router.post("/slack/commands")
async def slash_command(
    request: Request,
    background_tasks: BackgroundTasks,
    session: SessionDep,
    client: SlackClientDep,
) -> dict[str, Any]:
    """Acknowledge a signed slash command and finish it in the background."""

    secret = get_slack_settings().signing_secret
    if not secret:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Slack integration is not configured.",
        )
    body = await request.body()
    if not verify_signature(body, request.headers, secret):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid Slack signature."
        )

    command = SlashCommand.from_form(body)
    if not command.response_url or not is_slack_response_url(command.response_url):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="A Slack response_url is required."
        )

    user = find_linked_user(session, command.slack_user_id)
    if user is None:
        return reply(NOT_LINKED_TEXT)
    immediate = precheck(command)
    if immediate is not None:
        return immediate

    background_tasks.add_task(run_command, command, user.id, client, get_session_factory())
    return reply(ACK_TEXT)


@router.post("/api/me/slack/start", response_model=SlackStartResponse)
def start_slack_link(
    payload: SlackStartRequest,
    session: SessionDep,
    user: MemberDep,
    client: SlackClientDep,
) -> SlackStartResponse:
    """DM a verification code to the Slack member the user wants to link."""

    try:
        ttl = SlackBindingService(session, client).start(user, payload.slack_id)
    except SlackBindingError as exc:
        session.rollback()
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc
    except SlackDeliveryError as exc:
        session.rollback()
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    session.commit()
    return SlackStartResponse(expires_in=ttl)


@router.post("/api/me/slack/verify", response_model=SlackVerifyResponse)
def verify_slack_link(
    payload: SlackVerifyRequest,
    session: SessionDep,
    user: MemberDep,
    client: SlackClientDep,
) -> SlackVerifyResponse:
    try:
        slack_id = SlackBindingService(session, client).verify(user, payload.code)
    except SlackBindingError as exc:
        # keeps the failed-attempt count
        session.commit()
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc
    session.commit()
    return SlackVerifyResponse(slack_id=slack_id)


@router.delete("/api/me/slack", status_code=status.HTTP_204_NO_CONTENT)
def unlink_slack(session: SessionDep, user: MemberDep, client: SlackClientDep) -> Response:
    SlackBindingService(session, client).unlink(user)
    session.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
