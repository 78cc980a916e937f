"""Account API: registration, sign-in flows, sessions and the current user."""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from sqlalchemy.orm import Session

from app.accounts import schemas
from app.accounts.errors import AccountError
from app.accounts.responses import (
    authenticated_response,
    organization_payload,
    user_payload,
)
from app.accounts.service import AccountService
from app.core.auth import OrgTokenPayload
from app.mailer import InvalidEmailError, MailDeliveryError, Mailer, get_mailer
from app.models import User
from app.rate_limit import LOGIN_RATE_LIMIT, MAGIC_LINK_RATE_LIMIT, limiter
from app.security.auth import get_current_token_payload, get_current_user, get_db_session

router = APIRouter(prefix="/api/accounts", tags=["accounts"])

SessionDep = Annotated[Session, Depends(get_db_session)]
UserDep = Annotated[User, Depends(get_current_user)]
MailerDep = Annotated[Mailer, Depends(get_mailer)]
TokenPayloadDep = Annotated[OrgTokenPayload, Depends(get_current_token_payload)]


@contextmanager
def _service_context(session: Session) -> Iterator[None]:
    """Commit on success and translate domain errors into HTTP responses.

    Failed deliveries are committed before answering so their e-mail event
    stays visible on the monitoring dashboard.
    """

    try:
        yield
        session.commit()
    except AccountError as exc:
        session.rollback()
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc
    except InvalidEmailError as exc:
        session.commit()
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)
        ) from exc
    except MailDeliveryError as exc:
        session.commit()
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    except Exception:
        session.rollback()
        raise


@router.post(
    "/register",
    response_model=schemas.RegistrationResponse,
    status_code=status.HTTP_201_CREATED,
)
def register_organization(
    payload: schemas.RegisterOrganizationRequest,
    session: SessionDep,
    mailer: MailerDep,
) -> schemas.RegistrationResponse:
    """Create an organization with its owner and mail a verification link."""

    with _service_context(session):
        result = AccountService(session, mailer=mailer).register_organization(
            organization_name=payload.organization_name,
            representative_name=payload.representative_name,
            username=payload.username,
            email=payload.email,
            password=payload.password,
        )
    return schemas.RegistrationResponse(
        organization=organization_payload(result.organization),
        user=user_payload(result.user),
        verification_email_sent=result.verification_email_sent,
    )


@router.get("/verify-email", response_model=schemas.VerifyEmailResponse)
def verify_email(
    session: SessionDep,
    token: Annotated[str, Query(min_length=1)],
) -> schemas.VerifyEmailResponse:
    with _service_context(session):
        user = AccountService(session).verify_email(token)
    return schemas.VerifyEmailResponse(user=user_payload(user))


@router.post("/login", response_model=schemas.AuthenticatedResponse)
@limiter.limit(LOGIN_RATE_LIMIT)
def login(
    request: Request,
    payload: schemas.LoginRequest,
    session: SessionDep,
) -> schemas.AuthenticatedResponse:
    """Authenticate with e-mail and password."""

    with _service_context(session):
        result = AccountService(session).login_with_password(
            payload.email,
            payload.password,
            user_agent=request.headers.get("User-Agent"),
        )
    return authenticated_response(result)


@router.post(
    "/magic-link",
    response_model=schemas.MagicLinkResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
@limiter.limit(MAGIC_LINK_RATE_LIMIT)
def request_magic_link(
    request: Request,
    payload: schemas.MagicLinkRequest,
    session: SessionDep,
    mailer: MailerDep,
) -> schemas.MagicLinkResponse:
    """E-mail a one-time sign-in link."""

    with _service_context(session):
        ttl = AccountService(session, mailer=mailer).request_magic_link(
            payload.email, invitation_token=payload.invitation_token
        )
    return schemas.MagicLinkResponse(expires_in=ttl)


@router.get("/callback", response_model=schemas.AuthenticatedResponse)
def magic_link_callback(
    request: Request,
    session: SessionDep,
    code: Annotated[str, Query(min_length=1)],
    inv: Annotated[str | None, Query()] = None,
) -> schemas.AuthenticatedResponse:
    """Exchange a magic-link code for tokens, bootstrapping the org if needed."""

    with _service_context(session):
        result = AccountService(session).exchange_code(
            code,
            invitation_token=inv,
            user_agent=request.headers.get("User-Agent"),
        )
    return authenticated_response(result)


@router.post("/refresh", response_model=schemas.AuthenticatedResponse)
def refresh(
    payload: schemas.RefreshRequest,
    request: Request,
    session: SessionDep,
) -> schemas.AuthenticatedResponse:
    """Exchange a refresh token for a new access/refresh pair."""

    with _service_context(session):
        result = AccountService(session).refresh(
            payload.refresh_token, user_agent=request.headers.get("User-Agent")
        )
    return authenticated_response(result)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(
    session: SessionDep,
    current_user: UserDep,
    token_payload: TokenPayloadDep,
) -> Response:
    """End the session of the presented access token."""

    with _service_context(session):
        AccountService(session).logout(current_user, token_payload.get("sid"))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/me", response_model=schemas.CurrentUserResponse)
def current_user_profile(current_user: UserDep) -> schemas.CurrentUserResponse:
    return schemas.CurrentUserResponse(
        organization=organization_payload(current_user.organization),
        user=user_payload(current_user),
    )
