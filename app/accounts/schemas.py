"""Request and response payloads for the account, invitation and user APIs."""

from __future__ import annotations

import datetime as dt
import uuid
from typing import Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field

AUTH_SCHEME_BEARER: Literal["bearer"] = "bearer"
RoleName = Literal["owner", "member"]


class OrganizationPayload(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    representative_name: str | None = None


class UserPayload(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    email: str
    username: str
    role: str
    email_verified: bool
    is_active: bool = True
    slack_user_id: str | None = None


class TokenEnvelope(BaseModel):
    access_token: str
    refresh_token: str
    token_type: Literal["bearer"] = AUTH_SCHEME_BEARER
    expires_in: int = Field(..., description="Seconds until the access token expires")
    refresh_expires_in: int = Field(
        ..., description="Seconds until the refresh token expires"
    )
    roles: list[str]


class AuthenticatedResponse(BaseModel):
    organization: OrganizationPayload
    user: UserPayload
    tokens: TokenEnvelope
    created_organization: bool = False


class CurrentUserResponse(BaseModel):
    organization: OrganizationPayload
    user: UserPayload


class RegisterOrganizationRequest(BaseModel):
    organization_name: str = Field(..., min_length=1, max_length=255)
    representative_name: str = Field(..., min_length=1, max_length=255)
    username: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)


class RegistrationResponse(BaseModel):
    organization: OrganizationPayload
    user: UserPayload
    verification_email_sent: bool


class VerifyEmailResponse(BaseModel):
    user: UserPayload
    verified: bool = True


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class MagicLinkRequest(BaseModel):
    email: EmailStr
    invitation_token: str | None = Field(default=None, max_length=255)


class MagicLinkResponse(BaseModel):
    sent: bool = True
    expires_in: int


class RefreshRequest(BaseModel):
    refresh_token: str


class InviteUserRequest(BaseModel):
    email: EmailStr
    role: RoleName = "member"
    expires_in: int = Field(default=60 * 60 * 24 * 7, ge=300, le=60 * 60 * 24 * 30)
    message: str | None = Field(default=None, max_length=2000)


class InvitationPayload(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    email: str
    role: str
    message: str | None = None
    expires_at: dt.datetime
    accepted_at: dt.datetime | None = None
    created_at: dt.datetime


class InviteResponse(BaseModel):
    id: uuid.UUID
    token: str
    email: str
    role: str
    expires_at: dt.datetime
    invite_url: str
    email_sent: bool


class InvitationList(BaseModel):
    items: list[InvitationPayload]
    total: int


class InvitationDetails(BaseModel):
    email: str
    role: str
    organization_name: str
    message: str | None = None
    expires_at: dt.datetime


class AcceptInviteRequest(BaseModel):
    token: str
    username: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=8, max_length=128)


class UserList(BaseModel):
    items: list[UserPayload]
    total: int


class UpdateUserRequest(BaseModel):
    role: RoleName | None = None
    is_active: bool | None = None


__all__ = [
    "AcceptInviteRequest",
    "AuthenticatedResponse",
    "CurrentUserResponse",
    "InvitationDetails",
    "InvitationList",
    "InvitationPayload",
    "InviteResponse",
    "InviteUserRequest",
    "LoginRequest",
    "MagicLinkRequest",
    "MagicLinkResponse",
    "OrganizationPayload",
    "RefreshRequest",
    "RegisterOrganizationRequest",
    "RegistrationResponse",
    "RoleName",
    "TokenEnvelope",
    "UpdateUserRequest",
    "UserList",
    "UserPayload",
    "VerifyEmailResponse",
]
