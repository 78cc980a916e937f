from typing import Annotated

from fastapi import APIRouter, Depends

from ..core.auth import OrgTokenPayload
from ..models import User
from ..models.org import ROLE_MEMBER
from ..security.auth import get_current_token_payload, require_role

router = APIRouter(prefix="/api/auth", tags=["auth"])

MemberDep = Annotated[User, Depends(require_role(ROLE_MEMBER))]
TokenPayloadDep = Annotated[OrgTokenPayload, Depends(get_current_token_payload)]


@router.get("/roles")
async def get_roles(user: MemberDep, payload: TokenPayloadDep):
    roles = list(payload.get("roles") or [])
    if user.role not in roles:
        roles.append(user.role)
    return {"roles": sorted(set(roles)), "role": user.role}
