"""Security utilities exposed for convenience."""

from .auth import (
    get_current_token_payload,
    get_current_user,
    get_db_session,
    require_role,
    reset_session_factory,
)
from .passwords import (
    WeakPasswordError,
    hash_password,
    validate_password_strength,
    verify_password,
)
from .tokens import (
    JWTSettings,
    create_access_token,
    create_refresh_token,
    get_jwt_settings,
    reset_jwt_settings_cache,
    revoke_all_refresh_tokens,
    revoke_refresh_token,
    verify_refresh_token,
)

__all__ = [
    "JWTSettings",
    "WeakPasswordError",
    "create_access_token",
    "create_refresh_token",
    "get_current_token_payload",
    "get_current_user",
    "get_db_session",
    "get_jwt_settings",
    "hash_password",
    "require_role",
    "reset_jwt_settings_cache",
    "reset_session_factory",
    "revoke_all_refresh_tokens",
    "revoke_refresh_token",
    "validate_password_strength",
    "verify_password",
    "verify_refresh_token",
]
