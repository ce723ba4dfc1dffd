"""API dependencies - re-exports from submodules."""

from .auth import (
    AdminUser,
    AuthContext,
    CurrentUser,
    DbSession,
    RlsSession,
    StaffUser,
    decode_token,
    get_current_user,
    get_db_with_rls,
    get_jwks,
    get_signing_key,
    require_admin,
    require_staff,
    security,
)

__all__ = [
    "security",
    "get_jwks",
    "get_signing_key",
    "decode_token",
    "get_current_user",
    "get_db_with_rls",
    "require_staff",
    "require_admin",
    "AuthContext",
    "DbSession",
    "CurrentUser",
    "RlsSession",
    "StaffUser",
    "AdminUser",
]
