"""JWT validation and user authentication dependencies.

This module provides:
- JWT validation against Supabase JWKS
- Resolution of the caller to their profile and role
- Role guards for staff and admin endpoints
- RLS-aware database session dependency
"""

import logging
import time
import uuid as uuid_pkg
from collections.abc import AsyncGenerator
from dataclasses import dataclass
from typing import Annotated, Any

import httpx
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from jose.backends import ECKey
from sqlalchemy.ext.asyncio import AsyncSession

from growth_game.config import settings
from growth_game.core.database import get_db
from growth_game.core.rls import set_rls_user_context
from growth_game.core.roles import has_minimum_role
from growth_game.domain.history_operations import Actor
from growth_game.domain.profile_operations import profile_ops
from growth_game.models.profile import AppRole, Profile

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

# Cache for JWKS with TTL to handle key rotation
_jwks_cache: dict[str, Any] = {}
_jwks_cache_timestamp: float = 0.0
_JWKS_CACHE_TTL_SECONDS: float = 3600.0  # 1 hour


@dataclass
class AuthContext:
    """The authenticated caller: auth identity, profile (wallet) and role."""

    user_id: uuid_pkg.UUID
    email: str | None
    profile: Profile | None
    role: str | None

    @property
    def is_staff(self) -> bool:
        return has_minimum_role(self.role, AppRole.BARBER)

    @property
    def is_admin(self) -> bool:
        return has_minimum_role(self.role, AppRole.ADMIN)

    @property
    def organization_id(self) -> uuid_pkg.UUID | None:
        return self.profile.organization_id if self.profile else None

    @property
    def actor(self) -> Actor:
        """Attribution for timeline events and created_by fields."""
        return Actor(
            id=self.profile.id if self.profile else self.user_id,
            name=self.profile.name if self.profile else self.email,
            role=self.role,
        )


async def _fetch_jwks() -> dict[str, Any]:
    """Fetch JWKS from Supabase and update the cache."""
    global _jwks_cache_timestamp
    async with httpx.AsyncClient() as client:
        response = await client.get(settings.supabase_jwks_url)
        response.raise_for_status()
        jwks = response.json()
        _jwks_cache.clear()
        _jwks_cache.update(jwks)
        _jwks_cache_timestamp = time.monotonic()
        return jwks


async def get_jwks(force_refresh: bool = False) -> dict[str, Any]:
    """Fetch and cache JWKS from Supabase with a 1-hour TTL."""
    cache_age = time.monotonic() - _jwks_cache_timestamp
    if _jwks_cache and not force_refresh and cache_age < _JWKS_CACHE_TTL_SECONDS:
        return _jwks_cache

    return await _fetch_jwks()


def get_signing_key(jwks: dict[str, Any], token: str) -> ECKey:
    """Get the signing key from JWKS that matches the token's kid."""
    unverified_header = jwt.get_unverified_header(token)
    kid = unverified_header.get("kid")

    for key in jwks.get("keys", []):
        if key.get("kid") == kid:
            return ECKey(key, algorithm="ES256")

    raise ValueError("Unable to find matching key in JWKS")


def _decode(token: str, jwks: dict[str, Any]) -> dict[str, Any]:
    signing_key = get_signing_key(jwks, token)
    return jwt.decode(token, signing_key, algorithms=["ES256"], audience="authenticated")


async def decode_token(token: str) -> dict[str, Any]:
    """
    Validate a Supabase access token and return its claims.

    On a validation failure the JWKS is refreshed once, in case the signing
    key was rotated since it was cached.
    """
    try:
        return _decode(token, await get_jwks())
    except (JWTError, ValueError) as first_error:
        try:
            logger.info("JWT validation failed with cached JWKS, forcing refresh")
            return _decode(token, await get_jwks(force_refresh=True))
        except (JWTError, ValueError, httpx.HTTPError):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Could not validate credentials",
            ) from first_error
    except httpx.HTTPError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        ) from None


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> AuthContext:
    """
    Validate the Supabase JWT and resolve the caller's profile and role.

    Profiles are normally created by a database trigger at sign-up; if that
    did not run, one is created here on the first API call.
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )

    payload = await decode_token(credentials.credentials)
    user_id_str: str | None = payload.get("sub")
    if user_id_str is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication token",
        )
    try:
        user_id = uuid_pkg.UUID(user_id_str)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication token",
        ) from None

    profile = await profile_ops.get_by_user_id(db, user_id)
    if profile is None:
        user_metadata = payload.get("user_metadata", {})
        profile = Profile(user_id=user_id, name=user_metadata.get("name") or "")
        db.add(profile)
        await db.flush()
        await db.refresh(profile)
        logger.info(f"Created missing profile for user {user_id}")

    role = await profile_ops.get_role(db, user_id)

    return AuthContext(
        user_id=user_id,
        email=payload.get("email"),
        profile=profile,
        role=role,
    )


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db)]
CurrentUser = Annotated[AuthContext, Depends(get_current_user)]


async def require_staff(current_user: CurrentUser) -> AuthContext:
    """Owner, admin or barber."""
    if not current_user.is_staff:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Staff access required",
        )
    return current_user


async def require_admin(current_user: CurrentUser) -> AuthContext:
    """Owner or admin."""
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin or owner access required",
        )
    return current_user


StaffUser = Annotated[AuthContext, Depends(require_staff)]
AdminUser = Annotated[AuthContext, Depends(require_admin)]


async def get_db_with_rls(
    db: DbSession,
    current_user: CurrentUser,
) -> AsyncGenerator[AsyncSession, None]:
    """
    Database session with the RLS user context set.

    Sets the JWT subject claim that Supabase RLS policies read through
    auth.uid(). The setting is transaction-scoped and cleared when the
    request transaction ends.
    """
    await set_rls_user_context(db, current_user.user_id)
    yield db


RlsSession = Annotated[AsyncSession, Depends(get_db_with_rls)]
