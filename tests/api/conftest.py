"""API test fixtures: auth variant clients over a mocked database session.

Each client overrides get_current_user with a fixed AuthContext and replaces
get_db / get_db_with_rls with a MagicMock session, so endpoint tests patch
the domain singletons (referral_ops, overlay_ops, ...) and never touch
Postgres. unauth_client keeps the real JWT dependency to exercise 401s.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncIterator

import pytest
from httpx import ASGITransport, AsyncClient

from growth_game.api.deps.auth import AuthContext
from growth_game.models.profile import Profile

from tests.helpers.mock_factories import make_mock_db, make_profile


def make_auth_context(role: str | None, profile: Profile | None = None) -> AuthContext:
    profile = profile or make_profile(name=f"Test {role or 'user'}")
    return AuthContext(
        user_id=profile.user_id,
        email=f"__test_{uuid.uuid4().hex[:8]}@example.com",
        profile=profile,
        role=role,
    )


async def _client(auth_context: AuthContext | None, db) -> AsyncIterator[AsyncClient]:
    from growth_game.api.deps.auth import get_current_user, get_db_with_rls
    from growth_game.core.database import get_db
    from growth_game.core.rate_limit import rate_limiter
    from growth_game.main import app

    if auth_context is not None:
        app.dependency_overrides[get_current_user] = lambda: auth_context

    async def override_db():
        yield db

    app.dependency_overrides[get_db] = override_db
    if auth_context is not None:
        app.dependency_overrides[get_db_with_rls] = override_db

    rate_limiter.reset()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# ─────────────────────────────────────────────────────────────────────────────
# Callers
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def mock_db():
    return make_mock_db()


@pytest.fixture
def admin_context() -> AuthContext:
    return make_auth_context("admin")


@pytest.fixture
def barber_context() -> AuthContext:
    return make_auth_context("barber")


@pytest.fixture
def client_context() -> AuthContext:
    return make_auth_context("client")


# ─────────────────────────────────────────────────────────────────────────────
# Auth Variant Clients
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
async def admin_client(admin_context, mock_db):
    """HTTP client authenticated as a barbershop admin."""
    async for client in _client(admin_context, mock_db):
        yield client


@pytest.fixture
async def staff_client(barber_context, mock_db):
    """HTTP client authenticated as a barber (staff, not admin)."""
    async for client in _client(barber_context, mock_db):
        yield client


@pytest.fixture
async def client_client(client_context, mock_db):
    """HTTP client authenticated as a customer."""
    async for client in _client(client_context, mock_db):
        yield client


@pytest.fixture
async def unauth_client(mock_db):
    """HTTP client without credentials; the real JWT dependency runs."""
    async for client in _client(None, mock_db):
        yield client
