"""Root conftest: test infrastructure for all backend tests.

Provides:
- Safety guard: require GROWTH_GAME_TESTS_ENABLED=1 for database tests
- Transaction-rollback db_session fixture
- Test organization, profile and referral fixtures
- Autouse mock for external services (Supabase admin API)
"""

from __future__ import annotations

import os
import uuid
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine

from growth_game.config.settings import settings

# ─────────────────────────────────────────────────────────────────────────────
# Safety Guard
# ─────────────────────────────────────────────────────────────────────────────


def pytest_configure(config: pytest.Config) -> None:
    """Safety check: require explicit opt-in for database tests.

    Unit and API tests (pure mocks) run without this flag. Integration tests
    that touch the database require GROWTH_GAME_TESTS_ENABLED=1.
    """
    config.addinivalue_line("markers", "integration: DB integration tests (transaction rollback)")

    if any("integration" in str(arg) for arg in config.invocation_params.args):
        if not os.getenv("GROWTH_GAME_TESTS_ENABLED"):
            pytest.exit(
                "SAFETY: Set GROWTH_GAME_TESTS_ENABLED=1 to confirm running tests "
                "against a real database.",
                returncode=1,
            )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip integration tests unless explicitly enabled."""
    if os.getenv("GROWTH_GAME_TESTS_ENABLED"):
        return
    skip = pytest.mark.skip(reason="set GROWTH_GAME_TESTS_ENABLED=1 to run DB tests")
    for item in items:
        if "integration" in str(item.fspath):
            item.add_marker(skip)


# ─────────────────────────────────────────────────────────────────────────────
# Transaction-Rollback Engine (uses DIRECT connection, not pooler)
# ─────────────────────────────────────────────────────────────────────────────

# PgBouncer transaction pooling (port 6543) breaks SAVEPOINTs because it
# may multiplex connections across transactions. Use direct (port 5432).
TEST_ENGINE = create_async_engine(
    settings.database_url_direct,
    echo=False,
    pool_pre_ping=True,
    pool_size=3,
    max_overflow=2,
    connect_args={
        "command_timeout": 30,
    },
)


# ─────────────────────────────────────────────────────────────────────────────
# Transaction-Rollback Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
async def db_session():
    """Database session wrapped in a transaction that is ALWAYS rolled back.

    Uses SAVEPOINT so code under test can call commit() internally without
    actually committing; the outer transaction absorbs it.
    """
    async with TEST_ENGINE.connect() as conn:
        trans = await conn.begin()
        session = AsyncSession(bind=conn, expire_on_commit=False)
        await conn.begin_nested()

        @event.listens_for(session.sync_session, "after_transaction_end")
        def restart_savepoint(session_sync, transaction):
            """Restart SAVEPOINT after each nested transaction ends."""
            if transaction.nested and not transaction._parent.nested:
                session_sync.begin_nested()

        try:
            yield session
        finally:
            await session.close()
            await trans.rollback()


@pytest.fixture
async def test_org(db_session: AsyncSession):
    """A barbershop inside the rolled-back transaction."""
    from growth_game.models.organization import Organization

    org = Organization(name=f"__test_org_{uuid.uuid4().hex[:8]}")
    db_session.add(org)
    await db_session.flush()
    await db_session.refresh(org)
    return org


@pytest.fixture
async def test_barber(db_session: AsyncSession, test_org):
    """A barber profile with an empty wallet."""
    from growth_game.models.profile import AppRole, Profile, UserRole

    user_id = uuid.uuid4()
    profile = Profile(
        user_id=user_id,
        name=f"__test_barber_{uuid.uuid4().hex[:8]}",
        organization_id=test_org.id,
    )
    db_session.add(profile)
    db_session.add(UserRole(user_id=user_id, role=AppRole.BARBER.value))
    await db_session.flush()
    await db_session.refresh(profile)
    return profile


@pytest.fixture
async def test_client_profile(db_session: AsyncSession, test_org):
    """A client profile with an empty wallet."""
    from growth_game.models.profile import AppRole, Profile, UserRole

    user_id = uuid.uuid4()
    profile = Profile(
        user_id=user_id,
        name=f"__test_client_{uuid.uuid4().hex[:8]}",
        organization_id=test_org.id,
    )
    db_session.add(profile)
    db_session.add(UserRole(user_id=user_id, role=AppRole.CLIENT.value))
    await db_session.flush()
    await db_session.refresh(profile)
    return profile


# ─────────────────────────────────────────────────────────────────────────────
# External Service Mocks (autouse)
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def mock_external_services():
    """SAFETY: Always mock the Supabase admin API.

    Prevents tests from creating or deleting real auth accounts.
    """
    with patch(
        "growth_game.domain.team_operations.get_supabase_admin_client"
    ) as mock_get_client:
        client = MagicMock()
        client.auth.admin.create_user.return_value = MagicMock(
            user=MagicMock(id=str(uuid.uuid4()))
        )
        client.auth.admin.delete_user.return_value = None
        mock_get_client.return_value = client

        yield {"supabase": client}


@pytest.fixture
def anyio_backend():
    return "asyncio"
