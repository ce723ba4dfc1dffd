"""Emergency cleanup script: delete ALL test data from a database.

Run manually if integration test rollback fails and test rows leak.

Usage:
    python -m scripts.cleanup_test_data [--yes]

This script:
1. Finds all organizations and profiles carrying the test name prefix
2. Deletes their referrals (timeline cascades), settings and roles
3. Deletes the profiles and organizations
4. Deletes the matching users from Supabase Auth
"""

from __future__ import annotations

import asyncio
import logging
import sys

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

logging.basicConfig(level=logging.INFO, format="%(levelname)s | %(message)s")
logger = logging.getLogger(__name__)

# Name prefix used by every integration test fixture
TEST_NAME_PATTERN = "__test_%"


async def emergency_cleanup() -> None:
    """Delete ALL test data."""
    from growth_game.config.settings import settings
    from growth_game.models.crm_setting import CrmSetting
    from growth_game.models.organization import Organization
    from growth_game.models.profile import Profile, UserRole
    from growth_game.models.referral import Referral

    engine = create_async_engine(settings.database_url_direct, echo=False)
    async_session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with async_session() as db:
        org_result = await db.execute(
            select(Organization).where(Organization.name.like(TEST_NAME_PATTERN))  # type: ignore[attr-defined]
        )
        test_orgs = org_result.scalars().all()
        org_ids = [o.id for o in test_orgs]

        profile_filter = Profile.name.like(TEST_NAME_PATTERN)  # type: ignore[attr-defined]
        if org_ids:
            profile_filter = or_(profile_filter, Profile.organization_id.in_(org_ids))  # type: ignore[union-attr]
        profile_result = await db.execute(select(Profile).where(profile_filter))
        test_profiles = profile_result.scalars().all()

        if not test_orgs and not test_profiles:
            logger.info("No test data found. Database is clean.")
            return

        logger.info(
            f"Found {len(test_orgs)} test organizations and {len(test_profiles)} test profiles:"
        )
        for p in test_profiles:
            logger.info(f"  - {p.name} ({p.user_id})")

        # Confirm
        if "--yes" not in sys.argv:
            confirm = input("\nDelete all of it? [y/N] ")
            if confirm.lower() != "y":
                logger.info("Aborted.")
                return

        profile_ids = [p.id for p in test_profiles]
        user_ids = [p.user_id for p in test_profiles]

        if profile_ids:
            # lead_history goes with its referrals (FK cascade)
            await db.execute(
                Referral.__table__.delete().where(Referral.referrer_id.in_(profile_ids))  # type: ignore[attr-defined]
            )
            await db.execute(
                CrmSetting.__table__.delete().where(CrmSetting.user_id.in_(user_ids))  # type: ignore[attr-defined]
            )
            await db.execute(
                UserRole.__table__.delete().where(UserRole.user_id.in_(user_ids))  # type: ignore[attr-defined]
            )
            await db.execute(Profile.__table__.delete().where(Profile.id.in_(profile_ids)))  # type: ignore[attr-defined]
            logger.info(f"Deleted {len(profile_ids)} profiles and their referrals")

        if org_ids:
            await db.execute(Organization.__table__.delete().where(Organization.id.in_(org_ids)))  # type: ignore[attr-defined]
            logger.info(f"Deleted {len(org_ids)} organizations")

        await db.commit()

    # Delete from Supabase Auth
    if settings.supabase_admin_enabled:
        from supabase import create_client

        client = create_client(settings.supabase_url, settings.supabase_service_role_key)
        for user_id in user_ids:
            try:
                client.auth.admin.delete_user(str(user_id))
                logger.info(f"Deleted from Supabase Auth: {user_id}")
            except Exception as e:
                logger.warning(f"Failed to delete {user_id} from Supabase: {e}")
    else:
        logger.warning("Supabase admin not configured, skipping Supabase Auth cleanup")

    await engine.dispose()
    logger.info("Emergency cleanup complete.")


if __name__ == "__main__":
    asyncio.run(emergency_cleanup())
