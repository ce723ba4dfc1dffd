"""Domain operations for Profile (points wallet) and UserRole models."""

import logging
import uuid as uuid_pkg

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from growth_game.core.exceptions import ProfileNotFoundError
from growth_game.domain.base_operations import BaseOperations
from growth_game.models.profile import Profile, UserRole

logger = logging.getLogger(__name__)


class ProfileOperations(BaseOperations[Profile]):
    """Profile lookups and point awards."""

    def __init__(self) -> None:
        super().__init__(Profile)

    async def get_by_user_id(
        self,
        db: AsyncSession,
        user_id: uuid_pkg.UUID,
    ) -> Profile | None:
        """Get the profile of an auth user."""
        statement = select(Profile).where(Profile.user_id == user_id)  # type: ignore[arg-type]
        result = await db.execute(statement)
        return result.scalar_one_or_none()

    async def get_role(self, db: AsyncSession, user_id: uuid_pkg.UUID) -> str | None:
        """Get the app role of an auth user, None when unassigned."""
        statement = select(UserRole.role).where(UserRole.user_id == user_id)  # type: ignore[arg-type]
        result = await db.execute(statement)
        return result.scalar_one_or_none()

    async def list_by_role(
        self,
        db: AsyncSession,
        role: str,
        organization_id: uuid_pkg.UUID | None = None,
    ) -> list[Profile]:
        """Profiles holding a role, ordered by name."""
        statement = (
            select(Profile)
            .join(UserRole, UserRole.user_id == Profile.user_id)  # type: ignore[arg-type]
            .where(UserRole.role == role)  # type: ignore[arg-type]
            .order_by(Profile.name, Profile.id)  # type: ignore[arg-type]
        )
        if organization_id is not None:
            statement = statement.where(Profile.organization_id == organization_id)  # type: ignore[arg-type]
        result = await db.execute(statement)
        return list(result.scalars().all())

    def credit(self, profile: Profile, points: int) -> Profile:
        """Add points to both counters of an already-loaded (locked) profile."""
        profile.wallet_balance = (profile.wallet_balance or 0) + points
        profile.lifetime_points = (profile.lifetime_points or 0) + points
        return profile

    async def award_points(
        self,
        db: AsyncSession,
        profile_id: uuid_pkg.UUID,
        points: int,
    ) -> Profile:
        """
        Credit a profile's wallet and lifetime total by the same amount.

        The profile row is locked for the rest of the transaction so that two
        awards landing at once both count.

        Raises:
            ProfileNotFoundError: If the profile does not exist.
        """
        profile = await self.get_for_update(db, profile_id)
        if profile is None:
            raise ProfileNotFoundError(profile_id)

        self.credit(profile, points)
        db.add(profile)
        await db.flush()
        logger.info(
            f"Awarded {points} points to profile {profile_id} "
            f"(wallet={profile.wallet_balance}, lifetime={profile.lifetime_points})"
        )
        return profile


profile_ops = ProfileOperations()
