"""Team management: staff accounts of a barbershop.

Accounts live in Supabase auth; each one gets a profile in the caller's
organization and a role. The auth calls go through the admin client, which is
synchronous, so they run in a worker thread.
"""

import asyncio
import logging
import re
import uuid as uuid_pkg
from dataclasses import dataclass

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from growth_game.config import settings
from growth_game.core.roles import normalize_team_role
from growth_game.models.profile import Profile, UserRole
from growth_game.services.supabase import get_supabase_admin_client

logger = logging.getLogger(__name__)

# Simple email validation pattern (RFC 5322 simplified)
EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")


class InvalidEmailError(Exception):
    """Raised when email format is invalid."""

    pass


class EmailAlreadyRegisteredError(Exception):
    """Raised when the auth system already has an account for the email."""

    pass


class TeamProvisioningError(Exception):
    """Raised when the auth system rejects a create or delete."""

    pass


class SelfRemovalError(Exception):
    """Raised when an admin tries to remove their own account."""

    pass


class MemberNotFoundError(Exception):
    """Raised when the member is not part of the caller's organization."""

    pass


@dataclass
class TeamMember:
    user_id: uuid_pkg.UUID
    profile_id: uuid_pkg.UUID
    name: str
    role: str | None
    lifetime_points: int


def _is_already_registered(error: Exception) -> bool:
    message = str(error).lower()
    return "already been registered" in message or "already exists" in message


class TeamOperations:
    """Add, list and remove staff of one organization."""

    async def list_members(
        self,
        db: AsyncSession,
        organization_id: uuid_pkg.UUID,
    ) -> list[TeamMember]:
        statement = (
            select(Profile, UserRole.role)
            .outerjoin(UserRole, UserRole.user_id == Profile.user_id)  # type: ignore[arg-type]
            .where(Profile.organization_id == organization_id)  # type: ignore[arg-type]
            .order_by(Profile.name, Profile.id)  # type: ignore[arg-type]
        )
        result = await db.execute(statement)
        return [
            TeamMember(
                user_id=profile.user_id,
                profile_id=profile.id,
                name=profile.name,
                role=role,
                lifetime_points=profile.lifetime_points or 0,
            )
            for profile, role in result.all()
        ]

    async def _create_auth_user(self, name: str, email: str, password: str) -> uuid_pkg.UUID:
        """
        Create a confirmed auth user, retrying once after a short pause.

        Raises:
            EmailAlreadyRegisteredError: If the email is taken (not retried).
            TeamProvisioningError: If both attempts fail.
        """
        supabase = get_supabase_admin_client()
        attributes = {
            "email": email,
            "password": password,
            "email_confirm": True,
            "user_metadata": {"name": name},
        }

        last_error: Exception | None = None
        for attempt in range(2):
            try:
                response = await asyncio.to_thread(supabase.auth.admin.create_user, attributes)
                return uuid_pkg.UUID(str(response.user.id))
            except Exception as e:
                if _is_already_registered(e):
                    raise EmailAlreadyRegisteredError("Este email já está cadastrado") from e
                last_error = e
                logger.warning(f"Creating auth user {email} failed (attempt {attempt + 1}): {e}")
                if attempt == 0:
                    await asyncio.sleep(settings.team_member_create_retry_delay_seconds)

        raise TeamProvisioningError("Could not create the account, please try again") from last_error

    async def _delete_auth_user(self, user_id: uuid_pkg.UUID) -> None:
        supabase = get_supabase_admin_client()
        await asyncio.to_thread(supabase.auth.admin.delete_user, str(user_id))

    async def add_member(
        self,
        db: AsyncSession,
        organization_id: uuid_pkg.UUID,
        name: str,
        email: str,
        password: str,
        role: str | None = None,
    ) -> TeamMember:
        """
        Create an account and attach it to the organization.

        Roles other than owner and barber are downgraded to barber. If the
        profile cannot be stored the freshly created auth user is deleted
        again.
        """
        name = name.strip()
        email = email.strip().lower()
        if not name or not email or not password:
            raise ValueError("Name, email and password are required")
        if not EMAIL_PATTERN.match(email):
            raise InvalidEmailError(f"Invalid email format: {email}")

        assigned_role = normalize_team_role(role)
        user_id = await self._create_auth_user(name, email, password)

        profile = Profile(user_id=user_id, name=name, organization_id=organization_id)
        try:
            db.add(profile)
            db.add(UserRole(user_id=user_id, role=assigned_role))
            await db.flush()
        except SQLAlchemyError as e:
            logger.error(f"Storing profile for new member {email} failed: {e}")
            try:
                await self._delete_auth_user(user_id)
            except Exception as cleanup_error:
                logger.error(f"Could not delete orphaned auth user {user_id}: {cleanup_error}")
            raise TeamProvisioningError("Could not create the member profile") from e

        logger.info(f"Added {assigned_role} {user_id} to organization {organization_id}")
        return TeamMember(
            user_id=user_id,
            profile_id=profile.id,
            name=name,
            role=assigned_role,
            lifetime_points=0,
        )

    async def remove_member(
        self,
        db: AsyncSession,
        caller_user_id: uuid_pkg.UUID,
        organization_id: uuid_pkg.UUID,
        member_user_id: uuid_pkg.UUID,
    ) -> None:
        """
        Delete a member's role, profile and auth account.

        Referrals credited to the member stay in the pipeline with
        referrer_id cleared by the foreign key; referrer_name still shows
        who brought them in.

        The database rows are removed first; if the auth deletion fails the
        error propagates and the request transaction rolls back.
        """
        if member_user_id == caller_user_id:
            raise SelfRemovalError("You cannot remove your own account")

        statement = select(Profile).where(
            Profile.user_id == member_user_id,  # type: ignore[arg-type]
            Profile.organization_id == organization_id,  # type: ignore[arg-type]
        )
        result = await db.execute(statement)
        if result.scalar_one_or_none() is None:
            raise MemberNotFoundError("Member not found in your organization")

        await db.execute(delete(UserRole).where(UserRole.user_id == member_user_id))  # type: ignore[arg-type]
        await db.execute(delete(Profile).where(Profile.user_id == member_user_id))  # type: ignore[arg-type]
        await db.flush()

        try:
            await self._delete_auth_user(member_user_id)
        except Exception as e:
            logger.error(f"Deleting auth user {member_user_id} failed: {e}")
            raise TeamProvisioningError("Could not delete the account, please try again") from e

        logger.info(f"Removed member {member_user_id} from organization {organization_id}")


team_ops = TeamOperations()
