"""Domain operations for referrals - the points-and-conversion ledger.

Every mutating operation runs inside the caller's transaction: the referral
change, the point award and the timeline event are flushed together and
commit (or roll back) as one unit. Rows whose counters are read and then
written are locked with SELECT ... FOR UPDATE first.
"""

import logging
import uuid as uuid_pkg
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from growth_game.config import settings
from growth_game.config.plans import RewardPlan, get_barber_referral_share_points, get_plan
from growth_game.core.exceptions import (
    AlreadyConvertedError,
    InvalidPlanError,
    InvalidTransitionError,
    LedgerError,
    ProfileNotFoundError,
    ReferralCycleError,
    ReferralNotFoundError,
    WriteError,
)
from growth_game.domain.base_operations import BaseOperations
from growth_game.domain.history_operations import SYSTEM_ACTOR, Actor, history_ops
from growth_game.domain.profile_operations import profile_ops
from growth_game.models.lead_history import LeadEventType
from growth_game.models.referral import Referral, ReferralStatus

logger = logging.getLogger(__name__)


@dataclass
class ConversionResult:
    """Outcome of a confirmed conversion."""

    referral: Referral
    plan: RewardPlan
    points_awarded: int
    credited_lead_id: uuid_pkg.UUID | None = None  # set when a referring lead got the points
    credited_profile_id: uuid_pkg.UUID | None = None


@contextmanager
def _write_guard(action: str) -> Iterator[None]:
    """Turn persistence failures into WriteError, letting ledger errors through."""
    try:
        yield
    except LedgerError:
        raise
    except SQLAlchemyError as e:
        logger.exception(f"Database error while trying to {action}")
        raise WriteError() from e


def _normalize_tags(tags: list[str]) -> list[str]:
    """Strip blanks and duplicates, keeping first-seen order."""
    seen: list[str] = []
    for tag in tags:
        value = tag.strip()
        if value and value not in seen:
            seen.append(value)
    return seen


class ReferralOperations(BaseOperations[Referral]):
    """Lifecycle and point ledger of referrals."""

    def __init__(self) -> None:
        super().__init__(Referral)

    async def get_or_raise(self, db: AsyncSession, referral_id: uuid_pkg.UUID) -> Referral:
        referral = await self.get(db, referral_id)
        if referral is None:
            raise ReferralNotFoundError(referral_id)
        return referral

    async def _lock_or_raise(self, db: AsyncSession, referral_id: uuid_pkg.UUID) -> Referral:
        referral = await self.get_for_update(db, referral_id)
        if referral is None:
            raise ReferralNotFoundError(referral_id)
        return referral

    # ─────────────────────────────────────────────────────────────────────
    # Registration
    # ─────────────────────────────────────────────────────────────────────

    async def register(
        self,
        db: AsyncSession,
        referrer_id: uuid_pkg.UUID,
        lead_name: str,
        lead_phone: str,
        referrer_name: str | None = None,
        actor: Actor = SYSTEM_ACTOR,
    ) -> Referral:
        """
        Register a lead credited to a profile and award the registration bonus.

        The referral insert and the wallet credit happen in the same
        transaction, so either both persist or neither does.

        Raises:
            ProfileNotFoundError: If the referrer profile does not exist.
            WriteError: If the database rejects the change.
        """
        with _write_guard("register a referral"):
            profile = await profile_ops.get_for_update(db, referrer_id)
            if profile is None:
                raise ProfileNotFoundError(referrer_id)

            referral = Referral(
                referrer_id=referrer_id,
                referrer_name=referrer_name or profile.name,
                lead_name=lead_name.strip(),
                lead_phone=lead_phone,
                status=ReferralStatus.NEW.value,
                organization_id=profile.organization_id,
                created_by_id=actor.id,
                created_by_name=actor.name,
                created_by_role=actor.role,
            )
            db.add(referral)
            await db.flush()

            profile_ops.credit(profile, settings.referral_bonus_points)
            db.add(profile)
            await db.flush()
            await history_ops.add_event(db, referral.id, LeadEventType.CREATED, {}, actor)

        logger.info(
            f"Registered referral {referral.id} for profile {referrer_id} "
            f"(+{settings.referral_bonus_points} bonus points)"
        )
        return referral

    async def register_via_lead(
        self,
        db: AsyncSession,
        creator_profile_id: uuid_pkg.UUID,
        referring_lead_id: uuid_pkg.UUID,
        lead_name: str,
        lead_phone: str,
        actor: Actor = SYSTEM_ACTOR,
    ) -> Referral:
        """
        Register a lead introduced by another referral.

        The registration bonus goes to the referring lead's lead_points
        instead of a wallet. referrer_name is copied from the referring lead.

        Raises:
            ReferralNotFoundError: If the referring lead does not exist.
            ProfileNotFoundError: If the creator profile does not exist.
            WriteError: If the database rejects the change.
        """
        with _write_guard("register a referral via lead"):
            referring_lead = await self._lock_or_raise(db, referring_lead_id)
            creator = await profile_ops.get(db, creator_profile_id)
            if creator is None:
                raise ProfileNotFoundError(creator_profile_id)

            referral = Referral(
                referrer_id=creator_profile_id,
                referrer_name=referring_lead.lead_name,
                lead_name=lead_name.strip(),
                lead_phone=lead_phone,
                status=ReferralStatus.NEW.value,
                referred_by_lead_id=referring_lead.id,
                organization_id=creator.organization_id,
                created_by_id=actor.id,
                created_by_name=actor.name,
                created_by_role=actor.role,
            )
            db.add(referral)
            await db.flush()

            referring_lead.lead_points = (referring_lead.lead_points or 0) + (
                settings.referral_bonus_points
            )
            db.add(referring_lead)
            await db.flush()
            await history_ops.add_event(db, referral.id, LeadEventType.CREATED, {}, actor)

        logger.info(
            f"Registered referral {referral.id} via lead {referring_lead_id} "
            f"(+{settings.referral_bonus_points} lead points)"
        )
        return referral

    async def register_client(
        self,
        db: AsyncSession,
        referrer_id: uuid_pkg.UUID,
        client_name: str,
        client_phone: str,
        referrer_name: str | None = None,
        actor: Actor = SYSTEM_ACTOR,
    ) -> Referral:
        """Record an existing customer. No points are awarded."""
        with _write_guard("register a client"):
            profile = await profile_ops.get(db, referrer_id)
            if profile is None:
                raise ProfileNotFoundError(referrer_id)

            referral = Referral(
                referrer_id=referrer_id,
                referrer_name=referrer_name or profile.name,
                lead_name=client_name.strip(),
                lead_phone=client_phone,
                status=ReferralStatus.NEW.value,
                is_client=True,
                client_since=datetime.now(UTC),
                organization_id=profile.organization_id,
                created_by_id=actor.id,
                created_by_name=actor.name,
                created_by_role=actor.role,
            )
            db.add(referral)
            await db.flush()
            await history_ops.add_event(db, referral.id, LeadEventType.CREATED, {}, actor)

        logger.info(f"Registered client {referral.id} for profile {referrer_id}")
        return referral

    # ─────────────────────────────────────────────────────────────────────
    # Status transitions
    # ─────────────────────────────────────────────────────────────────────

    async def _transition(
        self,
        db: AsyncSession,
        referral: Referral,
        to_status: ReferralStatus,
        actor: Actor,
    ) -> None:
        from_status = referral.status
        referral.status = to_status.value
        db.add(referral)
        await db.flush()
        await history_ops.add_event(
            db,
            referral.id,
            LeadEventType.STATUS_CHANGE,
            {"from_status": from_status, "to_status": to_status.value},
            actor,
        )

    async def mark_contacted(
        self,
        db: AsyncSession,
        referral_id: uuid_pkg.UUID,
        actor: Actor = SYSTEM_ACTOR,
    ) -> Referral:
        """
        Move a referral from new to contacted.

        Already-contacted referrals are left untouched. Converted referrals
        are rejected with InvalidTransitionError.
        """
        with _write_guard("mark a referral as contacted"):
            referral = await self._lock_or_raise(db, referral_id)
            if referral.is_converted:
                raise InvalidTransitionError(referral.status, "mark as contacted")
            if referral.status == ReferralStatus.CONTACTED.value:
                return referral
            await self._transition(db, referral, ReferralStatus.CONTACTED, actor)

        logger.info(f"Referral {referral_id} marked as contacted")
        return referral

    async def undo_contacted(
        self,
        db: AsyncSession,
        referral_id: uuid_pkg.UUID,
        actor: Actor = SYSTEM_ACTOR,
    ) -> Referral:
        """Move a referral from contacted back to new. Rejected when converted."""
        with _write_guard("undo the contacted status"):
            referral = await self._lock_or_raise(db, referral_id)
            if referral.is_converted:
                raise InvalidTransitionError(referral.status, "undo contact of")
            if referral.status == ReferralStatus.NEW.value:
                return referral
            await self._transition(db, referral, ReferralStatus.NEW, actor)

        logger.info(f"Referral {referral_id} moved back to new")
        return referral

    async def confirm_conversion(
        self,
        db: AsyncSession,
        referral_id: uuid_pkg.UUID,
        plan_id: str,
        actor: Actor = SYSTEM_ACTOR,
        plan_overrides: dict[str, Any] | None = None,
    ) -> ConversionResult:
        """
        Convert a referral under a reward plan and award the plan's points.

        Points go to the referring lead's lead_points when the referral was
        introduced by another lead, otherwise to the referrer profile's wallet
        and lifetime total. The referral row is locked before its status is
        checked, so of two concurrent confirmations only one awards points.

        Raises:
            InvalidPlanError: If plan_id is not in the effective catalog.
            ReferralNotFoundError: If the referral (or its referring lead) is missing.
            ProfileNotFoundError: If the referrer profile is missing or was removed.
            AlreadyConvertedError: If the referral is already converted.
            WriteError: If the database rejects the change.
        """
        plan = get_plan(plan_id, plan_overrides)
        if plan is None:
            raise InvalidPlanError(plan_id)

        with _write_guard("confirm a conversion"):
            referral = await self._lock_or_raise(db, referral_id)
            if referral.is_converted:
                raise AlreadyConvertedError(referral_id)

            referral.status = ReferralStatus.CONVERTED.value
            referral.converted_plan_id = plan.plan_id
            referral.is_client = True
            referral.client_since = referral.client_since or datetime.now(UTC)
            db.add(referral)

            result = ConversionResult(referral=referral, plan=plan, points_awarded=plan.points)

            if referral.referred_by_lead_id is not None:
                referring_lead = await self._lock_or_raise(db, referral.referred_by_lead_id)
                referring_lead.lead_points = (referring_lead.lead_points or 0) + plan.points
                db.add(referring_lead)
                result.credited_lead_id = referring_lead.id

                share = get_barber_referral_share_points(plan.plan_id, plan_overrides)
                if share > 0:
                    # TODO: credit the staff share once the split rule is confirmed
                    logger.warning(
                        f"Staff share of {share} points for referral {referral_id} "
                        "is configured but not applied"
                    )
            elif referral.referrer_id is None:
                # Referrer was removed from the team
                raise ProfileNotFoundError(referral.referrer_name)
            else:
                await profile_ops.award_points(db, referral.referrer_id, plan.points)
                result.credited_profile_id = referral.referrer_id

            await db.flush()
            await history_ops.add_event(
                db,
                referral.id,
                LeadEventType.CONVERSION,
                {
                    "plan_id": plan.plan_id,
                    "plan_label": plan.label,
                    "points_awarded": plan.points,
                },
                actor,
            )

        logger.info(
            f"Referral {referral_id} converted on plan {plan.plan_id} "
            f"(+{plan.points} points)"
        )
        return result

    async def undo_conversion(
        self,
        db: AsyncSession,
        referral_id: uuid_pkg.UUID,
        actor: Actor = SYSTEM_ACTOR,
    ) -> Referral:
        """
        Revert a conversion: status back to contacted, plan cleared.

        Points awarded by the conversion are kept.
        """
        with _write_guard("undo a conversion"):
            referral = await self._lock_or_raise(db, referral_id)
            if not referral.is_converted:
                raise InvalidTransitionError(referral.status, "undo the conversion of")

            previous_plan = referral.converted_plan_id
            referral.converted_plan_id = None
            await self._transition(db, referral, ReferralStatus.CONTACTED, actor)

        logger.info(
            f"Conversion of referral {referral_id} on plan {previous_plan} undone "
            "(awarded points kept)"
        )
        return referral

    # ─────────────────────────────────────────────────────────────────────
    # Workflow metadata
    # ─────────────────────────────────────────────────────────────────────

    async def set_contact_tag(
        self,
        db: AsyncSession,
        referral_id: uuid_pkg.UUID,
        tag: str | None,
        actor: Actor = SYSTEM_ACTOR,
    ) -> Referral:
        with _write_guard("update the contact tag"):
            referral = await self._lock_or_raise(db, referral_id)
            previous = referral.contact_tag
            referral.contact_tag = tag or None
            db.add(referral)
            await db.flush()
            await history_ops.add_event(
                db,
                referral.id,
                LeadEventType.TAG_CHANGE,
                {"tag": tag or "none", "previous_tag": previous},
                actor,
            )
        return referral

    async def set_tags(
        self,
        db: AsyncSession,
        referral_id: uuid_pkg.UUID,
        tags: list[str],
        actor: Actor = SYSTEM_ACTOR,
    ) -> Referral:
        """Replace the free tag list of a referral."""
        with _write_guard("update tags"):
            referral = await self._lock_or_raise(db, referral_id)
            previous = list(referral.tags or [])
            referral.tags = _normalize_tags(tags)
            db.add(referral)
            await db.flush()
            await history_ops.add_event(
                db,
                referral.id,
                LeadEventType.TAG_CHANGE,
                {"tags": referral.tags, "previous_tags": previous},
                actor,
            )
        return referral

    async def update_notes(
        self,
        db: AsyncSession,
        referral_id: uuid_pkg.UUID,
        notes: str,
        actor: Actor = SYSTEM_ACTOR,
    ) -> Referral:
        with _write_guard("update notes"):
            referral = await self._lock_or_raise(db, referral_id)
            referral.notes = notes
            db.add(referral)
            await db.flush()
            await history_ops.add_event(
                db, referral.id, LeadEventType.NOTE_ADDED, {"notes": notes}, actor
            )
        return referral

    async def set_follow_up(
        self,
        db: AsyncSession,
        referral_id: uuid_pkg.UUID,
        follow_up_date: datetime,
        follow_up_note: str | None = None,
        actor: Actor = SYSTEM_ACTOR,
    ) -> Referral:
        with _write_guard("schedule a follow-up"):
            referral = await self._lock_or_raise(db, referral_id)
            referral.follow_up_date = follow_up_date
            referral.follow_up_note = follow_up_note
            db.add(referral)
            await db.flush()
            await history_ops.add_event(
                db,
                referral.id,
                LeadEventType.NOTE_ADDED,
                {
                    "type": "follow_up_set",
                    "follow_up_date": follow_up_date.isoformat(),
                    "follow_up_note": follow_up_note,
                },
                actor,
            )
        return referral

    async def clear_follow_up(
        self,
        db: AsyncSession,
        referral_id: uuid_pkg.UUID,
        actor: Actor = SYSTEM_ACTOR,
    ) -> Referral:
        with _write_guard("clear a follow-up"):
            referral = await self._lock_or_raise(db, referral_id)
            referral.follow_up_date = None
            referral.follow_up_note = None
            db.add(referral)
            await db.flush()
            await history_ops.add_event(
                db, referral.id, LeadEventType.NOTE_ADDED, {"type": "follow_up_cleared"}, actor
            )
        return referral

    async def set_qualification(
        self,
        db: AsyncSession,
        referral_id: uuid_pkg.UUID,
        is_qualified: bool,
        actor: Actor = SYSTEM_ACTOR,
    ) -> Referral:
        with _write_guard("update qualification"):
            referral = await self._lock_or_raise(db, referral_id)
            referral.is_qualified = is_qualified
            db.add(referral)
            await db.flush()
            await history_ops.add_event(
                db,
                referral.id,
                LeadEventType.QUALIFICATION_CHANGE,
                {"is_qualified": is_qualified},
                actor,
            )
        return referral

    async def set_client_flag(
        self,
        db: AsyncSession,
        referral_id: uuid_pkg.UUID,
        is_client: bool,
        actor: Actor = SYSTEM_ACTOR,
    ) -> Referral:
        """Mark or unmark a referral as a customer, stamping client_since."""
        with _write_guard("update the client flag"):
            referral = await self._lock_or_raise(db, referral_id)
            referral.is_client = is_client
            if is_client:
                referral.client_since = referral.client_since or datetime.now(UTC)
            else:
                referral.client_since = None
            db.add(referral)
            await db.flush()
            await history_ops.add_event(
                db,
                referral.id,
                LeadEventType.NOTE_ADDED,
                {"type": "client_flag", "is_client": is_client},
                actor,
            )
        return referral

    async def set_referring_lead(
        self,
        db: AsyncSession,
        referral_id: uuid_pkg.UUID,
        lead_id: uuid_pkg.UUID | None,
        actor: Actor = SYSTEM_ACTOR,
    ) -> Referral:
        """
        Re-link a referral to the lead that introduced it (or unlink it).

        Points already awarded are not moved.

        Raises:
            ReferralCycleError: If the link would make the referral (transitively)
                its own referrer.
        """
        with _write_guard("link a referring lead"):
            referral = await self._lock_or_raise(db, referral_id)
            if lead_id is not None:
                await self._ensure_no_cycle(db, referral_id, lead_id)
            previous = referral.referred_by_lead_id
            referral.referred_by_lead_id = lead_id
            db.add(referral)
            await db.flush()
            await history_ops.add_event(
                db,
                referral.id,
                LeadEventType.NOTE_ADDED,
                {
                    "type": "referring_lead",
                    "referred_by_lead_id": str(lead_id) if lead_id else None,
                    "previous_referred_by_lead_id": str(previous) if previous else None,
                },
                actor,
            )

        logger.info(f"Referral {referral_id} now referred by lead {lead_id}")
        return referral

    async def _ensure_no_cycle(
        self,
        db: AsyncSession,
        referral_id: uuid_pkg.UUID,
        lead_id: uuid_pkg.UUID,
    ) -> None:
        """Walk the chain upwards from lead_id and fail if it reaches referral_id."""
        visited: set[uuid_pkg.UUID] = set()
        current: uuid_pkg.UUID | None = lead_id
        while current is not None:
            if current == referral_id:
                raise ReferralCycleError(referral_id, lead_id)
            if current in visited:
                # Pre-existing loop above us that does not include this referral
                return
            visited.add(current)

            statement = select(Referral.id, Referral.referred_by_lead_id).where(
                Referral.id == current  # type: ignore[arg-type]
            )
            result = await db.execute(statement)
            row = result.one_or_none()
            if row is None:
                if current == lead_id:
                    raise ReferralNotFoundError(lead_id)
                return
            current = row.referred_by_lead_id

    async def delete_referral(self, db: AsyncSession, referral_id: uuid_pkg.UUID) -> None:
        """Hard-delete a referral. Its timeline goes with it (FK cascade)."""
        with _write_guard("delete a referral"):
            deleted = await self.delete(db, referral_id)
        if not deleted:
            raise ReferralNotFoundError(referral_id)
        logger.info(f"Deleted referral {referral_id}")

    # ─────────────────────────────────────────────────────────────────────
    # Listings
    # ─────────────────────────────────────────────────────────────────────

    async def list_referrals(
        self,
        db: AsyncSession,
        status: ReferralStatus | None = None,
        referrer_id: uuid_pkg.UUID | None = None,
        tag: str | None = None,
        is_client: bool | None = None,
        skip: int = 0,
        limit: int = 500,
    ) -> list[Referral]:
        """Referrals matching the filters, newest first."""
        statement = select(Referral)
        if status is not None:
            statement = statement.where(Referral.status == status.value)  # type: ignore[arg-type]
        if referrer_id is not None:
            statement = statement.where(Referral.referrer_id == referrer_id)  # type: ignore[arg-type]
        if tag:
            statement = statement.where(
                or_(
                    Referral.contact_tag == tag,  # type: ignore[arg-type]
                    Referral.tags.contains([tag]),  # type: ignore[attr-defined]
                )
            )
        if is_client is not None:
            statement = statement.where(Referral.is_client == is_client)  # type: ignore[arg-type]
        statement = (
            statement.order_by(Referral.created_at.desc(), Referral.id)  # type: ignore[attr-defined]
            .offset(skip)
            .limit(limit)
        )
        result = await db.execute(statement)
        return list(result.scalars().all())

    async def list_leads_as_referrers(self, db: AsyncSession) -> list[Referral]:
        """Referrals that can introduce other leads: converted ones and clients."""
        statement = (
            select(Referral)
            .where(
                or_(
                    Referral.status == ReferralStatus.CONVERTED.value,  # type: ignore[arg-type]
                    Referral.is_client.is_(True),  # type: ignore[attr-defined]
                )
            )
            .order_by(Referral.lead_name, Referral.id)  # type: ignore[arg-type]
        )
        result = await db.execute(statement)
        return list(result.scalars().all())

    async def list_barber_clients_as_referrers(
        self,
        db: AsyncSession,
        barber_id: uuid_pkg.UUID,
    ) -> list[Referral]:
        """Clients registered under one staff profile, ordered by name."""
        statement = (
            select(Referral)
            .where(
                Referral.referrer_id == barber_id,  # type: ignore[arg-type]
                Referral.is_client.is_(True),  # type: ignore[attr-defined]
            )
            .order_by(Referral.lead_name, Referral.id)  # type: ignore[arg-type]
        )
        result = await db.execute(statement)
        return list(result.scalars().all())


referral_ops = ReferralOperations()
