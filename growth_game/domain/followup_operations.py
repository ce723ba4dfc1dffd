"""Follow-up reminders: which leads are due for a call back."""

import logging
import uuid as uuid_pkg
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from growth_game.config import settings
from growth_game.domain.settings_operations import settings_ops
from growth_game.models.crm_setting import SettingKey
from growth_game.models.referral import Referral, ReferralStatus

logger = logging.getLogger(__name__)


class FollowUpUrgency(str, Enum):
    OVERDUE = "overdue"
    TODAY = "today"
    TOMORROW = "tomorrow"
    UPCOMING = "upcoming"


@dataclass
class FollowUpItem:
    referral_id: uuid_pkg.UUID
    lead_name: str
    lead_phone: str
    status: str
    follow_up_date: datetime
    follow_up_note: str | None
    urgency: FollowUpUrgency
    days_until: int


@dataclass
class FollowUpSummary:
    """Counts shown on the notification badge."""

    total: int = 0
    overdue: int = 0
    today: int = 0
    refreshed_at: datetime | None = None

    @property
    def urgent(self) -> int:
        return self.overdue + self.today


@dataclass
class FollowUpSnapshot:
    """Last summary computed by the scheduler. Informational only."""

    summary: FollowUpSummary = field(default_factory=FollowUpSummary)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def classify_follow_up(due: datetime, now: datetime) -> tuple[FollowUpUrgency, int]:
    """
    Classify a follow-up date relative to now, by calendar day in UTC.

    Returns the urgency and the number of days until the due day
    (negative when overdue).
    """
    due = _as_utc(due)
    now = _as_utc(now)
    days_until = (due.date() - now.date()).days
    if days_until == 0:
        return FollowUpUrgency.TODAY, 0
    if due < now:
        return FollowUpUrgency.OVERDUE, days_until
    if days_until == 1:
        return FollowUpUrgency.TOMORROW, 1
    return FollowUpUrgency.UPCOMING, days_until


def summarize(items: list[FollowUpItem], now: datetime | None = None) -> FollowUpSummary:
    return FollowUpSummary(
        total=len(items),
        overdue=sum(1 for item in items if item.urgency == FollowUpUrgency.OVERDUE),
        today=sum(1 for item in items if item.urgency == FollowUpUrgency.TODAY),
        refreshed_at=now,
    )


class FollowUpOperations:
    """Due follow-ups and per-user dismissals."""

    def __init__(self) -> None:
        self.snapshot = FollowUpSnapshot()

    async def get_due(
        self,
        db: AsyncSession,
        now: datetime | None = None,
        window_days: int | None = None,
        referrer_id: uuid_pkg.UUID | None = None,
    ) -> list[FollowUpItem]:
        """
        Open referrals whose follow-up falls before the end of the look-ahead
        window. Overdue ones are always included. Ordered by date.
        """
        now = _as_utc(now or datetime.now(UTC))
        if window_days is None:
            window_days = settings.follow_up_window_days
        start_of_today = now.replace(hour=0, minute=0, second=0, microsecond=0)
        horizon = start_of_today + timedelta(days=window_days + 1)

        statement = select(Referral).where(
            Referral.follow_up_date.is_not(None),  # type: ignore[union-attr]
            Referral.status != ReferralStatus.CONVERTED.value,  # type: ignore[arg-type]
            Referral.follow_up_date < horizon,  # type: ignore[operator]
        )
        if referrer_id is not None:
            statement = statement.where(Referral.referrer_id == referrer_id)  # type: ignore[arg-type]
        statement = statement.order_by(Referral.follow_up_date, Referral.id)  # type: ignore[arg-type]

        result = await db.execute(statement)
        items: list[FollowUpItem] = []
        for referral in result.scalars().all():
            if referral.follow_up_date is None:
                continue
            urgency, days_until = classify_follow_up(referral.follow_up_date, now)
            if urgency == FollowUpUrgency.UPCOMING and days_until > window_days:
                continue
            items.append(
                FollowUpItem(
                    referral_id=referral.id,
                    lead_name=referral.lead_name,
                    lead_phone=referral.lead_phone,
                    status=referral.status,
                    follow_up_date=referral.follow_up_date,
                    follow_up_note=referral.follow_up_note,
                    urgency=urgency,
                    days_until=days_until,
                )
            )
        return items

    async def get_dismissed(self, db: AsyncSession, user_id: uuid_pkg.UUID) -> set[str]:
        stored = await settings_ops.get(db, user_id, SettingKey.DISMISSED_NOTIFICATIONS)
        return {str(value) for value in stored or []}

    async def dismiss(
        self,
        db: AsyncSession,
        user_id: uuid_pkg.UUID,
        referral_id: uuid_pkg.UUID,
    ) -> set[str]:
        """
        Hide a follow-up for this user.

        Ids whose follow-up is no longer due (cleared, converted, rescheduled
        past the window or deleted) are dropped on every rewrite so the stored
        list stays bounded by the number of due follow-ups.
        """
        due_ids = {str(item.referral_id) for item in await self.get_due(db)}
        dismissed = {value for value in await self.get_dismissed(db, user_id) if value in due_ids}
        dismissed.add(str(referral_id))
        await settings_ops.upsert(
            db, user_id, SettingKey.DISMISSED_NOTIFICATIONS, sorted(dismissed)
        )
        return dismissed

    async def get_for_user(
        self,
        db: AsyncSession,
        user_id: uuid_pkg.UUID,
        now: datetime | None = None,
    ) -> list[FollowUpItem]:
        """Due follow-ups minus the ones the user dismissed."""
        items = await self.get_due(db, now=now)
        dismissed = await self.get_dismissed(db, user_id)
        return [item for item in items if str(item.referral_id) not in dismissed]

    async def refresh_snapshot(self, db: AsyncSession, now: datetime | None = None) -> FollowUpSummary:
        now = _as_utc(now or datetime.now(UTC))
        items = await self.get_due(db, now=now)
        self.snapshot.summary = summarize(items, now)
        return self.snapshot.summary


followup_ops = FollowUpOperations()
