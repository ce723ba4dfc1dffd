"""Read-side ranking queries. Recomputed on every call, never cached."""

import uuid as uuid_pkg
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from growth_game.models.profile import Profile, UserRole
from growth_game.models.referral import Referral, ReferralStatus


@dataclass
class ProfileRankEntry:
    rank: int
    profile_id: uuid_pkg.UUID
    name: str
    lifetime_points: int
    wallet_balance: int


@dataclass
class LeadRankEntry:
    rank: int
    referral_id: uuid_pkg.UUID
    lead_name: str
    lead_phone: str
    lead_points: int
    referral_count: int


def order_by_points(rows: Sequence[Any], points_attr: str, id_attr: str = "id") -> list[Any]:
    """
    Sort rows by points descending, then id ascending.

    The database already orders this way; sorting again keeps the result
    deterministic for callers that merge or filter rows afterwards.
    """
    return sorted(rows, key=lambda row: (-(getattr(row, points_attr) or 0), getattr(row, id_attr)))


def _sub_referral_counts():  # type: ignore[no-untyped-def]
    """Subquery: number of referrals introduced by each lead."""
    return (
        select(
            Referral.referred_by_lead_id.label("lead_id"),  # type: ignore[union-attr]
            func.count().label("referral_count"),
        )
        .where(Referral.referred_by_lead_id.is_not(None))  # type: ignore[union-attr]
        .group_by(Referral.referred_by_lead_id)
        .subquery()
    )


class RankingOperations:
    """Leaderboards for profiles and referring leads."""

    async def rank_profiles(
        self,
        db: AsyncSession,
        role: str,
        limit: int = 100,
    ) -> list[ProfileRankEntry]:
        """Profiles of one role by lifetime_points desc, ties broken by id asc."""
        statement = (
            select(Profile)
            .join(UserRole, UserRole.user_id == Profile.user_id)  # type: ignore[arg-type]
            .where(UserRole.role == role)  # type: ignore[arg-type]
            .order_by(Profile.lifetime_points.desc(), Profile.id)  # type: ignore[attr-defined]
            .limit(limit)
        )
        result = await db.execute(statement)
        profiles = order_by_points(list(result.scalars().all()), "lifetime_points")
        return [
            ProfileRankEntry(
                rank=index,
                profile_id=profile.id,
                name=profile.name,
                lifetime_points=profile.lifetime_points or 0,
                wallet_balance=profile.wallet_balance or 0,
            )
            for index, profile in enumerate(profiles, start=1)
        ]

    async def _rank_referrals(self, db: AsyncSession, *conditions: Any) -> list[LeadRankEntry]:
        counts = _sub_referral_counts()
        statement = (
            select(
                Referral.id,
                Referral.lead_name,
                Referral.lead_phone,
                Referral.lead_points,
                func.coalesce(counts.c.referral_count, 0).label("referral_count"),
            )
            .outerjoin(counts, counts.c.lead_id == Referral.id)
            .where(*conditions)
            .order_by(Referral.lead_points.desc(), Referral.id)  # type: ignore[attr-defined]
        )
        result = await db.execute(statement)
        rows = order_by_points(list(result.all()), "lead_points")
        return [
            LeadRankEntry(
                rank=index,
                referral_id=row.id,
                lead_name=row.lead_name,
                lead_phone=row.lead_phone,
                lead_points=row.lead_points or 0,
                referral_count=int(row.referral_count or 0),
            )
            for index, row in enumerate(rows, start=1)
        ]

    async def rank_leads(self, db: AsyncSession) -> list[LeadRankEntry]:
        """Leads that earned points by introducing others, with sub-referral counts."""
        return await self._rank_referrals(db, Referral.lead_points > 0)  # type: ignore[operator]

    async def rank_clients(self, db: AsyncSession) -> list[LeadRankEntry]:
        """Clients (flagged or converted) by lead_points, with sub-referral counts."""
        return await self._rank_referrals(
            db,
            or_(
                Referral.is_client.is_(True),  # type: ignore[attr-defined]
                Referral.status == ReferralStatus.CONVERTED.value,  # type: ignore[arg-type]
            ),
        )


ranking_ops = RankingOperations()
