"""Leaderboard endpoints. Computed on every request."""

import uuid as uuid_pkg

from fastapi import APIRouter, Query
from pydantic import BaseModel

from growth_game.api.deps import CurrentUser, RlsSession
from growth_game.domain.ranking_operations import ranking_ops
from growth_game.models.profile import AppRole

router = APIRouter(prefix="/rankings", tags=["rankings"])


class ProfileRankRead(BaseModel):
    rank: int
    profile_id: uuid_pkg.UUID
    name: str
    lifetime_points: int
    wallet_balance: int


class LeadRankRead(BaseModel):
    rank: int
    referral_id: uuid_pkg.UUID
    lead_name: str
    lead_phone: str
    lead_points: int
    referral_count: int


@router.get("/profiles", response_model=list[ProfileRankRead])
async def rank_profiles(
    db: RlsSession,
    current_user: CurrentUser,
    role: AppRole = AppRole.BARBER,
    limit: int = Query(100, ge=1, le=500),
) -> list[ProfileRankRead]:
    """Profiles of one role by lifetime points."""
    entries = await ranking_ops.rank_profiles(db, role.value, limit=limit)
    return [ProfileRankRead(**entry.__dict__) for entry in entries]


@router.get("/leads", response_model=list[LeadRankRead])
async def rank_leads(db: RlsSession, current_user: CurrentUser) -> list[LeadRankRead]:
    """Leads that earned points by introducing others."""
    entries = await ranking_ops.rank_leads(db)
    return [LeadRankRead(**entry.__dict__) for entry in entries]


@router.get("/clients", response_model=list[LeadRankRead])
async def rank_clients(db: RlsSession, current_user: CurrentUser) -> list[LeadRankRead]:
    """Clients ranked by the points their own referrals earned."""
    entries = await ranking_ops.rank_clients(db)
    return [LeadRankRead(**entry.__dict__) for entry in entries]
