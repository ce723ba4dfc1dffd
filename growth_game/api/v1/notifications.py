"""Follow-up notification endpoints."""

import uuid as uuid_pkg
from datetime import datetime

from fastapi import APIRouter
from pydantic import BaseModel

from growth_game.api.deps import RlsSession, StaffUser
from growth_game.domain.followup_operations import followup_ops, summarize

router = APIRouter(prefix="/notifications", tags=["notifications"])


class FollowUpRead(BaseModel):
    referral_id: uuid_pkg.UUID
    lead_name: str
    lead_phone: str
    status: str
    follow_up_date: datetime
    follow_up_note: str | None
    urgency: str
    days_until: int


class FollowUpSummaryRead(BaseModel):
    total: int
    overdue: int
    today: int
    urgent: int


class DismissResponse(BaseModel):
    success: bool = True
    dismissed: list[str]


@router.get("/follow-ups", response_model=list[FollowUpRead])
async def list_follow_ups(db: RlsSession, current_user: StaffUser) -> list[FollowUpRead]:
    """Due follow-ups the caller has not dismissed, ordered by date."""
    items = await followup_ops.get_for_user(db, current_user.user_id)
    return [
        FollowUpRead(
            referral_id=item.referral_id,
            lead_name=item.lead_name,
            lead_phone=item.lead_phone,
            status=item.status,
            follow_up_date=item.follow_up_date,
            follow_up_note=item.follow_up_note,
            urgency=item.urgency.value,
            days_until=item.days_until,
        )
        for item in items
    ]


@router.get("/follow-ups/summary", response_model=FollowUpSummaryRead)
async def follow_up_summary(db: RlsSession, current_user: StaffUser) -> FollowUpSummaryRead:
    items = await followup_ops.get_for_user(db, current_user.user_id)
    summary = summarize(items)
    return FollowUpSummaryRead(
        total=summary.total,
        overdue=summary.overdue,
        today=summary.today,
        urgent=summary.urgent,
    )


@router.post("/follow-ups/{referral_id}/dismiss", response_model=DismissResponse)
async def dismiss_follow_up(
    referral_id: uuid_pkg.UUID,
    db: RlsSession,
    current_user: StaffUser,
) -> DismissResponse:
    dismissed = await followup_ops.dismiss(db, current_user.user_id, referral_id)
    return DismissResponse(dismissed=sorted(dismissed))
