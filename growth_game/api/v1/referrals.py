"""Referral API endpoints: registration, pipeline transitions and the lead CRM."""

import logging
import uuid as uuid_pkg
from datetime import datetime
from typing import Any

from fastapi import APIRouter, HTTPException, Query, Response, status
from pydantic import BaseModel

from growth_game.api.deps import AdminUser, AuthContext, CurrentUser, RlsSession, StaffUser
from growth_game.core.exceptions import ForbiddenError
from growth_game.core.rate_limit import EXPORT_LIMIT, rate_limiter
from growth_game.domain.history_operations import describe_event, history_ops
from growth_game.domain.overlay_operations import overlay_ops
from growth_game.domain.referral_operations import referral_ops
from growth_game.models.crm_setting import SettingKey
from growth_game.models.lead_history import HistoryEventCreate
from growth_game.models.referral import (
    ClientCreate,
    ClientFlagUpdate,
    ContactTagUpdate,
    ConversionCreate,
    FollowUpUpdate,
    LeadCreate,
    LeadViaLeadCreate,
    NotesUpdate,
    QualificationUpdate,
    Referral,
    ReferralStatus,
    ReferringLeadUpdate,
    TagsUpdate,
)
from growth_game.utils.export import referrals_to_csv
from growth_game.utils.whatsapp import generate_whatsapp_link

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/referrals", tags=["referrals"])


# ─────────────────────────────────────────────────────────────────────────────
# Request/Response Schemas
# ─────────────────────────────────────────────────────────────────────────────


class ReferralRead(BaseModel):
    """A referral as shown in the pipeline."""

    id: uuid_pkg.UUID
    referrer_id: uuid_pkg.UUID | None = None
    referrer_name: str
    lead_name: str
    lead_phone: str
    status: str
    converted_plan_id: str | None = None
    referred_by_lead_id: uuid_pkg.UUID | None = None
    lead_points: int = 0
    contact_tag: str | None = None
    tags: list[str] = []
    notes: str | None = None
    is_qualified: bool | None = None
    is_client: bool = False
    client_since: datetime | None = None
    follow_up_date: datetime | None = None
    follow_up_note: str | None = None
    created_by_name: str | None = None
    created_by_role: str | None = None
    created_at: datetime | None = None

    class Config:
        from_attributes = True


class ReferralResult(BaseModel):
    """Successful ledger or workflow call."""

    success: bool = True
    referral: ReferralRead


class ConversionResponse(BaseModel):
    success: bool = True
    referral: ReferralRead
    plan_id: str
    plan_label: str
    points_awarded: int


class DeleteResponse(BaseModel):
    success: bool = True


class HistoryEventRead(BaseModel):
    id: uuid_pkg.UUID
    referral_id: uuid_pkg.UUID
    event_type: str
    event_data: dict[str, Any]
    description: str
    created_by_name: str | None = None
    created_at: datetime


class WhatsAppLinkResponse(BaseModel):
    success: bool = True
    url: str


class ReferrerOption(BaseModel):
    """A referral offered as the referring lead of a new registration."""

    id: uuid_pkg.UUID
    lead_name: str
    lead_phone: str
    lead_points: int


def _result(referral: Referral) -> ReferralResult:
    return ReferralResult(referral=ReferralRead.model_validate(referral))


def _history_read(event: Any) -> HistoryEventRead:
    return HistoryEventRead(
        id=event.id,
        referral_id=event.referral_id,
        event_type=event.event_type,
        event_data=event.event_data or {},
        description=describe_event(event),
        created_by_name=event.created_by_name,
        created_at=event.created_at,
    )


def _ensure_own_referrer(current_user: AuthContext, referrer_id: uuid_pkg.UUID) -> None:
    """Clients may only register leads credited to themselves."""
    if current_user.is_staff:
        return
    if current_user.profile is None or current_user.profile.id != referrer_id:
        raise ForbiddenError("You can only register referrals for yourself")


# ─────────────────────────────────────────────────────────────────────────────
# Listing and export
# ─────────────────────────────────────────────────────────────────────────────


@router.get("", response_model=list[ReferralRead])
async def list_referrals(
    db: RlsSession,
    current_user: CurrentUser,
    status_filter: ReferralStatus | None = Query(None, alias="status"),
    referrer_id: uuid_pkg.UUID | None = None,
    tag: str | None = None,
    is_client: bool | None = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(500, ge=1, le=1000),
) -> list[ReferralRead]:
    """
    List referrals, newest first.

    Staff see every referral; clients only the ones credited to them.
    """
    if not current_user.is_staff:
        referrer_id = current_user.profile.id if current_user.profile else None
        if referrer_id is None:
            return []

    referrals = await referral_ops.list_referrals(
        db,
        status=status_filter,
        referrer_id=referrer_id,
        tag=tag,
        is_client=is_client,
        skip=skip,
        limit=limit,
    )
    return [ReferralRead.model_validate(r) for r in referrals]


@router.get("/export")
async def export_referrals(
    db: RlsSession,
    current_user: StaffUser,
    status_filter: ReferralStatus | None = Query(None, alias="status"),
    is_client: bool | None = None,
) -> Response:
    """Download referrals as CSV. Rate-limited per user."""
    rate_limiter.check_rate_limit(current_user.user_id, "referrals_export", EXPORT_LIMIT)

    referrals = await referral_ops.list_referrals(
        db, status=status_filter, is_client=is_client, limit=10_000
    )
    overrides = await overlay_ops.get_plan_overrides(db)
    content = referrals_to_csv(referrals, overrides)

    logger.info(f"User {current_user.user_id} exported {len(referrals)} referrals")
    return Response(
        content=content,
        media_type="text/csv",
        headers={
            "Content-Disposition": 'attachment; filename="referrals.csv"',
            "X-RateLimit-Remaining": str(
                rate_limiter.get_remaining(current_user.user_id, "referrals_export", EXPORT_LIMIT)
            ),
        },
    )


@router.get("/referrers/leads", response_model=list[ReferrerOption])
async def list_lead_referrers(db: RlsSession, current_user: StaffUser) -> list[ReferrerOption]:
    """Converted referrals and clients that can introduce new leads."""
    referrals = await referral_ops.list_leads_as_referrers(db)
    return [
        ReferrerOption(
            id=r.id, lead_name=r.lead_name, lead_phone=r.lead_phone, lead_points=r.lead_points
        )
        for r in referrals
    ]


@router.get("/referrers/barbers/{barber_id}/clients", response_model=list[ReferrerOption])
async def list_barber_client_referrers(
    barber_id: uuid_pkg.UUID,
    db: RlsSession,
    current_user: StaffUser,
) -> list[ReferrerOption]:
    """Clients of one barber, offered as referring leads."""
    referrals = await referral_ops.list_barber_clients_as_referrers(db, barber_id)
    return [
        ReferrerOption(
            id=r.id, lead_name=r.lead_name, lead_phone=r.lead_phone, lead_points=r.lead_points
        )
        for r in referrals
    ]


# ─────────────────────────────────────────────────────────────────────────────
# Registration
# ─────────────────────────────────────────────────────────────────────────────


@router.post("", response_model=ReferralResult, status_code=status.HTTP_201_CREATED)
async def register_referral(
    data: LeadCreate,
    db: RlsSession,
    current_user: CurrentUser,
) -> ReferralResult:
    """Register a lead and credit the referrer with the registration bonus."""
    _ensure_own_referrer(current_user, data.referrer_id)
    referral = await referral_ops.register(
        db,
        referrer_id=data.referrer_id,
        lead_name=data.lead_name,
        lead_phone=data.lead_phone,
        actor=current_user.actor,
    )
    return _result(referral)


@router.post("/via-lead", response_model=ReferralResult, status_code=status.HTTP_201_CREATED)
async def register_referral_via_lead(
    data: LeadViaLeadCreate,
    db: RlsSession,
    current_user: StaffUser,
) -> ReferralResult:
    """Register a lead introduced by an existing referral."""
    if current_user.profile is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Profile required")
    referral = await referral_ops.register_via_lead(
        db,
        creator_profile_id=current_user.profile.id,
        referring_lead_id=data.referring_lead_id,
        lead_name=data.lead_name,
        lead_phone=data.lead_phone,
        actor=current_user.actor,
    )
    return _result(referral)


@router.post("/clients", response_model=ReferralResult, status_code=status.HTTP_201_CREATED)
async def register_client(
    data: ClientCreate,
    db: RlsSession,
    current_user: StaffUser,
) -> ReferralResult:
    """Record an existing customer. No points are awarded."""
    referral = await referral_ops.register_client(
        db,
        referrer_id=data.referrer_id,
        client_name=data.client_name,
        client_phone=data.client_phone,
        actor=current_user.actor,
    )
    return _result(referral)


# ─────────────────────────────────────────────────────────────────────────────
# Single referral
# ─────────────────────────────────────────────────────────────────────────────


@router.get("/{referral_id}", response_model=ReferralRead)
async def get_referral(
    referral_id: uuid_pkg.UUID,
    db: RlsSession,
    current_user: CurrentUser,
) -> ReferralRead:
    referral = await referral_ops.get_or_raise(db, referral_id)
    if not current_user.is_staff and (
        current_user.profile is None or referral.referrer_id != current_user.profile.id
    ):
        raise ForbiddenError()
    return ReferralRead.model_validate(referral)


@router.delete("/{referral_id}", response_model=DeleteResponse)
async def delete_referral(
    referral_id: uuid_pkg.UUID,
    db: RlsSession,
    current_user: AdminUser,
) -> DeleteResponse:
    """Hard delete. The timeline is removed with it."""
    await referral_ops.delete_referral(db, referral_id)
    return DeleteResponse()


# ─────────────────────────────────────────────────────────────────────────────
# Pipeline transitions
# ─────────────────────────────────────────────────────────────────────────────


@router.post("/{referral_id}/contacted", response_model=ReferralResult)
async def mark_contacted(
    referral_id: uuid_pkg.UUID,
    db: RlsSession,
    current_user: StaffUser,
) -> ReferralResult:
    referral = await referral_ops.mark_contacted(db, referral_id, actor=current_user.actor)
    return _result(referral)


@router.delete("/{referral_id}/contacted", response_model=ReferralResult)
async def undo_contacted(
    referral_id: uuid_pkg.UUID,
    db: RlsSession,
    current_user: StaffUser,
) -> ReferralResult:
    referral = await referral_ops.undo_contacted(db, referral_id, actor=current_user.actor)
    return _result(referral)


@router.post("/{referral_id}/conversion", response_model=ConversionResponse)
async def confirm_conversion(
    referral_id: uuid_pkg.UUID,
    data: ConversionCreate,
    db: RlsSession,
    current_user: StaffUser,
) -> ConversionResponse:
    """Convert a referral under a reward plan and award the plan's points."""
    overrides = await overlay_ops.get_plan_overrides(db)
    result = await referral_ops.confirm_conversion(
        db,
        referral_id,
        data.plan_id,
        actor=current_user.actor,
        plan_overrides=overrides,
    )
    return ConversionResponse(
        referral=ReferralRead.model_validate(result.referral),
        plan_id=result.plan.plan_id,
        plan_label=result.plan.label,
        points_awarded=result.points_awarded,
    )


@router.delete("/{referral_id}/conversion", response_model=ReferralResult)
async def undo_conversion(
    referral_id: uuid_pkg.UUID,
    db: RlsSession,
    current_user: StaffUser,
) -> ReferralResult:
    """Move a converted referral back to contacted. Awarded points are kept."""
    referral = await referral_ops.undo_conversion(db, referral_id, actor=current_user.actor)
    return _result(referral)


# ─────────────────────────────────────────────────────────────────────────────
# Workflow metadata
# ─────────────────────────────────────────────────────────────────────────────


@router.put("/{referral_id}/contact-tag", response_model=ReferralResult)
async def update_contact_tag(
    referral_id: uuid_pkg.UUID,
    data: ContactTagUpdate,
    db: RlsSession,
    current_user: StaffUser,
) -> ReferralResult:
    referral = await referral_ops.set_contact_tag(
        db, referral_id, data.contact_tag, actor=current_user.actor
    )
    return _result(referral)


@router.put("/{referral_id}/tags", response_model=ReferralResult)
async def update_tags(
    referral_id: uuid_pkg.UUID,
    data: TagsUpdate,
    db: RlsSession,
    current_user: StaffUser,
) -> ReferralResult:
    referral = await referral_ops.set_tags(db, referral_id, data.tags, actor=current_user.actor)
    return _result(referral)


@router.put("/{referral_id}/notes", response_model=ReferralResult)
async def update_notes(
    referral_id: uuid_pkg.UUID,
    data: NotesUpdate,
    db: RlsSession,
    current_user: StaffUser,
) -> ReferralResult:
    referral = await referral_ops.update_notes(db, referral_id, data.notes, actor=current_user.actor)
    return _result(referral)


@router.put("/{referral_id}/follow-up", response_model=ReferralResult)
async def set_follow_up(
    referral_id: uuid_pkg.UUID,
    data: FollowUpUpdate,
    db: RlsSession,
    current_user: StaffUser,
) -> ReferralResult:
    referral = await referral_ops.set_follow_up(
        db,
        referral_id,
        data.follow_up_date,
        data.follow_up_note,
        actor=current_user.actor,
    )
    return _result(referral)


@router.delete("/{referral_id}/follow-up", response_model=ReferralResult)
async def clear_follow_up(
    referral_id: uuid_pkg.UUID,
    db: RlsSession,
    current_user: StaffUser,
) -> ReferralResult:
    referral = await referral_ops.clear_follow_up(db, referral_id, actor=current_user.actor)
    return _result(referral)


@router.put("/{referral_id}/qualification", response_model=ReferralResult)
async def update_qualification(
    referral_id: uuid_pkg.UUID,
    data: QualificationUpdate,
    db: RlsSession,
    current_user: StaffUser,
) -> ReferralResult:
    referral = await referral_ops.set_qualification(
        db, referral_id, data.is_qualified, actor=current_user.actor
    )
    return _result(referral)


@router.put("/{referral_id}/client", response_model=ReferralResult)
async def update_client_flag(
    referral_id: uuid_pkg.UUID,
    data: ClientFlagUpdate,
    db: RlsSession,
    current_user: StaffUser,
) -> ReferralResult:
    referral = await referral_ops.set_client_flag(
        db, referral_id, data.is_client, actor=current_user.actor
    )
    return _result(referral)


@router.put("/{referral_id}/referring-lead", response_model=ReferralResult)
async def update_referring_lead(
    referral_id: uuid_pkg.UUID,
    data: ReferringLeadUpdate,
    db: RlsSession,
    current_user: StaffUser,
) -> ReferralResult:
    referral = await referral_ops.set_referring_lead(
        db, referral_id, data.referred_by_lead_id, actor=current_user.actor
    )
    return _result(referral)


# ─────────────────────────────────────────────────────────────────────────────
# WhatsApp and timeline
# ─────────────────────────────────────────────────────────────────────────────


@router.post("/{referral_id}/whatsapp", response_model=WhatsAppLinkResponse)
async def open_whatsapp(
    referral_id: uuid_pkg.UUID,
    db: RlsSession,
    current_user: StaffUser,
) -> WhatsAppLinkResponse:
    """Build the click-to-chat link for a lead and log the contact attempt."""
    referral = await referral_ops.get_or_raise(db, referral_id)
    key = SettingKey.CLIENT_MESSAGE if referral.is_client else SettingKey.LEAD_MESSAGE
    template = await overlay_ops.get_message(db, key)
    barber_name = current_user.profile.name if current_user.profile else ""

    url = generate_whatsapp_link(referral.lead_name, referral.lead_phone, barber_name, template)
    await history_ops.log_whatsapp_contact(db, referral.id, actor=current_user.actor)
    return WhatsAppLinkResponse(url=url)


@router.get("/{referral_id}/history", response_model=list[HistoryEventRead])
async def get_history(
    referral_id: uuid_pkg.UUID,
    db: RlsSession,
    current_user: StaffUser,
) -> list[HistoryEventRead]:
    """Timeline of a referral, newest first."""
    await referral_ops.get_or_raise(db, referral_id)
    events = await history_ops.get_for_referral(db, referral_id)
    return [_history_read(event) for event in events]


@router.post(
    "/{referral_id}/history",
    response_model=HistoryEventRead,
    status_code=status.HTTP_201_CREATED,
)
async def add_history_event(
    referral_id: uuid_pkg.UUID,
    data: HistoryEventCreate,
    db: RlsSession,
    current_user: StaffUser,
) -> HistoryEventRead:
    await referral_ops.get_or_raise(db, referral_id)
    event = await history_ops.add_event(
        db, referral_id, data.event_type, data.event_data, actor=current_user.actor
    )
    return _history_read(event)
