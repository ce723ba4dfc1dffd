"""Referral model - a lead or converted client, the unit of the pipeline."""

import uuid as uuid_pkg
from datetime import datetime
from enum import Enum

from pydantic import field_validator
from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, String, text
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlmodel import Field, SQLModel

from growth_game.models.base import TimestampMixin, UUIDMixin
from growth_game.utils.whatsapp import is_valid_phone


class ReferralStatus(str, Enum):
    """Pipeline status of a referral."""

    NEW = "new"
    CONTACTED = "contacted"
    CONVERTED = "converted"


# Values the database enum still carries from older releases. Never written.
LEGACY_REFERRAL_STATUSES: frozenset[str] = frozenset({"cliente", "client"})


class Referral(UUIDMixin, TimestampMixin, SQLModel, table=True):
    """
    Referral model - a lead introduced by a profile or by another referral.

    A referral can itself act as a referrer for another referral through
    referred_by_lead_id. Points earned that way accumulate in lead_points.
    """

    __tablename__ = "referrals"
    __table_args__ = (
        CheckConstraint(
            "(converted_plan_id IS NOT NULL) = (status = 'converted')",
            name="ck_referrals_plan_iff_converted",
        ),
        CheckConstraint(
            "referred_by_lead_id IS NULL OR referred_by_lead_id <> id",
            name="ck_referrals_not_self_referred",
        ),
    )

    # Credited profile (staff member or client who registered the lead).
    # Cleared when the profile is removed; referrer_name keeps the credit visible.
    referrer_id: uuid_pkg.UUID | None = Field(
        default=None,
        sa_column=Column(
            PG_UUID(as_uuid=True),
            ForeignKey("profiles.id", ondelete="SET NULL"),
            nullable=True,
            index=True,
        ),
    )
    referrer_name: str = Field(max_length=120, nullable=False)

    # Attribution of whoever typed the lead in
    created_by_id: uuid_pkg.UUID | None = Field(default=None)
    created_by_name: str | None = Field(default=None, max_length=120)
    created_by_role: str | None = Field(default=None, max_length=20)

    lead_name: str = Field(max_length=120, nullable=False, index=True)
    lead_phone: str = Field(max_length=30, nullable=False)

    status: str = Field(
        default=ReferralStatus.NEW.value,
        sa_column=Column(String(20), nullable=False, server_default="new", index=True),
    )
    converted_plan_id: str | None = Field(default=None, max_length=40)

    # Lead-refers-lead chain
    referred_by_lead_id: uuid_pkg.UUID | None = Field(
        default=None,
        sa_column=Column(
            PG_UUID(as_uuid=True),
            ForeignKey("referrals.id", ondelete="SET NULL"),
            nullable=True,
            index=True,
        ),
    )
    lead_points: int = Field(default=0, nullable=False, sa_column_kwargs={"server_default": "0"})

    organization_id: uuid_pkg.UUID | None = Field(default=None, foreign_key="organizations.id")

    # Workflow metadata (independent of the points ledger)
    contact_tag: str | None = Field(default=None, max_length=40)
    tags: list[str] = Field(
        default_factory=list,
        sa_column=Column(ARRAY(String), nullable=False, server_default=text("'{}'::text[]")),
    )
    notes: str | None = Field(default=None)
    is_qualified: bool | None = Field(default=None)
    is_client: bool = Field(default=False, nullable=False)
    client_since: datetime | None = Field(
        default=None,
        sa_type=DateTime(timezone=True),  # type: ignore[call-overload]
    )
    follow_up_date: datetime | None = Field(
        default=None,
        sa_type=DateTime(timezone=True),  # type: ignore[call-overload]
        index=True,
    )
    follow_up_note: str | None = Field(default=None)

    @property
    def is_converted(self) -> bool:
        return self.status == ReferralStatus.CONVERTED.value


# Request schemas
class LeadCreate(SQLModel):
    """Schema for registering a lead credited to a profile."""

    referrer_id: uuid_pkg.UUID
    lead_name: str = Field(min_length=1, max_length=120)
    lead_phone: str

    @field_validator("lead_phone")
    @classmethod
    def _valid_phone(cls, value: str) -> str:
        if not is_valid_phone(value):
            raise ValueError("Phone number must have 10 or 11 digits")
        return value


class LeadViaLeadCreate(SQLModel):
    """Schema for registering a lead introduced by another lead."""

    referring_lead_id: uuid_pkg.UUID
    lead_name: str = Field(min_length=1, max_length=120)
    lead_phone: str

    @field_validator("lead_phone")
    @classmethod
    def _valid_phone(cls, value: str) -> str:
        if not is_valid_phone(value):
            raise ValueError("Phone number must have 10 or 11 digits")
        return value


class ClientCreate(SQLModel):
    """Schema for recording an existing customer."""

    referrer_id: uuid_pkg.UUID
    client_name: str = Field(min_length=1, max_length=120)
    client_phone: str

    @field_validator("client_phone")
    @classmethod
    def _valid_phone(cls, value: str) -> str:
        if not is_valid_phone(value):
            raise ValueError("Phone number must have 10 or 11 digits")
        return value


class ConversionCreate(SQLModel):
    """Schema for confirming a conversion."""

    plan_id: str


class ContactTagUpdate(SQLModel):
    contact_tag: str | None = None


class TagsUpdate(SQLModel):
    tags: list[str]


class NotesUpdate(SQLModel):
    notes: str


class FollowUpUpdate(SQLModel):
    follow_up_date: datetime
    follow_up_note: str | None = None


class QualificationUpdate(SQLModel):
    is_qualified: bool


class ClientFlagUpdate(SQLModel):
    is_client: bool


class ReferringLeadUpdate(SQLModel):
    referred_by_lead_id: uuid_pkg.UUID | None = None
