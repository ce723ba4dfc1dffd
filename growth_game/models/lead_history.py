"""Lead history model - append-only timeline of a referral."""

import uuid as uuid_pkg
from enum import Enum
from typing import Any

from sqlalchemy import Column, ForeignKey, Index, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlmodel import Field, SQLModel

from growth_game.models.base import CreatedAtMixin, UUIDMixin


class LeadEventType(str, Enum):
    """Types of timeline events."""

    CREATED = "created"
    STATUS_CHANGE = "status_change"
    TAG_CHANGE = "tag_change"
    QUALIFICATION_CHANGE = "qualification_change"
    NOTE_ADDED = "note_added"
    WHATSAPP_CONTACT = "whatsapp_contact"
    CONVERSION = "conversion"


class LeadHistory(UUIDMixin, CreatedAtMixin, SQLModel, table=True):
    """
    A single timeline event. Rows are never updated or deleted by the app;
    they go away only when the referral itself is deleted (FK cascade).
    """

    __tablename__ = "lead_history"
    __table_args__ = (Index("ix_lead_history_referral_created", "referral_id", "created_at"),)

    referral_id: uuid_pkg.UUID = Field(
        sa_column=Column(
            PG_UUID(as_uuid=True),
            ForeignKey("referrals.id", ondelete="CASCADE"),
            nullable=False,
        ),
    )
    event_type: str = Field(sa_column=Column(String(40), nullable=False))
    event_data: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSONB))
    created_by_id: uuid_pkg.UUID | None = Field(default=None)
    created_by_name: str | None = Field(default=None, max_length=120)


class HistoryEventCreate(SQLModel):
    """Schema for manually appending a timeline event."""

    event_type: LeadEventType
    event_data: dict[str, Any] = {}
