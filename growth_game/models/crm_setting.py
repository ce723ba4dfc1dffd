"""CRM setting model - per-user key/value configuration overlays."""

import uuid as uuid_pkg
from enum import Enum
from typing import Any

from sqlalchemy import Column, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field, SQLModel

from growth_game.models.base import TimestampMixin, UUIDMixin


class SettingKey(str, Enum):
    """Logical names of the persisted overlays."""

    TAGS = "tags"
    CLIENT_TAGS = "client_tags"
    PLAN_OVERRIDES = "plan_overrides"
    LEAD_MESSAGE = "lead_message"
    CLIENT_MESSAGE = "client_message"
    LEAD_COLUMNS = "lead_columns"
    CLIENT_COLUMNS = "client_columns"
    DISMISSED_NOTIFICATIONS = "dismissed_notifications"


class CrmSetting(UUIDMixin, TimestampMixin, SQLModel, table=True):
    """
    One overlay value per (user, key).

    Global configuration is whichever admin row exists first for a key.
    Writes are last-write-wins; there is no revision column.
    """

    __tablename__ = "crm_settings"
    __table_args__ = (
        UniqueConstraint("user_id", "setting_key", name="uq_crm_settings_user_key"),
    )

    user_id: uuid_pkg.UUID = Field(nullable=False, index=True)
    setting_key: str = Field(sa_column=Column(String(50), nullable=False, index=True))
    setting_value: Any = Field(default=None, sa_column=Column(JSONB))
