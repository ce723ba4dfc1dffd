"""Configuration overlays: tags, kanban columns, plan overrides, message templates.

Each overlay is a list or map stored in crm_settings and merged over built-in
defaults at read time. The mutation helpers are pure: they take the current
value and return the new one, which the caller hands to the settings syncer.
"""

import re
import uuid as uuid_pkg
from copy import deepcopy
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from growth_game.config.plans import RewardPlan, get_reward_plans, normalize_plan_overrides
from growth_game.domain.settings_operations import settings_ops
from growth_game.models.crm_setting import SettingKey
from growth_game.services.settings_sync import settings_syncer
from growth_game.utils.whatsapp import DEFAULT_CLIENT_MESSAGE, DEFAULT_LEAD_MESSAGE

DEFAULT_TAGS: list[dict[str, Any]] = [
    {"value": "sql", "label": "SQL", "color": "green"},
    {"value": "mql", "label": "MQL", "color": "blue"},
    {"value": "cold", "label": "Frio", "color": "neutral"},
    {"value": "scheduled", "label": "Marcou", "color": "accent"},
]

DEFAULT_LEAD_COLUMNS: list[dict[str, Any]] = [
    {"id": "new", "title": "Novos", "color": "blue", "is_default": True},
    {"id": "contacted", "title": "Contatados", "color": "orange", "is_default": True},
    {"id": "converted", "title": "Convertidos", "color": "green", "is_default": True},
]

DEFAULT_CLIENT_COLUMNS: list[dict[str, Any]] = [
    {"id": "active", "title": "Ativos", "color": "green", "is_default": True},
    {"id": "vip", "title": "VIP", "color": "purple", "is_default": True},
    {"id": "inactive", "title": "Inativos", "color": "gray", "is_default": True},
]

_DEFAULTS: dict[SettingKey, Any] = {
    SettingKey.TAGS: DEFAULT_TAGS,
    SettingKey.CLIENT_TAGS: DEFAULT_TAGS,
    SettingKey.LEAD_COLUMNS: DEFAULT_LEAD_COLUMNS,
    SettingKey.CLIENT_COLUMNS: DEFAULT_CLIENT_COLUMNS,
    SettingKey.PLAN_OVERRIDES: {},
    SettingKey.LEAD_MESSAGE: DEFAULT_LEAD_MESSAGE,
    SettingKey.CLIENT_MESSAGE: DEFAULT_CLIENT_MESSAGE,
}

TAG_KEYS = (SettingKey.TAGS, SettingKey.CLIENT_TAGS)
COLUMN_KEYS = (SettingKey.LEAD_COLUMNS, SettingKey.CLIENT_COLUMNS)
MESSAGE_KEYS = (SettingKey.LEAD_MESSAGE, SettingKey.CLIENT_MESSAGE)

_WHITESPACE = re.compile(r"\s+")
_NON_SLUG = re.compile(r"[^a-z0-9_]")


def slugify(label: str) -> str:
    """Lowercase, whitespace to underscores, drop anything else non-alphanumeric."""
    return _NON_SLUG.sub("", _WHITESPACE.sub("_", label.strip().lower()))


def default_for(key: SettingKey) -> Any:
    return deepcopy(_DEFAULTS.get(key))


# ─────────────────────────────────────────────────────────────────────────────
# Tags
# ─────────────────────────────────────────────────────────────────────────────


def add_tag(tags: list[dict[str, Any]], label: str, color: str | None = None) -> list[dict[str, Any]]:
    """Append a tag built from its label. Adding an existing value changes nothing."""
    value = slugify(label)
    if not value:
        raise ValueError("Tag label must contain letters or digits")
    if any(tag.get("value") == value for tag in tags):
        return list(tags)
    return [*tags, {"value": value, "label": label.strip(), "color": color or "neutral"}]


def update_tag(
    tags: list[dict[str, Any]],
    value: str,
    label: str | None = None,
    color: str | None = None,
) -> list[dict[str, Any]]:
    if not any(tag.get("value") == value for tag in tags):
        raise LookupError(f"Tag '{value}' not found")
    updated: list[dict[str, Any]] = []
    for tag in tags:
        if tag.get("value") == value:
            tag = {**tag}
            if label is not None and label.strip():
                tag["label"] = label.strip()
            if color is not None:
                tag["color"] = color
        updated.append(tag)
    return updated


def remove_tag(tags: list[dict[str, Any]], value: str) -> list[dict[str, Any]]:
    return [tag for tag in tags if tag.get("value") != value]


# ─────────────────────────────────────────────────────────────────────────────
# Kanban columns
# ─────────────────────────────────────────────────────────────────────────────


def add_column(columns: list[dict[str, Any]], title: str, color: str | None = None) -> list[dict[str, Any]]:
    column_id = slugify(title)
    if not column_id:
        raise ValueError("Column title must contain letters or digits")
    if any(column.get("id") == column_id for column in columns):
        raise ValueError(f"Column '{column_id}' already exists")
    return [*columns, {"id": column_id, "title": title.strip(), "color": color or "gray", "is_default": False}]


def update_column(
    columns: list[dict[str, Any]],
    column_id: str,
    title: str | None = None,
    color: str | None = None,
) -> list[dict[str, Any]]:
    if not any(column.get("id") == column_id for column in columns):
        raise LookupError(f"Column '{column_id}' not found")
    updated: list[dict[str, Any]] = []
    for column in columns:
        if column.get("id") == column_id:
            column = {**column}
            if title is not None and title.strip():
                column["title"] = title.strip()
            if color is not None:
                column["color"] = color
        updated.append(column)
    return updated


def remove_column(columns: list[dict[str, Any]], column_id: str) -> list[dict[str, Any]]:
    """Drop a custom column. Default columns cannot be removed."""
    target = next((column for column in columns if column.get("id") == column_id), None)
    if target is None:
        raise LookupError(f"Column '{column_id}' not found")
    if target.get("is_default"):
        raise ValueError("Default columns cannot be removed")
    return [column for column in columns if column.get("id") != column_id]


# ─────────────────────────────────────────────────────────────────────────────
# Messages
# ─────────────────────────────────────────────────────────────────────────────


def resolve_message(key: SettingKey, template: str | None) -> str:
    """A blank template falls back to the built-in one."""
    if template is None or not template.strip():
        return _DEFAULTS[key]
    return template


# ─────────────────────────────────────────────────────────────────────────────
# Reading and writing overlays
# ─────────────────────────────────────────────────────────────────────────────


class OverlayOperations:
    """
    Effective overlay values.

    Values waiting in the write-behind syncer take precedence over the
    database, so a read right after a write sees the write.
    """

    async def get(self, db: AsyncSession, key: SettingKey) -> Any:
        pending = settings_syncer.pending_value(key)
        if pending is not None:
            return deepcopy(pending)
        stored = await settings_ops.get_global(db, key)
        if stored is None:
            return default_for(key)
        return stored

    def save(self, user_id: uuid_pkg.UUID, key: SettingKey, value: Any) -> Any:
        """Queue a new value for the debounced write and return it."""
        settings_syncer.schedule(user_id, key, value)
        return value

    def reset(self, user_id: uuid_pkg.UUID, key: SettingKey) -> Any:
        return self.save(user_id, key, default_for(key))

    async def get_message(self, db: AsyncSession, key: SettingKey) -> str:
        return resolve_message(key, await self.get(db, key))

    async def get_plan_overrides(self, db: AsyncSession) -> dict[str, Any]:
        overrides = await self.get(db, SettingKey.PLAN_OVERRIDES)
        return overrides if isinstance(overrides, dict) else {}

    async def get_effective_plans(self, db: AsyncSession) -> dict[str, RewardPlan]:
        return get_reward_plans(await self.get_plan_overrides(db))

    def save_plan_overrides(self, user_id: uuid_pkg.UUID, raw: dict[str, Any]) -> dict[str, Any]:
        return self.save(user_id, SettingKey.PLAN_OVERRIDES, normalize_plan_overrides(raw))


overlay_ops = OverlayOperations()
