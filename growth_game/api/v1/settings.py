"""CRM settings endpoints: tags, kanban columns and WhatsApp message templates.

Reads return the effective value (saved overlay or built-in default).
Writes are queued for the debounced write-behind flush and answered with the
new value straight away.
"""

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel

from growth_game.api.deps import AdminUser, RlsSession, StaffUser
from growth_game.domain import overlay_operations as overlays
from growth_game.domain.overlay_operations import overlay_ops
from growth_game.models.crm_setting import SettingKey

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/settings", tags=["settings"])

_TAG_SCOPES = {"lead": SettingKey.TAGS, "client": SettingKey.CLIENT_TAGS}
_COLUMN_SCOPES = {"lead": SettingKey.LEAD_COLUMNS, "client": SettingKey.CLIENT_COLUMNS}
_MESSAGE_SCOPES = {"lead": SettingKey.LEAD_MESSAGE, "client": SettingKey.CLIENT_MESSAGE}


# ─────────────────────────────────────────────────────────────────────────────
# Request Schemas
# ─────────────────────────────────────────────────────────────────────────────


class TagCreate(BaseModel):
    label: str
    color: str | None = None


class TagUpdate(BaseModel):
    label: str | None = None
    color: str | None = None


class ColumnCreate(BaseModel):
    title: str
    color: str | None = None


class ColumnUpdate(BaseModel):
    title: str | None = None
    color: str | None = None


class MessageUpdate(BaseModel):
    template: str


class MessageRead(BaseModel):
    template: str


def _scope_key(scopes: dict[str, SettingKey], scope: str) -> SettingKey:
    key = scopes.get(scope)
    if key is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown scope '{scope}', expected one of {sorted(scopes)}",
        )
    return key


def _apply(edit: Any, *args: Any) -> Any:
    """Run a pure overlay edit, mapping its errors to HTTP responses."""
    try:
        return edit(*args)
    except LookupError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e


# ─────────────────────────────────────────────────────────────────────────────
# Tags
# ─────────────────────────────────────────────────────────────────────────────


@router.get("/tags/{scope}")
async def get_tags(scope: str, db: RlsSession, current_user: StaffUser) -> list[dict[str, Any]]:
    return await overlay_ops.get(db, _scope_key(_TAG_SCOPES, scope))


@router.post("/tags/{scope}", status_code=status.HTTP_201_CREATED)
async def add_tag(
    scope: str,
    data: TagCreate,
    db: RlsSession,
    current_user: StaffUser,
) -> list[dict[str, Any]]:
    key = _scope_key(_TAG_SCOPES, scope)
    tags = _apply(overlays.add_tag, await overlay_ops.get(db, key), data.label, data.color)
    return overlay_ops.save(current_user.user_id, key, tags)


@router.patch("/tags/{scope}/{value}")
async def update_tag(
    scope: str,
    value: str,
    data: TagUpdate,
    db: RlsSession,
    current_user: StaffUser,
) -> list[dict[str, Any]]:
    key = _scope_key(_TAG_SCOPES, scope)
    tags = _apply(
        overlays.update_tag, await overlay_ops.get(db, key), value, data.label, data.color
    )
    return overlay_ops.save(current_user.user_id, key, tags)


@router.delete("/tags/{scope}/{value}")
async def remove_tag(
    scope: str,
    value: str,
    db: RlsSession,
    current_user: StaffUser,
) -> list[dict[str, Any]]:
    key = _scope_key(_TAG_SCOPES, scope)
    tags = overlays.remove_tag(await overlay_ops.get(db, key), value)
    return overlay_ops.save(current_user.user_id, key, tags)


@router.delete("/tags/{scope}")
async def reset_tags(scope: str, current_user: AdminUser) -> list[dict[str, Any]]:
    return overlay_ops.reset(current_user.user_id, _scope_key(_TAG_SCOPES, scope))


# ─────────────────────────────────────────────────────────────────────────────
# Kanban columns
# ─────────────────────────────────────────────────────────────────────────────


@router.get("/columns/{scope}")
async def get_columns(scope: str, db: RlsSession, current_user: StaffUser) -> list[dict[str, Any]]:
    return await overlay_ops.get(db, _scope_key(_COLUMN_SCOPES, scope))


@router.post("/columns/{scope}", status_code=status.HTTP_201_CREATED)
async def add_column(
    scope: str,
    data: ColumnCreate,
    db: RlsSession,
    current_user: StaffUser,
) -> list[dict[str, Any]]:
    key = _scope_key(_COLUMN_SCOPES, scope)
    columns = _apply(overlays.add_column, await overlay_ops.get(db, key), data.title, data.color)
    return overlay_ops.save(current_user.user_id, key, columns)


@router.patch("/columns/{scope}/{column_id}")
async def update_column(
    scope: str,
    column_id: str,
    data: ColumnUpdate,
    db: RlsSession,
    current_user: StaffUser,
) -> list[dict[str, Any]]:
    key = _scope_key(_COLUMN_SCOPES, scope)
    columns = _apply(
        overlays.update_column, await overlay_ops.get(db, key), column_id, data.title, data.color
    )
    return overlay_ops.save(current_user.user_id, key, columns)


@router.delete("/columns/{scope}/{column_id}")
async def remove_column(
    scope: str,
    column_id: str,
    db: RlsSession,
    current_user: StaffUser,
) -> list[dict[str, Any]]:
    key = _scope_key(_COLUMN_SCOPES, scope)
    columns = _apply(overlays.remove_column, await overlay_ops.get(db, key), column_id)
    return overlay_ops.save(current_user.user_id, key, columns)


@router.delete("/columns/{scope}")
async def reset_columns(scope: str, current_user: AdminUser) -> list[dict[str, Any]]:
    return overlay_ops.reset(current_user.user_id, _scope_key(_COLUMN_SCOPES, scope))


# ─────────────────────────────────────────────────────────────────────────────
# Message templates
# ─────────────────────────────────────────────────────────────────────────────


@router.get("/messages/{scope}", response_model=MessageRead)
async def get_message(scope: str, db: RlsSession, current_user: StaffUser) -> MessageRead:
    template = await overlay_ops.get_message(db, _scope_key(_MESSAGE_SCOPES, scope))
    return MessageRead(template=template)


@router.put("/messages/{scope}", response_model=MessageRead)
async def save_message(scope: str, data: MessageUpdate, current_user: AdminUser) -> MessageRead:
    """Save a template. A blank template restores the default."""
    key = _scope_key(_MESSAGE_SCOPES, scope)
    template = overlays.resolve_message(key, data.template)
    overlay_ops.save(current_user.user_id, key, template)
    return MessageRead(template=template)


@router.delete("/messages/{scope}", response_model=MessageRead)
async def reset_message(scope: str, current_user: AdminUser) -> MessageRead:
    return MessageRead(
        template=overlay_ops.reset(current_user.user_id, _scope_key(_MESSAGE_SCOPES, scope))
    )
