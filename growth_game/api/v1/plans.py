"""Reward plan catalog endpoints."""

from typing import Any

from fastapi import APIRouter
from pydantic import BaseModel

from growth_game.api.deps import AdminUser, CurrentUser, RlsSession
from growth_game.domain.overlay_operations import overlay_ops
from growth_game.models.crm_setting import SettingKey

router = APIRouter(prefix="/plans", tags=["plans"])


class PlanRead(BaseModel):
    id: str
    label: str
    points: int
    price: int
    tier: str
    type: str


class PlanOverridesUpdate(BaseModel):
    """Draft overrides keyed by plan id. Blank or non-numeric values keep the catalog value."""

    overrides: dict[str, dict[str, Any]]


@router.get("", response_model=list[PlanRead])
async def list_plans(db: RlsSession, current_user: CurrentUser) -> list[PlanRead]:
    """Effective catalog: built-in plans with the saved overrides applied."""
    plans = await overlay_ops.get_effective_plans(db)
    return [PlanRead(**plan.to_dict()) for plan in plans.values()]


@router.put("/overrides", response_model=dict[str, dict[str, int]])
async def save_plan_overrides(
    data: PlanOverridesUpdate,
    current_user: AdminUser,
) -> dict[str, dict[str, int]]:
    return overlay_ops.save_plan_overrides(current_user.user_id, data.overrides)


@router.delete("/overrides", response_model=dict[str, Any])
async def reset_plan_overrides(current_user: AdminUser) -> dict[str, Any]:
    """Drop all overrides and fall back to the built-in catalog."""
    return overlay_ops.reset(current_user.user_id, SettingKey.PLAN_OVERRIDES)
