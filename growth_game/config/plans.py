"""Reward plan catalog - point value and price of each tier sold to a referral."""

import math
from dataclasses import dataclass, replace
from typing import Any

from growth_game.config.settings import settings


@dataclass(frozen=True)
class RewardPlan:
    """A (tier, type) combination carrying a fixed point value and price."""

    plan_id: str
    label: str
    points: int
    price: int  # BRL, whole units
    tier: str  # 'prata', 'gold', 'vip'
    type: str  # 'corte', 'completo'

    def to_dict(self) -> dict[str, Any]:
        """Return the plan as a dictionary for API responses."""
        return {
            "id": self.plan_id,
            "label": self.label,
            "points": self.points,
            "price": self.price,
            "tier": self.tier,
            "type": self.type,
        }


REWARD_PLANS: dict[str, RewardPlan] = {
    # Prata (entry)
    "prata_corte": RewardPlan("prata_corte", "Prata - Corte", 30, 45, "prata", "corte"),
    "prata_completo": RewardPlan("prata_completo", "Prata - Completo", 50, 70, "prata", "completo"),
    # Gold (intermediate)
    "gold_corte": RewardPlan("gold_corte", "Gold - Corte", 80, 110, "gold", "corte"),
    "gold_completo": RewardPlan("gold_completo", "Gold - Completo", 120, 160, "gold", "completo"),
    # VIP (premium)
    "vip_corte": RewardPlan("vip_corte", "VIP - Corte", 200, 220, "vip", "corte"),
    "vip_completo": RewardPlan("vip_completo", "VIP - Completo", 400, 320, "vip", "completo"),
}

PLAN_TIERS: tuple[str, ...] = ("prata", "gold", "vip")


def _coerce_number(value: Any, fallback: int) -> int:
    """Parse an override value, falling back to the catalog value when unusable."""
    if value is None or (isinstance(value, str) and value.strip() == ""):
        return fallback
    try:
        number = float(value)
    except (TypeError, ValueError):
        return fallback
    if not math.isfinite(number):
        return fallback
    return int(round(number))


def get_reward_plans(overrides: dict[str, Any] | None = None) -> dict[str, RewardPlan]:
    """
    Get the effective plan catalog.

    Overrides are a patch map ``{plan_id: {"points": ..., "price": ...}}``
    merged over the built-in catalog. Unknown plan ids in the patch are ignored.
    """
    if not overrides:
        return dict(REWARD_PLANS)

    plans: dict[str, RewardPlan] = {}
    for plan_id, base in REWARD_PLANS.items():
        patch = overrides.get(plan_id)
        if not isinstance(patch, dict):
            plans[plan_id] = base
            continue
        plans[plan_id] = replace(
            base,
            points=_coerce_number(patch.get("points"), base.points),
            price=_coerce_number(patch.get("price"), base.price),
        )
    return plans


def normalize_plan_overrides(raw: dict[str, Any]) -> dict[str, dict[str, int]]:
    """Turn a submitted override draft into a complete, numeric patch map."""
    normalized: dict[str, dict[str, int]] = {}
    for plan_id, base in REWARD_PLANS.items():
        draft = raw.get(plan_id) or {}
        normalized[plan_id] = {
            "points": _coerce_number(draft.get("points"), base.points),
            "price": _coerce_number(draft.get("price"), base.price),
        }
    return normalized


def get_plan(plan_id: str, overrides: dict[str, Any] | None = None) -> RewardPlan | None:
    """Get a plan by id from the effective catalog, or None if unknown."""
    return get_reward_plans(overrides).get(plan_id)


def get_plan_points(plan_id: str, overrides: dict[str, Any] | None = None) -> int:
    """Get the point value of a plan, 0 when the plan is unknown."""
    plan = get_plan(plan_id, overrides)
    return plan.points if plan else 0


def get_barber_referral_share_points(
    plan_id: str,
    overrides: dict[str, Any] | None = None,
    percent: int | None = None,
) -> int:
    """
    Points the staff member would receive for a lead-driven conversion.

    Rounded to the nearest integer. Not applied by the conversion path.
    """
    if percent is None:
        percent = settings.barber_referral_conversion_percent
    if percent <= 0:
        return 0
    return int(round(get_plan_points(plan_id, overrides) * percent / 100))
