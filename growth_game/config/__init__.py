"""Configuration package."""

from growth_game.config.plans import REWARD_PLANS, RewardPlan, get_plan, get_reward_plans
from growth_game.config.settings import Settings, settings

__all__ = [
    "RewardPlan",
    "REWARD_PLANS",
    "get_plan",
    "get_reward_plans",
    "Settings",
    "settings",
]
