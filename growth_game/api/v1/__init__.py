from growth_game.api.v1 import (
    notifications,
    plans,
    rankings,
    referrals,
    settings,
    team,
    users,
)

__all__ = [
    "referrals",
    "rankings",
    "plans",
    "settings",
    "team",
    "notifications",
    "users",
]
