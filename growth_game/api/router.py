from fastapi import APIRouter

from growth_game.api.v1 import (
    notifications,
    plans,
    rankings,
    referrals,
    settings,
    team,
    users,
)

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(referrals.router)
api_router.include_router(rankings.router)
api_router.include_router(plans.router)
api_router.include_router(settings.router)
api_router.include_router(team.router)
api_router.include_router(notifications.router)
api_router.include_router(users.router)
