import uuid as uuid_pkg

from fastapi import APIRouter
from pydantic import BaseModel

from growth_game.api.deps import CurrentUser, RlsSession, StaffUser
from growth_game.domain.profile_operations import profile_ops
from growth_game.models.profile import AppRole

router = APIRouter(prefix="/users", tags=["users"])


class ProfileRead(BaseModel):
    """Profile (points wallet) response."""

    id: uuid_pkg.UUID
    user_id: uuid_pkg.UUID
    name: str
    phone: str | None = None
    organization_id: uuid_pkg.UUID | None = None
    wallet_balance: int
    lifetime_points: int

    class Config:
        from_attributes = True


class MeRead(BaseModel):
    user_id: uuid_pkg.UUID
    email: str | None
    role: str | None
    profile: ProfileRead | None


@router.get("/me", response_model=MeRead)
async def get_me(current_user: CurrentUser) -> MeRead:
    """Current user's role and wallet."""
    return MeRead(
        user_id=current_user.user_id,
        email=current_user.email,
        role=current_user.role,
        profile=ProfileRead.model_validate(current_user.profile) if current_user.profile else None,
    )


@router.get("/barbers", response_model=list[ProfileRead])
async def list_barbers(db: RlsSession, current_user: CurrentUser) -> list[ProfileRead]:
    """Barbers ordered by name."""
    profiles = await profile_ops.list_by_role(db, AppRole.BARBER.value)
    return [ProfileRead.model_validate(p) for p in profiles]


@router.get("/clients", response_model=list[ProfileRead])
async def list_clients(db: RlsSession, current_user: StaffUser) -> list[ProfileRead]:
    """Client profiles ordered by name."""
    profiles = await profile_ops.list_by_role(db, AppRole.CLIENT.value)
    return [ProfileRead.model_validate(p) for p in profiles]
