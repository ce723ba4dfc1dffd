"""Team management endpoints. Owner/admin only."""

import logging
import uuid as uuid_pkg

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel

from growth_game.api.deps import AdminUser, AuthContext, RlsSession
from growth_game.domain.team_operations import (
    EmailAlreadyRegisteredError,
    InvalidEmailError,
    MemberNotFoundError,
    SelfRemovalError,
    TeamMember,
    TeamProvisioningError,
    team_ops,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/team", tags=["team"])


class TeamMemberRead(BaseModel):
    user_id: uuid_pkg.UUID
    profile_id: uuid_pkg.UUID
    name: str
    role: str | None
    lifetime_points: int


class TeamMemberCreate(BaseModel):
    name: str
    email: str
    password: str
    role: str | None = None


class TeamMemberCreateResponse(BaseModel):
    success: bool = True
    member: TeamMemberRead


class RemoveMemberResponse(BaseModel):
    success: bool = True


def _member_read(member: TeamMember) -> TeamMemberRead:
    return TeamMemberRead(
        user_id=member.user_id,
        profile_id=member.profile_id,
        name=member.name,
        role=member.role,
        lifetime_points=member.lifetime_points,
    )


def _require_organization(current_user: AuthContext) -> uuid_pkg.UUID:
    organization_id = current_user.organization_id
    if organization_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Your profile is not linked to an organization",
        )
    return organization_id


@router.get("", response_model=list[TeamMemberRead])
async def list_team(db: RlsSession, current_user: AdminUser) -> list[TeamMemberRead]:
    organization_id = _require_organization(current_user)
    members = await team_ops.list_members(db, organization_id)
    return [_member_read(m) for m in members]


@router.post("", response_model=TeamMemberCreateResponse, status_code=status.HTTP_201_CREATED)
async def add_team_member(
    data: TeamMemberCreate,
    db: RlsSession,
    current_user: AdminUser,
) -> TeamMemberCreateResponse:
    """Create a staff account in the caller's organization. Roles other than owner become barber."""
    organization_id = _require_organization(current_user)
    try:
        member = await team_ops.add_member(
            db,
            organization_id,
            name=data.name,
            email=data.email,
            password=data.password,
            role=data.role,
        )
    except (ValueError, InvalidEmailError, EmailAlreadyRegisteredError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except TeamProvisioningError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e)) from e

    return TeamMemberCreateResponse(member=_member_read(member))


@router.delete("/{user_id}", response_model=RemoveMemberResponse)
async def remove_team_member(
    user_id: uuid_pkg.UUID,
    db: RlsSession,
    current_user: AdminUser,
) -> RemoveMemberResponse:
    organization_id = _require_organization(current_user)
    try:
        await team_ops.remove_member(db, current_user.user_id, organization_id, user_id)
    except SelfRemovalError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except MemberNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except TeamProvisioningError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e)) from e

    return RemoveMemberResponse()
