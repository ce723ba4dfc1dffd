"""Profile (points wallet) and role models - mirror Supabase auth users."""

import uuid as uuid_pkg
from enum import Enum

from sqlalchemy import CheckConstraint, Column, ForeignKey, String
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlmodel import Field, SQLModel

from growth_game.models.base import CreatedAtMixin, TimestampMixin, UUIDMixin


class AppRole(str, Enum):
    """Role of an authenticated user."""

    OWNER = "owner"  # Barbershop owner, full access
    ADMIN = "admin"  # Full access
    BARBER = "barber"  # Staff member, registers and works leads
    CLIENT = "client"  # Customer who refers friends


class Profile(UUIDMixin, TimestampMixin, SQLModel, table=True):
    """
    Profile model - the points wallet of a person.

    wallet_balance is spendable, lifetime_points is the monotonic historical
    total used for ranking. Both grow together when points are awarded.
    """

    __tablename__ = "profiles"
    __table_args__ = (
        CheckConstraint("wallet_balance >= 0", name="ck_profiles_wallet_non_negative"),
    )

    user_id: uuid_pkg.UUID = Field(
        nullable=False,
        index=True,
        unique=True,
        description="UUID from Supabase auth.users",
    )
    name: str = Field(default="", max_length=120, nullable=False)
    phone: str | None = Field(default=None, max_length=30)
    organization_id: uuid_pkg.UUID | None = Field(
        default=None,
        sa_column=Column(
            PG_UUID(as_uuid=True),
            ForeignKey("organizations.id", ondelete="SET NULL"),
            nullable=True,
            index=True,
        ),
    )
    wallet_balance: int = Field(default=0, nullable=False, sa_column_kwargs={"server_default": "0"})
    lifetime_points: int = Field(
        default=0, nullable=False, sa_column_kwargs={"server_default": "0"}
    )


class UserRole(UUIDMixin, CreatedAtMixin, SQLModel, table=True):
    """Role assignment for an auth user (one role per user)."""

    __tablename__ = "user_roles"

    user_id: uuid_pkg.UUID = Field(nullable=False, index=True, unique=True)
    role: str = Field(
        default=AppRole.BARBER.value,
        sa_column=Column(String(20), nullable=False),
    )
