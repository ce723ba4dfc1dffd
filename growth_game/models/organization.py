"""Organization model - the barbershop that owns profiles and referrals."""

from sqlmodel import Field, SQLModel

from growth_game.models.base import CreatedAtMixin, UUIDMixin


class Organization(UUIDMixin, CreatedAtMixin, SQLModel, table=True):
    """
    Organization model - a single barbershop.

    Team members are profiles that share an organization_id. Team management
    only ever operates inside the caller's organization.
    """

    __tablename__ = "organizations"

    name: str = Field(max_length=100, nullable=False)
