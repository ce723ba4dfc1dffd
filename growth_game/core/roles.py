"""Role hierarchy constants and utilities for application roles."""

from growth_game.models.profile import AppRole

# Hierarchy levels for application roles (higher = more privileges)
ROLE_HIERARCHY: dict[str, int] = {
    AppRole.CLIENT.value: 0,
    AppRole.BARBER.value: 1,
    AppRole.ADMIN.value: 2,
    AppRole.OWNER.value: 3,
}

# Roles an admin may assign when adding a team member
ASSIGNABLE_TEAM_ROLES: frozenset[str] = frozenset({AppRole.OWNER.value, AppRole.BARBER.value})


def get_role_level(role: str | None) -> int:
    """Get the hierarchy level for a role string."""
    if role is None:
        return -1
    return ROLE_HIERARCHY.get(role, 0)


def has_minimum_role(user_role: str | None, required_role: AppRole) -> bool:
    """Check if a user's role meets or exceeds the required role level."""
    return get_role_level(user_role) >= get_role_level(required_role.value)


def normalize_team_role(role: str | None) -> str:
    """Restrict a requested team role to owner/barber, defaulting to barber."""
    if role in ASSIGNABLE_TEAM_ROLES:
        return role  # type: ignore[return-value]
    return AppRole.BARBER.value
