"""Supabase admin client for server-side operations."""

from supabase import Client, create_client

from growth_game.config.settings import settings


def get_supabase_admin_client() -> Client:
    """
    Get a Supabase client authenticated with the service role key.

    Only team management uses it: creating confirmed staff accounts and
    deleting them again. Never hand this client to request-scoped code that
    acts on behalf of an end user.
    """
    if not settings.supabase_admin_enabled:
        raise ValueError(
            "SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be configured "
            "for team member management."
        )

    return create_client(
        settings.supabase_url,
        settings.supabase_service_role_key,
    )
