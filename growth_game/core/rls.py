"""Row-Level Security (RLS) context management.

Supabase RLS policies call auth.uid(), which reads the
request.jwt.claim.sub setting. When the API talks to Postgres over its own
connection that claim has to be set explicitly for each transaction.

SET LOCAL (via set_config(..., true)) keeps the setting transaction-scoped,
which works with the PgBouncer transaction pooler.
"""

from uuid import UUID

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

RLS_CLAIM_SETTING = "request.jwt.claim.sub"


async def set_rls_user_context(session: AsyncSession, user_id: UUID) -> None:
    """
    Set the authenticated user for RLS policies in the current transaction.

    Args:
        session: The async database session
        user_id: The authenticated user's UUID (Supabase auth.users id)
    """
    await session.execute(
        text("SELECT set_config(:setting, :user_id, true)"),
        {"setting": RLS_CLAIM_SETTING, "user_id": str(user_id)},
    )
