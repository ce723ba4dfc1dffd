"""keep_referrals_on_profile_delete

Revision ID: 0003_keep_referrals_on_profile_delete
Revises: 0002_row_level_security
Create Date: 2026-10-19 16:00:00.000000

Removing a team member used to cascade into their referrals and the lead
history under them. referrals.referrer_id becomes nullable and is cleared
instead; referrer_name still carries who brought the lead in.
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0003_keep_referrals_on_profile_delete"
down_revision: Union[str, None] = "0002_row_level_security"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Postgres default name for the unnamed constraint created in 0001
FK_NAME = "referrals_referrer_id_fkey"


def upgrade() -> None:
    """Switch the referrer foreign key to ON DELETE SET NULL."""
    op.drop_constraint(FK_NAME, "referrals", type_="foreignkey")
    op.alter_column("referrals", "referrer_id", existing_type=sa.UUID(), nullable=True)
    op.create_foreign_key(
        FK_NAME, "referrals", "profiles", ["referrer_id"], ["id"], ondelete="SET NULL"
    )


def downgrade() -> None:
    """Restore the cascading, non-null referrer foreign key.

    Orphaned referrals cannot satisfy NOT NULL and are deleted first.
    """
    op.drop_constraint(FK_NAME, "referrals", type_="foreignkey")
    op.execute("DELETE FROM referrals WHERE referrer_id IS NULL")
    op.alter_column("referrals", "referrer_id", existing_type=sa.UUID(), nullable=False)
    op.create_foreign_key(
        FK_NAME, "referrals", "profiles", ["referrer_id"], ["id"], ondelete="CASCADE"
    )
