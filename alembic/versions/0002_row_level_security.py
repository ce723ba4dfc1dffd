"""row_level_security

Revision ID: 0002_row_level_security
Revises: 0001_initial_schema
Create Date: 2026-10-19 10:30:00.000000

Enables Row-Level Security on every table.

The API sets request.jwt.claim.sub per transaction (growth_game/core/rls.py),
so Supabase's auth.uid() resolves to the caller inside policies.

Helper functions:
- app_role() - role of the current user from user_roles
- is_staff() - owner, admin or barber
- is_admin() - owner or admin

Both helpers use SECURITY DEFINER so reading user_roles from inside a
policy does not recurse into the user_roles policies.
"""

from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0002_row_level_security"
down_revision: Union[str, None] = "0001_initial_schema"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

TABLES = (
    "organizations",
    "profiles",
    "user_roles",
    "referrals",
    "lead_history",
    "crm_settings",
)


def upgrade() -> None:
    """Create helper functions, enable RLS and add policies."""
    # Each statement must be in a separate op.execute() for asyncpg compatibility
    op.execute("""
        CREATE OR REPLACE FUNCTION app_role()
        RETURNS TEXT AS $$
            SELECT role FROM user_roles WHERE user_id = auth.uid();
        $$ LANGUAGE sql STABLE SECURITY DEFINER
    """)

    op.execute("""
        CREATE OR REPLACE FUNCTION is_staff()
        RETURNS BOOLEAN AS $$
            SELECT COALESCE(app_role() IN ('owner', 'admin', 'barber'), false);
        $$ LANGUAGE sql STABLE SECURITY DEFINER
    """)

    op.execute("""
        CREATE OR REPLACE FUNCTION is_admin()
        RETURNS BOOLEAN AS $$
            SELECT COALESCE(app_role() IN ('owner', 'admin'), false);
        $$ LANGUAGE sql STABLE SECURITY DEFINER
    """)

    for table in TABLES:
        op.execute(f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY")

    # =========================================================================
    # organizations / profiles / user_roles
    # =========================================================================
    op.execute("""
        CREATE POLICY organizations_select ON organizations
            FOR SELECT
            USING (auth.uid() IS NOT NULL)
    """)

    # Everyone signed in can read profiles (rankings show names and points)
    op.execute("""
        CREATE POLICY profiles_select ON profiles
            FOR SELECT
            USING (auth.uid() IS NOT NULL)
    """)
    op.execute("""
        CREATE POLICY profiles_staff_write ON profiles
            FOR ALL
            USING (is_staff() OR user_id = auth.uid())
            WITH CHECK (is_staff() OR user_id = auth.uid())
    """)

    op.execute("""
        CREATE POLICY user_roles_select ON user_roles
            FOR SELECT
            USING (user_id = auth.uid() OR is_staff())
    """)
    op.execute("""
        CREATE POLICY user_roles_admin_write ON user_roles
            FOR ALL
            USING (is_admin())
            WITH CHECK (is_admin())
    """)

    # =========================================================================
    # referrals / lead_history
    # =========================================================================
    # Clients see the referrals credited to their own profile
    op.execute("""
        CREATE POLICY referrals_select ON referrals
            FOR SELECT
            USING (
                is_staff()
                OR referrer_id IN (SELECT id FROM profiles WHERE user_id = auth.uid())
            )
    """)
    op.execute("""
        CREATE POLICY referrals_insert ON referrals
            FOR INSERT
            WITH CHECK (
                is_staff()
                OR referrer_id IN (SELECT id FROM profiles WHERE user_id = auth.uid())
            )
    """)
    op.execute("""
        CREATE POLICY referrals_staff_update ON referrals
            FOR UPDATE
            USING (is_staff())
            WITH CHECK (is_staff())
    """)
    op.execute("""
        CREATE POLICY referrals_admin_delete ON referrals
            FOR DELETE
            USING (is_admin())
    """)

    # Timeline is append-only: no UPDATE or DELETE policy
    op.execute("""
        CREATE POLICY lead_history_select ON lead_history
            FOR SELECT
            USING (is_staff())
    """)
    op.execute("""
        CREATE POLICY lead_history_insert ON lead_history
            FOR INSERT
            WITH CHECK (auth.uid() IS NOT NULL)
    """)

    # =========================================================================
    # crm_settings
    # =========================================================================
    # Global overlays are read from any row, so staff read them all
    op.execute("""
        CREATE POLICY crm_settings_select ON crm_settings
            FOR SELECT
            USING (user_id = auth.uid() OR is_staff())
    """)
    op.execute("""
        CREATE POLICY crm_settings_own_write ON crm_settings
            FOR ALL
            USING (user_id = auth.uid())
            WITH CHECK (user_id = auth.uid())
    """)


def downgrade() -> None:
    """Drop policies, disable RLS and remove helpers."""
    policies = {
        "organizations": ["organizations_select"],
        "profiles": ["profiles_select", "profiles_staff_write"],
        "user_roles": ["user_roles_select", "user_roles_admin_write"],
        "referrals": [
            "referrals_select",
            "referrals_insert",
            "referrals_staff_update",
            "referrals_admin_delete",
        ],
        "lead_history": ["lead_history_select", "lead_history_insert"],
        "crm_settings": ["crm_settings_select", "crm_settings_own_write"],
    }
    for table, names in policies.items():
        for name in names:
            op.execute(f"DROP POLICY IF EXISTS {name} ON {table}")
        op.execute(f"ALTER TABLE {table} DISABLE ROW LEVEL SECURITY")

    op.execute("DROP FUNCTION IF EXISTS is_admin()")
    op.execute("DROP FUNCTION IF EXISTS is_staff()")
    op.execute("DROP FUNCTION IF EXISTS app_role()")
