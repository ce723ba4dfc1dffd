"""initial_schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 10:00:00.000000

Creates the Growth Game tables:

1. organizations - one row per barbershop
2. profiles - points wallet of an auth user (wallet_balance, lifetime_points)
3. user_roles - one app role per auth user
4. referrals - the pipeline, with the plan-iff-converted CHECK
5. lead_history - append-only timeline, cascades with its referral
6. crm_settings - per-user JSONB overlays, unique per (user, key)
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id_column() -> sa.Column:
    return sa.Column("id", sa.Uuid(), server_default=sa.text("gen_random_uuid()"), nullable=False)


def _created_at_column() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        server_default=sa.text("now()"),
        nullable=False,
    )


def _updated_at_column() -> sa.Column:
    return sa.Column(
        "updated_at",
        sa.DateTime(timezone=True),
        server_default=sa.text("now()"),
        nullable=False,
    )


def upgrade() -> None:
    # 1. organizations
    op.create_table(
        "organizations",
        _id_column(),
        sa.Column("name", sa.String(length=100), nullable=False),
        _created_at_column(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_organizations_id", "organizations", ["id"], unique=False)

    # 2. profiles
    op.create_table(
        "profiles",
        _id_column(),
        sa.Column("user_id", sa.UUID(), nullable=False, comment="UUID from Supabase auth.users"),
        sa.Column("name", sa.String(length=120), server_default="", nullable=False),
        sa.Column("phone", sa.String(length=30), nullable=True),
        sa.Column("organization_id", sa.UUID(), nullable=True),
        sa.Column("wallet_balance", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("lifetime_points", sa.Integer(), server_default=sa.text("0"), nullable=False),
        _created_at_column(),
        _updated_at_column(),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("wallet_balance >= 0", name="ck_profiles_wallet_non_negative"),
    )
    op.create_index("ix_profiles_id", "profiles", ["id"], unique=False)
    op.create_index("ix_profiles_user_id", "profiles", ["user_id"], unique=True)
    op.create_index("ix_profiles_organization_id", "profiles", ["organization_id"], unique=False)

    # 3. user_roles
    op.create_table(
        "user_roles",
        _id_column(),
        sa.Column("user_id", sa.UUID(), nullable=False),
        sa.Column("role", sa.String(length=20), nullable=False),
        _created_at_column(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_user_roles_id", "user_roles", ["id"], unique=False)
    op.create_index("ix_user_roles_user_id", "user_roles", ["user_id"], unique=True)

    # 4. referrals
    op.create_table(
        "referrals",
        _id_column(),
        sa.Column("referrer_id", sa.UUID(), nullable=False),
        sa.Column("referrer_name", sa.String(length=120), nullable=False),
        sa.Column("created_by_id", sa.UUID(), nullable=True),
        sa.Column("created_by_name", sa.String(length=120), nullable=True),
        sa.Column("created_by_role", sa.String(length=20), nullable=True),
        sa.Column("lead_name", sa.String(length=120), nullable=False),
        sa.Column("lead_phone", sa.String(length=30), nullable=False),
        sa.Column("status", sa.String(length=20), server_default="new", nullable=False),
        sa.Column("converted_plan_id", sa.String(length=40), nullable=True),
        sa.Column("referred_by_lead_id", sa.UUID(), nullable=True),
        sa.Column("lead_points", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("organization_id", sa.UUID(), nullable=True),
        sa.Column("contact_tag", sa.String(length=40), nullable=True),
        sa.Column(
            "tags",
            postgresql.ARRAY(sa.String()),
            server_default=sa.text("'{}'::text[]"),
            nullable=False,
        ),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("is_qualified", sa.Boolean(), nullable=True),
        sa.Column("is_client", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("client_since", sa.DateTime(timezone=True), nullable=True),
        sa.Column("follow_up_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("follow_up_note", sa.Text(), nullable=True),
        _created_at_column(),
        _updated_at_column(),
        sa.ForeignKeyConstraint(["referrer_id"], ["profiles.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["referred_by_lead_id"], ["referrals.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "(converted_plan_id IS NOT NULL) = (status = 'converted')",
            name="ck_referrals_plan_iff_converted",
        ),
        sa.CheckConstraint(
            "referred_by_lead_id IS NULL OR referred_by_lead_id <> id",
            name="ck_referrals_not_self_referred",
        ),
    )
    op.create_index("ix_referrals_id", "referrals", ["id"], unique=False)
    op.create_index("ix_referrals_referrer_id", "referrals", ["referrer_id"], unique=False)
    op.create_index("ix_referrals_lead_name", "referrals", ["lead_name"], unique=False)
    op.create_index("ix_referrals_status", "referrals", ["status"], unique=False)
    op.create_index(
        "ix_referrals_referred_by_lead_id", "referrals", ["referred_by_lead_id"], unique=False
    )
    op.create_index("ix_referrals_follow_up_date", "referrals", ["follow_up_date"], unique=False)

    # 5. lead_history
    op.create_table(
        "lead_history",
        _id_column(),
        sa.Column("referral_id", sa.UUID(), nullable=False),
        sa.Column("event_type", sa.String(length=40), nullable=False),
        sa.Column("event_data", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("created_by_id", sa.UUID(), nullable=True),
        sa.Column("created_by_name", sa.String(length=120), nullable=True),
        _created_at_column(),
        sa.ForeignKeyConstraint(["referral_id"], ["referrals.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_lead_history_id", "lead_history", ["id"], unique=False)
    op.create_index(
        "ix_lead_history_referral_created",
        "lead_history",
        ["referral_id", "created_at"],
        unique=False,
    )

    # 6. crm_settings
    op.create_table(
        "crm_settings",
        _id_column(),
        sa.Column("user_id", sa.UUID(), nullable=False),
        sa.Column("setting_key", sa.String(length=50), nullable=False),
        sa.Column("setting_value", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        _created_at_column(),
        _updated_at_column(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "setting_key", name="uq_crm_settings_user_key"),
    )
    op.create_index("ix_crm_settings_id", "crm_settings", ["id"], unique=False)
    op.create_index("ix_crm_settings_user_id", "crm_settings", ["user_id"], unique=False)
    op.create_index("ix_crm_settings_setting_key", "crm_settings", ["setting_key"], unique=False)


def downgrade() -> None:
    op.drop_table("crm_settings")
    op.drop_table("lead_history")
    op.drop_table("referrals")
    op.drop_table("user_roles")
    op.drop_table("profiles")
    op.drop_table("organizations")
