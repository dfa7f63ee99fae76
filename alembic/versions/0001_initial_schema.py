"""initial schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-03-02 10:00:00.000000

"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None

ID_TYPE = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), nullable=False)


def upgrade() -> None:
    op.create_table(
        "charities",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("slug", sa.String(length=255), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("total_raised", sa.Float(), nullable=False),
        _created_at(),
        sa.CheckConstraint("status IN ('active','inactive')", name=op.f("ck_charities_status_enum")),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_charities")),
        sa.UniqueConstraint("slug", name=op.f("uq_charities_slug")),
    )
    op.create_index(op.f("ix_charities_id"), "charities", ["id"], unique=False)

    op.create_table(
        "profiles",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=True),
        sa.Column("role", sa.String(length=20), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("selected_charity_id", ID_TYPE, nullable=True),
        sa.Column("donation_percentage", sa.Float(), nullable=False),
        sa.Column("account_balance", sa.Float(), nullable=False),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("role IN ('user','admin')", name=op.f("ck_profiles_role_enum")),
        sa.CheckConstraint(
            "donation_percentage >= 0 AND donation_percentage <= 100",
            name=op.f("ck_profiles_donation_percentage_range"),
        ),
        sa.ForeignKeyConstraint(
            ["selected_charity_id"],
            ["charities.id"],
            name=op.f("fk_profiles_selected_charity_id_charities"),
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_profiles")),
        sa.UniqueConstraint("email", name=op.f("uq_profiles_email")),
    )
    op.create_index(op.f("ix_profiles_id"), "profiles", ["id"], unique=False)

    op.create_table(
        "draws",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("month_year", sa.String(length=32), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("score_range_min", sa.Integer(), nullable=True),
        sa.Column("score_range_max", sa.Integer(), nullable=True),
        sa.Column("winning_numbers", sa.JSON(), nullable=True),
        sa.Column("prize_pool", sa.Float(), nullable=False),
        sa.Column("jackpot_added", sa.Float(), nullable=True),
        sa.Column("tier1_pool", sa.Float(), nullable=False),
        sa.Column("tier2_pool", sa.Float(), nullable=False),
        sa.Column("tier3_pool", sa.Float(), nullable=False),
        sa.Column("participants_count", sa.Integer(), nullable=False),
        sa.Column("tier1_winners", sa.Integer(), nullable=False),
        sa.Column("tier2_winners", sa.Integer(), nullable=False),
        sa.Column("tier3_winners", sa.Integer(), nullable=False),
        sa.Column("tier1_rollover_amount", sa.Float(), nullable=False),
        sa.Column("tier2_rollover_amount", sa.Float(), nullable=False),
        sa.Column("jackpot_cap_reached", sa.Boolean(), nullable=False),
        sa.Column("draw_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "status IN ('open','completed','published')", name=op.f("ck_draws_status_enum")
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_draws")),
        sa.UniqueConstraint("month_year", name="uq_draws_month_year"),
    )
    op.create_index("ix_draws_status_created", "draws", ["status", "created_at"], unique=False)

    op.create_table(
        "subscriptions",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("user_id", ID_TYPE, nullable=False),
        sa.Column("plan", sa.String(length=20), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("assigned_draw_id", sa.Integer(), nullable=True),
        sa.Column("assigned_draw_month", sa.String(length=32), nullable=True),
        sa.Column("current_period_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("current_period_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("draws_remaining", sa.Integer(), nullable=False),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "plan IN ('monthly','annual')", name=op.f("ck_subscriptions_plan_enum")
        ),
        sa.CheckConstraint(
            "status IN ('active','trialing','cancelled','past_due')",
            name=op.f("ck_subscriptions_status_enum"),
        ),
        sa.ForeignKeyConstraint(
            ["assigned_draw_id"],
            ["draws.id"],
            name=op.f("fk_subscriptions_assigned_draw_id_draws"),
            ondelete="SET NULL",
        ),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["profiles.id"],
            name=op.f("fk_subscriptions_user_id_profiles"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_subscriptions")),
        sa.UniqueConstraint("user_id", name=op.f("uq_subscriptions_user_id")),
    )
    op.create_index(op.f("ix_subscriptions_id"), "subscriptions", ["id"], unique=False)
    op.create_index(
        "ix_subscriptions_status_plan", "subscriptions", ["status", "plan"], unique=False
    )

    op.create_table(
        "scores",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("user_id", ID_TYPE, nullable=False),
        sa.Column("score", sa.Integer(), nullable=False),
        _created_at(),
        sa.CheckConstraint("score >= 1 AND score <= 45", name=op.f("ck_scores_score_range")),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["profiles.id"],
            name=op.f("fk_scores_user_id_profiles"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_scores")),
    )
    op.create_index(op.f("ix_scores_id"), "scores", ["id"], unique=False)
    op.create_index("ix_scores_user_created", "scores", ["user_id", "created_at"], unique=False)
    op.create_index("ix_scores_score_created", "scores", ["score", "created_at"], unique=False)

    op.create_table(
        "charity_payouts",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("charity_id", ID_TYPE, nullable=False),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("payout_ref", sa.String(length=255), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "status IN ('pending','paid')", name=op.f("ck_charity_payouts_status_enum")
        ),
        sa.ForeignKeyConstraint(
            ["charity_id"],
            ["charities.id"],
            name=op.f("fk_charity_payouts_charity_id_charities"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_charity_payouts")),
    )
    op.create_index(op.f("ix_charity_payouts_id"), "charity_payouts", ["id"], unique=False)
    op.create_index(
        op.f("ix_charity_payouts_charity_id"), "charity_payouts", ["charity_id"], unique=False
    )

    op.create_table(
        "draw_entries",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("draw_id", sa.Integer(), nullable=False),
        sa.Column("user_id", ID_TYPE, nullable=False),
        sa.Column("scores", sa.JSON(), nullable=False),
        sa.Column("matches", sa.Integer(), nullable=False),
        sa.Column("tier", sa.Integer(), nullable=True),
        sa.Column("gross_prize", sa.Float(), nullable=False),
        sa.Column("charity_amount", sa.Float(), nullable=False),
        sa.Column("net_payout", sa.Float(), nullable=False),
        sa.Column("charity_id", ID_TYPE, nullable=True),
        sa.Column("verification_status", sa.String(length=20), nullable=True),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("verified_by", ID_TYPE, nullable=True),
        sa.Column("is_paid", sa.Boolean(), nullable=False),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payment_reference", sa.String(length=255), nullable=True),
        _created_at(),
        sa.CheckConstraint(
            "tier IS NULL OR tier IN (1, 2, 3)", name=op.f("ck_draw_entries_tier_enum")
        ),
        sa.ForeignKeyConstraint(
            ["charity_id"],
            ["charities.id"],
            name=op.f("fk_draw_entries_charity_id_charities"),
            ondelete="SET NULL",
        ),
        sa.ForeignKeyConstraint(
            ["draw_id"],
            ["draws.id"],
            name=op.f("fk_draw_entries_draw_id_draws"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["profiles.id"],
            name=op.f("fk_draw_entries_user_id_profiles"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_draw_entries")),
        sa.UniqueConstraint("draw_id", "user_id", name="uq_draw_entries_draw_user"),
    )
    op.create_index(op.f("ix_draw_entries_draw_id"), "draw_entries", ["draw_id"], unique=False)
    op.create_index(op.f("ix_draw_entries_user_id"), "draw_entries", ["user_id"], unique=False)
    op.create_index("ix_draw_entries_tier", "draw_entries", ["tier"], unique=False)

    op.create_table(
        "donations",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("charity_id", ID_TYPE, nullable=False),
        sa.Column("user_id", ID_TYPE, nullable=True),
        sa.Column("draw_id", sa.Integer(), nullable=True),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("source", sa.String(length=20), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("charity_payout_id", ID_TYPE, nullable=True),
        _created_at(),
        sa.CheckConstraint(
            "source IN ('direct','prize_split','subscription')",
            name=op.f("ck_donations_source_enum"),
        ),
        sa.CheckConstraint("amount >= 0", name=op.f("ck_donations_amount_non_negative")),
        sa.ForeignKeyConstraint(
            ["charity_id"],
            ["charities.id"],
            name=op.f("fk_donations_charity_id_charities"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["charity_payout_id"],
            ["charity_payouts.id"],
            name=op.f("fk_donations_charity_payout_id_charity_payouts"),
            ondelete="SET NULL",
        ),
        sa.ForeignKeyConstraint(
            ["draw_id"],
            ["draws.id"],
            name=op.f("fk_donations_draw_id_draws"),
            ondelete="SET NULL",
        ),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["profiles.id"],
            name=op.f("fk_donations_user_id_profiles"),
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_donations")),
    )
    op.create_index(op.f("ix_donations_id"), "donations", ["id"], unique=False)
    op.create_index(op.f("ix_donations_charity_id"), "donations", ["charity_id"], unique=False)
    op.create_index(op.f("ix_donations_draw_id"), "donations", ["draw_id"], unique=False)
    op.create_index("ix_donations_payout", "donations", ["charity_payout_id"], unique=False)

    op.create_table(
        "jackpot_tracker",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("last_updated", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_draw_id", sa.Integer(), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(
            ["last_draw_id"],
            ["draws.id"],
            name=op.f("fk_jackpot_tracker_last_draw_id_draws"),
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_jackpot_tracker")),
    )

    op.create_table(
        "draw_settings",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("base_amount_per_sub", sa.Float(), nullable=False),
        sa.Column("tier1_percent", sa.Float(), nullable=False),
        sa.Column("tier2_percent", sa.Float(), nullable=False),
        sa.Column("tier3_percent", sa.Float(), nullable=False),
        sa.Column("jackpot_cap", sa.Float(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_draw_settings")),
    )

    op.create_table(
        "activity_log",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("action_type", sa.String(length=64), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("user_id", ID_TYPE, nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["profiles.id"],
            name=op.f("fk_activity_log_user_id_profiles"),
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_activity_log")),
    )
    op.create_index(op.f("ix_activity_log_id"), "activity_log", ["id"], unique=False)
    op.create_index(
        "ix_activity_log_action_created", "activity_log", ["action_type", "created_at"], unique=False
    )


def downgrade() -> None:
    op.drop_index("ix_activity_log_action_created", table_name="activity_log")
    op.drop_index(op.f("ix_activity_log_id"), table_name="activity_log")
    op.drop_table("activity_log")
    op.drop_table("draw_settings")
    op.drop_table("jackpot_tracker")
    op.drop_index("ix_donations_payout", table_name="donations")
    op.drop_index(op.f("ix_donations_draw_id"), table_name="donations")
    op.drop_index(op.f("ix_donations_charity_id"), table_name="donations")
    op.drop_index(op.f("ix_donations_id"), table_name="donations")
    op.drop_table("donations")
    op.drop_index("ix_draw_entries_tier", table_name="draw_entries")
    op.drop_index(op.f("ix_draw_entries_user_id"), table_name="draw_entries")
    op.drop_index(op.f("ix_draw_entries_draw_id"), table_name="draw_entries")
    op.drop_table("draw_entries")
    op.drop_index(op.f("ix_charity_payouts_charity_id"), table_name="charity_payouts")
    op.drop_index(op.f("ix_charity_payouts_id"), table_name="charity_payouts")
    op.drop_table("charity_payouts")
    op.drop_index("ix_scores_score_created", table_name="scores")
    op.drop_index("ix_scores_user_created", table_name="scores")
    op.drop_index(op.f("ix_scores_id"), table_name="scores")
    op.drop_table("scores")
    op.drop_index("ix_subscriptions_status_plan", table_name="subscriptions")
    op.drop_index(op.f("ix_subscriptions_id"), table_name="subscriptions")
    op.drop_table("subscriptions")
    op.drop_index("ix_draws_status_created", table_name="draws")
    op.drop_table("draws")
    op.drop_index(op.f("ix_profiles_id"), table_name="profiles")
    op.drop_table("profiles")
    op.drop_index(op.f("ix_charities_id"), table_name="charities")
    op.drop_table("charities")
