"""Initial points economy schema

Revision ID: 0a1c5e7d9b21
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0a1c5e7d9b21"
down_revision = None
branch_labels = None
depends_on = None


def _ts(name: str, nullable: bool = True, server_default: bool = False) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=nullable,
        server_default=sa.func.now() if server_default else None,
    )


def upgrade() -> None:
    """Create every table of the canonical schema."""
    op.create_table(
        "students",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(150), nullable=False),
        sa.Column("points_balance", sa.Integer, nullable=False, server_default="0"),
        sa.Column("lifetime_points", sa.Integer, nullable=False, server_default="0"),
        sa.Column("level", sa.Integer, nullable=False, server_default="1"),
        sa.Column("is_competition_team", sa.Boolean, server_default=sa.false()),
        _ts("aggregates_updated_at"),
        _ts("created_at", server_default=True),
    )

    op.create_table(
        "ledger",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "student_id", sa.Integer,
            sa.ForeignKey("students.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("points", sa.Integer, nullable=False),
        sa.Column("points_base", sa.Integer, nullable=True),
        sa.Column("points_multiplier", sa.Float, nullable=True),
        sa.Column("category", sa.String(64), nullable=False, server_default="manual"),
        sa.Column("source_type", sa.String(50), nullable=True),
        sa.Column("source_id", sa.String(100), nullable=True),
        sa.Column("note", sa.String(200), nullable=False, server_default=""),
        sa.Column("created_by", sa.String(64), nullable=True),
        _ts("created_at", server_default=True),
    )
    op.create_index(
        "ix_ledger_source_idempotent",
        "ledger",
        ["source_type", "source_id"],
        unique=True,
        postgresql_where=sa.text("source_type IS NOT NULL AND source_id IS NOT NULL"),
        sqlite_where=sa.text("source_type IS NOT NULL AND source_id IS NOT NULL"),
    )
    op.create_index("ix_ledger_student_time", "ledger", ["student_id", "created_at"])
    op.create_index("ix_ledger_category_time", "ledger", ["category", "created_at"])

    op.create_table(
        "catalog_items",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("item_type", sa.String(20), nullable=False),
        sa.Column("key", sa.String(100), nullable=False),
        sa.Column("name", sa.String(150), nullable=False, server_default=""),
        sa.Column("unlock_level", sa.Integer, nullable=False, server_default="1"),
        sa.Column("unlock_points", sa.Integer, nullable=False, server_default="0"),
        sa.Column("enabled", sa.Boolean, server_default=sa.true()),
        sa.Column("limited_event_only", sa.Boolean, server_default=sa.false()),
        sa.Column("competition_only", sa.Boolean, server_default=sa.false()),
        sa.Column("is_secondary", sa.Boolean, server_default=sa.false()),
        sa.Column("rule_keeper_multiplier", sa.Float, nullable=True),
        sa.Column("rule_breaker_multiplier", sa.Float, nullable=True),
        sa.Column("skill_pulse_multiplier", sa.Float, nullable=True),
        sa.Column("spotlight_multiplier", sa.Float, nullable=True),
        sa.Column("daily_free_points", sa.Integer, nullable=True),
        sa.Column("challenge_completion_bonus_pct", sa.Float, nullable=True),
        sa.Column("mvp_bonus_pct", sa.Float, nullable=True),
        sa.UniqueConstraint("item_type", "key", name="uq_catalog_items_type_key"),
    )
    op.create_index(
        "ix_catalog_items_type_level", "catalog_items", ["item_type", "unlock_level"],
    )

    op.create_table(
        "student_loadouts",
        sa.Column(
            "student_id", sa.Integer,
            sa.ForeignKey("students.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column("avatar_key", sa.String(100), nullable=True),
        sa.Column("effect_key", sa.String(100), nullable=True),
        sa.Column("corner_border_key", sa.String(100), nullable=True),
        sa.Column("card_plate_key", sa.String(100), nullable=True),
        _ts("avatar_set_at"),
        _ts("avatar_daily_granted_at"),
        sa.Column("daily_claim_seq", sa.Integer, nullable=False, server_default="0"),
        _ts("updated_at", server_default=True),
    )

    op.create_table(
        "student_custom_unlocks",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "student_id", sa.Integer,
            sa.ForeignKey("students.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("item_type", sa.String(20), nullable=False),
        sa.Column("item_key", sa.String(100), nullable=False),
        sa.Column("source", sa.String(20), nullable=False, server_default="purchase"),
        sa.Column("points_spent", sa.Integer, nullable=False, server_default="0"),
        sa.Column("created_by", sa.String(64), nullable=True),
        _ts("created_at", server_default=True),
        sa.UniqueConstraint(
            "student_id", "item_type", "item_key", name="uq_custom_unlocks_student_item",
        ),
    )

    op.create_table(
        "level_thresholds",
        sa.Column("level", sa.Integer, primary_key=True),
        sa.Column("min_lifetime_points", sa.Integer, nullable=False),
    )

    op.create_table(
        "unlock_criteria",
        sa.Column("key", sa.String(100), primary_key=True),
        sa.Column("label", sa.String(150), nullable=False, server_default=""),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("enabled", sa.Boolean, server_default=sa.true()),
    )

    op.create_table(
        "item_criterion_requirements",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("item_type", sa.String(20), nullable=False),
        sa.Column("item_key", sa.String(100), nullable=False),
        sa.Column(
            "criteria_key", sa.String(100),
            sa.ForeignKey("unlock_criteria.key", ondelete="CASCADE"), nullable=False,
        ),
        sa.UniqueConstraint(
            "item_type", "item_key", "criteria_key", name="uq_item_criterion_requirement",
        ),
    )

    op.create_table(
        "student_criterion_fulfillments",
        sa.Column(
            "student_id", sa.Integer,
            sa.ForeignKey("students.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column(
            "criteria_key", sa.String(100),
            sa.ForeignKey("unlock_criteria.key", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column("fulfilled", sa.Boolean, server_default=sa.true()),
        _ts("updated_at", server_default=True),
    )

    op.create_table(
        "challenges",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("tier", sa.String(30), nullable=True),
        sa.Column("points_awarded", sa.Integer, nullable=True),
        sa.Column("enabled", sa.Boolean, server_default=sa.true()),
        sa.Column("limit_mode", sa.String(20), nullable=False, server_default="once"),
        sa.Column("limit_count", sa.Integer, nullable=False, server_default="1"),
        sa.Column("limit_window_days", sa.Integer, nullable=True),
        sa.Column("daily_limit_count", sa.Integer, nullable=True),
    )

    op.create_table(
        "challenge_tier_defaults",
        sa.Column("tier", sa.String(30), primary_key=True),
        sa.Column("points", sa.Integer, nullable=False, server_default="0"),
    )

    op.create_table(
        "student_challenges",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "student_id", sa.Integer,
            sa.ForeignKey("students.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "challenge_id", sa.Integer,
            sa.ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("completed", sa.Boolean, server_default=sa.false()),
        _ts("completed_at"),
        sa.Column("tier", sa.String(30), nullable=True),
        sa.Column("points_awarded", sa.Integer, nullable=True),
        sa.UniqueConstraint("student_id", "challenge_id", name="uq_student_challenges"),
    )

    op.create_table(
        "challenge_completions",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "student_id", sa.Integer,
            sa.ForeignKey("students.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "challenge_id", sa.Integer,
            sa.ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False,
        ),
        _ts("completed_at", nullable=False),
        sa.Column("tier", sa.String(30), nullable=True),
        sa.Column("points_awarded", sa.Integer, nullable=False, server_default="0"),
        sa.Column(
            "ledger_entry_id", sa.Integer,
            sa.ForeignKey("ledger.id", ondelete="SET NULL"), nullable=True,
        ),
    )
    op.create_index(
        "ix_challenge_completions_lookup",
        "challenge_completions",
        ["student_id", "challenge_id", "completed_at"],
    )

    op.create_table(
        "roulette_spins",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "student_id", sa.Integer,
            sa.ForeignKey("students.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("wheel_name", sa.String(100), nullable=False, server_default="Prize Wheel"),
        sa.Column("segment_label", sa.String(100), nullable=True),
        sa.Column("points_delta", sa.Integer, nullable=False, server_default="0"),
        sa.Column("prize_text", sa.String(200), nullable=True),
        _ts("created_at", server_default=True),
        _ts("confirmed_at"),
        sa.Column("confirmed_by", sa.String(64), nullable=True),
    )

    op.create_table(
        "gift_items",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(150), nullable=False),
        sa.Column("category", sa.String(30), nullable=False, server_default="item"),
        sa.Column("points_value", sa.Integer, nullable=False, server_default="0"),
        sa.Column("enabled", sa.Boolean, server_default=sa.true()),
    )

    op.create_table(
        "student_gifts",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "student_id", sa.Integer,
            sa.ForeignKey("students.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "gift_item_id", sa.Integer,
            sa.ForeignKey("gift_items.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("qty", sa.Integer, nullable=False, server_default="1"),
        sa.Column("opened_qty", sa.Integer, nullable=False, server_default="0"),
        sa.Column("enabled", sa.Boolean, server_default=sa.true()),
        _ts("expires_at"),
        _ts("expired_at"),
        sa.Column("granted_by", sa.String(64), nullable=True),
        _ts("updated_at", server_default=True),
    )
    op.create_index("ix_student_gifts_student", "student_gifts", ["student_id"])

    op.create_table(
        "gift_open_events",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "student_id", sa.Integer,
            sa.ForeignKey("students.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "student_gift_id", sa.Integer,
            sa.ForeignKey("student_gifts.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("gift_item_id", sa.Integer, nullable=False),
        sa.Column("points_awarded", sa.Integer, nullable=False, server_default="0"),
        sa.Column("points_before_open", sa.Integer, nullable=False, server_default="0"),
        sa.Column("points_after_open", sa.Integer, nullable=False, server_default="0"),
        sa.Column("ledger_entry_id", sa.Integer, nullable=True),
        _ts("created_at", server_default=True),
    )

    op.create_table(
        "settings",
        sa.Column("key", sa.String(100), primary_key=True),
        sa.Column("value_json", sa.Text, nullable=False),
        sa.Column("category", sa.String(50), nullable=False, server_default="general"),
        sa.Column("description", sa.Text, nullable=True),
        _ts("updated_at", server_default=True),
    )
    op.create_index("ix_settings_category", "settings", ["category"])


def downgrade() -> None:
    """Drop every table in reverse dependency order."""
    op.drop_index("ix_settings_category", table_name="settings")
    op.drop_table("settings")
    op.drop_table("gift_open_events")
    op.drop_index("ix_student_gifts_student", table_name="student_gifts")
    op.drop_table("student_gifts")
    op.drop_table("gift_items")
    op.drop_table("roulette_spins")
    op.drop_index("ix_challenge_completions_lookup", table_name="challenge_completions")
    op.drop_table("challenge_completions")
    op.drop_table("student_challenges")
    op.drop_table("challenge_tier_defaults")
    op.drop_table("challenges")
    op.drop_table("student_criterion_fulfillments")
    op.drop_table("item_criterion_requirements")
    op.drop_table("unlock_criteria")
    op.drop_table("level_thresholds")
    op.drop_table("student_custom_unlocks")
    op.drop_table("student_loadouts")
    op.drop_index("ix_catalog_items_type_level", table_name="catalog_items")
    op.drop_table("catalog_items")
    op.drop_index("ix_ledger_category_time", table_name="ledger")
    op.drop_index("ix_ledger_student_time", table_name="ledger")
    op.drop_index("ix_ledger_source_idempotent", table_name="ledger")
    op.drop_table("ledger")
    op.drop_table("students")
