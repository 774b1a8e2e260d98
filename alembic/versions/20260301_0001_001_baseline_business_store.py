"""Business store baseline: insights, valuation methods, snapshots.

Revision ID: 001_baseline
Revises: 
Create Date: 2026-03-01

Creates every business-store table. The market store (instrument profiles,
daily prices and basics) is owned by the ingestion side and is not migrated
here.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001_baseline"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    """Create all business-store tables."""
    # ==========================================================================
    # INSIGHTS
    # ==========================================================================

    op.create_table(
        "insights",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("thesis", sa.Text(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("valid_from", sa.Date(), nullable=True),
        sa.Column("valid_to", sa.Date(), nullable=True),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.Column("meta", sa.JSON(), nullable=False),
        *_timestamps(),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_insights"),
    )
    op.create_index("idx_insights_status", "insights", ["status"])
    op.create_index("idx_insights_updated", "insights", ["updated_at"])

    op.create_table(
        "insight_facts",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_insight_facts"),
    )

    op.create_table(
        "insight_scope_rules",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("insight_id", sa.String(36), nullable=False),
        sa.Column("scope_type", sa.String(32), nullable=False),
        sa.Column("scope_key", sa.String(255), nullable=False),
        sa.Column("mode", sa.String(16), nullable=False),
        sa.Column("enabled", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["insight_id"], ["insights.id"],
            name="fk_insight_scope_rules_insight_id_insights", ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_insight_scope_rules"),
        sa.UniqueConstraint("insight_id", "scope_type", "scope_key", "mode", name="uq_insight_scope_rule"),
    )
    op.create_index("idx_insight_scope_rules_insight", "insight_scope_rules", ["insight_id"])

    op.create_table(
        "insight_target_exclusions",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("insight_id", sa.String(36), nullable=False),
        sa.Column("symbol", sa.String(64), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["insight_id"], ["insights.id"],
            name="fk_insight_target_exclusions_insight_id_insights", ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_insight_target_exclusions"),
        sa.UniqueConstraint("insight_id", "symbol", name="uq_insight_target_exclusion"),
    )
    op.create_index("idx_insight_target_exclusions_symbol", "insight_target_exclusions", ["symbol"])

    op.create_table(
        "insight_effect_channels",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("insight_id", sa.String(36), nullable=False),
        sa.Column("method_key", sa.String(128), nullable=False),
        sa.Column("metric_key", sa.String(128), nullable=False),
        sa.Column("stage", sa.String(20), nullable=False),
        sa.Column("operator", sa.String(10), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False),
        sa.Column("enabled", sa.Boolean(), nullable=False),
        sa.Column("meta", sa.JSON(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["insight_id"], ["insights.id"],
            name="fk_insight_effect_channels_insight_id_insights", ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_insight_effect_channels"),
    )
    op.create_index("idx_insight_effect_channels_insight", "insight_effect_channels", ["insight_id"])
    op.create_index("idx_insight_effect_channels_method", "insight_effect_channels", ["method_key"])

    op.create_table(
        "insight_effect_points",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("channel_id", sa.String(36), nullable=False),
        sa.Column("effect_date", sa.Date(), nullable=False),
        sa.Column("effect_value", sa.Float(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["channel_id"], ["insight_effect_channels.id"],
            name="fk_insight_effect_points_channel_id_insight_effect_channels", ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_insight_effect_points"),
        sa.UniqueConstraint("channel_id", "effect_date", name="uq_insight_effect_point"),
    )

    op.create_table(
        "insight_materialized_targets",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("insight_id", sa.String(36), nullable=False),
        sa.Column("symbol", sa.String(64), nullable=False),
        sa.Column("source_scope_type", sa.String(32), nullable=False),
        sa.Column("source_scope_key", sa.String(255), nullable=False),
        sa.Column("materialized_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ["insight_id"], ["insights.id"],
            name="fk_insight_materialized_targets_insight_id_insights", ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_insight_materialized_targets"),
        sa.UniqueConstraint(
            "insight_id", "symbol", "source_scope_type", "source_scope_key",
            name="uq_insight_materialized_target",
        ),
    )
    op.create_index("idx_insight_materialized_targets_symbol", "insight_materialized_targets", ["symbol"])

    # ==========================================================================
    # VALUATION METHODS & SNAPSHOTS
    # ==========================================================================

    op.create_table(
        "valuation_methods",
        sa.Column("id", sa.String(128), nullable=False),
        sa.Column("method_key", sa.String(128), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_builtin", sa.Boolean(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("asset_scope", sa.JSON(), nullable=False),
        sa.Column("active_version_id", sa.String(255), nullable=True),
        *_timestamps(),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_valuation_methods"),
        sa.UniqueConstraint("method_key", name="uq_valuation_methods_method_key"),
    )

    op.create_table(
        "valuation_method_versions",
        sa.Column("id", sa.String(255), nullable=False),
        sa.Column("method_id", sa.String(128), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("effective_from", sa.Date(), nullable=True),
        sa.Column("effective_to", sa.Date(), nullable=True),
        sa.Column("graph", sa.JSON(), nullable=False),
        sa.Column("param_schema", sa.JSON(), nullable=False),
        sa.Column("metric_schema", sa.JSON(), nullable=False),
        sa.Column("formula_manifest", sa.JSON(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["method_id"], ["valuation_methods.id"],
            name="fk_valuation_method_versions_method_id_valuation_methods", ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_valuation_method_versions"),
        sa.UniqueConstraint("method_id", "version", name="uq_valuation_method_version"),
    )

    op.create_table(
        "valuation_adjustment_snapshots",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("symbol", sa.String(64), nullable=False),
        sa.Column("as_of_date", sa.Date(), nullable=False),
        sa.Column("method_key", sa.String(128), nullable=False),
        sa.Column("method_version_id", sa.String(255), nullable=True),
        sa.Column("base_metrics", sa.JSON(), nullable=False),
        sa.Column("adjusted_metrics", sa.JSON(), nullable=False),
        sa.Column("applied_effects", sa.JSON(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_valuation_adjustment_snapshots"),
        sa.UniqueConstraint("symbol", "as_of_date", "method_key", name="uq_valuation_snapshot"),
    )

    # ==========================================================================
    # WATCHLISTS & USER TAGS
    # ==========================================================================

    op.create_table(
        "watchlist_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("symbol", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("group_name", sa.String(100), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_watchlist_items"),
        sa.UniqueConstraint("symbol", name="uq_watchlist_items_symbol"),
    )
    op.create_index("idx_watchlist_items_group", "watchlist_items", ["group_name"])

    op.create_table(
        "instrument_tags",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("symbol", sa.String(64), nullable=False),
        sa.Column("tag", sa.String(100), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_instrument_tags"),
        sa.UniqueConstraint("symbol", "tag", name="uq_instrument_tag"),
    )
    op.create_index("idx_instrument_tags_tag", "instrument_tags", ["tag"])


def downgrade() -> None:
    """Drop all business-store tables."""
    op.drop_table("instrument_tags")
    op.drop_table("watchlist_items")
    op.drop_table("valuation_adjustment_snapshots")
    op.drop_table("valuation_method_versions")
    op.drop_table("valuation_methods")
    op.drop_table("insight_materialized_targets")
    op.drop_table("insight_effect_points")
    op.drop_table("insight_effect_channels")
    op.drop_table("insight_target_exclusions")
    op.drop_table("insight_scope_rules")
    op.drop_table("insight_facts")
    op.drop_table("insights")
