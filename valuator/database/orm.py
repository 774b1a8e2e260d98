"""SQLAlchemy ORM models for the business store.

Insights and everything hanging off them (scope rules, exclusions, effect
channels and points, materialized targets), the valuation method catalog,
valuation snapshots, and the watchlist / user-tag tables read by the scope
resolver.

Usage:
    from valuator.database.orm import Insight, InsightScopeRule
    from valuator.database.connection import get_business_session

    async with get_business_session() as session:
        insight = await session.get(Insight, insight_id)
        insight.status = "active"
        await session.commit()
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from valuator.core.data_helpers import utc_now


# Naming convention for constraints and indexes (deterministic names for Alembic)
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    """Base class for all business ORM models with naming convention."""
    metadata = MetaData(naming_convention=NAMING_CONVENTION)


# =============================================================================
# INSIGHTS
# =============================================================================


class Insight(Base):
    """Analyst thesis with a validity window and a target scope."""
    __tablename__ = "insights"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    thesis: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")
    valid_from: Mapped[date | None] = mapped_column(Date)
    valid_to: Mapped[date | None] = mapped_column(Date)
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    meta: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        Index("idx_insights_status", "status"),
        Index("idx_insights_updated", "updated_at"),
    )


class InsightFact(Base):
    """Free-standing analyst note."""
    __tablename__ = "insight_facts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)


class InsightScopeRule(Base):
    """One include/exclude predicate contributing to an insight's targets."""
    __tablename__ = "insight_scope_rules"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    insight_id: Mapped[str] = mapped_column(
        ForeignKey("insights.id", ondelete="CASCADE"), nullable=False
    )
    scope_type: Mapped[str] = mapped_column(String(32), nullable=False)
    scope_key: Mapped[str] = mapped_column(String(255), nullable=False)
    mode: Mapped[str] = mapped_column(String(16), nullable=False)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)

    __table_args__ = (
        UniqueConstraint("insight_id", "scope_type", "scope_key", "mode", name="uq_insight_scope_rule"),
        Index("idx_insight_scope_rules_insight", "insight_id"),
    )


class InsightTargetExclusion(Base):
    """Manual override removing a symbol from an insight's targets."""
    __tablename__ = "insight_target_exclusions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    insight_id: Mapped[str] = mapped_column(
        ForeignKey("insights.id", ondelete="CASCADE"), nullable=False
    )
    symbol: Mapped[str] = mapped_column(String(64), nullable=False)
    reason: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)

    __table_args__ = (
        UniqueConstraint("insight_id", "symbol", name="uq_insight_target_exclusion"),
        Index("idx_insight_target_exclusions_symbol", "symbol"),
    )


class InsightEffectChannel(Base):
    """(metric, operator, stage, priority) adjustment slot owned by an insight."""
    __tablename__ = "insight_effect_channels"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    insight_id: Mapped[str] = mapped_column(
        ForeignKey("insights.id", ondelete="CASCADE"), nullable=False
    )
    method_key: Mapped[str] = mapped_column(String(128), nullable=False)  # or '*'
    metric_key: Mapped[str] = mapped_column(String(128), nullable=False)
    stage: Mapped[str] = mapped_column(String(20), nullable=False)
    operator: Mapped[str] = mapped_column(String(10), nullable=False)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=100)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    meta: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)

    __table_args__ = (
        Index("idx_insight_effect_channels_insight", "insight_id"),
        Index("idx_insight_effect_channels_method", "method_key"),
    )


class InsightEffectPoint(Base):
    """Dated value in an effect channel's sparse time series."""
    __tablename__ = "insight_effect_points"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    channel_id: Mapped[str] = mapped_column(
        ForeignKey("insight_effect_channels.id", ondelete="CASCADE"), nullable=False
    )
    effect_date: Mapped[date] = mapped_column(Date, nullable=False)
    effect_value: Mapped[float] = mapped_column(Float, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)

    __table_args__ = (
        UniqueConstraint("channel_id", "effect_date", name="uq_insight_effect_point"),
    )


class InsightMaterializedTarget(Base):
    """One (symbol, contributing include rule) pair of an insight's target set."""
    __tablename__ = "insight_materialized_targets"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    insight_id: Mapped[str] = mapped_column(
        ForeignKey("insights.id", ondelete="CASCADE"), nullable=False
    )
    symbol: Mapped[str] = mapped_column(String(64), nullable=False)
    source_scope_type: Mapped[str] = mapped_column(String(32), nullable=False)
    source_scope_key: Mapped[str] = mapped_column(String(255), nullable=False)
    materialized_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)

    __table_args__ = (
        UniqueConstraint(
            "insight_id", "symbol", "source_scope_type", "source_scope_key",
            name="uq_insight_materialized_target",
        ),
        Index("idx_insight_materialized_targets_symbol", "symbol"),
    )


# =============================================================================
# VALUATION METHODS
# =============================================================================


class ValuationMethod(Base):
    """Named valuation method (built-in or custom)."""
    __tablename__ = "valuation_methods"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    method_key: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    is_builtin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    asset_scope: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    active_version_id: Mapped[str | None] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class ValuationMethodVersion(Base):
    """Immutable version of a method: metric graph, schemas and formula."""
    __tablename__ = "valuation_method_versions"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    method_id: Mapped[str] = mapped_column(
        ForeignKey("valuation_methods.id", ondelete="CASCADE"), nullable=False
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    effective_from: Mapped[date | None] = mapped_column(Date)
    effective_to: Mapped[date | None] = mapped_column(Date)
    graph: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    param_schema: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    metric_schema: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    formula_manifest: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)

    __table_args__ = (
        UniqueConstraint("method_id", "version", name="uq_valuation_method_version"),
    )


class ValuationSnapshot(Base):
    """Last computed preview for (symbol, as-of date, method)."""
    __tablename__ = "valuation_adjustment_snapshots"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    symbol: Mapped[str] = mapped_column(String(64), nullable=False)
    as_of_date: Mapped[date] = mapped_column(Date, nullable=False)
    method_key: Mapped[str] = mapped_column(String(128), nullable=False)
    method_version_id: Mapped[str | None] = mapped_column(String(255))
    base_metrics: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    adjusted_metrics: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    applied_effects: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)

    __table_args__ = (
        UniqueConstraint("symbol", "as_of_date", "method_key", name="uq_valuation_snapshot"),
    )


# =============================================================================
# WATCHLISTS & USER TAGS
# =============================================================================


class WatchlistItem(Base):
    """Watchlist membership; a null or empty group means the default group."""
    __tablename__ = "watchlist_items"

    id: Mapped[int] = mapped_column(primary_key=True)
    symbol: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str | None] = mapped_column(String(255))
    group_name: Mapped[str | None] = mapped_column(String(100))
    note: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)

    __table_args__ = (
        Index("idx_watchlist_items_group", "group_name"),
    )


class InstrumentTag(Base):
    """User-assigned instrument tag."""
    __tablename__ = "instrument_tags"

    id: Mapped[int] = mapped_column(primary_key=True)
    symbol: Mapped[str] = mapped_column(String(64), nullable=False)
    tag: Mapped[str] = mapped_column(String(100), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)

    __table_args__ = (
        UniqueConstraint("symbol", "tag", name="uq_instrument_tag"),
        Index("idx_instrument_tags_tag", "tag"),
    )
