"""SQLAlchemy ORM models for the market reference store.

These tables are populated by the ingestion layer; the valuation engine only
reads them.

Usage:
    from valuator.database.market_orm import DailyPrice
    from valuator.database.connection import get_market_session

    async with get_market_session() as session:
        result = await session.execute(
            select(DailyPrice.close).where(DailyPrice.symbol == "600519.SH")
        )
"""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import (
    JSON,
    BigInteger,
    Date,
    DateTime,
    Float,
    Index,
    MetaData,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from valuator.core.data_helpers import utc_now

from .orm import NAMING_CONVENTION


class MarketBase(DeclarativeBase):
    """Base class for market store models."""
    metadata = MetaData(naming_convention=NAMING_CONVENTION)


class InstrumentProfile(MarketBase):
    """Reference profile for one instrument."""
    __tablename__ = "instrument_profiles"

    symbol: Mapped[str] = mapped_column(String(64), primary_key=True)
    provider: Mapped[str | None] = mapped_column(String(50))
    kind: Mapped[str | None] = mapped_column(String(32))
    name: Mapped[str | None] = mapped_column(String(255))
    asset_class: Mapped[str | None] = mapped_column(String(32))
    market: Mapped[str | None] = mapped_column(String(16))
    currency: Mapped[str | None] = mapped_column(String(10))
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)

    __table_args__ = (
        Index("idx_instrument_profiles_kind", "kind"),
        Index("idx_instrument_profiles_asset_class", "asset_class"),
    )


class InstrumentProfileTag(MarketBase):
    """Provider tag index (tag -> symbol)."""
    __tablename__ = "instrument_profile_tags"

    id: Mapped[int] = mapped_column(primary_key=True)
    tag: Mapped[str] = mapped_column(String(100), nullable=False)
    symbol: Mapped[str] = mapped_column(String(64), nullable=False)

    __table_args__ = (
        UniqueConstraint("tag", "symbol", name="uq_instrument_profile_tag"),
        Index("idx_instrument_profile_tags_symbol", "symbol"),
    )


class DailyPrice(MarketBase):
    """Daily OHLCV bar."""
    __tablename__ = "daily_prices"

    id: Mapped[int] = mapped_column(primary_key=True)
    symbol: Mapped[str] = mapped_column(String(64), nullable=False)
    trade_date: Mapped[date] = mapped_column(Date, nullable=False)
    open: Mapped[float | None] = mapped_column(Float)
    high: Mapped[float | None] = mapped_column(Float)
    low: Mapped[float | None] = mapped_column(Float)
    close: Mapped[float | None] = mapped_column(Float)
    volume: Mapped[int | None] = mapped_column(BigInteger)

    __table_args__ = (
        UniqueConstraint("symbol", "trade_date", name="uq_daily_price"),
        Index("idx_daily_prices_symbol_date", "symbol", "trade_date"),
    )


class DailyBasic(MarketBase):
    """Daily valuation basics (market values)."""
    __tablename__ = "daily_basics"

    id: Mapped[int] = mapped_column(primary_key=True)
    symbol: Mapped[str] = mapped_column(String(64), nullable=False)
    trade_date: Mapped[date] = mapped_column(Date, nullable=False)
    circ_mv: Mapped[float | None] = mapped_column(Float)
    total_mv: Mapped[float | None] = mapped_column(Float)

    __table_args__ = (
        UniqueConstraint("symbol", "trade_date", name="uq_daily_basic"),
        Index("idx_daily_basics_symbol_date", "symbol", "trade_date"),
    )
