"""Pytest configuration and fixtures.

Every test that touches storage gets its own pair of SQLite files (business
and market store) under ``tmp_path``, with the built-in valuation methods
already seeded.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import AsyncGenerator, Sequence

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from valuator.core.config import settings
from valuator.database import connection as db_conn
from valuator.database.market_orm import (
    DailyBasic,
    DailyPrice,
    InstrumentProfile,
    InstrumentProfileTag,
)


def _reset_engines() -> None:
    db_conn._business_engine = None
    db_conn._business_session_factory = None
    db_conn._market_engine = None
    db_conn._market_session_factory = None


@pytest_asyncio.fixture
async def stores(tmp_path, monkeypatch) -> AsyncGenerator[None, None]:
    """Fresh business and market stores with built-in methods seeded."""
    from valuator.services.valuation_catalog import seed_builtin_methods

    monkeypatch.setattr(settings, "business_database_url", f"sqlite:///{tmp_path / 'business.db'}")
    monkeypatch.setattr(settings, "market_database_url", f"sqlite:///{tmp_path / 'market.db'}")
    _reset_engines()

    await db_conn.create_business_schema()
    await db_conn.create_market_schema()
    await seed_builtin_methods()

    yield

    await db_conn.close_databases()
    _reset_engines()


class MarketData:
    """Writes reference rows into the market store for a test."""

    async def add_profile(
        self,
        symbol: str,
        kind: str | None = None,
        asset_class: str | None = None,
        market: str | None = None,
        tags: Sequence[str] = (),
        index_tags: bool = True,
    ) -> None:
        async with db_conn.get_market_session() as session:
            session.add(
                InstrumentProfile(
                    symbol=symbol,
                    kind=kind,
                    asset_class=asset_class,
                    market=market,
                    tags=list(tags),
                )
            )
            if index_tags:
                for tag in tags:
                    session.add(InstrumentProfileTag(tag=tag, symbol=symbol))
            await session.commit()

    async def add_index_tag(self, symbol: str, tag: str) -> None:
        async with db_conn.get_market_session() as session:
            session.add(InstrumentProfileTag(tag=tag, symbol=symbol))
            await session.commit()

    async def add_closes(self, symbol: str, closes_newest_first: Sequence[float | None], last_day: date) -> None:
        """One close per calendar day ending at ``last_day``."""
        async with db_conn.get_market_session() as session:
            for offset, close in enumerate(closes_newest_first):
                session.add(
                    DailyPrice(symbol=symbol, trade_date=last_day - timedelta(days=offset), close=close)
                )
            await session.commit()

    async def add_circ_mv(self, symbol: str, trade_date: date, circ_mv: float) -> None:
        async with db_conn.get_market_session() as session:
            session.add(DailyBasic(symbol=symbol, trade_date=trade_date, circ_mv=circ_mv))
            await session.commit()


@pytest.fixture
def market(stores) -> MarketData:
    """Market store writer bound to the per-test stores."""
    return MarketData()


@pytest_asyncio.fixture
async def async_client(stores) -> AsyncGenerator[AsyncClient, None]:
    """Async test client for the API app, sharing the per-test stores."""
    from valuator.api.app import create_api_app

    app = create_api_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def flat_closes() -> list[float]:
    """30 closes, newest first: 110 today, 100 twenty rows back."""
    closes = [100.0] * 30
    closes[0] = 110.0
    return closes
