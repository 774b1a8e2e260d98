"""Base metric calculator: market data -> pre-adjustment metric map."""

from __future__ import annotations

from datetime import date

from valuator.core.config import settings
from valuator.core.data_helpers import safe_float
from valuator.core.logging import get_logger
from valuator.domain.metrics import build_base_metrics
from valuator.repositories import market_data_orm as market_repo


logger = get_logger("services.base_metrics")


async def compute_base(symbol: str, as_of_date: str) -> dict[str, float | None] | None:
    """Compute base metrics for ``symbol`` from prices on or before ``as_of_date``.

    Args:
        symbol: Instrument symbol
        as_of_date: YYYY-MM-DD

    Returns:
        Metric map without ``output.*`` keys, or None when no usable latest close exists
    """
    day = date.fromisoformat(as_of_date)
    closes = await market_repo.list_recent_closes(symbol, day, settings.price_window_rows)
    if not closes or safe_float(closes[0]) is None:
        logger.debug(f"No usable prices for {symbol} as of {as_of_date}")
        return None

    circ_mv = await market_repo.get_latest_circ_mv(symbol, day)
    return build_base_metrics(closes, circ_mv)
