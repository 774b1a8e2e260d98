"""Base metric math over a descending close-price window.

Closes arrive newest first (offset 0 is the as-of close). Momentum is a
plain ratio between offsets 0 and 20; volatility is the sample standard
deviation (n-1 denominator) of daily simple returns over the same window.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np
import pandas as pd

from valuator.core.data_helpers import safe_float


MOMENTUM_LOOKBACK = 20
VOLATILITY_WINDOW = 20
MIN_RETURNS_FOR_VOLATILITY = 2

BASE_METRIC_KEYS = (
    "market.price",
    "factor.momentum.20d",
    "risk.volatility.20d",
    "risk.beta",
    "risk.alpha",
    "factor.basis",
    "factor.carry.annualized",
    "factor.ppp_gap",
    "risk.duration",
    "risk.yield_shift",
    "liquidity.circ_mv",
)


def compute_momentum(closes_desc: Sequence[float], lookback: int = MOMENTUM_LOOKBACK) -> float | None:
    """closes[0] / closes[lookback] - 1, or None without enough history."""
    if len(closes_desc) < lookback + 1:
        return None
    anchor = closes_desc[lookback]
    if anchor == 0:
        return None
    return safe_float(closes_desc[0] / anchor - 1)


def compute_volatility(closes_desc: Sequence[float], window: int = VOLATILITY_WINDOW) -> float | None:
    """Sample stdev of simple returns over the newest ``window + 1`` closes.

    Returns against a zero previous close are skipped. At least two returns
    are required.
    """
    if len(closes_desc) < 2:
        return None
    series = pd.Series(closes_desc[: window + 1], dtype="float64")
    # Descending order: the previous close sits at the next offset
    returns = (series / series.shift(-1) - 1).replace([np.inf, -np.inf], np.nan).dropna()
    if len(returns) < MIN_RETURNS_FOR_VOLATILITY:
        return None
    return safe_float(returns.std(ddof=1))


def build_base_metrics(
    closes_desc: Sequence[float], circ_mv: float | None
) -> dict[str, float | None]:
    """Assemble the base metric map before formula outputs are derived.

    Factor slots without a data source (basis, carry, PPP gap, duration,
    yield shift, beta, alpha) are present as None so effect channels have a
    key to land on.
    """
    metrics: dict[str, float | None] = dict.fromkeys(BASE_METRIC_KEYS)
    metrics["market.price"] = safe_float(closes_desc[0]) if closes_desc else None
    metrics["factor.momentum.20d"] = compute_momentum(closes_desc)
    metrics["risk.volatility.20d"] = compute_volatility(closes_desc)
    metrics["liquidity.circ_mv"] = safe_float(circ_mv)
    return metrics
