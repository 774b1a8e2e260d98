"""Tests for base metric math (momentum, volatility, base map)."""

from __future__ import annotations

import statistics

import pytest

from valuator.domain.metrics import (
    BASE_METRIC_KEYS,
    build_base_metrics,
    compute_momentum,
    compute_volatility,
)


class TestMomentum:
    def test_ratio_against_offset_twenty(self, flat_closes):
        assert compute_momentum(flat_closes) == pytest.approx(0.1)

    def test_requires_twenty_one_closes(self):
        assert compute_momentum([100.0] * 20) is None

    def test_zero_anchor_is_none(self):
        closes = [100.0] * 21
        closes[20] = 0.0
        assert compute_momentum(closes) is None


class TestVolatility:
    def test_sample_std_of_simple_returns(self):
        closes = [110.0, 100.0, 105.0, 100.0]  # newest first
        expected_returns = [110 / 100 - 1, 100 / 105 - 1, 105 / 100 - 1]
        assert compute_volatility(closes) == pytest.approx(statistics.stdev(expected_returns))

    def test_uses_only_the_newest_window(self):
        closes = [100.0] * 21 + [1.0, 1000.0]
        assert compute_volatility(closes) == pytest.approx(0.0)

    def test_needs_two_returns(self):
        assert compute_volatility([101.0, 100.0]) is None
        assert compute_volatility([100.0]) is None

    def test_zero_previous_close_is_skipped(self):
        # Chronologically 100, 105, 0, 100, 110: only the move off 0 is undefined
        closes = [110.0, 100.0, 0.0, 105.0, 100.0]
        returns = [110 / 100 - 1, 0 / 105 - 1, 105 / 100 - 1]
        assert compute_volatility(closes) == pytest.approx(statistics.stdev(returns))


class TestBuildBaseMetrics:
    def test_contains_every_base_key(self, flat_closes):
        metrics = build_base_metrics(flat_closes, circ_mv=1.5e9)
        assert set(metrics) == set(BASE_METRIC_KEYS)

    def test_price_momentum_and_liquidity(self, flat_closes):
        metrics = build_base_metrics(flat_closes, circ_mv=1.5e9)
        assert metrics["market.price"] == 110.0
        assert metrics["factor.momentum.20d"] == pytest.approx(0.1)
        assert metrics["liquidity.circ_mv"] == 1.5e9

    def test_unsourced_factors_are_placeholders(self, flat_closes):
        metrics = build_base_metrics(flat_closes, circ_mv=None)
        for key in ("factor.basis", "factor.carry.annualized", "factor.ppp_gap", "risk.beta"):
            assert metrics[key] is None
        assert metrics["liquidity.circ_mv"] is None
