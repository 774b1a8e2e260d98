"""Formula dispatch: derive ``output.*`` metrics from the current metric map.

Each formula id maps to a pure function of the metric map. Null inputs count
as zero, except ``market.price`` whose absence makes the fair value null.
"""

from __future__ import annotations

from typing import Any, Callable, Mapping, MutableMapping

from valuator.core.data_helpers import clamp, safe_float

from .enums import FormulaId


MetricMap = MutableMapping[str, float | None]

PRICE = "market.price"
MOMENTUM = "factor.momentum.20d"
VOLATILITY = "risk.volatility.20d"
BASIS = "factor.basis"
CARRY = "factor.carry.annualized"
PPP_GAP = "factor.ppp_gap"
DURATION = "risk.duration"
YIELD_SHIFT = "risk.yield_shift"
FAIR_VALUE = "output.fair_value"
RETURN_GAP = "output.return_gap"

PRIMARY_VALUE_KEYS = ("output.fair_value", "valuation.fair_value", "market.price")


def _input(metrics: Mapping[str, float | None], key: str) -> float:
    value = safe_float(metrics.get(key))
    return 0.0 if value is None else value


def _equity_factor(price: float, metrics: Mapping[str, float | None]) -> float:
    momentum = clamp(_input(metrics, MOMENTUM), -0.5, 0.5)
    vol = clamp(_input(metrics, VOLATILITY), -1.0, 1.0)
    return price * (1 + momentum) * (1 - vol * 0.2)


def _futures_basis(price: float, metrics: Mapping[str, float | None]) -> float:
    return price + _input(metrics, BASIS)


def _spot_carry(price: float, metrics: Mapping[str, float | None]) -> float:
    return price * (1 + _input(metrics, CARRY))


def _forex_ppp(price: float, metrics: Mapping[str, float | None]) -> float:
    return price * (1 + _input(metrics, PPP_GAP))


def _bond_yield(price: float, metrics: Mapping[str, float | None]) -> float:
    return price * (1 - _input(metrics, DURATION) * _input(metrics, YIELD_SHIFT))


def _generic_factor(price: float, metrics: Mapping[str, float | None]) -> float:
    momentum = clamp(_input(metrics, MOMENTUM), -0.5, 0.5)
    vol = clamp(_input(metrics, VOLATILITY), -1.0, 1.0)
    return price * (1 + momentum * 0.5) * (1 - vol * 0.15)


FORMULAS: dict[FormulaId, Callable[[float, Mapping[str, float | None]], float]] = {
    FormulaId.EQUITY_FACTOR_V1: _equity_factor,
    FormulaId.FUTURES_BASIS_V1: _futures_basis,
    FormulaId.SPOT_CARRY_V1: _spot_carry,
    FormulaId.FOREX_PPP_V1: _forex_ppp,
    FormulaId.BOND_YIELD_V1: _bond_yield,
    FormulaId.GENERIC_FACTOR_V1: _generic_factor,
}


def resolve_formula_id(formula_manifest: Mapping[str, Any] | None) -> FormulaId:
    """Formula id recorded in a version manifest, generic when absent or unknown."""
    raw = (formula_manifest or {}).get("formulaId")
    if isinstance(raw, str):
        try:
            return FormulaId(raw.strip())
        except ValueError:
            pass
    return FormulaId.GENERIC_FACTOR_V1


def recompute_derived_outputs(metrics: MetricMap, formula_id: FormulaId) -> None:
    """Write ``output.fair_value`` and ``output.return_gap`` into ``metrics`` in place."""
    price = safe_float(metrics.get(PRICE))
    fair_value: float | None = None
    if price is not None:
        fair_value = safe_float(FORMULAS[formula_id](price, metrics))

    metrics[FAIR_VALUE] = fair_value
    if fair_value is not None and price is not None and price != 0:
        metrics[RETURN_GAP] = safe_float(fair_value / price - 1)
    else:
        metrics[RETURN_GAP] = None


def pick_primary_value(metrics: Mapping[str, float | None]) -> float | None:
    """First finite value among fair value, legacy fair value and price."""
    for key in PRIMARY_VALUE_KEYS:
        value = safe_float(metrics.get(key))
        if value is not None:
            return value
    return None
