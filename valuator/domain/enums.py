"""Closed vocabularies for insights, scope rules, effect channels and methods."""

from __future__ import annotations

from enum import Enum


class InsightStatus(str, Enum):
    """Insight lifecycle status."""

    DRAFT = "draft"
    ACTIVE = "active"
    ARCHIVED = "archived"
    DELETED = "deleted"


class ScopeType(str, Enum):
    """Kind of predicate a scope rule evaluates."""

    SYMBOL = "symbol"
    TAG = "tag"
    KIND = "kind"
    ASSET_CLASS = "asset_class"
    MARKET = "market"
    DOMAIN = "domain"
    WATCHLIST = "watchlist"


class ScopeMode(str, Enum):
    INCLUDE = "include"
    EXCLUDE = "exclude"


class EffectStage(str, Enum):
    """Ordering bucket for effect channels.

    Outputs are recomputed after ``base``, ``first_order`` and ``second_order``;
    ``output`` and ``risk`` channels perturb the recomputed values directly.
    """

    BASE = "base"
    FIRST_ORDER = "first_order"
    SECOND_ORDER = "second_order"
    OUTPUT = "output"
    RISK = "risk"

    @property
    def order(self) -> int:
        return STAGE_ORDER.index(self)

    @property
    def triggers_recompute(self) -> bool:
        return self in (EffectStage.BASE, EffectStage.FIRST_ORDER, EffectStage.SECOND_ORDER)


STAGE_ORDER: tuple[EffectStage, ...] = (
    EffectStage.BASE,
    EffectStage.FIRST_ORDER,
    EffectStage.SECOND_ORDER,
    EffectStage.OUTPUT,
    EffectStage.RISK,
)


class EffectOperator(str, Enum):
    SET = "set"
    ADD = "add"
    MUL = "mul"
    MIN = "min"
    MAX = "max"


class MethodStatus(str, Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"


class FormulaId(str, Enum):
    """Formulas a method version may name."""

    EQUITY_FACTOR_V1 = "equity_factor_v1"
    FUTURES_BASIS_V1 = "futures_basis_v1"
    SPOT_CARRY_V1 = "spot_carry_v1"
    FOREX_PPP_V1 = "forex_ppp_v1"
    BOND_YIELD_V1 = "bond_yield_v1"
    GENERIC_FACTOR_V1 = "generic_factor_v1"


class DataDomain(str, Enum):
    """Data domains a ``domain`` scope rule may reference."""

    STOCK = "stock"
    ETF = "etf"
    INDEX = "index"
    PUBLIC_FUND = "public_fund"
    FUTURES = "futures"
    SPOT = "spot"
    FX = "fx"
    HK_STOCK = "hk_stock"
    US_STOCK = "us_stock"
    BOND = "bond"
    MACRO = "macro"


class MetricLayer(str, Enum):
    TOP = "top"
    FIRST_ORDER = "first_order"
    SECOND_ORDER = "second_order"
    OUTPUT = "output"
    RISK = "risk"


class MetricUnit(str, Enum):
    NUMBER = "number"
    PCT = "pct"
    CURRENCY = "currency"
    SCORE = "score"
    UNKNOWN = "unknown"
