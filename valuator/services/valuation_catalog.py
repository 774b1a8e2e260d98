"""Built-in valuation method catalog and startup seeding.

Usage:
    from valuator.services.valuation_catalog import seed_builtin_methods
    await seed_builtin_methods()
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from valuator.core.logging import get_logger
from valuator.domain.enums import FormulaId
from valuator.domain.valuation_graph import build_default_metric_graph
from valuator.repositories import valuation_methods_orm as methods_repo


logger = get_logger("services.valuation_catalog")

OUTPUT_KEYS = ["output.fair_value", "output.return_gap"]


@dataclass(frozen=True)
class BuiltinMethod:
    """Static definition of a seeded valuation method."""

    method_key: str
    name: str
    description: str
    formula_id: FormulaId
    asset_scope: dict[str, list[str]]
    param_schema: dict[str, float]
    required_metrics: list[str] = field(default_factory=list)

    @property
    def version_id(self) -> str:
        return f"{self.method_key}.v1"

    def method_row(self) -> dict[str, Any]:
        return {
            "method_key": self.method_key,
            "name": self.name,
            "description": self.description,
            "asset_scope": self.asset_scope,
        }

    def version_content(self) -> dict[str, Any]:
        return {
            "graph": build_default_metric_graph(self.formula_id),
            "param_schema": dict(self.param_schema),
            "metric_schema": {
                "required": list(self.required_metrics),
                "outputs": list(OUTPUT_KEYS),
            },
            "formula_manifest": {"formulaId": self.formula_id.value, "locked": True},
        }


BUILTIN_METHODS: tuple[BuiltinMethod, ...] = (
    BuiltinMethod(
        method_key="builtin.equity.factor",
        name="Equity multi-factor",
        description="Stocks, ETFs and indices: momentum uplift with a volatility penalty.",
        formula_id=FormulaId.EQUITY_FACTOR_V1,
        asset_scope={
            "kinds": ["stock", "fund", "index"],
            "asset_classes": ["stock", "etf"],
            "markets": ["CN", "HK", "US"],
            "domains": ["stock", "etf", "index", "hk_stock", "us_stock"],
        },
        param_schema={"alphaWeight": 0.45, "momentumWeight": 0.35, "volatilityPenalty": 0.2},
        required_metrics=["market.price", "factor.momentum.20d", "risk.volatility.20d"],
    ),
    BuiltinMethod(
        method_key="builtin.futures.basis",
        name="Futures basis",
        description="Futures: price plus the basis term.",
        formula_id=FormulaId.FUTURES_BASIS_V1,
        asset_scope={
            "kinds": ["futures"],
            "asset_classes": ["futures"],
            "markets": ["CN"],
            "domains": ["futures"],
        },
        param_schema={"basisWeight": 0.7, "volPenalty": 0.3},
        required_metrics=["market.price", "factor.basis", "risk.volatility.20d"],
    ),
    BuiltinMethod(
        method_key="builtin.spot.carry",
        name="Spot carry",
        description="Spot commodities: price grown by the annualized carry.",
        formula_id=FormulaId.SPOT_CARRY_V1,
        asset_scope={
            "kinds": ["spot"],
            "asset_classes": ["spot"],
            "markets": ["CN"],
            "domains": ["spot"],
        },
        param_schema={"carryWeight": 1.0},
        required_metrics=["market.price", "factor.carry.annualized"],
    ),
    BuiltinMethod(
        method_key="builtin.forex.ppp",
        name="FX purchasing power parity",
        description="Currency pairs: price adjusted by the PPP gap.",
        formula_id=FormulaId.FOREX_PPP_V1,
        asset_scope={
            "kinds": ["forex"],
            "asset_classes": [],
            "markets": ["FX"],
            "domains": ["fx"],
        },
        param_schema={"pppWeight": 0.8, "momentumWeight": 0.2},
        required_metrics=["market.price", "factor.ppp_gap"],
    ),
    BuiltinMethod(
        method_key="builtin.bond.yield",
        name="Bond yield sensitivity",
        description="Bonds and rates: price less duration times the yield shift.",
        formula_id=FormulaId.BOND_YIELD_V1,
        asset_scope={
            "kinds": ["bond", "rate"],
            "asset_classes": [],
            "markets": [],
            "domains": ["bond", "macro"],
        },
        param_schema={"durationWeight": 1.0},
        required_metrics=["market.price", "risk.duration", "risk.yield_shift"],
    ),
    BuiltinMethod(
        method_key="builtin.generic.factor",
        name="Generic factor",
        description="Fallback for any instrument: damped momentum and volatility terms.",
        formula_id=FormulaId.GENERIC_FACTOR_V1,
        asset_scope={
            "kinds": [],
            "asset_classes": [],
            "markets": [],
            "domains": ["stock", "etf", "index", "futures", "spot", "fx", "bond", "macro"],
        },
        param_schema={"momentumWeight": 0.5, "volatilityPenalty": 0.15},
        required_metrics=["market.price"],
    ),
)

BUILTIN_METHODS_BY_KEY: dict[str, BuiltinMethod] = {m.method_key: m for m in BUILTIN_METHODS}

GENERIC_METHOD_KEY = "builtin.generic.factor"


async def seed_builtin_methods() -> int:
    """Write every built-in method and its version 1. Safe to run repeatedly.

    Returns:
        Number of built-in methods written
    """
    for builtin in BUILTIN_METHODS:
        await methods_repo.upsert_builtin_method(
            builtin.method_row(), builtin.version_id, builtin.version_content()
        )
    logger.info(f"Seeded {len(BUILTIN_METHODS)} built-in valuation methods")
    return len(BUILTIN_METHODS)
