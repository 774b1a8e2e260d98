"""Valuation method version content: metric graphs, asset scopes, version choice."""

from __future__ import annotations

from typing import Any, Mapping, Sequence

from valuator.core.exceptions import ValidationError
from valuator.core.validation import (
    normalize_optional_string,
    normalize_record,
    normalize_required_string,
    normalize_string_array,
)

from .enums import FormulaId, MetricLayer, MetricUnit


def normalize_asset_scope(value: Any) -> dict[str, list[str]]:
    """Asset scope filter with de-duplicated lists; markets are upper-cased."""
    raw = normalize_record(value)
    markets: list[str] = []
    for market in normalize_string_array(raw.get("markets")):
        if market.upper() not in markets:
            markets.append(market.upper())
    return {
        "kinds": normalize_string_array(raw.get("kinds")),
        "asset_classes": normalize_string_array(raw.get("asset_classes", raw.get("assetClasses"))),
        "markets": markets,
        "domains": normalize_string_array(raw.get("domains")),
    }


def normalize_metric_graph(value: Any) -> list[dict[str, Any]]:
    """Validate an ordered metric node list.

    ``key`` and ``label`` are required. Unknown layers fall back to ``top`` and
    unknown units to ``unknown``.
    """
    if not isinstance(value, (list, tuple)):
        raise ValidationError("graph must be an array.", details={"field": "graph"})

    nodes: list[dict[str, Any]] = []
    for index, raw in enumerate(value):
        node = normalize_record(raw)
        layer = normalize_optional_string(node.get("layer"))
        unit = normalize_optional_string(node.get("unit"))
        depends_on = node.get("depends_on", node.get("dependsOn"))
        formula_id = normalize_optional_string(node.get("formula_id", node.get("formulaId")))
        editable = node.get("editable")
        nodes.append(
            {
                "key": normalize_required_string(node.get("key"), f"graph[{index}].key"),
                "label": normalize_required_string(node.get("label"), f"graph[{index}].label"),
                "layer": layer if layer in {m.value for m in MetricLayer} else MetricLayer.TOP.value,
                "unit": unit if unit in {m.value for m in MetricUnit} else MetricUnit.UNKNOWN.value,
                "depends_on": normalize_string_array(depends_on),
                "formula_id": formula_id or FormulaId.GENERIC_FACTOR_V1.value,
                "editable": True if editable is None else bool(editable),
            }
        )
    return nodes


def build_default_metric_graph(formula_id: FormulaId) -> list[dict[str, Any]]:
    """Six-node graph: price, momentum and volatility, beta, fair value, return gap."""
    fid = formula_id.value
    return [
        {
            "key": "market.price",
            "label": "Market price",
            "layer": "top",
            "unit": "currency",
            "depends_on": [],
            "formula_id": fid,
            "editable": False,
        },
        {
            "key": "factor.momentum.20d",
            "label": "20-day momentum",
            "layer": "first_order",
            "unit": "pct",
            "depends_on": ["market.price"],
            "formula_id": fid,
            "editable": True,
        },
        {
            "key": "risk.volatility.20d",
            "label": "20-day volatility",
            "layer": "first_order",
            "unit": "pct",
            "depends_on": ["market.price"],
            "formula_id": fid,
            "editable": True,
        },
        {
            "key": "risk.beta",
            "label": "Beta",
            "layer": "second_order",
            "unit": "number",
            "depends_on": ["factor.momentum.20d", "risk.volatility.20d"],
            "formula_id": fid,
            "editable": True,
        },
        {
            "key": "output.fair_value",
            "label": "Estimated fair value",
            "layer": "output",
            "unit": "currency",
            "depends_on": ["factor.momentum.20d", "risk.volatility.20d", "risk.beta"],
            "formula_id": fid,
            "editable": False,
        },
        {
            "key": "output.return_gap",
            "label": "Return gap",
            "layer": "output",
            "unit": "pct",
            "depends_on": ["output.fair_value", "market.price"],
            "formula_id": fid,
            "editable": False,
        },
    ]


def _in_window(as_of_date: str, start: str | None, end: str | None) -> bool:
    if start and as_of_date < start:
        return False
    if end and as_of_date > end:
        return False
    return True


def pick_preferred_version(
    method: Mapping[str, Any],
    versions: Sequence[Mapping[str, Any]],
    as_of_date: str | None,
) -> Mapping[str, Any] | None:
    """Choose the version that values ``method`` at ``as_of_date``.

    Precedence:
    1. Highest-numbered version whose effective window contains the date
    2. The method's recorded active version
    3. The highest-numbered version
    """
    if not versions:
        return None
    by_version_desc = sorted(versions, key=lambda v: v["version"], reverse=True)
    if as_of_date:
        for version in by_version_desc:
            if _in_window(as_of_date, version.get("effective_from"), version.get("effective_to")):
                return version
    active_id = method.get("active_version_id")
    if active_id:
        for version in versions:
            if version["id"] == active_id:
                return version
    return by_version_desc[0]
