"""Effect composer: apply insight effect channels to a symbol's base valuation.

A preview resolves the valuation method and version, computes base metrics,
collects every eligible channel, interpolates each one at the as-of date and
applies them in stage/priority order, recomputing formula outputs after the
base, first_order and second_order stages. Successful previews are persisted
as the snapshot for (symbol, as_of_date, method_key).

Usage:
    from valuator.services.valuation_preview import preview_valuation

    result = await preview_valuation("600519.SH", as_of_date="2026-01-15")
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from valuator.core.config import settings
from valuator.core.data_helpers import today_iso, utc_now
from valuator.core.exceptions import NotFoundError
from valuator.core.logging import get_logger
from valuator.core.validation import (
    clamp_limit,
    normalize_optional_date,
    normalize_optional_string,
    normalize_required_date,
    normalize_required_string,
)
from valuator.domain.effects import (
    AppliedEffect,
    ChannelCandidate,
    apply_effect_operator,
    interpolate_effect,
)
from valuator.domain.enums import STAGE_ORDER, EffectOperator, EffectStage, FormulaId
from valuator.domain.formulas import (
    pick_primary_value,
    recompute_derived_outputs,
    resolve_formula_id,
)
from valuator.repositories import insight_targets_orm as targets_repo
from valuator.repositories import market_data_orm as market_repo
from valuator.repositories import valuation_snapshots_orm as snapshots_repo

from .base_metrics import compute_base
from .valuation_methods import pick_version, resolve_method, route_method_key


logger = get_logger("services.valuation_preview")

MetricMap = dict[str, float | None]


@dataclass
class ValuationPreview:
    """Result of previewing a symbol's adjusted valuation."""

    symbol: str
    as_of_date: str
    method_key: str | None
    method_version_id: str | None
    base_metrics: MetricMap = field(default_factory=dict)
    adjusted_metrics: MetricMap = field(default_factory=dict)
    base_value: float | None = None
    adjusted_value: float | None = None
    applied_effects: list[AppliedEffect] = field(default_factory=list)
    not_applicable: bool = False
    reason: str | None = None
    computed_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "as_of_date": self.as_of_date,
            "method_key": self.method_key,
            "method_version_id": self.method_version_id,
            "base_metrics": dict(self.base_metrics),
            "adjusted_metrics": dict(self.adjusted_metrics),
            "base_value": self.base_value,
            "adjusted_value": self.adjusted_value,
            "applied_effects": [effect.to_dict() for effect in self.applied_effects],
            "not_applicable": self.not_applicable,
            "reason": self.reason,
            "computed_at": self.computed_at,
        }


def _not_applicable(
    symbol: str,
    as_of_date: str,
    method_key: str | None,
    method_version_id: str | None,
    reason: str,
) -> ValuationPreview:
    logger.info(
        f"Valuation not applicable for {symbol}: {reason}",
        extra={"symbol": symbol, "as_of_date": as_of_date, "method_key": method_key},
    )
    return ValuationPreview(
        symbol=symbol,
        as_of_date=as_of_date,
        method_key=method_key,
        method_version_id=method_version_id,
        not_applicable=True,
        reason=reason,
    )


async def load_candidates(symbol: str, as_of_date: str, method_key: str) -> list[ChannelCandidate]:
    """Eligible channels for ``symbol`` with their points, in application order."""
    rows = await targets_repo.list_candidate_channels(symbol, as_of_date, method_key)
    points = await targets_repo.list_points_for_channels(
        sorted({row["channel_id"] for row in rows})
    )
    candidates = [
        ChannelCandidate(
            channel_id=row["channel_id"],
            insight_id=row["insight_id"],
            insight_title=row["insight_title"],
            metric_key=row["metric_key"],
            stage=EffectStage(row["stage"]),
            operator=EffectOperator(row["operator"]),
            priority=int(row["priority"]),
            created_at=row["created_at"],
            points=points.get(row["channel_id"], ()),
        )
        for row in rows
    ]
    return sorted(candidates, key=ChannelCandidate.sort_key)


def compose_effects(
    base_metrics: MetricMap,
    candidates: list[ChannelCandidate],
    as_of_date: str,
    formula_id: FormulaId,
    scopes_by_insight: dict[str, list[str]],
) -> tuple[MetricMap, list[AppliedEffect]]:
    """Apply sorted channels to a copy of ``base_metrics``.

    Args:
        base_metrics: Base map including its derived outputs
        candidates: Channels already in ``sort_key`` order
        as_of_date: YYYY-MM-DD used for interpolation
        formula_id: Formula used to recompute outputs between stages
        scopes_by_insight: "type:key" sources per insight for the audit trail

    Returns:
        (adjusted metrics, applied effects in application order)
    """
    adjusted: MetricMap = dict(base_metrics)
    applied: list[AppliedEffect] = []

    for stage in STAGE_ORDER:
        for candidate in candidates:
            if candidate.stage is not stage:
                continue
            value = interpolate_effect(candidate.points, as_of_date)
            if value is None:
                continue
            before = adjusted.get(candidate.metric_key)
            after = apply_effect_operator(before, candidate.operator, value)
            adjusted[candidate.metric_key] = after
            applied.append(
                AppliedEffect(
                    insight_id=candidate.insight_id,
                    insight_title=candidate.insight_title,
                    channel_id=candidate.channel_id,
                    metric_key=candidate.metric_key,
                    stage=stage,
                    operator=candidate.operator,
                    priority=candidate.priority,
                    value=value,
                    before_value=before,
                    after_value=after,
                    scopes=list(scopes_by_insight.get(candidate.insight_id, [])),
                )
            )
        if stage.triggers_recompute:
            recompute_derived_outputs(adjusted, formula_id)

    return adjusted, applied


async def preview_valuation(
    symbol: Any,
    as_of_date: Any = None,
    method_key: Any = None,
) -> ValuationPreview:
    """Compute a symbol's base and insight-adjusted valuation.

    Args:
        symbol: Instrument symbol
        as_of_date: YYYY-MM-DD, defaults to today (UTC)
        method_key: Explicit method; routed from the instrument profile when omitted

    Returns:
        ValuationPreview; ``not_applicable`` is set when the method or prices are missing
    """
    symbol = normalize_required_string(symbol, "symbol")
    as_of = normalize_optional_date(as_of_date, "as_of_date") or today_iso()
    requested_key = normalize_optional_string(method_key)

    if requested_key:
        key = requested_key
    else:
        profile = await market_repo.get_instrument_profile(symbol)
        key = route_method_key(profile)

    resolved = await resolve_method(key)
    version = pick_version(resolved[0], resolved[1], as_of) if resolved else None
    if resolved is None or version is None:
        return _not_applicable(symbol, as_of, key, None, f"valuation method unavailable: {key}")
    method = resolved[0]

    base_metrics = await compute_base(symbol, as_of)
    if base_metrics is None:
        return _not_applicable(
            symbol, as_of, method["method_key"], version["id"], "missing price data"
        )

    formula_id = resolve_formula_id(version.get("formula_manifest"))
    recompute_derived_outputs(base_metrics, formula_id)

    candidates = await load_candidates(symbol, as_of, method["method_key"])
    scopes = await targets_repo.list_scopes_for_symbol(symbol)
    adjusted_metrics, applied = compose_effects(base_metrics, candidates, as_of, formula_id, scopes)

    snapshot = await snapshots_repo.upsert_snapshot(
        symbol,
        as_of,
        method["method_key"],
        version["id"],
        base_metrics,
        adjusted_metrics,
        [effect.to_dict() for effect in applied],
    )
    logger.debug(
        f"Previewed {symbol} with {method['method_key']}: {len(applied)} effects applied",
        extra={"symbol": symbol, "as_of_date": as_of, "candidates": len(candidates)},
    )

    return ValuationPreview(
        symbol=symbol,
        as_of_date=as_of,
        method_key=method["method_key"],
        method_version_id=version["id"],
        base_metrics=base_metrics,
        adjusted_metrics=adjusted_metrics,
        base_value=pick_primary_value(base_metrics),
        adjusted_value=pick_primary_value(adjusted_metrics),
        applied_effects=applied,
        computed_at=snapshot["computed_at"],
    )


# =============================================================================
# SNAPSHOTS
# =============================================================================


async def get_valuation_snapshot(symbol: Any, as_of_date: Any, method_key: Any) -> dict[str, Any]:
    """Stored snapshot for (symbol, as_of_date, method_key).

    Raises:
        NotFoundError: If no preview has been persisted for the triple
    """
    symbol = normalize_required_string(symbol, "symbol")
    as_of = normalize_required_date(as_of_date, "as_of_date")
    key = normalize_required_string(method_key, "method_key")
    snapshot = await snapshots_repo.get_snapshot(symbol, as_of, key)
    if snapshot is None:
        raise NotFoundError(message=f"No valuation snapshot for {symbol} {as_of} {key}")
    return snapshot


async def list_valuation_snapshots(symbol: Any, limit: Any = None) -> list[dict[str, Any]]:
    symbol = normalize_required_string(symbol, "symbol")
    return await snapshots_repo.list_snapshots_for_symbol(symbol, clamp_limit(limit, 20, settings.list_limit_max))
