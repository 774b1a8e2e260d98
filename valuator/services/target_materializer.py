"""Target materializer: compute and persist the symbols an insight targets.

A run resolves every enabled include rule into a symbol -> sources map,
subtracts the union of exclude-rule symbols and manual exclusions, and (when
persisting) swaps the insight's stored target rows for the new set in one
transaction. Runs are full replacements, never incremental diffs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from valuator.core.config import settings
from valuator.core.data_helpers import utc_now
from valuator.core.exceptions import NotFoundError
from valuator.core.logging import get_logger
from valuator.core.validation import (
    clamp_limit,
    normalize_optional_string,
    normalize_required_string,
)
from valuator.domain.enums import ScopeMode
from valuator.repositories import insight_rules_orm as rules_repo
from valuator.repositories import insight_targets_orm as targets_repo
from valuator.repositories import insights_orm as insights_repo

from .scope_resolver import resolve_scope


logger = get_logger("services.target_materializer")


@dataclass
class MaterializeResult:
    """Outcome of one materialization run."""

    insight_id: str
    total: int
    symbols: list[str]
    truncated: bool
    rules_applied: int
    updated_at: datetime
    sources: dict[str, list[str]] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "insight_id": self.insight_id,
            "total": self.total,
            "symbols": list(self.symbols),
            "truncated": self.truncated,
            "rules_applied": self.rules_applied,
            "updated_at": self.updated_at,
        }


async def compute_targets(insight_id: str) -> tuple[dict[str, list[tuple[str, str]]], int]:
    """Compute the surviving symbol -> contributing include sources map.

    Returns:
        (sources by symbol in lexicographic symbol order, enabled rule count)
    """
    rules = await rules_repo.list_enabled_scope_rules(insight_id)

    include_sources: dict[str, list[tuple[str, str]]] = {}
    excluded: set[str] = set()
    for rule in rules:
        symbols = await resolve_scope(rule["scope_type"], rule["scope_key"])
        if rule["mode"] == ScopeMode.INCLUDE.value:
            source = (rule["scope_type"], rule["scope_key"])
            for symbol in symbols:
                bucket = include_sources.setdefault(symbol, [])
                if source not in bucket:
                    bucket.append(source)
        else:
            excluded |= symbols

    excluded |= await targets_repo.list_exclusion_symbols(insight_id)

    survivors = {
        symbol: include_sources[symbol]
        for symbol in sorted(include_sources)
        if symbol not in excluded
    }
    return survivors, len(rules)


async def materialize(
    insight_id: Any,
    persist: bool = True,
    preview_limit: Any = None,
) -> MaterializeResult:
    """Resolve an insight's scope rules into its target set.

    Args:
        insight_id: Insight to materialize
        persist: Replace the stored target rows with the computed set
        preview_limit: Max symbols returned (the true total is always reported)

    Returns:
        MaterializeResult with the (possibly truncated) sorted symbol list

    Raises:
        NotFoundError: If the insight does not exist
    """
    insight_id = normalize_required_string(insight_id, "insight_id")
    limit = clamp_limit(
        preview_limit,
        settings.materialize_preview_limit,
        settings.materialize_preview_limit_max,
    )
    if not await insights_repo.insight_exists(insight_id):
        raise NotFoundError(message=f"Insight not found: {insight_id}")

    survivors, rules_applied = await compute_targets(insight_id)
    symbols = list(survivors)
    materialized_at = utc_now()

    if persist:
        rows = await targets_repo.replace_materialized_targets(
            insight_id, survivors, materialized_at
        )
        logger.info(
            f"Materialized insight {insight_id}: {len(symbols)} symbols from {rules_applied} rules",
            extra={
                "insight_id": insight_id,
                "total": len(symbols),
                "rows": rows,
                "rules_applied": rules_applied,
            },
        )

    return MaterializeResult(
        insight_id=insight_id,
        total=len(symbols),
        symbols=symbols[:limit],
        truncated=len(symbols) > limit,
        rules_applied=rules_applied,
        updated_at=materialized_at,
        sources={s: [f"{t}:{k}" for t, k in src] for s, src in list(survivors.items())[:limit]},
    )


async def exclude_target(insight_id: Any, symbol: Any, reason: Any = None) -> MaterializeResult:
    """Exclude a symbol from an insight, then rematerialize it."""
    insight_id = normalize_required_string(insight_id, "insight_id")
    symbol = normalize_required_string(symbol, "symbol")
    reason = normalize_optional_string(reason)
    if not await insights_repo.insight_exists(insight_id):
        raise NotFoundError(message=f"Insight not found: {insight_id}")

    await targets_repo.upsert_target_exclusion(insight_id, symbol, reason)
    return await materialize(insight_id, persist=True)


async def unexclude_target(insight_id: Any, symbol: Any) -> MaterializeResult:
    """Remove a manual exclusion, then rematerialize the insight."""
    insight_id = normalize_required_string(insight_id, "insight_id")
    symbol = normalize_required_string(symbol, "symbol")
    if not await insights_repo.insight_exists(insight_id):
        raise NotFoundError(message=f"Insight not found: {insight_id}")

    await targets_repo.delete_target_exclusion(insight_id, symbol)
    return await materialize(insight_id, persist=True)


async def refresh_all_materializations() -> list[MaterializeResult]:
    """Rematerialize every insight that is not soft-deleted."""
    insight_ids = await insights_repo.list_refreshable_insight_ids()
    logger.info(f"Refreshing materializations for {len(insight_ids)} insights")
    results = []
    for insight_id in insight_ids:
        results.append(await materialize(insight_id, persist=True))
    return results
