"""Valuation method registry: catalog reads, custom method lifecycle, routing.

Built-in methods are read-only. Custom methods are created from a template
(another method's preferred version), edited, cloned from built-ins and
versioned by publishing new graph/param/metric content.

Usage:
    from valuator.services import valuation_methods

    detail = await valuation_methods.get_valuation_method_detail("builtin.equity.factor")
    method_key = valuation_methods.route_method_key(profile)
"""

from __future__ import annotations

from typing import Any, Mapping

from valuator.core.config import settings
from valuator.core.data_helpers import utc_now
from valuator.core.exceptions import (
    ConflictError,
    InvariantViolationError,
    NotFoundError,
    ValidationError,
)
from valuator.core.logging import get_logger
from valuator.core.validation import (
    clamp_limit,
    clamp_offset,
    normalize_enum,
    normalize_method_key,
    normalize_optional_date,
    normalize_optional_string,
    normalize_record,
    normalize_required_string,
)
from valuator.domain.enums import FormulaId, MethodStatus
from valuator.domain.valuation_graph import (
    build_default_metric_graph,
    normalize_asset_scope,
    normalize_metric_graph,
    pick_preferred_version,
)
from valuator.repositories import valuation_methods_orm as methods_repo

from .valuation_catalog import GENERIC_METHOD_KEY


logger = get_logger("services.valuation_methods")


DEFAULT_TEMPLATE_CONTENT: dict[str, Any] = {
    "param_schema": {"momentumWeight": 0.5, "volatilityPenalty": 0.15},
    "metric_schema": {
        "required": ["market.price"],
        "outputs": ["output.fair_value", "output.return_gap"],
    },
    "formula_manifest": {"formulaId": FormulaId.GENERIC_FACTOR_V1.value, "locked": True},
}


def _timestamp_ms() -> int:
    return int(utc_now().timestamp() * 1000)


def _default_content() -> dict[str, Any]:
    return {
        "graph": build_default_metric_graph(FormulaId.GENERIC_FACTOR_V1),
        "param_schema": dict(DEFAULT_TEMPLATE_CONTENT["param_schema"]),
        "metric_schema": {
            key: list(value) for key, value in DEFAULT_TEMPLATE_CONTENT["metric_schema"].items()
        },
        "formula_manifest": dict(DEFAULT_TEMPLATE_CONTENT["formula_manifest"]),
    }


def _copy_content(version: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "graph": [dict(node) for node in version.get("graph") or []],
        "param_schema": dict(version.get("param_schema") or {}),
        "metric_schema": dict(version.get("metric_schema") or {}),
        "formula_manifest": dict(version.get("formula_manifest") or {}),
    }


# =============================================================================
# RESOLUTION
# =============================================================================


async def resolve_method(method_key: str) -> tuple[dict[str, Any], list[dict[str, Any]]] | None:
    """Live method and its versions, or None if the key is unknown."""
    return await methods_repo.get_method_with_versions(method_key)


def pick_version(
    method: Mapping[str, Any],
    versions: list[dict[str, Any]],
    as_of_date: str | None,
) -> dict[str, Any] | None:
    """Version used to value ``method`` at ``as_of_date`` (see pick_preferred_version)."""
    chosen = pick_preferred_version(method, versions, as_of_date)
    return dict(chosen) if chosen is not None else None


def route_method_key(profile: Mapping[str, Any] | None) -> str:
    """Default method key for an instrument profile."""
    profile = profile or {}
    kind = (normalize_optional_string(profile.get("kind")) or "").lower()
    asset_class = (normalize_optional_string(profile.get("asset_class")) or "").lower()
    tags = [str(tag) for tag in profile.get("tags") or []]

    if kind == "futures" or asset_class == "futures":
        return "builtin.futures.basis"
    if kind == "spot" or asset_class == "spot":
        return "builtin.spot.carry"
    if kind == "forex":
        return "builtin.forex.ppp"
    if kind in ("stock", "fund") or asset_class in ("stock", "etf"):
        return "builtin.equity.factor"
    if any("bond" in tag for tag in tags):
        return "builtin.bond.yield"
    return GENERIC_METHOD_KEY


# =============================================================================
# CATALOG READS
# =============================================================================


async def list_valuation_methods(
    query: Any = None,
    include_archived: bool = False,
    include_builtin: bool = True,
    limit: Any = None,
    offset: Any = None,
) -> dict[str, Any]:
    """Page through live methods, built-ins first.

    Returns:
        Dict with items, total, limit, offset
    """
    page_limit = clamp_limit(limit, settings.list_limit_default, settings.list_limit_max)
    page_offset = clamp_offset(offset)
    items, total = await methods_repo.list_methods(
        normalize_optional_string(query),
        bool(include_archived),
        bool(include_builtin),
        page_limit,
        page_offset,
    )
    return {"items": items, "total": total, "limit": page_limit, "offset": page_offset}


async def get_valuation_method_detail(method_key: Any) -> dict[str, Any]:
    """Method with all versions, highest version first.

    Raises:
        NotFoundError: If no live method has this key
    """
    key = normalize_required_string(method_key, "method_key")
    resolved = await resolve_method(key)
    if resolved is None:
        raise NotFoundError(message=f"Valuation method not found: {key}")
    method, versions = resolved
    return {"method": method, "versions": versions}


# =============================================================================
# CUSTOM METHOD LIFECYCLE
# =============================================================================


async def create_custom_valuation_method(
    method_key: Any,
    name: Any,
    description: Any = None,
    template_method_key: Any = None,
    asset_scope: Any = None,
) -> dict[str, Any]:
    """Create a custom method whose version 1 copies a template's content.

    Args:
        method_key: New unique key
        name: Display name
        description: Optional description
        template_method_key: Method whose preferred version seeds the content;
            the generic factor defaults are used when omitted
        asset_scope: Optional asset scope filter

    Raises:
        ConflictError: If the key is already taken
        NotFoundError: If the template method does not exist
    """
    key = normalize_method_key(method_key, "method_key")
    display_name = normalize_required_string(name, "name")
    template_key = normalize_optional_string(template_method_key)

    if await methods_repo.method_key_exists(key):
        raise ConflictError(message=f"Valuation method already exists: {key}")

    if template_key:
        template = await resolve_method(template_key)
        if template is None:
            raise NotFoundError(message=f"Template method not found: {template_key}")
        template_method, template_versions = template
        version = pick_version(template_method, template_versions, None)
        content = _copy_content(version) if version else _default_content()
    else:
        content = _default_content()

    version_id = f"{key}.v1.{_timestamp_ms()}"
    await methods_repo.insert_method_with_version(
        {
            "method_key": key,
            "name": display_name,
            "description": normalize_optional_string(description),
            "asset_scope": normalize_asset_scope(asset_scope),
        },
        version_id,
        content,
    )
    logger.info(
        f"Created valuation method {key}",
        extra={"method_key": key, "template": template_key, "version_id": version_id},
    )
    return await get_valuation_method_detail(key)


async def _require_custom(method_key: str, action: str) -> tuple[dict[str, Any], list[dict[str, Any]]]:
    resolved = await resolve_method(method_key)
    if resolved is None:
        raise NotFoundError(message=f"Valuation method not found: {method_key}")
    if resolved[0]["is_builtin"]:
        raise InvariantViolationError(
            message=f"Built-in valuation methods cannot be {action}: {method_key}",
            details={"method_key": method_key},
        )
    return resolved


async def update_custom_valuation_method(
    method_key: Any,
    name: Any = None,
    description: Any = None,
    status: Any = None,
    asset_scope: Any = None,
) -> dict[str, Any]:
    """Edit name, description, status or asset scope of a custom method."""
    key = normalize_required_string(method_key, "method_key")
    await _require_custom(key, "edited")

    fields: dict[str, Any] = {}
    if name is not None:
        fields["name"] = normalize_required_string(name, "name")
    if description is not None:
        fields["description"] = normalize_optional_string(description)
    if status is not None:
        fields["status"] = normalize_enum(MethodStatus, status, "status").value
    if asset_scope is not None:
        fields["asset_scope"] = normalize_asset_scope(asset_scope)

    await methods_repo.update_method(key, fields)
    return await get_valuation_method_detail(key)


async def clone_builtin_valuation_method(
    source_method_key: Any,
    target_method_key: Any,
    name: Any = None,
    description: Any = None,
    asset_scope: Any = None,
) -> dict[str, Any]:
    """Copy a built-in's preferred version into a new custom method.

    Raises:
        InvariantViolationError: If the source is not built-in or has no version
        ConflictError: If the target key is already taken
    """
    source_key = normalize_required_string(source_method_key, "source_method_key")
    target_key = normalize_method_key(target_method_key, "target_method_key")

    resolved = await resolve_method(source_key)
    if resolved is None:
        raise NotFoundError(message=f"Valuation method not found: {source_key}")
    source, versions = resolved
    if not source["is_builtin"]:
        raise InvariantViolationError(message=f"Only built-in methods can be cloned: {source_key}")
    version = pick_version(source, versions, None)
    if version is None:
        raise InvariantViolationError(message=f"Built-in method has no version: {source_key}")

    if await methods_repo.method_key_exists(target_key):
        raise ConflictError(message=f"Valuation method already exists: {target_key}")

    version_id = f"{target_key}.v1.{_timestamp_ms()}"
    await methods_repo.insert_method_with_version(
        {
            "method_key": target_key,
            "name": normalize_optional_string(name) or f"{source['name']} (clone)",
            "description": normalize_optional_string(description) or source["description"],
            "asset_scope": (
                normalize_asset_scope(asset_scope)
                if asset_scope is not None
                else dict(source["asset_scope"])
            ),
        },
        version_id,
        _copy_content(version),
    )
    logger.info(f"Cloned valuation method {source_key} -> {target_key}")
    return await get_valuation_method_detail(target_key)


async def publish_valuation_method_version(
    method_key: Any,
    graph: Any,
    param_schema: Any = None,
    metric_schema: Any = None,
    formula_id: Any = None,
    effective_from: Any = None,
    effective_to: Any = None,
) -> dict[str, Any]:
    """Append a new version (max version + 1) to a custom method.

    The active version is unchanged; see set_active_valuation_method_version.

    Raises:
        InvariantViolationError: If the method is built-in
        ValidationError: On a malformed graph, formula id or effective window
    """
    key = normalize_required_string(method_key, "method_key")
    method, versions = await _require_custom(key, "published")

    nodes = normalize_metric_graph(graph)
    start = normalize_optional_date(effective_from, "effective_from")
    end = normalize_optional_date(effective_to, "effective_to")
    if start and end and start > end:
        raise ValidationError(
            "effective_from must not be after effective_to.",
            details={"effective_from": start, "effective_to": end},
        )

    template = pick_version(method, versions, None)
    manifest = dict(
        (template or {}).get("formula_manifest") or DEFAULT_TEMPLATE_CONTENT["formula_manifest"]
    )
    if formula_id is not None:
        manifest["formulaId"] = normalize_enum(FormulaId, formula_id, "formula_id").value

    next_version = max((v["version"] for v in versions), default=0) + 1
    version_id = f"{key}.v{next_version}.{_timestamp_ms()}"
    await methods_repo.insert_version(
        method["id"],
        version_id,
        next_version,
        {
            "graph": nodes,
            "param_schema": normalize_record(param_schema),
            "metric_schema": normalize_record(metric_schema),
            "formula_manifest": manifest,
            "effective_from": start,
            "effective_to": end,
        },
    )
    logger.info(
        f"Published {key} version {next_version}",
        extra={"method_key": key, "version_id": version_id},
    )
    return await get_valuation_method_detail(key)


async def set_active_valuation_method_version(method_key: Any, version_id: Any) -> dict[str, Any]:
    """Point a custom method's active version at one of its own versions."""
    key = normalize_required_string(method_key, "method_key")
    target = normalize_required_string(version_id, "version_id")
    method, versions = await _require_custom(key, "re-pointed")
    if not any(v["id"] == target for v in versions):
        raise InvariantViolationError(
            message=f"Version {target} does not belong to {key}",
            details={"method_key": key, "version_id": target},
        )
    await methods_repo.set_active_version(method["id"], target)
    return await get_valuation_method_detail(key)
