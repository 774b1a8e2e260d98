"""Valuation method catalog repository using SQLAlchemy ORM.

Usage:
    from valuator.repositories.valuation_methods_orm import (
        get_method_with_versions, list_methods, insert_method_with_version,
        insert_version, set_active_version, upsert_builtin_method,
    )
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from sqlalchemy import func, or_, select

from valuator.core.data_helpers import escape_like, utc_now
from valuator.core.logging import get_logger
from valuator.database.connection import get_business_session
from valuator.database.orm import ValuationMethod, ValuationMethodVersion
from valuator.domain.enums import MethodStatus


logger = get_logger("repositories.valuation_methods_orm")


def method_to_dict(method: ValuationMethod) -> dict[str, Any]:
    return {
        "id": method.id,
        "method_key": method.method_key,
        "name": method.name,
        "description": method.description,
        "is_builtin": method.is_builtin,
        "status": method.status,
        "asset_scope": dict(method.asset_scope or {}),
        "active_version_id": method.active_version_id,
        "created_at": method.created_at,
        "updated_at": method.updated_at,
        "deleted_at": method.deleted_at,
    }


def version_to_dict(version: ValuationMethodVersion) -> dict[str, Any]:
    return {
        "id": version.id,
        "method_id": version.method_id,
        "version": version.version,
        "effective_from": version.effective_from.isoformat() if version.effective_from else None,
        "effective_to": version.effective_to.isoformat() if version.effective_to else None,
        "graph": list(version.graph or []),
        "param_schema": dict(version.param_schema or {}),
        "metric_schema": dict(version.metric_schema or {}),
        "formula_manifest": dict(version.formula_manifest or {}),
        "created_at": version.created_at,
        "updated_at": version.updated_at,
    }


def _to_date(value: str | None) -> date | None:
    return date.fromisoformat(value) if value else None


# =============================================================================
# READS
# =============================================================================


async def list_methods(
    query: str | None,
    include_archived: bool,
    include_builtin: bool,
    limit: int,
    offset: int,
) -> tuple[list[dict[str, Any]], int]:
    """List live methods, built-ins first, then most recently updated.

    Returns:
        Tuple of (methods, total matching count)
    """
    conditions: list[Any] = [ValuationMethod.deleted_at.is_(None)]
    if not include_archived:
        conditions.append(ValuationMethod.status == MethodStatus.ACTIVE.value)
    if not include_builtin:
        conditions.append(ValuationMethod.is_builtin.is_(False))
    if query:
        pattern = f"%{escape_like(query.lower())}%"
        conditions.append(
            or_(
                func.lower(ValuationMethod.method_key).like(pattern, escape="\\"),
                func.lower(ValuationMethod.name).like(pattern, escape="\\"),
                func.lower(func.coalesce(ValuationMethod.description, "")).like(pattern, escape="\\"),
            )
        )

    async with get_business_session() as session:
        result = await session.execute(
            select(ValuationMethod)
            .where(*conditions)
            .order_by(
                ValuationMethod.is_builtin.desc(),
                ValuationMethod.updated_at.desc(),
                ValuationMethod.method_key.asc(),
            )
            .limit(limit)
            .offset(offset)
        )
        items = [method_to_dict(method) for method in result.scalars()]
        total = await session.scalar(
            select(func.count()).select_from(ValuationMethod).where(*conditions)
        )
        return items, int(total or 0)


async def method_key_exists(method_key: str) -> bool:
    """True if any method (including soft-deleted ones) uses this key."""
    async with get_business_session() as session:
        result = await session.execute(
            select(ValuationMethod.id).where(ValuationMethod.method_key == method_key)
        )
        return result.scalar_one_or_none() is not None


async def get_method_with_versions(
    method_key: str,
) -> tuple[dict[str, Any], list[dict[str, Any]]] | None:
    """Get a live method and its versions (highest version first).

    Args:
        method_key: Method key

    Returns:
        (method, versions) or None if no live method has this key
    """
    async with get_business_session() as session:
        result = await session.execute(
            select(ValuationMethod).where(
                ValuationMethod.method_key == method_key,
                ValuationMethod.deleted_at.is_(None),
            )
        )
        method = result.scalar_one_or_none()
        if method is None:
            return None
        versions = await session.execute(
            select(ValuationMethodVersion)
            .where(ValuationMethodVersion.method_id == method.id)
            .order_by(ValuationMethodVersion.version.desc())
        )
        return method_to_dict(method), [version_to_dict(v) for v in versions.scalars()]


# =============================================================================
# WRITES
# =============================================================================


def _new_version(
    version_id: str,
    method_id: str,
    version: int,
    content: dict[str, Any],
    now: datetime,
) -> ValuationMethodVersion:
    return ValuationMethodVersion(
        id=version_id,
        method_id=method_id,
        version=version,
        effective_from=_to_date(content.get("effective_from")),
        effective_to=_to_date(content.get("effective_to")),
        graph=content["graph"],
        param_schema=content["param_schema"],
        metric_schema=content["metric_schema"],
        formula_manifest=content["formula_manifest"],
        created_at=now,
        updated_at=now,
    )


async def insert_method_with_version(
    method: dict[str, Any], version_id: str, content: dict[str, Any]
) -> None:
    """Insert a custom method and its version 1 in one transaction.

    Args:
        method: method_key, name, description, asset_scope
        version_id: ID of version 1 (also the active version)
        content: graph, param_schema, metric_schema, formula_manifest
    """
    now = utc_now()
    async with get_business_session() as session:
        async with session.begin():
            session.add(
                ValuationMethod(
                    id=method["method_key"],
                    method_key=method["method_key"],
                    name=method["name"],
                    description=method["description"],
                    is_builtin=False,
                    status=MethodStatus.ACTIVE.value,
                    asset_scope=method["asset_scope"],
                    active_version_id=version_id,
                    created_at=now,
                    updated_at=now,
                )
            )
            await session.flush()
            session.add(_new_version(version_id, method["method_key"], 1, content, now))


async def update_method(method_key: str, fields: dict[str, Any]) -> bool:
    """Update name, description, status or asset scope of a live custom method."""
    async with get_business_session() as session:
        result = await session.execute(
            select(ValuationMethod).where(
                ValuationMethod.method_key == method_key,
                ValuationMethod.is_builtin.is_(False),
                ValuationMethod.deleted_at.is_(None),
            )
        )
        method = result.scalar_one_or_none()
        if method is None:
            return False
        for key in ("name", "description", "status", "asset_scope"):
            if key in fields:
                setattr(method, key, fields[key])
        method.updated_at = utc_now()
        await session.commit()
        return True


async def insert_version(
    method_id: str, version_id: str, version: int, content: dict[str, Any]
) -> None:
    now = utc_now()
    async with get_business_session() as session:
        session.add(_new_version(version_id, method_id, version, content, now))
        method = await session.get(ValuationMethod, method_id)
        if method is not None:
            method.updated_at = now
        await session.commit()


async def set_active_version(method_id: str, version_id: str) -> None:
    async with get_business_session() as session:
        method = await session.get(ValuationMethod, method_id)
        if method is not None:
            method.active_version_id = version_id
            method.updated_at = utc_now()
            await session.commit()


async def upsert_builtin_method(
    method: dict[str, Any], version_id: str, content: dict[str, Any]
) -> None:
    """Idempotently write a built-in method and its version 1, marking it active."""
    now = utc_now()
    async with get_business_session() as session:
        async with session.begin():
            row = await session.get(ValuationMethod, method["method_key"])
            if row is None:
                row = ValuationMethod(id=method["method_key"], created_at=now)
                session.add(row)
            row.method_key = method["method_key"]
            row.name = method["name"]
            row.description = method["description"]
            row.is_builtin = True
            row.status = MethodStatus.ACTIVE.value
            row.asset_scope = method["asset_scope"]
            row.active_version_id = version_id
            row.deleted_at = None
            row.updated_at = now
            await session.flush()

            result = await session.execute(
                select(ValuationMethodVersion).where(
                    ValuationMethodVersion.method_id == row.id,
                    ValuationMethodVersion.version == 1,
                )
            )
            version = result.scalar_one_or_none()
            if version is None:
                session.add(_new_version(version_id, row.id, 1, content, now))
            else:
                version.graph = content["graph"]
                version.param_schema = content["param_schema"]
                version.metric_schema = content["metric_schema"]
                version.formula_manifest = content["formula_manifest"]
                version.updated_at = now
