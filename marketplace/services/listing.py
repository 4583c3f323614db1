from __future__ import annotations

import logging
import math
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Sequence

from sqlalchemy import asc, desc, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from marketplace.core.errors import StoreError
from marketplace.schemas.listing import ListRequest, PageResult
from marketplace.services.filters import combine, request_where
from marketplace.services.list_cache import ListCache, cached_json
from marketplace.services.registry import ADMIN_SCOPE, EntityRegistry, get_registry

_LOG = logging.getLogger("marketplace.listing")


def _serialize_value(value: Any) -> Any:
    if isinstance(value, dict):
        return {key: _serialize_value(val) for key, val in value.items()}
    if isinstance(value, (list, tuple)):
        return [_serialize_value(item) for item in value]
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, Decimal):
        return float(value)
    return value


def row_to_dict(registry: EntityRegistry, row: Any, related_values: Sequence[Any] = ()) -> dict[str, Any]:
    data = {name: _serialize_value(getattr(row, spec.attr)) for name, spec in registry.fields.items()}
    for item, value in zip(registry.related, related_values):
        data[item.name] = _serialize_value(value)
    return data


def resolve_order_by(registry: EntityRegistry, request: ListRequest) -> list[Any]:
    """Sort clauses for the request plus a stable tie-break.

    Unknown or unsortable fields are skipped; if none survive, the entity's
    default sort is used. Rows with equal sort keys come back in creation
    order, then by id.
    """
    clauses = []
    seen = set()
    for item in request.sort:
        spec = registry.resolve(item.field)
        if spec is None or not spec.sortable or spec.name in seen:
            continue
        seen.add(spec.name)
        clauses.append(desc(spec.column) if item.direction == "desc" else asc(spec.column))
    if not clauses:
        for item in registry.default_sort:
            spec = registry.fields[item.field]
            seen.add(spec.name)
            clauses.append(desc(spec.column) if item.direction == "desc" else asc(spec.column))
    if "createdAt" not in seen:
        clauses.append(asc(registry.fields["createdAt"].column))
    clauses.append(asc(registry.fields["id"].column))
    return clauses


def page_count(total: int, per_page: int) -> int:
    if total <= 0:
        return 0
    return math.ceil(total / per_page)


def select_rows(registry: EntityRegistry):
    """Row statement for ``registry``: the model plus its related read-only columns."""
    stmt = select(registry.model, *[item.expression.label(item.name) for item in registry.related])
    for target, onclause in registry.joins:
        stmt = stmt.outerjoin(target, onclause)
    return stmt


def _fetch_page(db: Session, registry: EntityRegistry, request: ListRequest, scope_where=None) -> PageResult:
    where = combine([request_where(registry, request), scope_where], "and")
    rows_stmt = select_rows(registry)
    # Joins only add columns, so the count stays on the base table.
    count_stmt = select(func.count()).select_from(registry.model)
    if where is not None:
        rows_stmt = rows_stmt.where(where)
        count_stmt = count_stmt.where(where)
    rows_stmt = rows_stmt.order_by(*resolve_order_by(registry, request)).offset(request.offset).limit(request.perPage)
    try:
        rows = db.execute(rows_stmt).all()
        total = int(db.execute(count_stmt).scalar_one() or 0)
    except SQLAlchemyError as exc:
        _LOG.exception("listing query failed for %s", registry.kind)
        raise StoreError(registry.kind) from exc
    return PageResult(
        rows=[row_to_dict(registry, row[0], row[1:]) for row in rows],
        total=total,
        pageCount=page_count(total, request.perPage),
    )


def list_entities(
    kind: str,
    request: ListRequest | dict[str, Any] | None,
    db: Session,
    *,
    cache: ListCache | None = None,
    scope: str = ADMIN_SCOPE,
) -> PageResult:
    """Return one page of ``kind`` rows for a normalized listing request.

    ``scope`` names a fixed restriction declared on the entity's registry
    (the public catalog shows active products only); the default admin
    scope sees every row. Pages of different scopes are cached apart.
    Raises ``ConfigurationError`` for an unknown kind or scope and
    ``StoreError`` when the database fails; everything else in the request
    is normalized rather than rejected.
    """
    registry = get_registry(kind)
    scope_where = registry.scope_where(scope)
    if not isinstance(request, ListRequest):
        request = ListRequest.model_validate(request or {})

    payload = f"{scope}|{request.cache_payload()}"
    data = cached_json(
        cache,
        registry.tag,
        registry.ttl_seconds,
        payload,
        lambda: _fetch_page(db, registry, request, scope_where).model_dump(mode="json"),
    )
    return PageResult.model_validate(data)


def get_entity_row(kind: str, row_id: str, db: Session, *, scope: str = ADMIN_SCOPE) -> dict[str, Any] | None:
    registry = get_registry(kind)
    scope_where = registry.scope_where(scope)
    try:
        parsed = uuid.UUID(str(row_id or "").strip())
    except ValueError:
        return None
    stmt = select_rows(registry).where(registry.fields["id"].column == parsed)
    if scope_where is not None:
        stmt = stmt.where(scope_where)
    try:
        row = db.execute(stmt).first()
    except SQLAlchemyError as exc:
        _LOG.exception("row lookup failed for %s", registry.kind)
        raise StoreError(registry.kind) from exc
    return row_to_dict(registry, row[0], row[1:]) if row is not None else None
