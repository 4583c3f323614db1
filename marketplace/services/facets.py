from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from marketplace.core.errors import StoreError
from marketplace.services.list_cache import ListCache, cached_json
from marketplace.services.registry import EntityRegistry, FieldSpec, get_registry

_LOG = logging.getLogger("marketplace.listing")


def _empty_buckets(spec: FieldSpec) -> dict[str, int]:
    if spec.type == "boolean":
        return {"true": 0, "false": 0}
    return {option: 0 for option in spec.options}


def _bucket_key(spec: FieldSpec, value: Any) -> str | None:
    if value is None:
        return None
    if spec.type == "boolean":
        return "true" if value else "false"
    return str(value)


def _load_counts(db: Session, registry: EntityRegistry) -> dict[str, Any]:
    counts = {}
    for name in registry.facet_fields:
        spec = registry.fields[name]
        buckets = _empty_buckets(spec)
        rows = db.execute(select(spec.column, func.count()).group_by(spec.column)).all()
        for value, count in rows:
            key = _bucket_key(spec, value)
            if key is not None:
                buckets[key] = int(count)
        counts[name] = buckets
    return {"kind": registry.kind, "counts": counts}


def entity_facets(kind: str, db: Session, *, cache: ListCache | None = None) -> dict[str, Any]:
    """Row counts per value of each facet field of ``kind``.

    Known enum options and both boolean values are always present, with zero
    when no row carries them.
    """
    registry = get_registry(kind)

    def _loader() -> dict[str, Any]:
        try:
            return _load_counts(db, registry)
        except SQLAlchemyError as exc:
            _LOG.exception("facet counts query failed for %s", registry.kind)
            raise StoreError(registry.kind) from exc

    return cached_json(cache, registry.tag, registry.ttl_seconds, "facets|counts", _loader)
