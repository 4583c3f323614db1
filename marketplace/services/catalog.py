from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import case, desc, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from marketplace.core.errors import StoreError
from marketplace.models.product import Product
from marketplace.schemas.listing import ListRequest, PageResult
from marketplace.services.list_cache import ListCache, cached_json
from marketplace.services.listing import get_entity_row, list_entities, row_to_dict
from marketplace.services.registry import CATALOG_SCOPE, get_registry

_LOG = logging.getLogger("marketplace.listing")


def list_catalog(request: ListRequest, db: Session, *, cache: ListCache | None = None) -> PageResult:
    return list_entities("products", request, db, cache=cache, scope=CATALOG_SCOPE)


def get_catalog_product(product_id: str, db: Session) -> dict[str, Any] | None:
    return get_entity_row("products", product_id, db, scope=CATALOG_SCOPE)


def _load_facets(db: Session) -> dict[str, Any]:
    status_row = db.execute(
        select(
            func.count(case((Product.is_active.is_(True), 1))),
            func.count(case((Product.is_active.is_(False), 1))),
        )
    ).one()
    category_rows = db.execute(
        select(Product.category, func.count())
        .where(Product.is_active.is_(True))
        .group_by(Product.category)
        .order_by(desc(func.count()), Product.category)
    ).all()
    price_row = db.execute(
        select(func.min(Product.price), func.max(Product.price)).where(Product.is_active.is_(True))
    ).one()
    return {
        "status": {"active": int(status_row[0] or 0), "inactive": int(status_row[1] or 0)},
        "categories": {category: int(count) for category, count in category_rows if category},
        "priceRange": {
            "min": float(price_row[0]) if price_row[0] is not None else 0.0,
            "max": float(price_row[1]) if price_row[1] is not None else 0.0,
        },
    }


def product_facets(db: Session, *, cache: ListCache | None = None) -> dict[str, Any]:
    """Counts and bounds the product filter toolbar offers as options."""
    registry = get_registry("products")

    def _loader() -> dict[str, Any]:
        try:
            return _load_facets(db)
        except SQLAlchemyError as exc:
            _LOG.exception("product facets query failed")
            raise StoreError(registry.kind) from exc

    return cached_json(cache, registry.tag, registry.ttl_seconds, "facets", _loader)


def featured_products(db: Session, *, limit: int = 8, cache: ListCache | None = None) -> list[dict[str, Any]]:
    registry = get_registry("products")
    limit = max(1, min(int(limit), 50))

    def _loader() -> list[dict[str, Any]]:
        stmt = (
            select(Product)
            .where(registry.scope_where(CATALOG_SCOPE))
            .order_by(desc(Product.download_count), desc(Product.created_at), Product.id)
            .limit(limit)
        )
        try:
            rows = db.execute(stmt).scalars().all()
        except SQLAlchemyError as exc:
            _LOG.exception("featured products query failed")
            raise StoreError(registry.kind) from exc
        return [row_to_dict(registry, row) for row in rows]

    return cached_json(cache, registry.tag, registry.ttl_seconds, f"featured|{limit}", _loader)
