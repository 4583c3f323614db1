from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from marketplace.core.deps import get_cache, list_request_from_query
from marketplace.db.session import get_db
from marketplace.schemas.listing import ListRequest, PageResult
from marketplace.services.catalog import featured_products, get_catalog_product, list_catalog
from marketplace.services.list_cache import ListCache

router = APIRouter()


@router.get("", response_model=PageResult)
def get_catalog(
    uq: ListRequest = Depends(list_request_from_query),
    db: Session = Depends(get_db),
    cache: ListCache = Depends(get_cache),
):
    return list_catalog(uq, db, cache=cache)


@router.get("/featured")
def get_featured(
    limit: int = Query(8, ge=1, le=50),
    db: Session = Depends(get_db),
    cache: ListCache = Depends(get_cache),
):
    return featured_products(db, limit=limit, cache=cache)


@router.get("/{product_id}")
def get_product(product_id: str, db: Session = Depends(get_db)):
    row = get_catalog_product(product_id, db)
    if row is None:
        raise HTTPException(status_code=404, detail="Product not found")
    return row
