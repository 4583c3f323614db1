import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from marketplace.core.deps import get_cache
from marketplace.db.session import get_db
from marketplace.models.product import Product
from marketplace.schemas.admin import ProductCreate, ProductUpdate, ProductsBulkDelete, ProductsBulkUpdate
from marketplace.services.catalog import product_facets
from marketplace.services.list_cache import ListCache

router = APIRouter()


def _load_product_or_404(db: Session, product_id: str) -> Product:
    try:
        parsed = uuid.UUID(str(product_id).strip())
    except ValueError:
        raise HTTPException(status_code=404, detail="Product not found")
    row = db.get(Product, parsed)
    if row is None:
        raise HTTPException(status_code=404, detail="Product not found")
    return row


def _commit_or_409(db: Session) -> None:
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Product conflicts with existing data")


@router.get("/facets")
def get_product_facets(db: Session = Depends(get_db), cache: ListCache = Depends(get_cache)):
    return product_facets(db, cache=cache)


@router.post("", status_code=201)
def create_product(payload: ProductCreate, db: Session = Depends(get_db)):
    row = Product(**payload.model_dump())
    db.add(row)
    _commit_or_409(db)
    db.refresh(row)
    return {"id": str(row.id)}


@router.patch("/{product_id}")
def update_product(product_id: str, payload: ProductUpdate, db: Session = Depends(get_db)):
    row = _load_product_or_404(db, product_id)
    for key, value in payload.model_dump(exclude_unset=True).items():
        setattr(row, key, value)
    db.add(row)
    _commit_or_409(db)
    return {"status": "updated"}


@router.delete("/{product_id}")
def delete_product(product_id: str, db: Session = Depends(get_db)):
    row = _load_product_or_404(db, product_id)
    db.delete(row)
    _commit_or_409(db)
    return {"status": "deleted"}


@router.post("/bulk-delete")
def delete_products(payload: ProductsBulkDelete, db: Session = Depends(get_db)):
    if not payload.ids:
        return {"deleted": 0}
    result = db.execute(delete(Product).where(Product.id.in_(payload.ids)))
    _commit_or_409(db)
    return {"deleted": int(result.rowcount or 0)}


@router.post("/bulk-update")
def update_products(payload: ProductsBulkUpdate, db: Session = Depends(get_db)):
    if not payload.ids:
        return {"updated": 0}
    result = db.execute(
        update(Product).where(Product.id.in_(payload.ids)).values(is_active=payload.is_active)
    )
    _commit_or_409(db)
    return {"updated": int(result.rowcount or 0)}
