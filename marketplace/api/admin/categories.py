import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from marketplace.db.session import get_db
from marketplace.models.category import Category
from marketplace.schemas.admin import CategoryCreate, CategoryUpdate

router = APIRouter()


def _load_category_or_404(db: Session, category_id: str) -> Category:
    try:
        parsed = uuid.UUID(str(category_id).strip())
    except ValueError:
        raise HTTPException(status_code=404, detail="Category not found")
    row = db.get(Category, parsed)
    if row is None:
        raise HTTPException(status_code=404, detail="Category not found")
    return row


def _commit_or_409(db: Session) -> None:
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Category name or slug already exists")


@router.post("", status_code=201)
def create_category(payload: CategoryCreate, db: Session = Depends(get_db)):
    row = Category(**payload.model_dump())
    db.add(row)
    _commit_or_409(db)
    db.refresh(row)
    return {"id": str(row.id)}


@router.patch("/{category_id}")
def update_category(category_id: str, payload: CategoryUpdate, db: Session = Depends(get_db)):
    row = _load_category_or_404(db, category_id)
    for key, value in payload.model_dump(exclude_unset=True).items():
        setattr(row, key, value)
    db.add(row)
    _commit_or_409(db)
    return {"status": "updated"}


@router.delete("/{category_id}")
def delete_category(category_id: str, db: Session = Depends(get_db)):
    row = _load_category_or_404(db, category_id)
    db.delete(row)
    _commit_or_409(db)
    return {"status": "deleted"}
