from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from marketplace.core.deps import get_cache, list_request_from_query
from marketplace.db.session import get_db
from marketplace.schemas.listing import ListRequest, PageResult
from marketplace.services.list_cache import ListCache
from marketplace.services.listing import get_entity_row, list_entities

router = APIRouter()


@router.get("/{kind}", response_model=PageResult)
def list_rows(
    kind: str,
    uq: ListRequest = Depends(list_request_from_query),
    db: Session = Depends(get_db),
    cache: ListCache = Depends(get_cache),
):
    return list_entities(kind, uq, db, cache=cache)


@router.post("/{kind}/query", response_model=PageResult)
def query_rows(
    kind: str,
    uq: ListRequest,
    db: Session = Depends(get_db),
    cache: ListCache = Depends(get_cache),
):
    return list_entities(kind, uq, db, cache=cache)


@router.get("/{kind}/{row_id}")
def get_row(kind: str, row_id: str, db: Session = Depends(get_db)):
    row = get_entity_row(kind, row_id, db)
    if row is None:
        raise HTTPException(status_code=404, detail="Record not found")
    return row
