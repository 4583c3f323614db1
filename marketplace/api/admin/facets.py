from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from marketplace.core.deps import get_cache
from marketplace.db.session import get_db
from marketplace.services.facets import entity_facets
from marketplace.services.list_cache import ListCache

router = APIRouter()


@router.get("/{kind}")
def get_facets(kind: str, db: Session = Depends(get_db), cache: ListCache = Depends(get_cache)):
    return entity_facets(kind, db, cache=cache)
