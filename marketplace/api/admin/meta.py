from fastapi import APIRouter, Query

from marketplace.services.listing_meta import entity_meta

router = APIRouter()


@router.get("/entities")
def list_entity_meta(q: str = Query(""), operator: str = Query("and", pattern="^(and|or)$")):
    return {"entities": entity_meta(q.split(), operator)}
