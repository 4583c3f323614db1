from fastapi import APIRouter
from marketplace.api.public import catalog

router = APIRouter()
router.include_router(catalog.router, prefix="/catalog", tags=["Public"])
