from fastapi import APIRouter
from marketplace.api.admin import categories, facets, listings, meta, products

router = APIRouter()
router.include_router(meta.router, prefix="/meta", tags=["AdminMeta"])
router.include_router(products.router, prefix="/products", tags=["AdminProducts"])
router.include_router(categories.router, prefix="/categories", tags=["AdminCategories"])
router.include_router(listings.router, prefix="/listings", tags=["AdminListings"])
router.include_router(facets.router, prefix="/facets", tags=["AdminFacets"])
