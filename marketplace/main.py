from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from marketplace.core.config import settings
from marketplace.core.http import install_error_handlers, install_request_logging
from marketplace.api.public.router import router as public_router
from marketplace.api.admin.router import router as admin_router
from marketplace.services.cache_invalidation import install_cache_invalidation
from marketplace.services.registry import REGISTRIES

install_cache_invalidation()

app = FastAPI(title=settings.APP_NAME, version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
install_request_logging(app)
install_error_handlers(app)

app.include_router(public_router, prefix="/api/public")
app.include_router(admin_router, prefix="/api/admin")

@app.get("/", include_in_schema=False)
def landing():
    return JSONResponse({"service": settings.APP_NAME, "status": "ok", "listings": sorted(REGISTRIES)})

@app.get("/health")
def health():
    return {"status": "ok"}
