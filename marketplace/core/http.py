from __future__ import annotations

import logging
import re
from time import perf_counter
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from marketplace.core.errors import ConfigurationError, StoreError

REQUEST_ID_HEADER = "X-Request-ID"
_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._-]{1,128}$")
_LOG = logging.getLogger("marketplace.http")


def _request_id_from_header(raw: str | None) -> str:
    value = str(raw or "").strip()
    if not value or not _REQUEST_ID_RE.fullmatch(value):
        return uuid4().hex
    return value


def install_request_logging(app: FastAPI) -> None:
    @app.middleware("http")
    async def _request_logging_middleware(request: Request, call_next):
        request_id = _request_id_from_header(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = request_id
        started_at = perf_counter()

        response = await call_next(request)

        response.headers[REQUEST_ID_HEADER] = request_id
        duration_ms = (perf_counter() - started_at) * 1000.0
        _LOG.info(
            "%s %s status=%s duration_ms=%.2f request_id=%s",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            request_id,
        )
        return response


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ConfigurationError)
    async def _configuration_error_handler(request: Request, exc: ConfigurationError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(StoreError)
    async def _store_error_handler(request: Request, exc: StoreError):
        # Listing screens render an empty state from this body.
        return JSONResponse(
            status_code=503,
            content={"rows": [], "total": 0, "pageCount": 0, "detail": "Unable to load list"},
        )
