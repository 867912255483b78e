from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager, suppress
from typing import AsyncIterator
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from proxygeo.apps.api.errors import (
    http_exception_handler,
    starlette_http_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from proxygeo.apps.api.routes.health import router as health_router
from proxygeo.apps.api.routes.inventory import build_inventory_router
from proxygeo.apps.api.routes.ops import router as ops_router
from proxygeo.apps.api.routes.packages import router as packages_router
from proxygeo.apps.api.routes.residential import router as residential_router
from proxygeo.core.config import INVENTORY_DOMAINS, get_settings
from proxygeo.core.logging import configure_logging
from proxygeo.services.lookups import start_background_load
from proxygeo.services.telemetry import record_request


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    # Lookup tables load in the background; requests are served before they arrive.
    if get_settings().lookups_load_on_startup:
        app.state.lookup_task = start_background_load()
    yield
    # Cancel an unfinished lookup load so no coroutine outlives the app.
    task = getattr(app.state, "lookup_task", None)
    if task and not task.done():
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title="ProxyGeo API", lifespan=lifespan)

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):  # type: ignore[override]
        # Preserve incoming request IDs or assign a new one for traceability.
        request_id = request.headers.get("X-Request-Id") or str(uuid4())
        request.state.request_id = request_id
        start = time.monotonic()
        response = await call_next(request)
        latency_ms = (time.monotonic() - start) * 1000.0
        record_request(path=request.url.path, status_code=response.status_code, latency_ms=latency_ms)
        response.headers.setdefault("X-Request-Id", request_id)
        return response

    @app.exception_handler(StarletteHTTPException)
    async def _starlette_http_exception_handler(request: Request, exc: StarletteHTTPException):
        return await starlette_http_exception_handler(request, exc)

    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):
        return await unhandled_exception_handler(request, exc)

    @app.exception_handler(RequestValidationError)
    async def _validation_exception_handler(request: Request, exc: RequestValidationError):
        return await validation_exception_handler(request, exc)

    @app.exception_handler(HTTPException)
    async def _http_exception_handler(request: Request, exc: HTTPException):
        return await http_exception_handler(request, exc)

    app.include_router(health_router)
    app.include_router(ops_router)
    # Residential extras first so /residential/isp is not shadowed.
    app.include_router(residential_router)
    for domain in INVENTORY_DOMAINS:
        app.include_router(build_inventory_router(domain))
    app.include_router(packages_router)

    return app


app = create_app()
