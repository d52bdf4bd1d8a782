# src/bulb_gateway/main.py
"""Application factory for the bulb.social gateway."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from bulb_gateway.api.middleware import RequestTimeoutMiddleware
from bulb_gateway.api.v0 import posts_router, system_router, upload_router
from bulb_gateway.core.settings import Settings
from bulb_gateway.services.database_relay import DatabaseRelay, build_database_relay
from bulb_gateway.services.staging import StagingStore
from bulb_gateway.services.storage_relay import StorageRelay, build_storage_relay

logger = logging.getLogger(__name__)


async def _http_error_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


async def _validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    logger.info("Rejected %s %s: %s", request.method, request.url.path, exc.errors())
    return JSONResponse(status_code=400, content={"error": "Invalid request"})


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Internal Server Error"})


def create_app(
    settings: Settings,
    staging: StagingStore,
    *,
    storage: StorageRelay | None = None,
    database: DatabaseRelay | None = None,
) -> FastAPI:
    """Create the FastAPI application.

    The staging store is owned by the caller, which creates it before the
    app starts and removes it once the server stopped. The relays are owned
    by the app and closed when its lifespan ends.
    """
    storage_relay = storage or build_storage_relay(settings)
    database_relay = database or build_database_relay(settings)

    @asynccontextmanager
    async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await storage_relay.close()
        await database_relay.close()

    app = FastAPI(
        title=settings.app_name,
        description="Relays image uploads to IPFS and posts to OrbitDB",
        version=settings.app_version,
        debug=settings.debug,
        lifespan=_lifespan,
    )

    app.state.settings = settings
    app.state.staging = staging
    app.state.storage_relay = storage_relay
    app.state.database_relay = database_relay

    app.add_exception_handler(HTTPException, _http_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)

    app.add_middleware(RequestTimeoutMiddleware, timeout_seconds=settings.request_timeout_seconds)
    app.add_middleware(GZipMiddleware)
    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_methods=settings.cors_allow_methods,
            allow_headers=settings.cors_allow_headers,
        )

    app.include_router(upload_router, prefix="/api/v0")
    app.include_router(posts_router, prefix="/api/v0")
    app.include_router(system_router, prefix="/api/v0")

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Health check endpoint to verify the service is running."""
        return {"status": "ok"}

    return app
