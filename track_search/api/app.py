"""
FastAPI application factory for the track search service.

Creates and configures the FastAPI application with routes and dependencies.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from track_search.api.dependencies import ServiceContainer, create_live_services
from track_search.api.routes import API_VERSION, get_services, router
from track_search.core.config import Settings, get_settings
from track_search.core.logging import (
    clear_correlation_id,
    set_correlation_id,
    setup_structured_logging,
)

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def _validation_message(exc: RequestValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(p) for p in error.get("loc", ()) if p != "query")
        parts.append(f"{location}: {error.get('msg', 'invalid value')}")
    return "; ".join(parts) or "Invalid request"


def create_app(
    settings: Settings | None = None,
    services: ServiceContainer | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Optional settings (defaults to get_settings())
        services: Optional pre-configured service container. When omitted,
                  the lifespan connects to Qdrant and loads the model.

    Returns:
        Configured FastAPI application
    """
    cfg = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        built: ServiceContainer | None = None
        if getattr(app.state, "services", None) is None:
            setup_structured_logging(log_file_path=cfg.log_file_path)
            built = await create_live_services(cfg)
            app.state.services = built
            logger.info("Track search service started", extra={"qdrant_url": cfg.qdrant_url})
        try:
            yield
        finally:
            if built is not None:
                await built.aclose()
                app.state.services = None

    app = FastAPI(
        title="Track Search Service",
        description="Hybrid semantic + keyword search over tracks and users",
        version=API_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def correlation_id_middleware(
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        correlation_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        set_correlation_id(correlation_id)
        try:
            response = await call_next(request)
        finally:
            clear_correlation_id()
        response.headers[REQUEST_ID_HEADER] = correlation_id
        return response

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": {"error": "validation_error", "message": _validation_message(exc)}},
        )

    # Store services in app state for dependency injection
    app.state.services = services

    def _get_services() -> ServiceContainer:
        return app.state.services

    app.dependency_overrides[get_services] = _get_services

    app.include_router(router)

    return app
