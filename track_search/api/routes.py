"""
API routes for track search.

Endpoints:
- GET /search/tracks: hybrid track search
- GET /search/users: user search by username / display name
- GET /health: store reachability and model readiness

A failed search is always an error response, never an empty success.
"""

from __future__ import annotations

import logging
import time
from typing import NoReturn

from fastapi import APIRouter, Depends, HTTPException, Query, status

from track_search.api.dependencies import ServiceContainer
from track_search.api.models import (
    ErrorResponse,
    HealthResponse,
    TrackSearchResponse,
    TrackSearchResultItem,
    UserSearchResponse,
    UserSearchResultItem,
)
from track_search.search.exceptions import (
    ModelLoadError,
    SearchTimeoutError,
    StoreUnavailableError,
    TrackSearchError,
)
from track_search.search.models import (
    DEFAULT_LIMIT,
    DEFAULT_SIMILARITY_THRESHOLD,
    DEFAULT_USER_LIMIT,
    MAX_LIMIT,
    MAX_QUERY_LENGTH,
    MAX_USER_LIMIT,
    MAX_USER_QUERY_LENGTH,
    QuerySpec,
)

logger = logging.getLogger(__name__)

router = APIRouter()

API_VERSION = "1.0.0"

_ERROR_RESPONSES: dict[int | str, dict[str, object]] = {
    400: {"model": ErrorResponse, "description": "Invalid request"},
    500: {"model": ErrorResponse, "description": "Search failed"},
    503: {"model": ErrorResponse, "description": "Search unavailable"},
    504: {"model": ErrorResponse, "description": "Search timed out"},
}


def get_services() -> ServiceContainer:
    """Get service container - injected at runtime."""
    # This is overridden by dependency injection in create_app
    msg = "Services not configured"
    raise RuntimeError(msg)


def _raise_http_error(e: Exception) -> NoReturn:
    """Translate a search failure into an HTTP error response."""
    if isinstance(e, ValueError):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "validation_error", "message": str(e)},
        ) from e
    if isinstance(e, SearchTimeoutError):
        raise HTTPException(
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            detail={"error": "search_timeout", "message": str(e)},
        ) from e
    if isinstance(e, (StoreUnavailableError, ModelLoadError)):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error": "search_unavailable", "message": str(e)},
        ) from e
    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={"error": "search_failed", "message": str(e)},
    ) from e


@router.get(
    "/search/tracks",
    response_model=TrackSearchResponse,
    responses=_ERROR_RESPONSES,
    tags=["search"],
    summary="Hybrid semantic + keyword track search",
)
async def search_tracks(
    q: str = Query(min_length=1, max_length=MAX_QUERY_LENGTH, description="Search text"),
    limit: int = Query(default=DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
    threshold: float = Query(default=DEFAULT_SIMILARITY_THRESHOLD, ge=0.0, le=1.0),
    services: ServiceContainer = Depends(get_services),  # noqa: B008
) -> TrackSearchResponse:
    """
    Search public tracks by meaning, topping up with keyword matches.

    Vector matches come first, ordered by similarity. When fewer than five
    tracks clear the similarity threshold, the remaining slots are filled
    with tracks whose text contains the query, most played first.
    """
    start_time = time.perf_counter()
    try:
        query = QuerySpec(text=q, limit=limit, similarity_threshold=threshold)
        results = await services.search_service.hybrid_search(query)
    except (TrackSearchError, ValueError) as e:
        logger.warning("Track search failed: %s", e)
        _raise_http_error(e)

    logger.info(
        "Track search served",
        extra={
            "result_count": len(results),
            "latency_ms": round((time.perf_counter() - start_time) * 1000, 2),
        },
    )
    return TrackSearchResponse(data=[TrackSearchResultItem.from_result(r) for r in results])


@router.get(
    "/search/users",
    response_model=UserSearchResponse,
    responses=_ERROR_RESPONSES,
    tags=["search"],
    summary="Search users by username or display name",
)
async def search_users(
    q: str = Query(min_length=1, max_length=MAX_USER_QUERY_LENGTH, description="Search text"),
    limit: int = Query(default=DEFAULT_USER_LIMIT, ge=1, le=MAX_USER_LIMIT),
    services: ServiceContainer = Depends(get_services),  # noqa: B008
) -> UserSearchResponse:
    """Case-insensitive substring search over usernames and display names."""
    try:
        results = await services.search_service.search_users(q, limit=limit)
    except (TrackSearchError, ValueError) as e:
        logger.warning("User search failed: %s", e)
        _raise_http_error(e)

    return UserSearchResponse(data=[UserSearchResultItem.from_result(r) for r in results])


@router.get(
    "/health",
    response_model=HealthResponse,
    tags=["health"],
    summary="Health check endpoint",
)
async def health_check(
    services: ServiceContainer = Depends(get_services),  # noqa: B008
) -> HealthResponse:
    """
    Report store reachability and embedding model readiness.

    The service is "degraded" while the model is not loaded (keyword search
    still works) and "unhealthy" when the store is unreachable.
    """
    try:
        store_ok = await services.store.health_check()
    except Exception:
        store_ok = False

    dependencies = {
        "qdrant": "healthy" if store_ok else "unhealthy",
        "embedder": "loaded" if services.provider.is_ready else "not_loaded",
    }
    if not store_ok:
        overall_status = "unhealthy"
    elif not services.provider.is_ready:
        overall_status = "degraded"
    else:
        overall_status = "healthy"

    return HealthResponse(status=overall_status, dependencies=dependencies, version=API_VERSION)
