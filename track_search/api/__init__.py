"""
API module for the track search service.

Provides FastAPI routes for track search, user search and health checks.
"""

from track_search.api.app import create_app
from track_search.api.models import (
    HealthResponse,
    TrackSearchResponse,
    TrackSearchResultItem,
    UserSearchResponse,
    UserSearchResultItem,
)
from track_search.api.routes import router

__all__ = [
    "create_app",
    "router",
    "HealthResponse",
    "TrackSearchResponse",
    "TrackSearchResultItem",
    "UserSearchResponse",
    "UserSearchResultItem",
]
