"""
Pydantic models for API responses.

Query parameters are validated by the route signatures; these models define
the response contract of the search endpoints.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from track_search.search.models import SearchResult, UserSearchResult


class TrackOwnerItem(BaseModel):
    """Owner shown next to a track result."""

    model_config = ConfigDict(extra="forbid")

    id: str
    display_name: str


class TrackSearchResultItem(BaseModel):
    """Single track in a search response."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(description="Track identifier")
    title: str
    description: str | None = None
    genre: str | None = None
    primary_artist: str | None = None
    cover_art_url: str | None = None
    popularity: int = Field(ge=0, description="Play count")
    similarity: float = Field(
        ge=0.0,
        le=1.0,
        description="Cosine similarity to the query; 0 for keyword-only matches",
    )
    owner: TrackOwnerItem | None = None
    like_count: int = Field(default=0, ge=0)

    @classmethod
    def from_result(cls, result: SearchResult) -> TrackSearchResultItem:
        owner = None
        if result.owner is not None:
            owner = TrackOwnerItem(id=result.owner.id, display_name=result.owner.display_name)
        return cls(
            id=result.id,
            title=result.title,
            description=result.description,
            genre=result.genre,
            primary_artist=result.primary_artist,
            cover_art_url=result.cover_art_url,
            popularity=max(result.popularity, 0),
            similarity=result.similarity,
            owner=owner,
            like_count=max(result.like_count, 0),
        )


class TrackSearchResponse(BaseModel):
    """Response model for track search."""

    model_config = ConfigDict(extra="forbid")

    success: bool = True
    data: list[TrackSearchResultItem] = Field(default_factory=list)


class UserSearchResultItem(BaseModel):
    """Single user in a search response."""

    model_config = ConfigDict(extra="forbid")

    id: str
    username: str
    display_name: str | None = None
    avatar_url: str | None = None

    @classmethod
    def from_result(cls, result: UserSearchResult) -> UserSearchResultItem:
        return cls(
            id=result.id,
            username=result.username,
            display_name=result.display_name,
            avatar_url=result.avatar_url,
        )


class UserSearchResponse(BaseModel):
    """Response model for user search."""

    model_config = ConfigDict(extra="forbid")

    success: bool = True
    data: list[UserSearchResultItem] = Field(default_factory=list)


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    model_config = ConfigDict(extra="forbid")

    status: str = Field(description="Overall health status")
    dependencies: dict[str, str] = Field(
        default_factory=dict,
        description="Dependency statuses (qdrant, embedder)",
    )
    version: str = Field(description="API version")


class ErrorResponse(BaseModel):
    """Standard error response model."""

    model_config = ConfigDict(extra="forbid")

    error: str = Field(description="Error type")
    message: str = Field(description="Error message")
    detail: dict[str, Any] | None = Field(
        default=None,
        description="Additional error details",
    )
