"""
Data classes shared by the track search components.

- TrackRecord: searchable projection of a track (what the store persists)
- QuerySpec: validated hybrid search request
- VectorMatch: one ranked candidate from the vector store
- SearchResult: uniform result shape emitted for every candidate
- UserRecord / UserSearchResult: projection and result for user search
"""

from __future__ import annotations

from dataclasses import dataclass, field

from track_search.search.exceptions import EmptyInputError

# =============================================================================
# Constants
# =============================================================================

EMBEDDING_DIMENSION = 384
MAX_QUERY_LENGTH = 200
MAX_USER_QUERY_LENGTH = 100
DEFAULT_LIMIT = 20
MAX_LIMIT = 50
DEFAULT_USER_LIMIT = 10
MAX_USER_LIMIT = 20
DEFAULT_SIMILARITY_THRESHOLD = 0.3

# Fields whose change invalidates a stored embedding.
EMBEDDED_FIELDS = ("title", "description", "genre", "primary_artist")


# =============================================================================
# Records
# =============================================================================


@dataclass(frozen=True)
class TrackOwner:
    """Owner of a track as shown next to a search result."""

    id: str
    display_name: str


@dataclass
class TrackRecord:
    """Searchable projection of one track.

    Attributes:
        id: Opaque, stable identifier (never reused)
        title: Track title (required)
        description: Free-text description
        genre: Music genre
        primary_artist: Main artist name
        is_public: Only public records are eligible for search
        popularity: Play count, secondary ranking signal
        cover_art_url: Artwork location
        owner: Uploading user
        like_count: Number of likes
        embedding: Unit-norm vector, or None until computed
    """

    id: str
    title: str
    description: str | None = None
    genre: str | None = None
    primary_artist: str | None = None
    is_public: bool = True
    popularity: int = 0
    cover_art_url: str | None = None
    owner: TrackOwner | None = None
    like_count: int = 0
    embedding: list[float] | None = field(default=None, repr=False)

    def text_fields_differ(self, other: TrackRecord) -> bool:
        """Whether any embedded text field differs from ``other``."""
        return any(getattr(self, name) != getattr(other, name) for name in EMBEDDED_FIELDS)

    def contains_text(self, needle: str) -> bool:
        """Case-insensitive substring match over the embedded text fields."""
        lowered = needle.lower()
        return any(
            lowered in value.lower()
            for value in (getattr(self, name) for name in EMBEDDED_FIELDS)
            if value
        )


@dataclass
class UserRecord:
    """Searchable projection of one user."""

    id: str
    username: str
    display_name: str | None = None
    avatar_url: str | None = None

    def contains_text(self, needle: str) -> bool:
        """Case-insensitive substring match on username or display name."""
        lowered = needle.lower()
        return lowered in self.username.lower() or (
            self.display_name is not None and lowered in self.display_name.lower()
        )


# =============================================================================
# Requests
# =============================================================================


@dataclass
class QuerySpec:
    """Hybrid search request.

    Attributes:
        text: Query text, 1..200 characters after trimming
        limit: Maximum number of results (1..50)
        similarity_threshold: Minimum cosine similarity for vector hits, in [0, 1]
    """

    text: str
    limit: int = DEFAULT_LIMIT
    similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD

    def __post_init__(self) -> None:
        """Validate the request."""
        if not self.text or not self.text.strip():
            raise EmptyInputError("Search text must not be blank")
        if len(self.text) > MAX_QUERY_LENGTH:
            raise ValueError(
                f"Search text must be at most {MAX_QUERY_LENGTH} characters, got {len(self.text)}"
            )
        if not 1 <= self.limit <= MAX_LIMIT:
            raise ValueError(f"limit must be between 1 and {MAX_LIMIT}, got {self.limit}")
        if not 0.0 <= self.similarity_threshold <= 1.0:
            raise ValueError(
                f"similarity_threshold must be in [0, 1], got {self.similarity_threshold}"
            )


# =============================================================================
# Results
# =============================================================================


@dataclass(frozen=True)
class VectorMatch:
    """A vector store candidate: record id, similarity and the record itself."""

    id: str
    similarity: float
    record: TrackRecord


@dataclass(frozen=True)
class SearchResult:
    """One entry of a hybrid search response.

    ``similarity`` is 0.0 for entries that came only from keyword matching.
    """

    id: str
    title: str
    description: str | None
    genre: str | None
    primary_artist: str | None
    cover_art_url: str | None
    popularity: int
    similarity: float
    owner: TrackOwner | None
    like_count: int

    @classmethod
    def from_record(cls, record: TrackRecord, similarity: float = 0.0) -> SearchResult:
        """Build the uniform result shape from a stored record."""
        return cls(
            id=record.id,
            title=record.title,
            description=record.description,
            genre=record.genre,
            primary_artist=record.primary_artist,
            cover_art_url=record.cover_art_url,
            popularity=record.popularity,
            similarity=max(0.0, min(1.0, similarity)),
            owner=record.owner,
            like_count=record.like_count,
        )

    @classmethod
    def from_vector_match(cls, match: VectorMatch) -> SearchResult:
        """Build a result carrying the match's real similarity."""
        return cls.from_record(match.record, similarity=match.similarity)


@dataclass(frozen=True)
class UserSearchResult:
    """One entry of a user search response."""

    id: str
    username: str
    display_name: str | None
    avatar_url: str | None

    @classmethod
    def from_record(cls, record: UserRecord) -> UserSearchResult:
        return cls(
            id=record.id,
            username=record.username,
            display_name=record.display_name,
            avatar_url=record.avatar_url,
        )
