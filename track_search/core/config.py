"""
Configuration module for track-search.

Uses pydantic-settings for environment-based configuration of the
embedding model, the Qdrant-backed track index, the hybrid search policy
and the embedding backfill job.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Search policy knobs:
    - min_vector_results_for_sufficiency: vector hits needed to skip keyword supplementation
    - degrade_on_embedding_failure: fall back to keyword search when the model cannot load
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ===========================================
    # SERVICE CONFIGURATION
    # ===========================================
    track_search_port: int = Field(default=8082, description="Service port")
    log_file_path: str | None = Field(
        default="/var/log/track-search/app.log",
        description="Rotating JSON log file (None disables file logging)",
    )

    # ===========================================
    # EMBEDDING MODEL
    # ===========================================
    embedding_model: str = Field(
        default="sentence-transformers/all-MiniLM-L6-v2",
        description="Sentence-transformers model used for track and query embeddings",
    )
    embedding_dimension: int = Field(default=384, description="Embedding vector width")

    # ===========================================
    # QDRANT CONFIGURATION
    # ===========================================
    qdrant_url: str = Field(
        default="http://localhost:6333",
        description="Qdrant REST API URL, or :memory: for an in-process local instance",
    )
    qdrant_api_key: str | None = Field(default=None, description="Qdrant API key")
    tracks_collection: str = Field(default="tracks", description="Track projection collection")
    users_collection: str = Field(default="users", description="User projection collection")
    hnsw_m: int = Field(default=16, description="HNSW graph degree")
    hnsw_ef_construct: int = Field(default=100, description="HNSW build-time candidate list")
    hnsw_ef_search: int = Field(default=128, description="HNSW query-time candidate list")

    # ===========================================
    # SEARCH POLICY
    # ===========================================
    min_vector_results_for_sufficiency: int = Field(
        default=5,
        ge=1,
        description="Vector hits at or above which keyword supplementation is skipped",
    )
    search_timeout_seconds: float = Field(
        default=2.0,
        gt=0,
        description="Total budget for one hybrid search request",
    )
    embedding_timeout_seconds: float = Field(
        default=1.5,
        gt=0,
        description="Budget for embedding the query text",
    )
    degrade_on_embedding_failure: bool = Field(
        default=True,
        description="Serve keyword-only results when the embedding model cannot load",
    )

    # ===========================================
    # BACKFILL
    # ===========================================
    backfill_batch_size: int = Field(default=100, ge=1)
    backfill_concurrency: int = Field(default=10, ge=1)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
