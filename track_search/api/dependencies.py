"""
Dependency injection for API services.

The container is built once per process: either by the app lifespan
(real Qdrant store, real embedding model) or by tests (fakes).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from track_search.core.config import Settings
from track_search.embedding.provider import EmbeddingProvider
from track_search.search.exceptions import ModelLoadError
from track_search.search.hybrid import HybridSearchService
from track_search.search.indexer import TrackIndexer
from track_search.search.vector import QdrantTrackStore, TrackStoreProtocol

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Container for all service dependencies."""

    settings: Settings
    store: TrackStoreProtocol
    provider: Any  # EmbeddingProviderProtocol
    search_service: HybridSearchService
    indexer: TrackIndexer
    owned: list[Any] = field(default_factory=list, repr=False)

    async def aclose(self) -> None:
        """Release resources this container created."""
        for resource in reversed(self.owned):
            if isinstance(resource, QdrantTrackStore):
                await resource.close()
            elif isinstance(resource, EmbeddingProvider):
                resource.close()
        self.owned.clear()


def build_services(settings: Settings, store: TrackStoreProtocol, provider: Any) -> ServiceContainer:
    """Wire the search components around an existing store and provider."""
    return ServiceContainer(
        settings=settings,
        store=store,
        provider=provider,
        search_service=HybridSearchService(store=store, provider=provider, settings=settings),
        indexer=TrackIndexer(store=store, provider=provider),
    )


async def create_live_services(settings: Settings, warm_model: bool = True) -> ServiceContainer:
    """Connect to Qdrant, prepare collections and construct the embedding model.

    Args:
        settings: Application settings
        warm_model: Load the model now instead of on the first query

    Raises:
        StoreUnavailableError: If Qdrant cannot be reached
    """
    store = QdrantTrackStore(settings=settings)
    await store.connect()
    try:
        await store.ensure_collections()
    except Exception:
        await store.close()
        raise

    provider = EmbeddingProvider(
        model_name=settings.embedding_model,
        dimension=settings.embedding_dimension,
    )
    if warm_model:
        try:
            await provider.initialize()
        except ModelLoadError as e:
            # Keyword search keeps working; the next query retries the load.
            logger.error("Embedding model not loaded at start-up: %s", e)

    services = build_services(settings, store, provider)
    services.owned.extend([store, provider])
    return services
