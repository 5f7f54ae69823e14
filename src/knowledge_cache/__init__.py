"""Knowledge Cache - semantic response cache for medical report interpretation.

Recognizes when an incoming query is close enough to one answered before
and reuses the stored answer instead of paying for a new generation.

Layers:
    - protocols: Interface contracts (KnowledgeRepository, EmbeddingProvider, GenerationProvider)
    - repositories: Data access and provider implementations
    - services: Business logic (KnowledgeBase, SmartResponder)
    - handlers: HTTP endpoint handlers
    - dto: Data transfer objects (API contracts, payload schemas)
    - entities: Domain models (internal)

Usage:
    ```python
    from knowledge_cache import KnowledgeBase, SmartResponder
    from knowledge_cache.repositories import (
        OpenAIEmbeddingProvider,
        OpenAIGenerationProvider,
        RedisKnowledgeRepository,
    )

    knowledge = KnowledgeBase.create(
        repository=RedisKnowledgeRepository.create(),
        embedding_provider=OpenAIEmbeddingProvider.create(),
    )
    responder = SmartResponder.create(
        knowledge_base=knowledge,
        generation_provider=OpenAIGenerationProvider.create(),
    )
    ```

For HTTP API:
    ```python
    from knowledge_cache.api.app import app
    ```
"""

from knowledge_cache.config import get_redis_client, settings
from knowledge_cache.entities import Category, KnowledgeEntry, KnowledgeMatch, KnowledgeResponse, ResponseSource
from knowledge_cache.errors import (
    DeadlineExceeded,
    EmbeddingFailure,
    KnowledgeCacheError,
    ProviderError,
    StorageFailure,
    UpstreamFailure,
    ValidationFailure,
)
from knowledge_cache.protocols import EmbeddingProvider, GenerationProvider, KnowledgeRepository
from knowledge_cache.services import KnowledgeBase, SmartResponder

__all__ = [
    # Configuration
    "settings",
    "get_redis_client",
    # Protocols (interfaces)
    "KnowledgeRepository",
    "EmbeddingProvider",
    "GenerationProvider",
    # Services (business logic)
    "KnowledgeBase",
    "SmartResponder",
    # Entities (domain models)
    "Category",
    "KnowledgeEntry",
    "KnowledgeMatch",
    "KnowledgeResponse",
    "ResponseSource",
    # Errors
    "KnowledgeCacheError",
    "ProviderError",
    "EmbeddingFailure",
    "UpstreamFailure",
    "StorageFailure",
    "ValidationFailure",
    "DeadlineExceeded",
]
