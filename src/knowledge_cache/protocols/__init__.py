"""Protocol interfaces for swappable implementations.

This package contains protocol definitions using structural typing.
Protocols enable:
- Easy swapping of implementations (Redis → PostgreSQL, OpenAI → Ollama, etc.)
- Unit testing with mock implementations
- Clear separation of concerns

Usage:
    ```python
    from knowledge_cache.protocols import KnowledgeRepository, EmbeddingProvider

    repo: KnowledgeRepository = RedisKnowledgeRepository.create()
    provider: EmbeddingProvider = OpenAIEmbeddingProvider.create()
    ```
"""

from .embedding_provider import EmbeddingProvider
from .generation_provider import GenerationProvider
from .knowledge_repository import KnowledgeRepository

__all__ = [
    "EmbeddingProvider",
    "GenerationProvider",
    "KnowledgeRepository",
]
