"""Repository layer for data access and external providers.

This layer abstracts external dependencies (Redis, embedding APIs, the
generation API) behind protocol-based interfaces. This enables:
- Easy swapping of implementations (Redis → PostgreSQL, OpenAI → Ollama, etc.)
- Unit testing with mock implementations
- Clear separation of concerns

The repositories are protocol-based (structural typing), not inheritance-based.
Any class implementing the required methods will satisfy the protocol.

LocalEmbeddingProvider is not imported here so that sentence-transformers
is only loaded when that backend is selected.
"""

from knowledge_cache.protocols import EmbeddingProvider, GenerationProvider, KnowledgeRepository

from .ollama_embedding_provider import OllamaEmbeddingProvider
from .openai_embedding_provider import OpenAIEmbeddingProvider
from .openai_generation_provider import OpenAIGenerationProvider
from .redis_knowledge_repository import RedisKnowledgeRepository

__all__ = [
    "EmbeddingProvider",
    "GenerationProvider",
    "KnowledgeRepository",
    "OllamaEmbeddingProvider",
    "OpenAIEmbeddingProvider",
    "OpenAIGenerationProvider",
    "RedisKnowledgeRepository",
]
