"""Dependency injection configuration for FastAPI app.

Uses FastAPI's app.state pattern for storing service instances.

Pattern:
    - Services built explicitly in the lifespan (the composition root)
    - Dependency functions retrieve from request.app.state
    - Clean separation, no global mutable state
"""

import logging
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import Depends, FastAPI, Request

from knowledge_cache.config import Settings, configure_logging, get_redis_client, settings
from knowledge_cache.handlers import KnowledgeHandler
from knowledge_cache.protocols import EmbeddingProvider
from knowledge_cache.repositories import (
    OllamaEmbeddingProvider,
    OpenAIEmbeddingProvider,
    OpenAIGenerationProvider,
    RedisKnowledgeRepository,
)
from knowledge_cache.services import KnowledgeBase, SmartResponder

logger = logging.getLogger(__name__)


def build_embedding_provider(config: Settings) -> EmbeddingProvider:
    """Create the embedding provider selected by EMBEDDING_BACKEND.

    ⚠️ IMPORTANT: a store is fixed to the dimension of its first entry.
    When switching providers or models, use a new KNOWLEDGE_PREFIX.
    """
    if config.embedding_backend == "ollama":
        return OllamaEmbeddingProvider(
            model_name=config.embedding_model,
            base_url=config.ollama_base_url,
            timeout=config.embedding_timeout,
        )
    if config.embedding_backend == "local":
        # Imported lazily: sentence-transformers pulls in torch
        from knowledge_cache.repositories.local_embedding_provider import LocalEmbeddingProvider

        return LocalEmbeddingProvider(model_name=config.embedding_model, timeout=config.embedding_timeout)
    return OpenAIEmbeddingProvider(
        model_name=config.embedding_model,
        api_key=config.openai_api_key,
        timeout=config.embedding_timeout,
    )


def get_responder(request: Request) -> SmartResponder:
    """Dependency injection for SmartResponder from app.state.

    Raises:
        RuntimeError: If responder is not initialized
    """
    responder = getattr(request.app.state, "responder", None)
    if responder is None:
        raise RuntimeError("SmartResponder not initialized. Check lifespan setup.")
    return responder


def get_handler(request: Request) -> KnowledgeHandler:
    """Dependency injection for KnowledgeHandler from app.state.

    Raises:
        RuntimeError: If handler is not initialized
    """
    handler = getattr(request.app.state, "knowledge_handler", None)
    if handler is None:
        raise RuntimeError("KnowledgeHandler not initialized. Check lifespan setup.")
    return handler


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for FastAPI app.

    Initializes all layers and stores in app.state:
    1. Repository and providers (data access) - created explicitly
    2. KnowledgeBase and SmartResponder (business logic) - app.state.responder
    3. Handler (HTTP endpoints) - app.state.knowledge_handler

    Cleanup:
        Closes provider clients and the Redis connection, and removes
        all services from app.state on shutdown
    """
    configure_logging()

    redis_client = get_redis_client()
    repository = RedisKnowledgeRepository(redis_client=redis_client)
    embedding_provider = build_embedding_provider(settings)
    generation_provider = OpenAIGenerationProvider.create()

    knowledge_base = KnowledgeBase.create(
        repository=repository,
        embedding_provider=embedding_provider,
    )
    responder = SmartResponder.create(
        knowledge_base=knowledge_base,
        generation_provider=generation_provider,
    )

    app.state.responder = responder
    app.state.knowledge_handler = KnowledgeHandler(responder=responder)

    logger.info("Knowledge cache initialized")
    logger.info("Embedding: %s (%s)", embedding_provider.model_name, settings.embedding_backend)
    logger.info("Redis URL: %s", settings.redis_url)
    logger.info("Similarity threshold: %s", responder.threshold)
    if not await repository.health_check():
        logger.warning("Redis is not reachable; lookups will fall through to upstream")

    yield

    del app.state.knowledge_handler
    del app.state.responder

    for provider in (embedding_provider, generation_provider):
        close = getattr(provider, "close", None)
        if close is not None:
            await close()
    await redis_client.aclose()
    logger.info("Knowledge cache shut down")


# Type aliases for cleaner dependency injection
HandlerDep = Annotated[KnowledgeHandler, Depends(get_handler)]
ResponderDep = Annotated[SmartResponder, Depends(get_responder)]
