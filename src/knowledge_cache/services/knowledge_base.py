"""Knowledge base service: storage and similarity retrieval of knowledge entries.

This service orchestrates the repository (atomic persistence) and the
embedding provider (vector generation), and owns the similarity scoring.
"""

import logging
import time
from collections.abc import Callable
from typing import Any

from knowledge_cache.config import settings
from knowledge_cache.entities import Category, KnowledgeEntry, KnowledgeMatch, KnowledgeStats
from knowledge_cache.errors import EmbeddingFailure, ValidationFailure
from knowledge_cache.protocols import EmbeddingProvider, KnowledgeRepository
from knowledge_cache.utils import cosine_similarity

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86_400

# Weight of incoming feedback in the confidence moving average
FEEDBACK_SMOOTHING = 0.3


def _check_unit_interval(name: str, value: float, entry_id: str | None = None) -> None:
    if not 0.0 <= value <= 1.0:
        raise ValidationFailure(f"{name} must be between 0 and 1, got {value}", entry_id=entry_id)


class KnowledgeBase:
    """Durable storage and similarity retrieval of knowledge entries.

    This service depends on PROTOCOLS, not concrete implementations:
    - KnowledgeRepository: Redis by default
    - EmbeddingProvider: OpenAI, Ollama or local sentence-transformers

    Search is deliberately approximate: only the top candidate_window
    entries of a category (by confidence, then usage) are scored. A close
    match with low confidence and low usage outside that window is not
    found.

    Example:
        ```python
        from knowledge_cache.repositories import OpenAIEmbeddingProvider, RedisKnowledgeRepository
        from knowledge_cache.services import KnowledgeBase

        knowledge = KnowledgeBase.create(
            repository=RedisKnowledgeRepository.create(),
            embedding_provider=OpenAIEmbeddingProvider.create(),
        )
        entry_id = await knowledge.store(Category.LAB, "sodium", "Na 130", payload)
        matches = await knowledge.search("Sodium 130 mmol/L", Category.LAB)
        ```
    """

    def __init__(
        self,
        repository: KnowledgeRepository,
        embedding_provider: EmbeddingProvider,
        candidate_window: int | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the knowledge base.

        Args:
            repository: Knowledge storage backend (required).
            embedding_provider: Embedding generation service (required).
            candidate_window: Entries scored per search. Defaults to settings.
            clock: Source of epoch seconds, replaceable in tests.
        """
        self._repository = repository
        self._embeddings = embedding_provider
        self._window = candidate_window or settings.candidate_window
        self._clock = clock

    @classmethod
    def create(
        cls,
        repository: KnowledgeRepository,
        embedding_provider: EmbeddingProvider,
        candidate_window: int | None = None,
    ) -> "KnowledgeBase":
        """Factory method to create KnowledgeBase with defaults.

        Args:
            repository: Knowledge storage backend (required).
            embedding_provider: Embedding generation service (required).
            candidate_window: Entries scored per search. If None, uses settings.

        Returns:
            Configured KnowledgeBase instance
        """
        return cls(
            repository=repository,
            embedding_provider=embedding_provider,
            candidate_window=candidate_window,
        )

    async def _embed(self, text: str, category: Category) -> list[float]:
        """Embed text, tagging provider failures with the category."""
        try:
            vector = await self._embeddings.encode(text)
        except EmbeddingFailure as e:
            e.category = e.category or category.value
            raise
        if not vector:
            raise EmbeddingFailure("Embedding provider returned an empty vector", category=category.value)
        return vector

    async def store(
        self,
        category: Category | str,
        topic: str,
        query_text: str,
        response_payload: dict[str, Any],
        initial_confidence: float | None = None,
    ) -> str:
        """Store a new knowledge entry.

        Business logic:
        1. Validate the confidence
        2. Generate the embedding for the query (one provider call)
        3. Check the vector against the store's dimension
        4. Persist atomically with usage_count=0

        Args:
            category: Knowledge category
            topic: Keyword label for browsing
            query_text: The original query
            response_payload: Category payload as plain JSON data
            initial_confidence: Starting confidence. Defaults to settings.

        Returns:
            The new entry id

        Raises:
            ValidationFailure: Confidence out of range or dimension mismatch
            EmbeddingFailure: The embedding provider failed
            StorageFailure: Persistence failed
        """
        category = Category.parse(category)
        confidence = settings.initial_confidence if initial_confidence is None else initial_confidence
        _check_unit_interval("confidence", confidence)

        vector = await self._embed(query_text, category)
        dimension = await self._repository.ensure_dimension(len(vector))
        if dimension != len(vector):
            raise ValidationFailure(
                f"Embedding has {len(vector)} dimensions, store expects {dimension}",
                category=category.value,
            )

        entry_id = await self._repository.insert(
            category=category,
            topic=topic,
            query_text=query_text,
            response_payload=response_payload,
            vector=vector,
            confidence=confidence,
            now=self._clock(),
        )
        logger.info("Stored new %s entry: %s (id=%s)", category.value, topic, entry_id)
        return entry_id

    async def search(
        self,
        query_text: str,
        category: Category | str,
        threshold: float | None = None,
        limit: int = 5,
    ) -> list[KnowledgeMatch]:
        """Find stored entries similar to the query.

        Business logic:
        1. Generate embedding for the query
        2. Fetch the candidate window for the category
        3. Score each candidate by cosine similarity
        4. Drop candidates below the threshold, best first, at most limit

        Args:
            query_text: The query to search for
            category: Category to search in
            threshold: Minimum similarity. Defaults to settings.
            limit: Maximum number of matches to return

        Returns:
            Matches sorted by similarity, highest first

        Raises:
            ValidationFailure: Query embedding dimension differs from the store
            EmbeddingFailure: The embedding provider failed
            StorageFailure: Candidates could not be read
        """
        category = Category.parse(category)
        threshold = settings.similarity_threshold if threshold is None else threshold
        if limit < 1:
            raise ValidationFailure(f"limit must be positive, got {limit}", category=category.value)

        vector = await self._embed(query_text, category)
        dimension = await self._repository.get_dimension()
        if dimension is not None and dimension != len(vector):
            raise ValidationFailure(
                f"Query embedding has {len(vector)} dimensions, store expects {dimension}",
                category=category.value,
            )

        matches = []
        for entry in await self._repository.candidates(category, self._window):
            try:
                similarity = cosine_similarity(vector, entry.embedding)
            except ValidationFailure as e:
                e.category, e.entry_id = category.value, entry.id
                raise
            if similarity >= threshold:
                matches.append(KnowledgeMatch(entry=entry, similarity=similarity))

        matches.sort(key=lambda m: m.similarity, reverse=True)
        logger.debug(
            "Found %d %s matches above threshold %.2f",
            len(matches),
            category.value,
            threshold,
        )
        return matches[:limit]

    async def increment_usage(self, entry_id: str) -> int | None:
        """Record one more use of an entry.

        Returns:
            The new usage count, or None if the entry was deleted meanwhile
        """
        usage = await self._repository.increment_usage(entry_id, now=self._clock())
        if usage is None:
            logger.info("Usage increment skipped, entry %s no longer exists", entry_id)
        return usage

    async def update_confidence(self, entry_id: str, feedback_score: float) -> float | None:
        """Blend a feedback score into the entry's confidence.

        Applies confidence = 0.7 * confidence + 0.3 * feedback_score as a
        single atomic update in the store.

        Returns:
            The new confidence, or None if the entry does not exist

        Raises:
            ValidationFailure: If feedback_score is outside [0, 1]
        """
        _check_unit_interval("feedback_score", feedback_score, entry_id=entry_id)
        return await self._repository.apply_feedback(entry_id, feedback_score, FEEDBACK_SMOOTHING)

    async def cleanup(self, min_confidence: float | None = None, days_unused: int | None = None) -> int:
        """Delete low-confidence entries and entries never used since creation.

        An entry goes when confidence < min_confidence, OR when it has
        never been used and is older than days_unused. The clauses are
        independent.

        Returns:
            Number of entries deleted
        """
        min_confidence = settings.cleanup_min_confidence if min_confidence is None else min_confidence
        days_unused = settings.cleanup_days_unused if days_unused is None else days_unused
        _check_unit_interval("min_confidence", min_confidence)

        cutoff = self._clock() - days_unused * SECONDS_PER_DAY
        deleted = await self._repository.delete_stale(min_confidence, created_before=cutoff)
        logger.info("Cleaned up %d knowledge entries", deleted)
        return deleted

    async def stats(self) -> KnowledgeStats:
        """Get statistics about the knowledge base."""
        return await self._repository.collect_stats()

    async def full_text_search(self, text: str, limit: int = 10) -> list[KnowledgeEntry]:
        """Lexical search over query text and topic, for diagnostics only."""
        entry_ids = await self._repository.text_search(text, limit)
        return await self._repository.get_many(entry_ids)

    async def get(self, entry_id: str) -> KnowledgeEntry | None:
        """Get a single entry by id."""
        entries = await self._repository.get_many([entry_id])
        return entries[0] if entries else None

    async def is_healthy(self) -> bool:
        """Check if the knowledge base is healthy.

        Returns:
            True if both repository and embeddings are healthy
        """
        repo_healthy = await self._repository.health_check()
        embeddings_healthy = await self._embeddings.is_available()
        return repo_healthy and embeddings_healthy

    @property
    def repository(self) -> KnowledgeRepository:
        """Get the underlying repository (for testing)."""
        return self._repository

    @property
    def embedding_provider(self) -> EmbeddingProvider:
        """Get the underlying embedding provider (for testing)."""
        return self._embeddings
