"""Knowledge storage protocol.

Defines the interface for any storage backend that persists knowledge
entries and performs their counter and score updates atomically.

Implementations can include:
- Redis with Lua scripts (default)
- PostgreSQL (single UPDATE statements)
- SQLite
"""

from typing import Any, Protocol, runtime_checkable

from knowledge_cache.entities import Category, KnowledgeEntry, KnowledgeStats


@runtime_checkable
class KnowledgeRepository(Protocol):
    """Protocol for knowledge storage backends.

    Every mutation of an existing entry must be a single atomic operation
    on the storage side; a read-modify-write in application code loses
    updates under concurrent traffic.

    Example:
        ```python
        from knowledge_cache.protocols import KnowledgeRepository

        repo: KnowledgeRepository = RedisKnowledgeRepository.create()
        ```
    """

    async def ensure_dimension(self, dimension: int) -> int:
        """Record the store's embedding dimension if unset.

        Args:
            dimension: Dimension of the vector about to be stored

        Returns:
            The dimension the store is fixed to
        """
        ...

    async def get_dimension(self) -> int | None:
        """Return the store's embedding dimension, or None while empty."""
        ...

    async def insert(
        self,
        category: Category,
        topic: str,
        query_text: str,
        response_payload: dict[str, Any],
        vector: list[float],
        confidence: float,
        now: float,
    ) -> str:
        """Persist a new entry with usage_count=0.

        Returns:
            The new entry id
        """
        ...

    async def candidates(self, category: Category, window: int) -> list[KnowledgeEntry]:
        """Return up to window entries of a category.

        Ordered by confidence descending, then usage_count descending.
        """
        ...

    async def get_many(self, entry_ids: list[str]) -> list[KnowledgeEntry]:
        """Fetch entries by id, skipping ids that no longer exist."""
        ...

    async def increment_usage(self, entry_id: str, now: float) -> int | None:
        """Atomically add one use and refresh last_used_at.

        Returns:
            The new usage count, or None if the entry does not exist
        """
        ...

    async def apply_feedback(self, entry_id: str, feedback_score: float, smoothing: float) -> float | None:
        """Atomically set confidence = confidence * (1 - smoothing) + feedback_score * smoothing.

        Returns:
            The new confidence, or None if the entry does not exist
        """
        ...

    async def delete_stale(self, min_confidence: float, created_before: float) -> int:
        """Delete entries with low confidence, or unused and created before the cutoff.

        Returns:
            Number of entries deleted
        """
        ...

    async def collect_stats(self, top: int = 10) -> KnowledgeStats:
        """Aggregate statistics over all entries."""
        ...

    async def text_search(self, text: str, limit: int) -> list[str]:
        """Lexical search over query text and topic.

        Returns:
            Matching entry ids, best first
        """
        ...

    async def health_check(self) -> bool:
        """Check if the backend is reachable."""
        ...
