"""Smart responder: decides between cached knowledge and upstream generation.

Per request: Received -> Searching -> CacheHit -> Returning, or
CacheMiss -> Generating -> Persisting -> Returning, or Failed.
Nothing is retried automatically.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import ValidationError

from knowledge_cache.config import settings
from knowledge_cache.dto.payloads import (
    CategoryPayload,
    Interpretation,
    ReportContext,
    payload_model_for,
)
from knowledge_cache.entities import (
    CacheHit,
    CacheMiss,
    Category,
    KnowledgeResponse,
    LookupFailed,
    LookupResult,
    MaintenanceReport,
    PerformanceMetrics,
    ResponseSource,
)
from knowledge_cache.errors import (
    DeadlineExceeded,
    KnowledgeCacheError,
    StorageFailure,
    ValidationFailure,
)
from knowledge_cache.protocols import GenerationProvider
from knowledge_cache.utils import CostModel, extract_topic

from .knowledge_base import KnowledgeBase

logger = logging.getLogger(__name__)

Generator = Callable[[str, Category, ReportContext], Awaitable[CategoryPayload]]


def feedback_score(helpful: bool, rating: int | None = None) -> float:
    """Map user feedback onto a [0, 1] score.

    Helpful responses score rating/5, or 0.9 without a rating.
    Unhelpful responses score 0.3 whatever the rating.
    """
    if rating is not None and not 1 <= rating <= 5:
        raise ValidationFailure(f"rating must be between 1 and 5, got {rating}")
    if not helpful:
        return 0.3
    return rating / 5 if rating else 0.9


class SmartResponder:
    """Orchestrates between the knowledge base and the upstream provider.

    Construct one per application (see api.dependencies) and inject it
    wherever responses are needed.

    Example:
        ```python
        responder = SmartResponder.create(
            knowledge_base=knowledge,
            generation_provider=OpenAIGenerationProvider.create(),
        )
        result = await responder.get_response("Na 130, K 5.9", Category.LAB)
        await responder.submit_feedback(result.entry_id, helpful=True, rating=5)
        ```
    """

    def __init__(
        self,
        knowledge_base: KnowledgeBase,
        generation_provider: GenerationProvider,
        similarity_threshold: float | None = None,
        search_limit: int | None = None,
        initial_confidence: float | None = None,
        cost_model: CostModel | None = None,
        request_timeout: float | None = None,
    ) -> None:
        """Initialize the smart responder.

        Args:
            knowledge_base: Knowledge store (required).
            generation_provider: Upstream generation service (required).
            similarity_threshold: Minimum similarity for a cache hit. Defaults to settings.
            search_limit: Matches fetched per lookup. Defaults to settings.
            initial_confidence: Confidence of freshly generated entries. Defaults to settings.
            cost_model: Cost model for savings estimates. Defaults to settings.
            request_timeout: Default whole-request budget in seconds. Defaults to settings.
        """
        self._knowledge = knowledge_base
        self._provider = generation_provider
        self._threshold = settings.similarity_threshold if similarity_threshold is None else similarity_threshold
        self._limit = search_limit or settings.search_limit
        self._initial_confidence = (
            settings.initial_confidence if initial_confidence is None else initial_confidence
        )
        self._cost_model = cost_model or CostModel()
        self._request_timeout = request_timeout or settings.request_timeout
        self._metrics = PerformanceMetrics()

        self._generators: dict[Category, Generator] = {
            Category.LAB: self._interpret,
            Category.IMAGING: self._interpret,
            Category.NOTE: self._interpret,
            Category.PEARLS: self._pearls,
            Category.QUESTIONS: self._questions,
        }
        missing = set(Category) - set(self._generators)
        if missing:
            raise ValueError(f"No upstream operation for categories: {sorted(c.value for c in missing)}")

    @classmethod
    def create(
        cls,
        knowledge_base: KnowledgeBase,
        generation_provider: GenerationProvider,
        similarity_threshold: float | None = None,
    ) -> "SmartResponder":
        """Factory method to create SmartResponder with defaults.

        Args:
            knowledge_base: Knowledge store (required).
            generation_provider: Upstream generation service (required).
            similarity_threshold: Minimum similarity for a hit. If None, uses settings.

        Returns:
            Configured SmartResponder instance
        """
        return cls(
            knowledge_base=knowledge_base,
            generation_provider=generation_provider,
            similarity_threshold=similarity_threshold,
        )

    async def get_response(
        self,
        query: str,
        category: Category | str,
        context: ReportContext | None = None,
        deadline: float | None = None,
    ) -> KnowledgeResponse:
        """Answer a query from the knowledge base, or generate and remember it.

        Args:
            query: Report text, or interpretation JSON for teaching categories
            category: Knowledge category
            context: Extra report context
            deadline: Whole-request budget in seconds. Defaults to request_timeout.

        Returns:
            KnowledgeResponse describing the answer and where it came from

        Raises:
            ValidationFailure: Unknown category or malformed teaching query
            EmbeddingFailure / UpstreamFailure / StorageFailure: The miss path failed
            DeadlineExceeded: The request did not finish within deadline
        """
        category = Category.parse(category)
        context = context or ReportContext()
        timeout = deadline or self._request_timeout

        try:
            return await asyncio.wait_for(self._respond(query, category, context), timeout)
        except asyncio.TimeoutError as e:
            raise DeadlineExceeded(
                f"Request did not complete within {timeout}s",
                category=category.value,
            ) from e

    async def _respond(self, query: str, category: Category, context: ReportContext) -> KnowledgeResponse:
        logger.info("Processing %s query", category.value)
        started = time.perf_counter()
        outcome = await self.lookup(query, category)
        lookup_ms = (time.perf_counter() - started) * 1000

        if isinstance(outcome, CacheHit):
            self._metrics.record_hit(lookup_ms)
            return await self._from_cache(outcome)

        if isinstance(outcome, LookupFailed):
            logger.warning("Knowledge lookup failed, falling back to upstream: %s", outcome.error)
        else:
            logger.info("No cached match found, calling upstream provider")
        self._metrics.record_miss(lookup_ms, degraded=isinstance(outcome, LookupFailed))

        return await self._from_upstream(query, category, context)

    async def lookup(self, query: str, category: Category | str) -> LookupResult:
        """Consult the knowledge base without ever raising.

        Returns:
            CacheHit when the best match clears the threshold, CacheMiss
            when nothing does, LookupFailed when the cache is unhealthy
        """
        category = Category.parse(category)
        try:
            matches = await self._knowledge.search(query, category, self._threshold, self._limit)
        except KnowledgeCacheError as e:
            return LookupFailed(error=e)

        if not matches or matches[0].similarity < self._threshold:
            return CacheMiss(best_similarity=matches[0].similarity if matches else None)

        best = matches[0]
        try:
            payload = payload_model_for(category).model_validate(best.entry.response_payload)
        except ValidationError as e:
            return LookupFailed(
                error=StorageFailure(
                    f"Cached payload does not match the {category.value} schema: {e}",
                    category=category.value,
                    entry_id=best.entry.id,
                )
            )
        return CacheHit(match=best, payload=payload)

    async def _from_cache(self, hit: CacheHit) -> KnowledgeResponse:
        entry = hit.match.entry
        logger.info(
            "Using cached knowledge (similarity: %.3f, confidence: %.3f)",
            hit.match.similarity,
            entry.confidence,
        )

        try:
            usage = await self._knowledge.increment_usage(entry.id)
        except KnowledgeCacheError as e:
            # The answer is already in hand; a failed counter update must not cost it.
            logger.error("Usage increment failed for entry %s: %s", entry.id, e)
            usage = None

        return KnowledgeResponse(
            entry_id=entry.id,
            response=hit.payload,
            source=ResponseSource.CACHE,
            confidence=entry.confidence,
            similarity=hit.match.similarity,
            usage_count=usage if usage is not None else entry.usage_count,
            api_call_saved=True,
        )

    async def _from_upstream(self, query: str, category: Category, context: ReportContext) -> KnowledgeResponse:
        started = time.perf_counter()
        try:
            payload = await self._generators[category](query, category, context)
        finally:
            self._metrics.record_upstream_call((time.perf_counter() - started) * 1000)

        topic = extract_topic(query, category)
        entry_id = await self._knowledge.store(
            category,
            topic,
            query,
            payload.model_dump(by_alias=True),
            self._initial_confidence,
        )

        return KnowledgeResponse(
            entry_id=entry_id,
            response=payload,
            source=ResponseSource.UPSTREAM,
            confidence=self._initial_confidence,
            similarity=1.0,
            usage_count=0,
            api_call_saved=False,
        )

    async def _interpret(self, query: str, category: Category, context: ReportContext) -> Interpretation:
        return await self._provider.interpret_report(query, category.value, context)

    async def _pearls(self, query: str, category: Category, context: ReportContext) -> CategoryPayload:
        interpretation = self._parse_interpretation(query, category)
        return await self._provider.generate_pearls(interpretation, context.report_type or "general")

    async def _questions(self, query: str, category: Category, context: ReportContext) -> CategoryPayload:
        interpretation = self._parse_interpretation(query, category)
        return await self._provider.generate_questions(interpretation, context.report_type or "general")

    @staticmethod
    def _parse_interpretation(query: str, category: Category) -> Interpretation:
        """Teaching queries carry the interpretation they are derived from as JSON."""
        try:
            return Interpretation.model_validate_json(query)
        except ValidationError as e:
            raise ValidationFailure(
                f"{category.value} queries must be interpretation JSON: {e}",
                category=category.value,
            ) from e

    async def submit_feedback(self, entry_id: str, helpful: bool, rating: int | None = None) -> float | None:
        """Adjust an entry's confidence from user feedback.

        Returns:
            The new confidence, or None if the entry does not exist
        """
        score = feedback_score(helpful, rating)
        confidence = await self._knowledge.update_confidence(entry_id, score)
        if confidence is None:
            logger.warning("Feedback for unknown entry %s ignored", entry_id)
        else:
            logger.info("Updated confidence for entry %s: score %.2f -> %.3f", entry_id, score, confidence)
        return confidence

    async def get_stats(self) -> dict[str, Any]:
        """Get learning statistics.

        Returns:
            Knowledge base stats merged with the cost savings estimate
            and this process's request metrics
        """
        stats = (await self._knowledge.stats()).to_dict()
        stats["similarity_threshold"] = self._threshold
        stats["estimated_cost_savings"] = self._cost_model.estimate(stats["total_usage"]).to_dict()
        stats["performance"] = self._metrics.to_dict()
        return stats

    async def perform_maintenance(
        self,
        min_confidence: float | None = None,
        days_unused: int | None = None,
    ) -> MaintenanceReport:
        """Run cleanup and report what is left.

        Cleanup failures are logged and reported in the result, never raised.
        """
        logger.info("Performing knowledge base maintenance")
        deleted, error = 0, None
        try:
            deleted = await self._knowledge.cleanup(min_confidence, days_unused)
        except KnowledgeCacheError as e:
            logger.error("Knowledge base cleanup failed: %s", e)
            error = str(e)

        try:
            stats = await self._knowledge.stats()
        except KnowledgeCacheError as e:
            logger.error("Could not read stats after maintenance: %s", e)
            return MaintenanceReport(
                deleted_entries=deleted,
                remaining_entries=None,
                average_confidence=None,
                error=error or str(e),
            )

        return MaintenanceReport(
            deleted_entries=deleted,
            remaining_entries=stats.total_entries,
            average_confidence=stats.average_confidence,
            error=error,
        )

    @property
    def threshold(self) -> float:
        """Get the similarity threshold for cache hits."""
        return self._threshold

    @property
    def metrics(self) -> PerformanceMetrics:
        """Get this responder's request metrics."""
        return self._metrics

    @property
    def knowledge_base(self) -> KnowledgeBase:
        """Get the underlying knowledge base (for testing)."""
        return self._knowledge
