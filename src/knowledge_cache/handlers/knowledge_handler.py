"""HTTP handlers for knowledge cache operations.

Handlers convert between DTOs (API contracts) and service calls.
They handle HTTP concerns like status codes, validation, and error handling.
"""

import logging
import time

from fastapi import HTTPException, status

from knowledge_cache.dto import (
    FeedbackRequest,
    FeedbackResponse,
    HealthCheckResponse,
    MaintenanceRequest,
    MaintenanceResponse,
    RespondRequest,
    RespondResponse,
    SearchResponse,
    SearchResultItem,
    StatsResponse,
)
from knowledge_cache.errors import (
    DeadlineExceeded,
    KnowledgeCacheError,
    ProviderError,
    StorageFailure,
    ValidationFailure,
)
from knowledge_cache.services import SmartResponder

logger = logging.getLogger(__name__)


def _http_error(action: str, error: KnowledgeCacheError) -> HTTPException:
    """Map a knowledge cache error onto an HTTP error."""
    if isinstance(error, ValidationFailure):
        code = status.HTTP_422_UNPROCESSABLE_ENTITY
    elif isinstance(error, ProviderError):
        code = status.HTTP_502_BAD_GATEWAY
    elif isinstance(error, StorageFailure):
        code = status.HTTP_503_SERVICE_UNAVAILABLE
    elif isinstance(error, DeadlineExceeded):
        code = status.HTTP_504_GATEWAY_TIMEOUT
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR

    logger.error("%s failed: %s", action, error.context())
    return HTTPException(status_code=code, detail={"message": f"Failed to {action}: {error}", **error.context()})


class KnowledgeHandler:
    """HTTP handlers for knowledge cache operations.

    This handler delegates business logic to SmartResponder
    and handles HTTP-specific concerns like:
    - Converting entities to DTOs
    - Setting appropriate status codes
    - Error handling and responses

    Example:
        ```python
        handler = KnowledgeHandler(responder=responder)

        @app.post("/knowledge/respond", response_model=RespondResponse)
        async def respond(request: RespondRequest):
            return await handler.respond(request)
        ```
    """

    def __init__(self, responder: SmartResponder) -> None:
        """Initialize the knowledge handler.

        Args:
            responder: The smart responder for business logic (required).
        """
        self._responder = responder

    async def respond(self, request: RespondRequest) -> RespondResponse:
        """Handle POST /knowledge/respond requests."""
        start_time = time.time()
        try:
            result = await self._responder.get_response(
                query=request.query,
                category=request.category,
                context=request.context,
                deadline=request.deadline_seconds,
            )
        except KnowledgeCacheError as e:
            raise _http_error("get response", e) from e

        return RespondResponse(
            entry_id=result.entry_id,
            response=result.response.model_dump(by_alias=True),
            source=result.source.value,
            confidence=result.confidence,
            similarity=result.similarity,
            usage_count=result.usage_count,
            api_call_saved=result.api_call_saved,
            lookup_time_ms=(time.time() - start_time) * 1000,
        )

    async def submit_feedback(self, request: FeedbackRequest) -> FeedbackResponse:
        """Handle POST /knowledge/feedback requests.

        Raises:
            HTTPException: 404 if the entry does not exist
        """
        try:
            confidence = await self._responder.submit_feedback(
                entry_id=request.entry_id,
                helpful=request.helpful,
                rating=request.rating,
            )
        except KnowledgeCacheError as e:
            raise _http_error("submit feedback", e) from e

        if confidence is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Knowledge entry {request.entry_id} not found",
            )
        return FeedbackResponse(entry_id=request.entry_id, confidence=confidence)

    async def get_stats(self) -> StatsResponse:
        """Handle GET /knowledge/stats requests."""
        try:
            stats = await self._responder.get_stats()
        except KnowledgeCacheError as e:
            raise _http_error("get stats", e) from e
        return StatsResponse(**stats)

    async def perform_maintenance(self, request: MaintenanceRequest) -> MaintenanceResponse:
        """Handle POST /knowledge/maintenance requests."""
        report = await self._responder.perform_maintenance(
            min_confidence=request.min_confidence,
            days_unused=request.days_unused,
        )
        return MaintenanceResponse(
            deleted_entries=report.deleted_entries,
            remaining_entries=report.remaining_entries,
            average_confidence=report.average_confidence,
            error=report.error,
        )

    async def search(self, text: str, limit: int) -> SearchResponse:
        """Handle GET /knowledge/search requests."""
        try:
            entries = await self._responder.knowledge_base.full_text_search(text, limit)
        except KnowledgeCacheError as e:
            raise _http_error("search knowledge", e) from e

        return SearchResponse(
            query=text,
            results=[
                SearchResultItem(
                    id=entry.id,
                    category=entry.category.value,
                    topic=entry.topic,
                    query=entry.query_text,
                    response=entry.response_payload,
                    confidence=entry.confidence,
                    usage_count=entry.usage_count,
                )
                for entry in entries
            ],
        )

    async def health_check(self) -> HealthCheckResponse:
        """Handle GET /health requests."""
        knowledge = self._responder.knowledge_base
        store_healthy = await knowledge.repository.health_check()
        embedding_healthy = await knowledge.embedding_provider.is_available()
        healthy = store_healthy and embedding_healthy

        return HealthCheckResponse(
            status="healthy" if healthy else "unhealthy",
            store_healthy=store_healthy,
            embedding_healthy=embedding_healthy,
        )
