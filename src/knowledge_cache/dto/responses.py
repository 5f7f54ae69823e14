"""Response DTOs for API endpoints."""

from typing import Any

from pydantic import BaseModel, Field


class RespondResponse(BaseModel):
    """Response DTO for the respond operation."""

    entry_id: str = Field(..., description="Knowledge entry id, used for feedback")
    response: dict[str, Any] = Field(..., description="Category payload")
    source: str = Field(..., description="'cache' or 'upstream'")
    confidence: float = Field(..., ge=0.0, le=1.0)
    similarity: float = Field(..., description="Cosine similarity of the matched query", ge=-1.0, le=1.0)
    usage_count: int = Field(..., ge=0)
    api_call_saved: bool
    lookup_time_ms: float = Field(..., description="Total time spent serving the request in milliseconds")


class FeedbackResponse(BaseModel):
    """Response DTO for the feedback operation."""

    entry_id: str
    confidence: float = Field(..., description="Confidence after applying the feedback", ge=0.0, le=1.0)


class TopEntryItem(BaseModel):
    """A frequently used entry."""

    id: str
    category: str
    topic: str
    usage_count: int
    confidence: float


class StatsResponse(BaseModel):
    """Response DTO for knowledge statistics."""

    total_entries: int = Field(..., ge=0)
    by_category: dict[str, int]
    average_confidence: float
    total_usage: int = Field(..., ge=0)
    top_entries: list[TopEntryItem] = Field(default_factory=list)
    similarity_threshold: float
    estimated_cost_savings: dict[str, float | int]
    performance: dict[str, float | int]


class MaintenanceResponse(BaseModel):
    """Response DTO for a maintenance run."""

    deleted_entries: int = Field(..., ge=0)
    remaining_entries: int | None = None
    average_confidence: float | None = None
    error: str | None = Field(None, description="Set when cleanup failed")


class SearchResultItem(BaseModel):
    """Single lexical search hit."""

    id: str
    category: str
    topic: str
    query: str
    response: dict[str, Any]
    confidence: float
    usage_count: int


class SearchResponse(BaseModel):
    """Response DTO for lexical search."""

    query: str
    results: list[SearchResultItem] = Field(default_factory=list)


class HealthCheckResponse(BaseModel):
    """Response DTO for health check."""

    status: str = Field(..., description="Health status: 'healthy' or 'unhealthy'")
    store_healthy: bool = Field(..., description="Whether Redis is reachable")
    embedding_healthy: bool | None = Field(
        None,
        description="Whether the embedding service is reachable",
    )
