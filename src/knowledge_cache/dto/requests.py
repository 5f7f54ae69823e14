"""Request DTOs for API endpoints."""

from pydantic import BaseModel, Field

from knowledge_cache.entities import Category

from .payloads import ReportContext


class RespondRequest(BaseModel):
    """Request DTO for getting a (possibly cached) response.

    The handler will convert this to internal calls to the service layer.
    """

    query: str = Field(..., description="Report text, or interpretation JSON for teaching categories", min_length=1)
    category: Category = Field(..., description="Knowledge category")
    context: ReportContext = Field(default_factory=ReportContext)
    deadline_seconds: float | None = Field(
        None,
        description="Overall request budget in seconds (defaults to server setting)",
        gt=0,
    )


class FeedbackRequest(BaseModel):
    """Request DTO for rating a response."""

    entry_id: str = Field(..., description="Knowledge entry the response came from", min_length=1)
    helpful: bool = Field(..., description="Whether the response was helpful")
    rating: int | None = Field(None, description="Optional 1-5 rating", ge=1, le=5)


class MaintenanceRequest(BaseModel):
    """Request DTO for a maintenance run (defaults to server settings)."""

    min_confidence: float | None = Field(None, ge=0.0, le=1.0)
    days_unused: int | None = Field(None, ge=0)
