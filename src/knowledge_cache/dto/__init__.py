"""Data Transfer Objects for API contracts.

These Pydantic models define the external API contract and the
category payload schemas. They are used for validation and serialization.

Internal domain logic should use entities from the entities package.
"""

from .payloads import (
    AttendingQuestions,
    CategoryPayload,
    ClinicalPearls,
    Finding,
    Interpretation,
    Pearl,
    Question,
    ReportContext,
    payload_model_for,
)
from .requests import FeedbackRequest, MaintenanceRequest, RespondRequest
from .responses import (
    FeedbackResponse,
    HealthCheckResponse,
    MaintenanceResponse,
    RespondResponse,
    SearchResponse,
    SearchResultItem,
    StatsResponse,
    TopEntryItem,
)

__all__ = [
    "AttendingQuestions",
    "CategoryPayload",
    "ClinicalPearls",
    "Finding",
    "Interpretation",
    "Pearl",
    "Question",
    "ReportContext",
    "payload_model_for",
    "RespondRequest",
    "FeedbackRequest",
    "MaintenanceRequest",
    "RespondResponse",
    "FeedbackResponse",
    "StatsResponse",
    "TopEntryItem",
    "MaintenanceResponse",
    "SearchResultItem",
    "SearchResponse",
    "HealthCheckResponse",
]
