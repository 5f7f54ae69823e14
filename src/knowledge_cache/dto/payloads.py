"""Category payload schemas.

Each category is bound to exactly one payload model. Payloads are stored
with camelCase keys, the same shape the generation provider returns.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from knowledge_cache.entities import Category

Difficulty = Literal["basic", "intermediate", "advanced"]


class _Payload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ReportContext(_Payload):
    """Extra context passed alongside a query."""

    report_type: str | None = Field(None, description="Report type for teaching categories")
    patient_age: str | None = Field(None, description="Patient age, if known")
    relevant_history: str | None = Field(None, description="Relevant history, if known")


class Finding(_Payload):
    """A single finding in a report interpretation."""

    finding: str
    value: str | None = None
    reference: str | None = None
    status: Literal["normal", "abnormal", "critical"] = "normal"
    significance: str | None = None


class Interpretation(_Payload):
    """Structured interpretation of a lab, imaging or note report."""

    summary: str
    findings: list[Finding] = Field(default_factory=list)
    critical_alerts: list[str] = Field(default_factory=list)
    differential_considerations: list[str] = Field(default_factory=list)
    recommended_actions: list[str] = Field(default_factory=list)
    additional_notes: str | None = None


class Pearl(_Payload):
    """A teaching point for ward rounds."""

    pearl: str
    relevance: str | None = None
    difficulty: Difficulty = "intermediate"
    category: str | None = None


class ClinicalPearls(_Payload):
    """Clinical pearls derived from an interpretation."""

    pearls: list[Pearl] = Field(default_factory=list)


class Question(_Payload):
    """A question an attending might ask, with its answer."""

    question: str
    answer: str
    teaching_point: str | None = None
    difficulty: Difficulty = "intermediate"
    category: str | None = None


class AttendingQuestions(_Payload):
    """Attending questions derived from an interpretation."""

    questions: list[Question] = Field(default_factory=list)


CategoryPayload = Interpretation | ClinicalPearls | AttendingQuestions

_PAYLOAD_MODELS: dict[Category, type[CategoryPayload]] = {
    Category.LAB: Interpretation,
    Category.IMAGING: Interpretation,
    Category.NOTE: Interpretation,
    Category.PEARLS: ClinicalPearls,
    Category.QUESTIONS: AttendingQuestions,
}


def payload_model_for(category: Category) -> type[CategoryPayload]:
    """Return the payload model bound to a category."""
    return _PAYLOAD_MODELS[category]
