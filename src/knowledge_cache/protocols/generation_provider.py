"""Upstream generation provider protocol.

One operation per kind of category, each with its own request and
response shape.
"""

from typing import Protocol, runtime_checkable

from knowledge_cache.dto.payloads import (
    AttendingQuestions,
    ClinicalPearls,
    Interpretation,
    ReportContext,
)


@runtime_checkable
class GenerationProvider(Protocol):
    """Protocol for the expensive generative service behind the cache.

    Implementations must bound every call with a timeout and raise
    UpstreamFailure on timeout, quota exhaustion or malformed output.
    """

    async def interpret_report(
        self,
        report_text: str,
        report_type: str,
        context: ReportContext,
    ) -> Interpretation:
        """Interpret a lab, imaging or note report."""
        ...

    async def generate_pearls(self, interpretation: Interpretation, report_type: str) -> ClinicalPearls:
        """Generate clinical pearls for teaching rounds."""
        ...

    async def generate_questions(self, interpretation: Interpretation, report_type: str) -> AttendingQuestions:
        """Generate questions an attending might ask."""
        ...
