"""OpenAI chat completions as the upstream generation provider.

Every operation asks for a JSON object and validates it against the
category payload schema before handing it back.
"""

import logging
from typing import TypeVar

import openai
from openai import AsyncOpenAI
from pydantic import BaseModel, ValidationError

from knowledge_cache.config import settings
from knowledge_cache.dto.payloads import (
    AttendingQuestions,
    ClinicalPearls,
    Interpretation,
    ReportContext,
)
from knowledge_cache.errors import UpstreamFailure

logger = logging.getLogger(__name__)

PayloadT = TypeVar("PayloadT", bound=BaseModel)

INTERPRETATION_PROMPT = """You are an expert medical assistant interpreting reports for ward presentations.

Analyze the report accurately, identify critical findings and abnormalities,
give their clinical significance, and suggest differential diagnoses when appropriate.

Respond with a JSON object of this shape:
{
  "summary": "Brief 2-3 sentence summary",
  "findings": [{"finding": "...", "value": "...", "reference": "...", "status": "normal|abnormal|critical", "significance": "..."}],
  "criticalAlerts": ["..."],
  "differentialConsiderations": ["..."],
  "recommendedActions": ["..."],
  "additionalNotes": "..."
}"""

PEARLS_PROMPT = """You are a medical educator writing teaching points for ward rounds.

Give 3-5 high-yield clinical pearls based on the findings. Each pearl should be
clinically relevant, suitable for students and residents, and memorable.

Respond with a JSON object of this shape:
{
  "pearls": [
    {"pearl": "...", "relevance": "...", "difficulty": "basic|intermediate|advanced",
     "category": "diagnosis|management|physiology|clinical_reasoning"}
  ]
}"""

QUESTIONS_PROMPT = """You are an attending physician preparing questions for teaching rounds.

Give 3-5 questions an attending might ask about this case, with detailed answers.
Mix factual recall with clinical reasoning, at resident level.

Respond with a JSON object of this shape:
{
  "questions": [
    {"question": "...", "answer": "...", "teachingPoint": "...",
     "difficulty": "basic|intermediate|advanced",
     "category": "diagnosis|management|mechanism|differential"}
  ]
}"""


class OpenAIGenerationProvider:
    """OpenAI implementation of the GenerationProvider protocol."""

    def __init__(
        self,
        model_name: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        client: AsyncOpenAI | None = None,
    ) -> None:
        """Initialize the provider.

        Args:
            model_name: Chat model. Defaults to settings.openai_model.
            api_key: API key. Defaults to settings.openai_api_key / OPENAI_API_KEY.
            timeout: Per-request timeout in seconds. Defaults to settings.upstream_timeout.
            client: Preconfigured client (mainly for tests).
        """
        self._model_name = model_name or settings.openai_model
        self._api_key = api_key or settings.openai_api_key
        self._timeout = timeout or settings.upstream_timeout
        self._client = client

    @classmethod
    def create(cls, model_name: str | None = None) -> "OpenAIGenerationProvider":
        """Factory method to create OpenAIGenerationProvider with defaults."""
        return cls(model_name=model_name)

    @property
    def client(self) -> AsyncOpenAI:
        """Get or create the async OpenAI client."""
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self._api_key, timeout=self._timeout, max_retries=0)
        return self._client

    @property
    def model_name(self) -> str:
        """Get the chat model name."""
        return self._model_name

    async def _complete(
        self,
        system_prompt: str,
        user_prompt: str,
        schema: type[PayloadT],
        temperature: float,
        max_tokens: int,
    ) -> PayloadT:
        """Run one JSON-mode completion and validate it against schema."""
        try:
            completion = await self.client.chat.completions.create(
                model=self._model_name,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=temperature,
                max_tokens=max_tokens,
                response_format={"type": "json_object"},
                timeout=self._timeout,
            )
        except openai.APITimeoutError as e:
            raise UpstreamFailure(f"OpenAI completion timed out after {self._timeout}s") from e
        except openai.OpenAIError as e:
            raise UpstreamFailure(f"OpenAI completion failed: {e}") from e

        if not completion.choices or not completion.choices[0].message.content:
            raise UpstreamFailure("OpenAI returned an empty completion")

        if completion.usage is not None:
            logger.info(
                "Upstream %s call used %d tokens",
                schema.__name__,
                completion.usage.total_tokens,
            )

        try:
            return schema.model_validate_json(completion.choices[0].message.content)
        except ValidationError as e:
            raise UpstreamFailure(f"OpenAI returned malformed {schema.__name__}: {e}") from e

    async def interpret_report(
        self,
        report_text: str,
        report_type: str,
        context: ReportContext,
    ) -> Interpretation:
        """Interpret a lab, imaging or note report."""
        lines = [f"Report Type: {report_type}"]
        if context.patient_age:
            lines.append(f"Patient Age: {context.patient_age}")
        if context.relevant_history:
            lines.append(f"Relevant History: {context.relevant_history}")
        lines += [
            "",
            "Report Text:",
            report_text,
            "",
            f"Please provide a comprehensive interpretation of this {report_type} report.",
        ]
        return await self._complete(
            INTERPRETATION_PROMPT,
            "\n".join(lines),
            Interpretation,
            temperature=0.3,
            max_tokens=2000,
        )

    async def generate_pearls(self, interpretation: Interpretation, report_type: str) -> ClinicalPearls:
        """Generate clinical pearls for teaching rounds."""
        findings = "\n".join(
            f"- {f.finding}: {f.significance or ''}" for f in interpretation.findings[:5]
        )
        user_prompt = (
            f"Report Type: {report_type}\n\n"
            f"Summary: {interpretation.summary}\n\n"
            f"Key Findings:\n{findings or 'None'}\n\n"
            "Generate clinical pearls for teaching rounds."
        )
        return await self._complete(PEARLS_PROMPT, user_prompt, ClinicalPearls, temperature=0.7, max_tokens=1500)

    async def generate_questions(self, interpretation: Interpretation, report_type: str) -> AttendingQuestions:
        """Generate questions an attending might ask."""
        alerts = "\n".join(interpretation.critical_alerts)
        abnormal_findings = [f for f in interpretation.findings if f.status != "normal"][:5]
        abnormal = "\n".join(f"- {f.finding}" for f in abnormal_findings)
        user_prompt = (
            f"Report Type: {report_type}\n\n"
            f"Summary: {interpretation.summary}\n\n"
            f"Critical Findings:\n{alerts or 'None'}\n\n"
            f"Key Abnormalities:\n{abnormal or 'None'}\n\n"
            "Generate attending-level questions for rounds."
        )
        return await self._complete(
            QUESTIONS_PROMPT,
            user_prompt,
            AttendingQuestions,
            temperature=0.8,
            max_tokens=2000,
        )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.close()
            self._client = None
