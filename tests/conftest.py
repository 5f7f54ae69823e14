"""
Shared fixtures: an in-memory Redis, deterministic providers and a clock.
"""

import asyncio
import time

import fakeredis
import pytest

from knowledge_cache.dto import (
    AttendingQuestions,
    ClinicalPearls,
    Finding,
    Interpretation,
    Pearl,
    Question,
)
from knowledge_cache.errors import EmbeddingFailure
from knowledge_cache.repositories import RedisKnowledgeRepository
from knowledge_cache.services import KnowledgeBase, SmartResponder
from knowledge_cache.utils import CostModel

DEFAULT_VECTOR = [0.0, 0.0, 1.0]


class StubEmbeddingProvider:
    """Maps known texts to fixed vectors; everything else gets DEFAULT_VECTOR."""

    def __init__(self) -> None:
        self.vectors: dict[str, list[float]] = {}
        self.calls: list[str] = []
        self.fail = False

    @property
    def dimension(self) -> int:
        return len(DEFAULT_VECTOR)

    @property
    def model_name(self) -> str:
        return "stub-embedding"

    async def encode(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.fail:
            raise EmbeddingFailure("quota exhausted")
        return self.vectors.get(text, DEFAULT_VECTOR)

    async def is_available(self) -> bool:
        return not self.fail


class StubGenerationProvider:
    """Counts upstream calls and returns canned payloads."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, object, str]] = []
        self.error: Exception | None = None
        self.delay = 0.0

    async def _call(self, operation: str, subject: object, report_type: str) -> None:
        self.calls.append((operation, subject, report_type))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error

    async def interpret_report(self, report_text, report_type, context) -> Interpretation:
        await self._call("interpret", report_text, report_type)
        return Interpretation(
            summary="Mild hyponatremia.",
            findings=[Finding(finding="Sodium", value="130", reference="135-145", status="abnormal")],
            critical_alerts=[],
        )

    async def generate_pearls(self, interpretation, report_type) -> ClinicalPearls:
        await self._call("pearls", interpretation, report_type)
        return ClinicalPearls(pearls=[Pearl(pearl="Check serum osmolality first.", difficulty="basic")])

    async def generate_questions(self, interpretation, report_type) -> AttendingQuestions:
        await self._call("questions", interpretation, report_type)
        return AttendingQuestions(
            questions=[Question(question="What causes SIADH?", answer="Many things.", difficulty="advanced")]
        )


class FakeClock:
    """Callable clock whose time the test controls."""

    def __init__(self) -> None:
        self.now = time.time()

    def __call__(self) -> float:
        return self.now

    def days_ago(self, days: float) -> None:
        self.now = time.time() - days * 86_400


@pytest.fixture
def redis_client():
    """Create an isolated in-memory Redis."""
    return fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer())


@pytest.fixture
def repository(redis_client):
    """Create a repository on the in-memory Redis."""
    return RedisKnowledgeRepository(redis_client=redis_client, prefix="test")


@pytest.fixture
def embeddings():
    return StubEmbeddingProvider()


@pytest.fixture
def upstream():
    return StubGenerationProvider()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def knowledge_base(repository, embeddings, clock):
    return KnowledgeBase(
        repository=repository,
        embedding_provider=embeddings,
        candidate_window=50,
        clock=clock,
    )


@pytest.fixture
def responder(knowledge_base, upstream):
    return SmartResponder(
        knowledge_base=knowledge_base,
        generation_provider=upstream,
        similarity_threshold=0.85,
        search_limit=3,
        initial_confidence=0.8,
        cost_model=CostModel(avg_tokens_per_call=2000, cost_per_1k_tokens=0.03),
        request_timeout=5,
    )


@pytest.fixture
def interpretation_payload() -> dict:
    """A stored Interpretation payload, as the upstream provider would return it."""
    return Interpretation(
        summary="Sodium is low.",
        findings=[Finding(finding="Sodium", value="130", status="abnormal")],
    ).model_dump(by_alias=True)
