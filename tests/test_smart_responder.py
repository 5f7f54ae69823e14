"""
Tests for the smart responder: hits, misses, degraded lookups and feedback.
"""

import math
from unittest.mock import AsyncMock

import pytest

from knowledge_cache.dto import ClinicalPearls, Finding, Interpretation, ReportContext
from knowledge_cache.entities import CacheHit, CacheMiss, Category, LookupFailed, ResponseSource
from knowledge_cache.errors import (
    DeadlineExceeded,
    EmbeddingFailure,
    StorageFailure,
    UpstreamFailure,
    ValidationFailure,
)
from knowledge_cache.services import feedback_score

E1 = [1.0, 0.0, 0.0]
E2 = [0.5, math.sqrt(0.75), 0.0]


@pytest.mark.parametrize(
    "helpful, rating, expected",
    [
        (True, None, 0.9),
        (True, 5, 1.0),
        (True, 3, 0.6),
        (True, 1, 0.2),
        (False, None, 0.3),
        (False, 5, 0.3),
    ],
)
def test_feedback_score(helpful, rating, expected):
    assert feedback_score(helpful, rating) == pytest.approx(expected)


@pytest.mark.parametrize("rating", [0, 6])
def test_feedback_score_rejects_out_of_range_rating(rating):
    with pytest.raises(ValidationFailure, match="rating"):
        feedback_score(True, rating)


@pytest.mark.asyncio
async def test_similar_query_is_served_from_cache(responder, knowledge_base, embeddings, upstream, interpretation_payload):
    """A query embedding identically to a stored one is a hit; upstream is never called."""
    embeddings.vectors.update({"Na 130": E1, "Sodium 130": E1})
    entry_id = await knowledge_base.store(Category.LAB, "sodium", "Na 130", interpretation_payload, 0.8)

    result = await responder.get_response("Sodium 130", Category.LAB)

    assert result.source is ResponseSource.CACHE
    assert result.entry_id == entry_id
    assert result.api_call_saved is True
    assert result.similarity == pytest.approx(1.0, abs=1e-6)
    assert result.confidence == pytest.approx(0.8)
    assert result.usage_count == 1
    assert isinstance(result.response, Interpretation)
    assert result.response.summary == "Sodium is low."
    assert upstream.calls == []
    assert (await knowledge_base.get(entry_id)).usage_count == 1


@pytest.mark.asyncio
async def test_dissimilar_query_calls_upstream_and_remembers(responder, knowledge_base, embeddings, upstream, interpretation_payload):
    embeddings.vectors.update({"Na 130": E1, "CT head normal": E2})
    await knowledge_base.store(Category.LAB, "sodium", "Na 130", interpretation_payload, 0.8)

    result = await responder.get_response("CT head normal", "lab")

    assert result.source is ResponseSource.UPSTREAM
    assert result.api_call_saved is False
    assert result.usage_count == 0
    assert result.confidence == pytest.approx(0.8)
    assert len(upstream.calls) == 1
    assert upstream.calls[0][0] == "interpret"

    stats = await knowledge_base.stats()
    assert stats.total_entries == 2
    stored = await knowledge_base.get(result.entry_id)
    assert stored.confidence == pytest.approx(0.8)
    assert stored.usage_count == 0
    assert stored.response_payload == result.response.model_dump(by_alias=True)


@pytest.mark.asyncio
async def test_second_identical_query_hits(responder, upstream):
    first = await responder.get_response("Serum sodium 130", Category.LAB)
    second = await responder.get_response("Serum sodium 130", Category.LAB)

    assert first.source is ResponseSource.UPSTREAM
    assert second.source is ResponseSource.CACHE
    assert second.entry_id == first.entry_id
    assert len(upstream.calls) == 1
    assert responder.metrics.cache_hits == 1
    assert responder.metrics.cache_misses == 1


@pytest.mark.asyncio
async def test_upstream_entry_gets_a_topic(responder, knowledge_base):
    result = await responder.get_response("Troponin 0.8, chest pain", Category.LAB)

    stored = await knowledge_base.get(result.entry_id)
    assert stored.topic == "troponin"


@pytest.mark.asyncio
async def test_report_context_reaches_upstream(responder, upstream):
    await responder.get_response("CXR: clear lungs", Category.IMAGING, ReportContext(patient_age="67"))

    assert upstream.calls == [("interpret", "CXR: clear lungs", "imaging")]


@pytest.mark.asyncio
async def test_lookup_variants(responder, knowledge_base, embeddings, interpretation_payload):
    embeddings.vectors.update({"Na 130": E1, "near": E1, "far": E2})
    await knowledge_base.store(Category.LAB, "sodium", "Na 130", interpretation_payload)

    assert isinstance(await responder.lookup("near", Category.LAB), CacheHit)
    assert await responder.lookup("far", Category.LAB) == CacheMiss(best_similarity=None)

    embeddings.fail = True
    failed = await responder.lookup("near", Category.LAB)
    assert isinstance(failed, LookupFailed)
    assert isinstance(failed.error, EmbeddingFailure)


@pytest.mark.asyncio
async def test_unhealthy_cache_degrades_to_upstream(responder, knowledge_base, upstream):
    knowledge_base.repository.candidates = AsyncMock(side_effect=StorageFailure("connection reset"))

    result = await responder.get_response("K 5.9", Category.LAB)

    assert result.source is ResponseSource.UPSTREAM
    assert len(upstream.calls) == 1
    assert responder.metrics.degraded_lookups == 1
    assert (await knowledge_base.get(result.entry_id)) is not None


@pytest.mark.asyncio
async def test_cached_payload_of_wrong_shape_is_not_served(responder, knowledge_base, embeddings, upstream):
    embeddings.vectors["Na 130"] = E1
    await knowledge_base.store(Category.LAB, "sodium", "Na 130", {"unexpected": True})

    result = await responder.get_response("Na 130", Category.LAB)

    assert result.source is ResponseSource.UPSTREAM
    assert len(upstream.calls) == 1


@pytest.mark.asyncio
async def test_upstream_failure_propagates_and_stores_nothing(responder, knowledge_base, upstream):
    upstream.error = UpstreamFailure("model overloaded")

    with pytest.raises(UpstreamFailure):
        await responder.get_response("Na 130", Category.LAB)

    assert (await knowledge_base.stats()).total_entries == 0
    assert responder.metrics.upstream_calls == 1


@pytest.mark.asyncio
async def test_embedding_failure_on_miss_path_propagates(responder, embeddings, upstream):
    embeddings.fail = True

    with pytest.raises(EmbeddingFailure):
        await responder.get_response("Na 130", Category.LAB)

    assert len(upstream.calls) == 1


@pytest.mark.asyncio
async def test_failed_usage_increment_still_returns_the_hit(responder, knowledge_base, embeddings, interpretation_payload):
    embeddings.vectors["Na 130"] = E1
    await knowledge_base.store(Category.LAB, "sodium", "Na 130", interpretation_payload)
    knowledge_base.repository.increment_usage = AsyncMock(side_effect=StorageFailure("read only"))

    result = await responder.get_response("Na 130", Category.LAB)

    assert result.source is ResponseSource.CACHE
    assert result.usage_count == 0


@pytest.mark.asyncio
async def test_pearls_are_generated_from_interpretation_json(responder, knowledge_base, upstream):
    interpretation = Interpretation(
        summary="Hyponatremia, likely SIADH.",
        findings=[Finding(finding="Sodium", value="128", status="abnormal")],
    )
    query = interpretation.model_dump_json(by_alias=True)

    result = await responder.get_response(query, Category.PEARLS, ReportContext(report_type="lab"))

    assert isinstance(result.response, ClinicalPearls)
    operation, parsed, report_type = upstream.calls[0]
    assert operation == "pearls"
    assert parsed == interpretation
    assert report_type == "lab"
    assert (await knowledge_base.get(result.entry_id)).category is Category.PEARLS


@pytest.mark.asyncio
async def test_questions_default_to_general_report_type(responder, upstream):
    query = Interpretation(summary="Normal CBC.").model_dump_json(by_alias=True)

    await responder.get_response(query, Category.QUESTIONS)

    assert upstream.calls[0][0] == "questions"
    assert upstream.calls[0][2] == "general"


@pytest.mark.asyncio
async def test_teaching_query_must_be_interpretation_json(responder, upstream):
    with pytest.raises(ValidationFailure, match="interpretation JSON"):
        await responder.get_response("not json at all", Category.PEARLS)

    assert upstream.calls == []


@pytest.mark.asyncio
async def test_unknown_category_is_rejected(responder, upstream):
    with pytest.raises(ValidationFailure):
        await responder.get_response("Na 130", "radiology")

    assert upstream.calls == []


@pytest.mark.asyncio
async def test_deadline_bounds_the_whole_request(responder, upstream):
    upstream.delay = 1.0

    with pytest.raises(DeadlineExceeded) as exc_info:
        await responder.get_response("Na 130", Category.LAB, deadline=0.05)

    assert exc_info.value.category == "lab"


@pytest.mark.asyncio
async def test_feedback_moves_confidence(responder, knowledge_base, interpretation_payload):
    entry_id = await knowledge_base.store(Category.LAB, "sodium", "Na 130", interpretation_payload, 0.8)

    confidence = await responder.submit_feedback(entry_id, helpful=True, rating=5)

    assert confidence == pytest.approx(0.86)
    assert (await knowledge_base.get(entry_id)).confidence == pytest.approx(0.86)


@pytest.mark.asyncio
async def test_feedback_for_unknown_entry(responder):
    assert await responder.submit_feedback("404", helpful=False) is None


@pytest.mark.asyncio
async def test_stats_include_cost_savings(responder, knowledge_base, embeddings, interpretation_payload):
    embeddings.vectors["Na 130"] = E1
    await knowledge_base.store(Category.LAB, "sodium", "Na 130", interpretation_payload)
    await responder.get_response("Na 130", Category.LAB)

    stats = await responder.get_stats()

    assert stats["total_entries"] == 1
    assert stats["total_usage"] == 1
    assert stats["similarity_threshold"] == 0.85
    assert stats["estimated_cost_savings"] == {
        "api_calls_saved": 1,
        "estimated_tokens_saved": 2000,
        "estimated_cost_saved": 0.06,
    }
    assert stats["performance"]["cache_hits"] == 1
    assert stats["performance"]["hit_rate"] == 1.0


@pytest.mark.asyncio
async def test_maintenance_reports_what_is_left(responder, knowledge_base, interpretation_payload):
    await knowledge_base.store(Category.LAB, "sodium", "Na 130", interpretation_payload, 0.1)
    await knowledge_base.store(Category.LAB, "potassium", "K 5.9", interpretation_payload, 0.9)

    report = await responder.perform_maintenance(min_confidence=0.3, days_unused=90)

    assert report.deleted_entries == 1
    assert report.remaining_entries == 1
    assert report.average_confidence == pytest.approx(0.9)
    assert report.error is None


@pytest.mark.asyncio
async def test_maintenance_failure_is_reported_not_raised(responder, knowledge_base):
    knowledge_base.cleanup = AsyncMock(side_effect=StorageFailure("disk full"))

    report = await responder.perform_maintenance()

    assert report.deleted_entries == 0
    assert report.remaining_entries == 0
    assert "disk full" in report.error
