"""
Tests for the knowledge base service on an in-memory Redis.
"""

import asyncio
import math
from unittest.mock import AsyncMock, MagicMock

import pytest

from knowledge_cache.entities import Category
from knowledge_cache.errors import EmbeddingFailure, StorageFailure, ValidationFailure
from knowledge_cache.services import KnowledgeBase

E1 = [1.0, 0.0, 0.0]
E2 = [0.5, math.sqrt(0.75), 0.0]  # cosine 0.5 against E1
E3 = [0.0, 1.0, 0.0]


@pytest.mark.asyncio
async def test_store_persists_a_fresh_entry(knowledge_base, embeddings, interpretation_payload):
    """A stored entry starts unused, with the given confidence and payload."""
    embeddings.vectors["Na 130"] = E1

    entry_id = await knowledge_base.store(Category.LAB, "sodium", "Na 130", interpretation_payload, 0.8)
    entry = await knowledge_base.get(entry_id)

    assert entry is not None
    assert entry.category is Category.LAB
    assert entry.topic == "sodium"
    assert entry.query_text == "Na 130"
    assert entry.response_payload == interpretation_payload
    assert entry.embedding == pytest.approx(E1)
    assert entry.confidence == pytest.approx(0.8)
    assert entry.usage_count == 0
    assert entry.created_at == entry.last_used_at


@pytest.mark.asyncio
async def test_store_assigns_distinct_ids(knowledge_base, interpretation_payload):
    ids = {await knowledge_base.store("lab", "lab", f"query {i}", interpretation_payload) for i in range(5)}
    assert len(ids) == 5


@pytest.mark.asyncio
async def test_store_rejects_confidence_outside_unit_interval(knowledge_base, embeddings, interpretation_payload):
    with pytest.raises(ValidationFailure, match="confidence"):
        await knowledge_base.store(Category.LAB, "sodium", "Na 130", interpretation_payload, 1.5)

    assert embeddings.calls == []


@pytest.mark.asyncio
async def test_store_rejects_unknown_category(knowledge_base, interpretation_payload):
    with pytest.raises(ValidationFailure, match="Unknown category"):
        await knowledge_base.store("radiology", "x", "query", interpretation_payload)


@pytest.mark.asyncio
async def test_store_rejects_embedding_of_another_dimension(knowledge_base, embeddings, interpretation_payload):
    """The store's dimension is fixed by its first write."""
    await knowledge_base.store(Category.LAB, "sodium", "Na 130", interpretation_payload)
    embeddings.vectors["K 5.9"] = [1.0, 0.0, 0.0, 0.0]

    with pytest.raises(ValidationFailure, match="dimensions"):
        await knowledge_base.store(Category.LAB, "potassium", "K 5.9", interpretation_payload)

    stats = await knowledge_base.stats()
    assert stats.total_entries == 1


@pytest.mark.asyncio
async def test_search_rejects_query_of_another_dimension(knowledge_base, embeddings, interpretation_payload):
    await knowledge_base.store(Category.LAB, "sodium", "Na 130", interpretation_payload)
    embeddings.vectors["short"] = [1.0, 0.0]

    with pytest.raises(ValidationFailure, match="dimensions"):
        await knowledge_base.search("short", Category.LAB, threshold=0.0)


@pytest.mark.asyncio
async def test_store_propagates_embedding_failure(knowledge_base, embeddings, interpretation_payload):
    embeddings.fail = True

    with pytest.raises(EmbeddingFailure) as exc_info:
        await knowledge_base.store(Category.IMAGING, "x", "CT head", interpretation_payload)

    assert exc_info.value.category == "imaging"


@pytest.mark.asyncio
async def test_search_on_empty_store_returns_nothing(knowledge_base):
    assert await knowledge_base.search("anything", Category.LAB) == []


@pytest.mark.asyncio
async def test_search_finds_identical_query(knowledge_base, embeddings, interpretation_payload):
    embeddings.vectors["Na 130"] = E1
    entry_id = await knowledge_base.store(Category.LAB, "sodium", "Na 130", interpretation_payload)

    matches = await knowledge_base.search("Na 130", Category.LAB, threshold=0.85)

    assert len(matches) == 1
    assert matches[0].entry.id == entry_id
    assert matches[0].similarity == pytest.approx(1.0, abs=1e-6)


@pytest.mark.asyncio
async def test_search_applies_threshold_order_and_limit(knowledge_base, embeddings, interpretation_payload):
    embeddings.vectors.update({"exact": E1, "close": [0.9, 0.1, 0.0], "far": E3, "query": E1})
    for text in ("far", "close", "exact"):
        await knowledge_base.store(Category.LAB, "lab", text, interpretation_payload)

    matches = await knowledge_base.search("query", Category.LAB, threshold=0.85, limit=5)
    assert [m.entry.query_text for m in matches] == ["exact", "close"]
    assert all(m.similarity >= 0.85 for m in matches)

    limited = await knowledge_base.search("query", Category.LAB, threshold=0.0, limit=1)
    assert [m.entry.query_text for m in limited] == ["exact"]


@pytest.mark.asyncio
async def test_search_is_restricted_to_category(knowledge_base, embeddings, interpretation_payload):
    embeddings.vectors["Na 130"] = E1
    await knowledge_base.store(Category.LAB, "sodium", "Na 130", interpretation_payload)

    assert await knowledge_base.search("Na 130", Category.IMAGING, threshold=0.0) == []


@pytest.mark.asyncio
async def test_search_rejects_non_positive_limit(knowledge_base):
    with pytest.raises(ValidationFailure, match="limit"):
        await knowledge_base.search("Na 130", Category.LAB, limit=0)


@pytest.mark.asyncio
async def test_candidate_window_skips_low_ranked_entries(repository, embeddings, clock, interpretation_payload):
    """Only the best-ranked entries are scored, so a close low-confidence match is missed."""
    knowledge = KnowledgeBase(repository, embeddings, candidate_window=2, clock=clock)
    embeddings.vectors.update({"a": E3, "b": E3, "target": E1})
    await knowledge.store(Category.LAB, "lab", "a", interpretation_payload, 0.9)
    await knowledge.store(Category.LAB, "lab", "b", interpretation_payload, 0.8)
    await knowledge.store(Category.LAB, "lab", "target", interpretation_payload, 0.5)

    assert await knowledge.search("target", Category.LAB, threshold=0.85) == []


@pytest.mark.asyncio
async def test_candidate_window_breaks_confidence_ties_by_usage(repository, embeddings, clock, interpretation_payload):
    knowledge = KnowledgeBase(repository, embeddings, candidate_window=1, clock=clock)
    embeddings.vectors.update({"first": E1, "second": E1})
    await knowledge.store(Category.LAB, "lab", "first", interpretation_payload, 0.8)
    second = await knowledge.store(Category.LAB, "lab", "second", interpretation_payload, 0.8)
    await knowledge.increment_usage(second)

    matches = await knowledge.search("first", Category.LAB, threshold=0.0)

    assert [m.entry.id for m in matches] == [second]


@pytest.mark.asyncio
async def test_concurrent_increments_are_not_lost(knowledge_base, interpretation_payload):
    entry_id = await knowledge_base.store(Category.LAB, "lab", "Na 130", interpretation_payload)

    await asyncio.gather(*(knowledge_base.increment_usage(entry_id) for _ in range(50)))

    entry = await knowledge_base.get(entry_id)
    assert entry.usage_count == 50


@pytest.mark.asyncio
async def test_increment_updates_last_used(knowledge_base, clock, interpretation_payload):
    entry_id = await knowledge_base.store(Category.LAB, "lab", "Na 130", interpretation_payload)
    clock.now += 3600

    assert await knowledge_base.increment_usage(entry_id) == 1

    entry = await knowledge_base.get(entry_id)
    assert (entry.last_used_at - entry.created_at).total_seconds() == pytest.approx(3600)


@pytest.mark.asyncio
async def test_increment_on_vanished_entry_returns_none(knowledge_base):
    assert await knowledge_base.increment_usage("404") is None
    assert await knowledge_base.get("404") is None


@pytest.mark.asyncio
async def test_update_confidence_blends_feedback(knowledge_base, interpretation_payload):
    entry_id = await knowledge_base.store(Category.LAB, "lab", "Na 130", interpretation_payload, 0.8)

    confidence = await knowledge_base.update_confidence(entry_id, 1.0)

    assert confidence == pytest.approx(0.86)
    entry = await knowledge_base.get(entry_id)
    assert entry.confidence == pytest.approx(0.86)


@pytest.mark.asyncio
async def test_concurrent_feedback_applies_every_update(knowledge_base, interpretation_payload):
    entry_id = await knowledge_base.store(Category.LAB, "lab", "Na 130", interpretation_payload, 0.8)

    await asyncio.gather(*(knowledge_base.update_confidence(entry_id, 1.0) for _ in range(10)))

    entry = await knowledge_base.get(entry_id)
    assert entry.confidence == pytest.approx(1 - 0.2 * 0.7**10)


@pytest.mark.asyncio
async def test_update_confidence_validates_score(knowledge_base):
    with pytest.raises(ValidationFailure, match="feedback_score"):
        await knowledge_base.update_confidence("1", 1.2)


@pytest.mark.asyncio
async def test_update_confidence_on_unknown_entry_returns_none(knowledge_base):
    assert await knowledge_base.update_confidence("404", 0.5) is None


@pytest.mark.asyncio
async def test_feedback_reorders_candidates(repository, embeddings, clock, interpretation_payload):
    knowledge = KnowledgeBase(repository, embeddings, candidate_window=1, clock=clock)
    embeddings.vectors.update({"first": E1, "second": E1})
    first = await knowledge.store(Category.LAB, "lab", "first", interpretation_payload, 0.8)
    second = await knowledge.store(Category.LAB, "lab", "second", interpretation_payload, 0.7)

    await knowledge.update_confidence(first, 0.0)

    matches = await knowledge.search("first", Category.LAB, threshold=0.0)
    assert [m.entry.id for m in matches] == [second]


@pytest.mark.asyncio
async def test_cleanup_removes_low_confidence_or_old_unused(knowledge_base, clock, interpretation_payload):
    """Either clause alone is enough to delete an entry."""
    clock.days_ago(120)
    old_unused = await knowledge_base.store(Category.LAB, "lab", "old unused", interpretation_payload, 0.9)
    old_used = await knowledge_base.store(Category.LAB, "lab", "old used", interpretation_payload, 0.9)

    clock.days_ago(5)
    low_used = await knowledge_base.store(Category.NOTE, "note", "low used", interpretation_payload, 0.2)
    recent_unused = await knowledge_base.store(Category.NOTE, "note", "recent", interpretation_payload, 0.9)
    for _ in range(10):
        await knowledge_base.increment_usage(low_used)
    for _ in range(5):
        await knowledge_base.increment_usage(old_used)

    clock.days_ago(0)
    deleted = await knowledge_base.cleanup(min_confidence=0.3, days_unused=90)

    assert deleted == 2
    assert await knowledge_base.get(old_unused) is None
    assert await knowledge_base.get(low_used) is None
    assert await knowledge_base.get(old_used) is not None
    assert await knowledge_base.get(recent_unused) is not None


@pytest.mark.asyncio
async def test_cleanup_removes_entries_from_search(knowledge_base, embeddings, interpretation_payload):
    embeddings.vectors["Na 130"] = E1
    await knowledge_base.store(Category.LAB, "lab", "Na 130", interpretation_payload, 0.1)

    assert await knowledge_base.cleanup(min_confidence=0.3, days_unused=90) == 1
    assert await knowledge_base.search("Na 130", Category.LAB, threshold=0.0) == []
    assert (await knowledge_base.stats()).total_entries == 0


@pytest.mark.asyncio
async def test_cleanup_validates_min_confidence(knowledge_base):
    with pytest.raises(ValidationFailure):
        await knowledge_base.cleanup(min_confidence=-0.1)


@pytest.mark.asyncio
async def test_stats_aggregates_entries(knowledge_base, interpretation_payload):
    lab = await knowledge_base.store(Category.LAB, "sodium", "Na 130", interpretation_payload, 0.8)
    await knowledge_base.store(Category.LAB, "potassium", "K 5.9", interpretation_payload, 0.6)
    imaging = await knowledge_base.store(Category.IMAGING, "imaging", "CT head", interpretation_payload, 1.0)
    for _ in range(3):
        await knowledge_base.increment_usage(lab)
    await knowledge_base.increment_usage(imaging)

    stats = await knowledge_base.stats()

    assert stats.total_entries == 3
    assert stats.by_category == {"lab": 2, "imaging": 1}
    assert stats.average_confidence == pytest.approx(0.8)
    assert stats.total_usage == 4
    assert [e.id for e in stats.top_entries[:2]] == [lab, imaging]
    assert stats.top_entries[0].topic == "sodium"


@pytest.mark.asyncio
async def test_stats_on_empty_store(knowledge_base):
    stats = await knowledge_base.stats()

    assert stats.total_entries == 0
    assert stats.by_category == {}
    assert stats.average_confidence == 0.0
    assert stats.top_entries == []


@pytest.mark.asyncio
async def test_corrupt_record_raises_storage_failure(knowledge_base, repository, interpretation_payload):
    entry_id = await knowledge_base.store(Category.LAB, "lab", "Na 130", interpretation_payload)
    await repository.client.hset(f"test:entry:{entry_id}", "response_payload", "{not json")

    with pytest.raises(StorageFailure) as exc_info:
        await knowledge_base.get(entry_id)

    assert exc_info.value.entry_id == entry_id


@pytest.mark.asyncio
async def test_full_text_search_resolves_index_hits(knowledge_base, repository, interpretation_payload):
    entry_id = await knowledge_base.store(Category.LAB, "sodium", "Sodium 130 mmol/L", interpretation_payload)
    index = MagicMock()
    index.query = AsyncMock(return_value=[{"id": f"test:entry:{entry_id}", "category": "lab"}])
    repository._ensure_index = AsyncMock(return_value=index)

    entries = await knowledge_base.full_text_search("sodium", limit=5)

    assert [e.id for e in entries] == [entry_id]
    index.query.assert_awaited_once()


@pytest.mark.asyncio
async def test_full_text_search_without_words_skips_the_index(knowledge_base, repository):
    repository._ensure_index = AsyncMock()

    assert await knowledge_base.full_text_search("?!", limit=5) == []
    repository._ensure_index.assert_not_awaited()


@pytest.mark.asyncio
async def test_full_text_search_failure_is_a_storage_failure(knowledge_base, repository):
    repository._ensure_index = AsyncMock(side_effect=ConnectionError("no search module"))

    with pytest.raises(StorageFailure, match="Full-text search"):
        await knowledge_base.full_text_search("sodium")


@pytest.mark.asyncio
async def test_is_healthy(knowledge_base, embeddings):
    assert await knowledge_base.is_healthy() is True

    embeddings.fail = True
    assert await knowledge_base.is_healthy() is False
