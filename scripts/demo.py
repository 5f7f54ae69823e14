#!/usr/bin/env python3
"""
Demo script for the knowledge cache.

Sends a few lab and imaging reports through the smart responder twice,
rates the answers and prints the resulting statistics. Needs Redis and
an OpenAI API key (or EMBEDDING_BACKEND=ollama/local for embeddings).
"""

import asyncio
import json
import time

from knowledge_cache import Category, KnowledgeBase, SmartResponder, settings
from knowledge_cache.api.dependencies import build_embedding_provider
from knowledge_cache.config import configure_logging
from knowledge_cache.errors import KnowledgeCacheError
from knowledge_cache.repositories import OpenAIGenerationProvider, RedisKnowledgeRepository


def print_section(title: str) -> None:
    """Print a section header."""
    print("\n" + "=" * 70)
    print(f"  {title}")
    print("=" * 70)


async def demo_respond(responder: SmartResponder) -> list[str]:
    """Ask each query twice; the repeat and the paraphrase should hit."""
    print_section("Cached vs Upstream Responses")

    queries = [
        ("Na 128 mmol/L, K 4.1 mmol/L, creatinine 0.9 mg/dL", Category.LAB),
        ("Sodium 128, potassium 4.1, creatinine 0.9", Category.LAB),
        ("CT head without contrast: no acute intracranial abnormality", Category.IMAGING),
        ("Na 128 mmol/L, K 4.1 mmol/L, creatinine 0.9 mg/dL", Category.LAB),
    ]

    entry_ids = []
    for query, category in queries:
        start = time.time()
        result = await responder.get_response(query, category)
        duration = (time.time() - start) * 1000
        marker = "✓ CACHE HIT" if result.api_call_saved else "✗ upstream"
        print(f"\n  [{category.value}] {query[:60]}")
        print(f"  {marker} (entry {result.entry_id}, {duration:.0f}ms)")
        print(f"  Similarity: {result.similarity:.2%}, confidence: {result.confidence:.2f}")
        print(f"  Summary: {result.response.summary[:100]}")
        entry_ids.append(result.entry_id)
    return entry_ids


async def demo_teaching(responder: SmartResponder) -> None:
    """Derive pearls from an interpretation."""
    print_section("Teaching Content")

    interpretation = await responder.get_response("Troponin I 2.4 ng/mL, chest pain", Category.LAB)
    query = interpretation.response.model_dump_json(by_alias=True)
    pearls = await responder.get_response(query, Category.PEARLS)

    for pearl in pearls.response.pearls:
        print(f"  • [{pearl.difficulty}] {pearl.pearl}")


async def demo_feedback(responder: SmartResponder, entry_ids: list[str]) -> None:
    """Rate responses and show the confidence moving."""
    print_section("Feedback")

    for entry_id, (helpful, rating) in zip(entry_ids, [(True, 5), (False, None)]):
        confidence = await responder.submit_feedback(entry_id, helpful=helpful, rating=rating)
        print(f"  Entry {entry_id}: helpful={helpful}, rating={rating} -> confidence {confidence:.3f}")


async def demo_stats(responder: SmartResponder) -> None:
    """Print statistics and run maintenance."""
    print_section("Statistics")

    stats = await responder.get_stats()
    print(json.dumps(stats, indent=2))

    report = await responder.perform_maintenance()
    print(f"\n  Maintenance removed {report.deleted_entries} entries, {report.remaining_entries} left")


async def main() -> None:
    """Run all demos."""
    configure_logging("WARNING")
    print("\n🚀 Knowledge Cache Demo")
    print("=" * 70)
    print(f"Embedding backend: {settings.embedding_backend} ({settings.embedding_model})")
    print(f"Similarity threshold: {settings.similarity_threshold}")

    knowledge = KnowledgeBase.create(
        repository=RedisKnowledgeRepository.create(prefix="knowledge_demo"),
        embedding_provider=build_embedding_provider(settings),
    )
    responder = SmartResponder.create(
        knowledge_base=knowledge,
        generation_provider=OpenAIGenerationProvider.create(),
    )

    try:
        entry_ids = await demo_respond(responder)
        await demo_teaching(responder)
        await demo_feedback(responder, entry_ids)
        await demo_stats(responder)

        print("\n" + "=" * 70)
        print("✅ Demo completed successfully!")
        print("=" * 70)

    except KnowledgeCacheError as e:
        print(f"\n❌ Error: {e}")
        print("\nMake sure Redis is running and OPENAI_API_KEY is set:")
        print("  docker run -d -p 6379:6379 redis/redis-stack-server")
        print("\nOr set REDIS_URL to your Redis instance.")


if __name__ == "__main__":
    asyncio.run(main())
