"""Outcome variants of a cache lookup.

A lookup never raises: an unhealthy cache is reported as LookupFailed
so the caller can fall through to the upstream provider.
"""

from dataclasses import dataclass
from typing import Any, Union

from knowledge_cache.errors import KnowledgeCacheError

from .knowledge_match import KnowledgeMatch


@dataclass(frozen=True)
class CacheHit:
    """The best match cleared the similarity threshold."""

    match: KnowledgeMatch
    payload: Any


@dataclass(frozen=True)
class CacheMiss:
    """Nothing in the candidate window cleared the threshold."""

    best_similarity: float | None = None


@dataclass(frozen=True)
class LookupFailed:
    """The cache could not be consulted."""

    error: KnowledgeCacheError


LookupResult = Union[CacheHit, CacheMiss, LookupFailed]
