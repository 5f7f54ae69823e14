"""Domain entities for internal representation.

These are pure dataclasses used internally by services and
repositories. They are NOT used for API contracts - use DTOs
from the dto package for that.

Entities should have:
- No JSON serialization logic
- No Pydantic validation
- Pure domain logic only
"""

from .category import Category
from .knowledge_entry import KnowledgeEntry
from .knowledge_match import KnowledgeMatch
from .lookup import CacheHit, CacheMiss, LookupFailed, LookupResult
from .response import KnowledgeResponse, ResponseSource
from .stats import KnowledgeStats, MaintenanceReport, PerformanceMetrics, TopEntry

__all__ = [
    "Category",
    "KnowledgeEntry",
    "KnowledgeMatch",
    "CacheHit",
    "CacheMiss",
    "LookupFailed",
    "LookupResult",
    "KnowledgeResponse",
    "ResponseSource",
    "KnowledgeStats",
    "MaintenanceReport",
    "PerformanceMetrics",
    "TopEntry",
]
