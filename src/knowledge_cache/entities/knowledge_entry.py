"""Knowledge entry domain entity."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .category import Category


@dataclass(frozen=True)
class KnowledgeEntry:
    """Domain entity for one cached query/response pair.

    This is an internal representation used by services and repositories.
    For API contracts, use the DTO classes from the dto package.

    Attributes:
        id: Stable identifier assigned at creation
        category: Category the entry belongs to
        topic: Keyword label used for browsing, never for matching
        query_text: The query that produced this entry
        response_payload: Category-specific payload as plain JSON data
        embedding: The embedding vector for the query
        confidence: Trust score in [0, 1]
        usage_count: Times this entry satisfied a query
        created_at: When the entry was created
        last_used_at: When the entry last satisfied a query
    """

    id: str
    category: Category
    topic: str
    query_text: str
    response_payload: dict[str, Any]
    embedding: list[float] = field(repr=False)
    confidence: float
    usage_count: int
    created_at: datetime
    last_used_at: datetime
