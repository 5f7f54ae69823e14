"""Smart responder result entity."""

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ResponseSource(str, Enum):
    """Where a response came from."""

    CACHE = "cache"
    UPSTREAM = "upstream"


@dataclass(frozen=True)
class KnowledgeResponse:
    """Result of SmartResponder.get_response.

    Attributes:
        entry_id: Knowledge entry that holds this response (use it for feedback)
        response: Category payload model (Interpretation, ClinicalPearls, ...)
        source: CACHE on a hit, UPSTREAM when freshly generated
        confidence: Confidence of the entry
        similarity: Similarity of the matched query (1.0 for fresh responses)
        usage_count: Usage count of the entry after this request
        api_call_saved: True when no upstream generation was paid for
    """

    entry_id: str
    response: Any
    source: ResponseSource
    confidence: float
    similarity: float
    usage_count: int
    api_call_saved: bool
