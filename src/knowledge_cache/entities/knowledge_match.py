"""Knowledge match domain entity."""

from dataclasses import dataclass

from .knowledge_entry import KnowledgeEntry


@dataclass(frozen=True)
class KnowledgeMatch:
    """Domain entity for a similarity search result.

    Attributes:
        entry: The matched knowledge entry
        similarity: Cosine similarity to the query (1 = identical, -1 = opposite)
    """

    entry: KnowledgeEntry
    similarity: float
