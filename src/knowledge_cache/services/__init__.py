"""Service layer for business logic.

This layer contains the core business logic and orchestration.
Services depend on protocols (interfaces), not concrete implementations,
making them testable and flexible.

Architecture:
    Handler -> SmartResponder -> KnowledgeBase -> Repository
    (HTTP)  -> (Cache policy)  -> (Store)       -> (Data Access)

Usage:
    ```python
    from knowledge_cache.services import KnowledgeBase, SmartResponder

    knowledge = KnowledgeBase.create(repository=repo, embedding_provider=embeddings)
    responder = SmartResponder.create(knowledge_base=knowledge, generation_provider=upstream)
    ```
"""

from .knowledge_base import KnowledgeBase
from .smart_responder import SmartResponder, feedback_score

__all__ = [
    "KnowledgeBase",
    "SmartResponder",
    "feedback_score",
]
