"""Utility modules for the knowledge cache."""

from .costs import CostModel, CostSavings
from .similarity import cosine_similarity
from .topics import extract_topic

__all__ = [
    "CostModel",
    "CostSavings",
    "cosine_similarity",
    "extract_topic",
]
