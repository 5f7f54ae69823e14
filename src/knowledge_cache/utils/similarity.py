"""Vector similarity helpers."""

from collections.abc import Sequence

import numpy as np

from knowledge_cache.errors import ValidationFailure


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Compute dot(a, b) / (|a| * |b|).

    Args:
        a: First vector
        b: Second vector

    Returns:
        Similarity in [-1, 1]

    Raises:
        ValidationFailure: If the vectors are empty, differ in length,
            or either has zero norm (similarity is undefined)
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)

    if va.ndim != 1 or vb.ndim != 1 or va.size == 0 or vb.size == 0:
        raise ValidationFailure("Vectors must be non-empty and one-dimensional")
    if va.size != vb.size:
        raise ValidationFailure(f"Vector dimensions differ: {va.size} != {vb.size}")

    norm = np.linalg.norm(va) * np.linalg.norm(vb)
    if norm == 0:
        raise ValidationFailure("Cosine similarity is undefined for a zero vector")

    similarity = float(np.dot(va, vb) / norm)
    # Rounding can push identical vectors a hair past 1
    return max(-1.0, min(1.0, similarity))
