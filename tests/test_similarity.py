"""
Tests for cosine similarity.
"""

import math

import pytest

from knowledge_cache.errors import ValidationFailure
from knowledge_cache.utils import cosine_similarity


@pytest.mark.parametrize(
    "vector",
    [
        [1.0, 0.0, 0.0],
        [0.3, -0.7, 2.5],
        [1e-3, 4e3, -12.0, 0.5],
        [-1.0] * 1536,
    ],
)
def test_similarity_is_reflexive(vector):
    """A non-zero vector is identical to itself."""
    assert cosine_similarity(vector, vector) == pytest.approx(1.0, abs=1e-6)


def test_orthogonal_and_opposite_vectors():
    assert cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)
    assert cosine_similarity([1, 2], [-1, -2]) == pytest.approx(-1.0)


def test_known_angle():
    """60 degrees apart gives 0.5."""
    assert cosine_similarity([1, 0, 0], [0.5, math.sqrt(0.75), 0]) == pytest.approx(0.5)


def test_scale_invariance():
    assert cosine_similarity([1, 2, 3], [10, 20, 30]) == pytest.approx(1.0)


def test_dimension_mismatch_fails():
    with pytest.raises(ValidationFailure, match="differ"):
        cosine_similarity([1, 0, 0], [1, 0])


def test_zero_vector_fails():
    with pytest.raises(ValidationFailure, match="zero vector"):
        cosine_similarity([0, 0, 0], [1, 0, 0])


def test_empty_vector_fails():
    with pytest.raises(ValidationFailure):
        cosine_similarity([], [])
