"""Tests for cosine similarity."""

import math

import numpy as np
import pytest

from wisdomai.vectors import cosine_similarity


def test_identical_vectors() -> None:
    assert cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)


def test_orthogonal_vectors() -> None:
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)


def test_opposite_vectors() -> None:
    assert cosine_similarity([1.0, 1.0], [-1.0, -1.0]) == pytest.approx(-1.0)


def test_magnitude_independent() -> None:
    assert cosine_similarity([1.0, 2.0], [10.0, 20.0]) == pytest.approx(1.0)


def test_accepts_numpy_arrays() -> None:
    assert cosine_similarity(np.array([3.0, 4.0]), (3.0, 4.0)) == pytest.approx(1.0)


def test_zero_vector_is_nan() -> None:
    assert math.isnan(cosine_similarity([0.0, 0.0], [1.0, 1.0]))


def test_length_mismatch_raises() -> None:
    with pytest.raises(ValueError, match="mismatch"):
        cosine_similarity([1.0, 2.0], [1.0, 2.0, 3.0])


def test_returns_python_float() -> None:
    assert type(cosine_similarity([1.0], [2.0])) is float


def test_symmetric() -> None:
    a = [0.3, -1.2, 4.5, 0.05]
    b = [2.0, 0.7, -0.1, 3.3]
    assert cosine_similarity(a, b) == pytest.approx(cosine_similarity(b, a))
