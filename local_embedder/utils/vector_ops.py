"""
Vector Operations
==================
Numeric primitives on 1-D float vectors, built on numpy.

The public similarity helpers (``dot_product``, ``euclidean_distance``,
``cosine_similarity``) validate their arguments because they are exposed to
callers comparing arbitrary vectors.  The in-place helpers are used inside
the pooling code where both operands always have the same length, so they
skip validation.

Reminder:
    For unit-length vectors  dot(a, b) == cos(a, b),
    which is why the pipeline L2-normalises by default.
"""

import logging
from typing import Sequence, Union

import numpy as np

from local_embedder.exceptions import DimensionMismatchError, EmptyVectorError

logger = logging.getLogger(__name__)

VectorLike = Union[np.ndarray, Sequence[float]]

# Norms at or below this are treated as zero
NORM_EPSILON = 1e-12


def _as_vector(v: VectorLike) -> np.ndarray:
    # float32 and float64 keep their dtype, anything else becomes float64
    arr = np.asarray(v).reshape(-1)
    if arr.dtype != np.float32 and arr.dtype != np.float64:
        arr = arr.astype(np.float64)
    return arr


def _validate_pair(x: VectorLike, y: VectorLike):
    a = _as_vector(x)
    b = _as_vector(y)
    if a.size == 0:
        raise EmptyVectorError("x")
    if b.size == 0:
        raise EmptyVectorError("y")
    if a.size != b.size:
        raise DimensionMismatchError(a.size, b.size)
    return a, b


def dot_product(x: VectorLike, y: VectorLike) -> float:
    """Dot product of two equal-length vectors."""
    a, b = _validate_pair(x, y)
    return float(np.dot(a, b))


def euclidean_distance(x: VectorLike, y: VectorLike) -> float:
    """Euclidean (L2) distance between two equal-length vectors."""
    a, b = _validate_pair(x, y)
    return float(np.linalg.norm(a - b))


def _unit(v: np.ndarray):
    """v / |v| in float64, or None for the zero vector."""
    v = v.astype(np.float64)
    # divide by the largest magnitude first so the norm cannot overflow
    # or underflow
    peak = float(np.max(np.abs(v)))
    if peak == 0.0:
        return None
    v /= peak
    return v / np.linalg.norm(v)


def cosine_similarity(x: VectorLike, y: VectorLike) -> float:
    """
    Cosine similarity of two equal-length vectors.

    Returns 0.0 when either vector has zero norm.

    Raises:
        EmptyVectorError       : if either vector is empty
        DimensionMismatchError : if the lengths differ
    """
    a, b = _validate_pair(x, y)
    a = _unit(a)
    b = _unit(b)
    if a is None or b is None:
        return 0.0
    return float(np.clip(np.dot(a, b), -1.0, 1.0))


def norm(v: VectorLike) -> float:
    """L2 norm; 0.0 for the zero vector."""
    return float(np.linalg.norm(_as_vector(v)))


def add_in_place(destination: np.ndarray, source: np.ndarray) -> None:
    """destination += source (lengths are the caller's responsibility)."""
    np.add(destination, source, out=destination)


def divide_in_place(vector: np.ndarray, scalar: float) -> None:
    """vector /= scalar."""
    np.divide(vector, scalar, out=vector)


def normalize_l2_in_place(vector: np.ndarray) -> None:
    """
    Scale ``vector`` to unit length in place.

    Vectors whose norm is at or below 1e-12 are left untouched, so an
    all-zero pooled vector stays all-zero instead of turning into NaN.
    """
    n = float(np.linalg.norm(vector))
    if n > NORM_EPSILON:
        divide_in_place(vector, n)


def normalize_rows(matrix: np.ndarray) -> np.ndarray:
    """Return a copy of a (B, H) matrix with every non-zero row L2-normalised."""
    out = np.array(matrix, dtype=np.float32, copy=True)
    for row in out:
        normalize_l2_in_place(row)
    return out
