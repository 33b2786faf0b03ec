"""Descriptor matching.

A candidate matches a query when the Euclidean distance between their
descriptors is strictly below the threshold. The scan is linear and keeps
the candidates' order; there is no ranking by distance.
"""
from typing import Iterable, List, Optional, Sequence, TypeVar

import numpy as np

from .errors import DescriptorMismatchError

DEFAULT_THRESHOLD = 0.6

T = TypeVar("T")


def _as_vector(descriptor: Sequence[float]) -> np.ndarray:
    vec = np.asarray(descriptor, dtype=np.float64).reshape(-1)
    if vec.size == 0:
        raise DescriptorMismatchError("Face descriptor is empty")
    return vec


def euclidean_distance(a: Sequence[float], b: Sequence[float]) -> float:
    va, vb = _as_vector(a), _as_vector(b)
    if va.shape != vb.shape:
        raise DescriptorMismatchError(
            f"Cannot compare descriptors of length {va.size} and {vb.size}"
        )
    return float(np.linalg.norm(va - vb))


def is_match(query: Sequence[float], descriptor: Optional[Sequence[float]],
             threshold: float = DEFAULT_THRESHOLD) -> bool:
    if descriptor is None:
        return False
    return euclidean_distance(query, descriptor) < threshold


def find_matches(query: Sequence[float], candidates: Iterable[T],
                 threshold: float = DEFAULT_THRESHOLD) -> List[T]:
    """Return the candidates whose ``face_descriptor`` lies within ``threshold`` of ``query``.

    Candidates without a descriptor are skipped. A length mismatch raises
    ``DescriptorMismatchError``.
    """
    q = _as_vector(query)
    matches = []
    for candidate in candidates:
        descriptor = getattr(candidate, "face_descriptor", None)
        if descriptor is None:
            continue
        if is_match(q, descriptor, threshold):
            matches.append(candidate)
    return matches
