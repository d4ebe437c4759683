from __future__ import annotations

import math

import numpy as np
from numpy.typing import NDArray

from .errors import ConfigurationError
from .types import DistanceFn


def euclidean_distance(a: NDArray[np.float32], b: NDArray[np.float32]) -> float:
    diff = np.asarray(a, dtype=np.float64) - np.asarray(b, dtype=np.float64)
    return np.sqrt(np.sum(diff * diff, axis=-1))


def cosine_distance(a: NDArray[np.float32], b: NDArray[np.float32]) -> float:
    a64 = np.asarray(a, dtype=np.float64)
    b64 = np.asarray(b, dtype=np.float64)
    dot = np.sum(a64 * b64, axis=-1)
    norms = np.linalg.norm(a64, axis=-1) * np.linalg.norm(b64, axis=-1)
    # Zero vectors have no direction; treat them as orthogonal to everything.
    similarity = np.divide(dot, norms, out=np.zeros_like(dot, dtype=np.float64), where=norms > 0)
    similarity = np.clip(similarity, -1.0, 1.0)
    return 2.0 * np.arccos(similarity) / math.pi


# Order matters: prefixes are tried against keys in this order.
DISTANCES: dict[str, DistanceFn] = {
    "euclidean": euclidean_distance,
    "cosine": cosine_distance,
}


def resolve_distance(name: str) -> tuple[str, DistanceFn]:
    for key, fn in DISTANCES.items():
        if key[: len(name)] == name:
            return key, fn
    choices = ", ".join(DISTANCES)
    raise ConfigurationError(f"Invalid distance metric: '{name}' (expected a prefix of {choices})")


__all__ = ["DISTANCES", "cosine_distance", "euclidean_distance", "resolve_distance"]
