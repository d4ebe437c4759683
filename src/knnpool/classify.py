from __future__ import annotations

import numpy as np
from numpy.typing import NDArray

from .types import DistanceFn, LabeledDataset


def nearest_indices(
    training: LabeledDataset,
    item: NDArray[np.float32],
    k: int,
    distance_fn: DistanceFn,
) -> NDArray[np.int64]:
    if k <= 0:
        raise ValueError("k must be positive")
    if training.num_items == 0:
        raise ValueError("training set is empty")

    k = min(k, training.num_items)
    # Registry distance functions broadcast over the leading axis of the first argument.
    distances = np.asarray(distance_fn(training.features, item), dtype=np.float64).reshape(-1)
    if distances.shape[0] != training.num_items:
        raise ValueError("distance function must return one value per training item")
    # Stable sort keeps the lower training index first on equal distances.
    return np.argsort(distances, kind="stable")[:k].astype(np.int64)


def majority_label(labels: NDArray[np.int64]) -> int:
    values, counts = np.unique(labels, return_counts=True)
    # np.unique sorts values, so argmax picks the smallest label on a tie.
    return int(values[int(np.argmax(counts))])


def classify_one(
    training: LabeledDataset,
    item: NDArray[np.float32],
    k: int,
    distance_fn: DistanceFn,
) -> int:
    neighbors = nearest_indices(training, item, k, distance_fn)
    return majority_label(training.labels[neighbors])


__all__ = ["classify_one", "majority_label", "nearest_indices"]
