from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable

import numpy as np
from numpy.typing import NDArray

DistanceFn = Callable[[NDArray[np.float32], NDArray[np.float32]], float]


@dataclass(slots=True)
class LabeledDataset:
    features: NDArray[np.float32]
    labels: NDArray[np.int64]

    @property
    def num_items(self) -> int:
        return int(self.features.shape[0])

    @property
    def dim(self) -> int:
        return int(self.features.shape[1])


@dataclass(frozen=True, slots=True)
class ScoringConfig:
    k: int
    distance: str
    distance_fn: DistanceFn


@dataclass(frozen=True, slots=True)
class Shard:
    index: int
    start: int
    count: int

    @property
    def stop(self) -> int:
        return self.start + self.count


@dataclass(slots=True)
class ShardResult:
    shard: Shard
    correct: int
    exit_code: int | None = None


@dataclass(slots=True)
class EvaluationRun:
    num_items: int
    num_workers: int
    total_correct: int
    shard_results: list[ShardResult] = field(default_factory=list)

    @property
    def accuracy(self) -> float:
        if self.num_items == 0:
            return 0.0
        return float(self.total_correct / self.num_items)
