from __future__ import annotations

import logging
import os
from multiprocessing.connection import Connection

from .classify import classify_one
from .transport import receive_assignment, send_result
from .types import LabeledDataset, ScoringConfig, Shard

logger = logging.getLogger(__name__)


def score_shard(
    training: LabeledDataset,
    testing: LabeledDataset,
    config: ScoringConfig,
    shard: Shard,
) -> int:
    if shard.count == 0:
        return 0
    if shard.start < 0 or shard.stop > testing.num_items:
        raise IndexError(
            f"shard [{shard.start}, {shard.stop}) is outside the testing set of {testing.num_items} items"
        )

    correct = 0
    for i in range(shard.start, shard.stop):
        predicted = classify_one(training, testing.features[i], config.k, config.distance_fn)
        if predicted == int(testing.labels[i]):
            correct += 1
    return correct


def run_worker(
    index: int,
    training: LabeledDataset,
    testing: LabeledDataset,
    config: ScoringConfig,
    assignment: Connection,
    results: Connection,
) -> None:
    """Process entry point: read one shard, score it, report one integer.

    Exceptions are not caught here so the process exits with a non-zero code
    and the orchestrator treats the run as failed.
    """
    try:
        start, count = receive_assignment(assignment)
        shard = Shard(index=index, start=start, count=count)
        logger.debug(f"Worker {index} (PID: {os.getpid()}) scoring [{shard.start}, {shard.stop})")
        correct = score_shard(training, testing, config, shard)
        send_result(results, correct)
        logger.debug(f"Worker {index} reported {correct}/{shard.count}")
    finally:
        assignment.close()
        results.close()


__all__ = ["run_worker", "score_shard"]
