"""Work distribution and result aggregation across worker processes.

The orchestrator owns both datasets and the scoring configuration, splits the
testing set into contiguous shards, hands each shard to its own process over a
pair of one-way pipes, waits for every process to exit and then sums the
single integer each one reported.
"""

from __future__ import annotations

import logging
import multiprocessing as mp
import time
from dataclasses import dataclass
from enum import Enum
from multiprocessing.connection import wait
from multiprocessing.process import BaseProcess
from numbers import Integral
from pathlib import Path
from typing import Any

from .dataset import check_compatible, load_dataset
from .distances import resolve_distance
from .errors import ConfigurationError, WorkerFailedError, WorkerSpawnError, WorkerTimeoutError
from .planner import aggregate, plan_shards
from .transport import WorkerChannel
from .types import EvaluationRun, LabeledDataset, ScoringConfig, Shard, ShardResult
from .worker import run_worker

logger = logging.getLogger(__name__)


class OrchestratorState(str, Enum):
    IDLE = "idle"
    LOADED = "loaded"
    PLANNED = "planned"
    DISPATCHING = "dispatching"
    AWAITING = "awaiting"
    COLLECTING = "collecting"
    DONE = "done"
    FAILED = "failed"


@dataclass
class WorkerSlot:
    """Tracking info for one dispatched shard."""
    shard: Shard
    channel: WorkerChannel
    process: BaseProcess | None = None
    exit_code: int | None = None


def _positive_int(value: Any, *, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, Integral) or value < 1:
        raise ConfigurationError(f"{name} must be a positive integer, got {value!r}")
    return int(value)


def _positive_timeout(value: Any) -> float | None:
    if value is None:
        return None
    try:
        seconds = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"timeout must be a positive number, got {value!r}") from exc
    if not seconds > 0:
        raise ConfigurationError(f"timeout must be a positive number, got {value!r}")
    return seconds


def resolve_context(start_method: str | None = None) -> Any:
    try:
        return mp.get_context(start_method)
    except ValueError as exc:
        raise ConfigurationError(f"Unsupported start method: {start_method}") from exc


def build_scoring_config(k: int, distance_name: str) -> ScoringConfig:
    distance, distance_fn = resolve_distance(distance_name)
    return ScoringConfig(k=_positive_int(k, name="K"), distance=distance, distance_fn=distance_fn)


class EvaluationOrchestrator:
    """Runs one evaluation over already-loaded datasets.

    Args:
        config: Scoring configuration shared read-only with every worker
        num_workers: Number of worker processes; may exceed the testing set size
        start_method: multiprocessing start method, interpreter default if None
        timeout: Optional bound in seconds on the wait for all workers to exit
    """

    SHUTDOWN_GRACE_SEC = 5.0

    def __init__(
        self,
        config: ScoringConfig,
        num_workers: int,
        *,
        start_method: str | None = None,
        timeout: float | None = None,
    ):
        self.config = config
        self.num_workers = _positive_int(num_workers, name="number of workers")
        self.context = resolve_context(start_method)
        self.timeout = _positive_timeout(timeout)
        self.state = OrchestratorState.IDLE

    def _transition(self, state: OrchestratorState) -> None:
        logger.debug(f"Orchestrator state {self.state.value} -> {state.value}")
        self.state = state

    def run(self, training: LabeledDataset, testing: LabeledDataset) -> EvaluationRun:
        if self.state is not OrchestratorState.IDLE:
            raise RuntimeError(f"Orchestrator already used (state: {self.state.value})")
        self._transition(OrchestratorState.LOADED)

        slots: list[WorkerSlot] = []
        try:
            shards = plan_shards(testing.num_items, self.num_workers)
            self._transition(OrchestratorState.PLANNED)

            self._transition(OrchestratorState.DISPATCHING)
            self._dispatch(shards, training, testing, slots)

            self._transition(OrchestratorState.AWAITING)
            self._await_workers(slots)

            self._transition(OrchestratorState.COLLECTING)
            shard_results = self._collect(slots)
        except BaseException:
            self._transition(OrchestratorState.FAILED)
            raise
        finally:
            self._release(slots)

        total = aggregate([result.correct for result in shard_results])
        self._transition(OrchestratorState.DONE)
        logger.info(f"Number of correct predictions: {total}/{testing.num_items}")
        return EvaluationRun(
            num_items=testing.num_items,
            num_workers=self.num_workers,
            total_correct=total,
            shard_results=shard_results,
        )

    def _dispatch(
        self,
        shards: list[Shard],
        training: LabeledDataset,
        testing: LabeledDataset,
        slots: list[WorkerSlot],
    ) -> None:
        logger.debug(f"Creating {len(shards)} worker(s) for {testing.num_items} test items")
        for shard in shards:
            channel = WorkerChannel(shard.index, self.context)
            slot = WorkerSlot(shard=shard, channel=channel)
            slots.append(slot)

            assignment, results = channel.worker_ends()
            try:
                process = self.context.Process(
                    target=run_worker,
                    args=(shard.index, training, testing, self.config, assignment, results),
                    name=f"knnpool-worker-{shard.index}",
                    daemon=False,
                )
                process.start()
            except Exception as exc:
                raise WorkerSpawnError(f"Failed starting worker {shard.index}: {exc}") from exc
            slot.process = process
            channel.release_worker_ends()

            channel.send_shard(shard)
            logger.debug(
                f"Started worker {shard.index} (PID: {process.pid}) "
                f"with start={shard.start} count={shard.count}"
            )

    def _await_workers(self, slots: list[WorkerSlot]) -> None:
        logger.debug("Waiting for workers...")
        pending = {
            slot.process.sentinel: (slot, slot.process) for slot in slots if slot.process is not None
        }
        deadline = None if self.timeout is None else time.monotonic() + self.timeout
        while pending:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            ready = wait(list(pending), timeout=remaining)
            if not ready:
                stuck = sorted(slot.shard.index for slot, _ in pending.values())
                raise WorkerTimeoutError(
                    stuck[0],
                    f"Workers {stuck} did not finish within {self.timeout}s",
                )
            for sentinel in ready:
                slot, process = pending.pop(sentinel)
                process.join()
                slot.exit_code = process.exitcode
                if slot.exit_code != 0:
                    raise WorkerFailedError(
                        slot.shard.index,
                        f"Worker {slot.shard.index} exited abnormally with exit code {slot.exit_code}",
                        exit_code=slot.exit_code,
                    )
                logger.debug(f"Worker {slot.shard.index} finished")

    def _collect(self, slots: list[WorkerSlot]) -> list[ShardResult]:
        results: list[ShardResult] = []
        for slot in slots:
            correct = slot.channel.receive_result(slot.shard)
            results.append(ShardResult(shard=slot.shard, correct=correct, exit_code=slot.exit_code))
        return results

    def _release(self, slots: list[WorkerSlot]) -> None:
        for slot in slots:
            slot.channel.close()
        # One grace period shared by every worker still running.
        deadline = time.monotonic() + self.SHUTDOWN_GRACE_SEC
        for slot in slots:
            process = slot.process
            if process is None:
                continue
            process.join(max(0.0, deadline - time.monotonic()))
            if process.is_alive():
                logger.warning(f"Terminating worker {slot.shard.index} (PID: {process.pid})")
                process.terminate()
                process.join()
            process.close()
            slot.process = None


def evaluate_run(
    training_path: str | Path,
    testing_path: str | Path,
    num_workers: int = 1,
    k: int = 1,
    distance_name: str = "euclidean",
    *,
    start_method: str | None = None,
    timeout: float | None = None,
) -> EvaluationRun:
    config = build_scoring_config(k, distance_name)
    orchestrator = EvaluationOrchestrator(
        config,
        num_workers,
        start_method=start_method,
        timeout=timeout,
    )

    logger.debug("Loading datasets...")
    training = load_dataset(training_path)
    testing = load_dataset(testing_path)
    check_compatible(
        training,
        testing,
        training_path=str(training_path),
        testing_path=str(testing_path),
    )
    logger.debug(
        f"datasets loaded: training={training.features.shape}, testing={testing.features.shape}, "
        f"K={config.k}, distance={config.distance}"
    )
    return orchestrator.run(training, testing)


def evaluate(
    training_path: str | Path,
    testing_path: str | Path,
    num_workers: int = 1,
    k: int = 1,
    distance_name: str = "euclidean",
    *,
    start_method: str | None = None,
    timeout: float | None = None,
) -> int:
    run = evaluate_run(
        training_path,
        testing_path,
        num_workers=num_workers,
        k=k,
        distance_name=distance_name,
        start_method=start_method,
        timeout=timeout,
    )
    return run.total_correct


__all__ = [
    "EvaluationOrchestrator",
    "OrchestratorState",
    "WorkerSlot",
    "build_scoring_config",
    "evaluate",
    "evaluate_run",
    "resolve_context",
]
