import multiprocessing as mp
import os
import time

import numpy as np
import pytest

from knnpool.errors import (
    ConfigurationError,
    DatasetError,
    TransportError,
    WorkerFailedError,
    WorkerSpawnError,
    WorkerTimeoutError,
)
from knnpool.orchestrator import (
    EvaluationOrchestrator,
    OrchestratorState,
    build_scoring_config,
    evaluate,
    evaluate_run,
)
from knnpool.types import LabeledDataset, ScoringConfig

requires_fork = pytest.mark.skipif(
    "fork" not in mp.get_all_start_methods(),
    reason="fork start method not available",
)


def _exploding_distance(a, b):
    raise RuntimeError("distance failure")


def _sleeping_distance(a, b):
    time.sleep(30)
    return np.zeros(np.asarray(a).shape[0])


def test_evaluate_end_to_end(toy_paths):
    training, testing = toy_paths
    assert evaluate(training, testing, num_workers=2, k=1, distance_name="euclidean") == 3


def test_evaluate_run_reports_per_shard_results(toy_paths):
    training, testing = toy_paths
    run = evaluate_run(training, testing, num_workers=2, k=1, distance_name="e")
    assert run.total_correct == 3
    assert run.num_items == 4
    assert [(r.shard.start, r.shard.count) for r in run.shard_results] == [(0, 2), (2, 2)]
    assert [r.correct for r in run.shard_results] == [2, 1]
    assert all(r.exit_code == 0 for r in run.shard_results)
    assert run.accuracy == pytest.approx(0.75)


def test_evaluate_more_workers_than_items(toy_paths):
    training, testing = toy_paths
    run = evaluate_run(training, testing, num_workers=6)
    assert run.total_correct == 3
    assert len(run.shard_results) == 6
    assert [r.correct for r in run.shard_results][4:] == [0, 0]


def test_evaluate_single_worker_matches_pool(toy_paths):
    training, testing = toy_paths
    assert evaluate(training, testing, num_workers=1) == evaluate(training, testing, num_workers=3)


def test_evaluate_with_spawn_start_method(toy_paths):
    training, testing = toy_paths
    assert evaluate(training, testing, num_workers=2, start_method="spawn") == 3


def test_evaluate_empty_testing_set(tmp_path, toy_paths):
    training, _ = toy_paths
    testing = tmp_path / "empty.npz"
    np.savez(testing, features=np.zeros((0, 2)), labels=np.zeros(0))
    assert evaluate(training, testing, num_workers=3) == 0


def test_evaluate_rejects_bad_configuration_before_loading(tmp_path):
    missing = tmp_path / "missing.npz"
    with pytest.raises(ConfigurationError):
        evaluate(missing, missing, distance_name="manhattan")
    with pytest.raises(ConfigurationError):
        evaluate(missing, missing, k=0)
    with pytest.raises(ConfigurationError):
        evaluate(missing, missing, num_workers=0)
    with pytest.raises(ConfigurationError):
        evaluate(missing, missing, start_method="threads")


def test_evaluate_unreadable_dataset(tmp_path, toy_paths):
    training, _ = toy_paths
    missing = tmp_path / "missing.npz"
    with pytest.raises(DatasetError) as excinfo:
        evaluate(training, missing)
    assert "missing.npz" in str(excinfo.value)


def test_orchestrator_state_reaches_done(toy_datasets):
    training, testing = toy_datasets
    orchestrator = EvaluationOrchestrator(build_scoring_config(1, "euclidean"), 2)
    assert orchestrator.state is OrchestratorState.IDLE
    run = orchestrator.run(training, testing)
    assert run.total_correct == 3
    assert orchestrator.state is OrchestratorState.DONE
    with pytest.raises(RuntimeError):
        orchestrator.run(training, testing)


@requires_fork
def test_orchestrator_fails_on_abnormal_worker_exit(toy_datasets):
    training, testing = toy_datasets
    config = ScoringConfig(k=1, distance="exploding", distance_fn=_exploding_distance)
    orchestrator = EvaluationOrchestrator(config, 2, start_method="fork")
    with pytest.raises(WorkerFailedError) as excinfo:
        orchestrator.run(training, testing)
    assert excinfo.value.exit_code not in (0, None)
    assert orchestrator.state is OrchestratorState.FAILED


@requires_fork
def test_orchestrator_idle_workers_do_not_fail(toy_datasets):
    training, _ = toy_datasets
    empty = LabeledDataset(features=np.zeros((0, 2), dtype=np.float32), labels=np.zeros(0, dtype=np.int64))
    # No item is ever classified, so the failing distance is never called.
    config = ScoringConfig(k=1, distance="exploding", distance_fn=_exploding_distance)
    run = EvaluationOrchestrator(config, 3, start_method="fork").run(training, empty)
    assert run.total_correct == 0
    assert [r.correct for r in run.shard_results] == [0, 0, 0]


@requires_fork
def test_orchestrator_timeout_terminates_workers(toy_datasets):
    training, testing = toy_datasets
    config = ScoringConfig(k=1, distance="sleeping", distance_fn=_sleeping_distance)
    orchestrator = EvaluationOrchestrator(config, 2, start_method="fork", timeout=0.5)
    orchestrator.SHUTDOWN_GRACE_SEC = 0.1
    started = time.monotonic()
    with pytest.raises(WorkerTimeoutError):
        orchestrator.run(training, testing)
    assert time.monotonic() - started < 20
    assert orchestrator.state is OrchestratorState.FAILED


def test_orchestrator_rejects_invalid_timeout():
    with pytest.raises(ConfigurationError):
        EvaluationOrchestrator(build_scoring_config(1, "euclidean"), 1, timeout=0)


class _RecordingContext:
    """Wraps a fork context, recording pipes and worker pids.

    ``refuse_start_after`` makes every later ``start()`` fail; ``close_assignment``
    closes the parent's assignment writer right after the worker starts.
    """

    def __init__(self, *, refuse_start_after: int | None = None, close_assignment: bool = False):
        self._context = mp.get_context("fork")
        self.refuse_start_after = refuse_start_after
        self.close_assignment = close_assignment
        self.pipes = []
        self.pids = []
        self.created = 0

    def Pipe(self, duplex=True):
        pair = self._context.Pipe(duplex=duplex)
        self.pipes.append(pair)
        return pair

    def Process(self, **kwargs):
        process = self._context.Process(**kwargs)
        self.created += 1
        refuse = self.refuse_start_after is not None and self.created > self.refuse_start_after
        start = process.start
        # Channel i created pipes 2i (assignment) and 2i+1 (result).
        assignment_writer = self.pipes[-2][1]

        def _start():
            if refuse:
                raise OSError("cannot fork")
            start()
            self.pids.append(process.pid)
            if self.close_assignment:
                assignment_writer.close()

        process.start = _start
        return process

    def connections(self):
        return [conn for pair in self.pipes for conn in pair]


def _assert_reaped(pid):
    with pytest.raises(ProcessLookupError):
        os.kill(pid, 0)


@requires_fork
def test_orchestrator_spawn_failure_reaps_started_workers(toy_datasets):
    training, testing = toy_datasets
    orchestrator = EvaluationOrchestrator(build_scoring_config(1, "euclidean"), 2, start_method="fork")
    context = _RecordingContext(refuse_start_after=1)
    orchestrator.context = context

    with pytest.raises(WorkerSpawnError):
        orchestrator.run(training, testing)

    assert orchestrator.state is OrchestratorState.FAILED
    assert len(context.pids) == 1
    _assert_reaped(context.pids[0])
    assert all(conn.closed for conn in context.connections())


@requires_fork
def test_orchestrator_broken_assignment_leg_fails_run(toy_datasets):
    training, testing = toy_datasets
    orchestrator = EvaluationOrchestrator(build_scoring_config(1, "euclidean"), 2, start_method="fork")
    orchestrator.SHUTDOWN_GRACE_SEC = 0.2
    context = _RecordingContext(close_assignment=True)
    orchestrator.context = context

    with pytest.raises(TransportError):
        orchestrator.run(training, testing)

    assert orchestrator.state is OrchestratorState.FAILED
    assert len(context.pids) == 1
    _assert_reaped(context.pids[0])
    assert all(conn.closed for conn in context.connections())


@requires_fork
def test_orchestrator_shutdown_grace_is_shared_across_workers(toy_datasets):
    training, testing = toy_datasets
    config = ScoringConfig(k=1, distance="sleeping", distance_fn=_sleeping_distance)
    orchestrator = EvaluationOrchestrator(config, 4, start_method="fork", timeout=0.2)
    orchestrator.SHUTDOWN_GRACE_SEC = 1.0
    started = time.monotonic()
    with pytest.raises(WorkerTimeoutError):
        orchestrator.run(training, testing)
    # Four sequential grace periods would take at least 4 seconds.
    assert time.monotonic() - started < 3.5
