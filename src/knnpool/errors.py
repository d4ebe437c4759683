from __future__ import annotations


class EvaluationError(RuntimeError):
    """Base class for every fatal condition of an evaluation run."""


class ConfigurationError(EvaluationError, ValueError):
    pass


class DatasetError(EvaluationError):
    def __init__(self, path: str, reason: str):
        super().__init__(f"The data set in {path} could not be loaded: {reason}")
        self.path = path
        self.reason = reason


class WorkerSpawnError(EvaluationError):
    pass


class TransportError(EvaluationError):
    pass


class WorkerFailedError(EvaluationError):
    def __init__(self, worker: int, message: str, exit_code: int | None = None):
        super().__init__(message)
        self.worker = worker
        self.exit_code = exit_code


class WorkerTimeoutError(WorkerFailedError):
    pass


__all__ = [
    "ConfigurationError",
    "DatasetError",
    "EvaluationError",
    "TransportError",
    "WorkerFailedError",
    "WorkerSpawnError",
    "WorkerTimeoutError",
]
