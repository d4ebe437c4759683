from .classify import classify_one
from .dataset import load_dataset
from .distances import DISTANCES, cosine_distance, euclidean_distance, resolve_distance
from .errors import (
    ConfigurationError,
    DatasetError,
    EvaluationError,
    TransportError,
    WorkerFailedError,
    WorkerSpawnError,
    WorkerTimeoutError,
)
from .orchestrator import EvaluationOrchestrator, OrchestratorState, evaluate, evaluate_run
from .planner import plan_shards
from .types import EvaluationRun, LabeledDataset, ScoringConfig, Shard, ShardResult

__all__ = [
    "ConfigurationError",
    "DISTANCES",
    "DatasetError",
    "EvaluationError",
    "EvaluationOrchestrator",
    "EvaluationRun",
    "LabeledDataset",
    "OrchestratorState",
    "ScoringConfig",
    "Shard",
    "ShardResult",
    "TransportError",
    "WorkerFailedError",
    "WorkerSpawnError",
    "WorkerTimeoutError",
    "classify_one",
    "cosine_distance",
    "euclidean_distance",
    "evaluate",
    "evaluate_run",
    "load_dataset",
    "plan_shards",
    "resolve_distance",
]
