from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigurationError

DEFAULT_RUNTIME: dict[str, Any] = {
    "training": None,
    "testing": None,
    "k": 1,
    "distance": "euclidean",
    "workers": 1,
    "start_method": None,
    "timeout": None,
    "verbose": False,
    "output": None,
    "wandb": {
        "enabled": False,
        "project": None,
        "entity": None,
        "run_name": None,
        "group": None,
        "job_type": None,
        "tags": [],
        "mode": None,
    },
}


def _as_dict(value: Any, *, name: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigurationError(f"scenario: '{name}' must be a mapping")
    return dict(value)


def _as_int(value: Any, *, name: str) -> int:
    if isinstance(value, bool):
        raise ConfigurationError(f"scenario: '{name}' must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"scenario: '{name}' must be an integer") from exc


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)


def _normalize_wandb(raw: dict[str, Any]) -> dict[str, Any]:
    cfg = {
        "enabled": bool(raw.get("enabled", False)),
        "project": raw.get("project"),
        "entity": raw.get("entity"),
        "run_name": raw.get("run_name"),
        "group": raw.get("group"),
        "job_type": raw.get("job_type"),
        "mode": raw.get("mode"),
    }
    tags = raw.get("tags")
    if tags is None:
        cfg["tags"] = []
    elif isinstance(tags, list):
        cfg["tags"] = [str(x) for x in tags]
    else:
        raise ConfigurationError("scenario: 'wandb.tags' must be a list")
    return cfg


def load_scenario(path: str | Path) -> dict[str, Any]:
    scenario_path = Path(path)
    try:
        raw_loaded = yaml.safe_load(scenario_path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"scenario: cannot read {scenario_path}: {exc}") from exc
    raw = _as_dict(raw_loaded, name="root")

    datasets = _as_dict(raw.get("datasets"), name="datasets")
    evaluation = _as_dict(raw.get("evaluation"), name="evaluation")
    workers = _as_dict(raw.get("workers"), name="workers")
    output = _as_dict(raw.get("output"), name="output")
    wandb = _as_dict(raw.get("wandb"), name="wandb")

    cfg = dict(DEFAULT_RUNTIME)
    cfg.update(
        {
            "training": _optional_str(datasets.get("training", cfg["training"])),
            "testing": _optional_str(datasets.get("testing", cfg["testing"])),
            "k": evaluation.get("k", cfg["k"]),
            "distance": str(evaluation.get("distance", cfg["distance"])),
            "workers": workers.get("count", cfg["workers"]),
            "start_method": _optional_str(workers.get("start_method", cfg["start_method"])),
            "timeout": workers.get("timeout", cfg["timeout"]),
            "verbose": bool(raw.get("verbose", cfg["verbose"])),
            "output": _optional_str(output.get("path", cfg["output"])),
            "wandb": _normalize_wandb(wandb),
            "scenario_path": str(scenario_path.resolve()),
            "scenario_name": str(raw.get("name", scenario_path.stem)),
            "scenario_version": _as_int(raw.get("version", 1), name="version"),
        }
    )
    return cfg


__all__ = ["DEFAULT_RUNTIME", "load_scenario"]
