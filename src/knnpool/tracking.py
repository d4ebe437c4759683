from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from .types import EvaluationRun


class TrackingSink:
    def log_shard(
        self,
        *,
        worker: int,
        start: int,
        count: int,
        correct: int,
    ) -> None:
        del worker, start, count, correct

    def log_run_summary(self, *, run: EvaluationRun, metadata: dict[str, Any]) -> None:
        del run, metadata

    def finish(self) -> None:
        return


class NullTrackingSink(TrackingSink):
    pass


@dataclass(slots=True)
class WandbConfig:
    enabled: bool = False
    project: str | None = None
    entity: str | None = None
    run_name: str | None = None
    group: str | None = None
    job_type: str | None = None
    tags: list[str] | None = None
    mode: str | None = None


class WandbTrackingSink(TrackingSink):
    def __init__(
        self,
        *,
        config: WandbConfig,
        runtime: dict[str, Any],
    ):
        try:
            import wandb
        except Exception as exc:  # pragma: no cover - depends on env
            raise RuntimeError(
                "WandB is enabled but 'wandb' is not installed. "
                "Install with: pip install -e '.[wandb]'"
            ) from exc

        if not config.project:
            raise ValueError("WandB is enabled but project is missing")

        self._wandb = wandb
        run_config = {key: value for key, value in runtime.items() if key != "wandb"}
        self._run = wandb.init(
            project=config.project,
            entity=config.entity,
            name=config.run_name,
            group=config.group,
            job_type=config.job_type,
            tags=config.tags,
            mode=config.mode,
            config=run_config,
        )

    def log_shard(
        self,
        *,
        worker: int,
        start: int,
        count: int,
        correct: int,
    ) -> None:
        payload: dict[str, Any] = {
            "worker": worker,
            "shard/start": start,
            "shard/count": count,
            "shard/correct": correct,
        }
        if count > 0:
            payload["shard/accuracy"] = correct / count
        self._wandb.log(payload)

    def log_run_summary(self, *, run: EvaluationRun, metadata: dict[str, Any]) -> None:
        self._run.summary["total_correct"] = run.total_correct
        self._run.summary["num_items"] = run.num_items
        self._run.summary["accuracy"] = run.accuracy
        for key, value in metadata.items():
            if isinstance(value, (str, int, float, bool)) or value is None:
                self._run.summary[f"run_{key}"] = value
            else:
                self._run.summary[f"run_{key}_json"] = json.dumps(value, ensure_ascii=False)

    def finish(self) -> None:
        self._run.finish()


def build_tracking_sink(*, runtime: dict[str, Any]) -> TrackingSink:
    wandb_cfg_raw = dict(runtime.get("wandb", {}))
    config = WandbConfig(
        enabled=bool(wandb_cfg_raw.get("enabled", False)),
        project=wandb_cfg_raw.get("project"),
        entity=wandb_cfg_raw.get("entity"),
        run_name=wandb_cfg_raw.get("run_name"),
        group=wandb_cfg_raw.get("group"),
        job_type=wandb_cfg_raw.get("job_type"),
        tags=list(wandb_cfg_raw.get("tags", [])) if wandb_cfg_raw.get("tags") else None,
        mode=wandb_cfg_raw.get("mode"),
    )
    if not config.enabled:
        return NullTrackingSink()
    return WandbTrackingSink(config=config, runtime=runtime)


__all__ = ["NullTrackingSink", "TrackingSink", "WandbConfig", "WandbTrackingSink", "build_tracking_sink"]
