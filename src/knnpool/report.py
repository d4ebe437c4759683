from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from .types import EvaluationRun


def _shard_rows(run: EvaluationRun) -> list[dict[str, Any]]:
    rows: list[dict[str, Any]] = []
    for result in run.shard_results:
        shard = result.shard
        rows.append(
            {
                "worker": shard.index,
                "start": shard.start,
                "count": shard.count,
                "correct": result.correct,
                "accuracy": (result.correct / shard.count) if shard.count else None,
                "exit_code": result.exit_code,
            }
        )
    return rows


def serialize_evaluation_payload(run: EvaluationRun, metadata: dict[str, Any]) -> dict[str, Any]:
    return {
        "metadata": metadata,
        "summary": {
            "num_items": run.num_items,
            "num_workers": run.num_workers,
            "total_correct": run.total_correct,
            "accuracy": run.accuracy,
        },
        "shards": _shard_rows(run),
    }


def write_evaluation_report(output_path: str | Path, run: EvaluationRun, metadata: dict[str, Any]) -> Path:
    output = Path(output_path)
    payload = serialize_evaluation_payload(run, metadata)
    output.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
    return output


__all__ = ["serialize_evaluation_payload", "write_evaluation_report"]
