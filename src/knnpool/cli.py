from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, NoReturn, Sequence

from .errors import ConfigurationError, EvaluationError
from .orchestrator import evaluate_run
from .report import write_evaluation_report
from .scenario import DEFAULT_RUNTIME, load_scenario
from .tracking import TrackingSink, build_tracking_sink
from .types import EvaluationRun

logger = logging.getLogger(__name__)


class _ArgumentParser(argparse.ArgumentParser):
    # Usage errors are fatal errors like any other and exit with status 1.
    def error(self, message: str) -> NoReturn:
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def _positive_int(text: str) -> int:
    try:
        value = int(text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {text!r}") from exc
    if value < 1:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {text!r}")
    return value


def _positive_float(text: str) -> float:
    try:
        value = float(text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected a positive number, got {text!r}") from exc
    if not value > 0:
        raise argparse.ArgumentTypeError(f"expected a positive number, got {text!r}")
    return value


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = _ArgumentParser(
        prog="knnpool-eval",
        description="Count correct k-NN predictions on a testing set using a pool of worker processes",
    )
    parser.add_argument("-K", dest="k", type=_positive_int, default=None, help="K value for kNN (default 1)")
    parser.add_argument(
        "-d",
        dest="distance",
        default=None,
        help="Distance metric: euclidean or cosine, or a prefix such as 'eucl' or 'cos' (default euclidean)",
    )
    parser.add_argument(
        "-p",
        dest="workers",
        type=_positive_int,
        default=None,
        help="Number of worker processes (default 1)",
    )
    parser.add_argument("-v", dest="verbose", action="store_true", help="Print diagnostics to stderr")
    parser.add_argument("training", nargs="?", default=None, help="Training dataset (.hdf5/.h5/.npz)")
    parser.add_argument("testing", nargs="?", default=None, help="Testing dataset (.hdf5/.h5/.npz)")
    parser.add_argument("--scenario", default=None, help="Scenario YAML file path")
    parser.add_argument(
        "--timeout",
        type=_positive_float,
        default=None,
        help="Upper bound in seconds on the wait for all workers",
    )
    parser.add_argument(
        "--start-method",
        default=None,
        choices=["fork", "spawn", "forkserver"],
        help="multiprocessing start method (default: interpreter default)",
    )
    parser.add_argument("--output", default=None, help="Write a JSON evaluation report to this path")
    parser.add_argument("--wandb", action="store_true", help="Enable Weights & Biases tracking")
    parser.add_argument("--wandb-project", default=None, help="WandB project name")
    parser.add_argument("--wandb-entity", default=None, help="WandB entity/team")
    parser.add_argument("--wandb-run-name", default=None, help="WandB run name")
    parser.add_argument("--wandb-mode", default=None, help="WandB mode (online/offline/disabled)")
    parser.add_argument("--wandb-tags", nargs="+", default=None, help="WandB tags")
    return parser.parse_args(argv)


def _build_runtime_config(args: argparse.Namespace) -> dict[str, Any]:
    if args.scenario:
        runtime = load_scenario(args.scenario)
    else:
        runtime = dict(DEFAULT_RUNTIME)

    if args.training is not None:
        runtime["training"] = args.training
    if args.testing is not None:
        runtime["testing"] = args.testing
    if args.k is not None:
        runtime["k"] = int(args.k)
    if args.distance is not None:
        runtime["distance"] = args.distance
    if args.workers is not None:
        runtime["workers"] = int(args.workers)
    if args.timeout is not None:
        runtime["timeout"] = float(args.timeout)
    if args.start_method is not None:
        runtime["start_method"] = args.start_method
    if args.output is not None:
        runtime["output"] = str(args.output)
    if args.verbose:
        runtime["verbose"] = True

    wandb_cfg = dict(runtime.get("wandb", {}))
    if args.wandb:
        wandb_cfg["enabled"] = True
    if args.wandb_project is not None:
        wandb_cfg["project"] = args.wandb_project
    if args.wandb_entity is not None:
        wandb_cfg["entity"] = args.wandb_entity
    if args.wandb_run_name is not None:
        wandb_cfg["run_name"] = args.wandb_run_name
    if args.wandb_mode is not None:
        wandb_cfg["mode"] = args.wandb_mode
    if args.wandb_tags is not None:
        wandb_cfg["tags"] = [str(x) for x in args.wandb_tags]
    runtime["wandb"] = wandb_cfg

    if not runtime.get("training") or not runtime.get("testing"):
        raise ConfigurationError("Expecting training images file and test images file")
    return runtime


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        stream=sys.stderr,
        format="%(levelname)s %(name)s: %(message)s",
        force=True,
    )


def _build_metadata(runtime: dict[str, Any]) -> dict[str, Any]:
    return {
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "training_path": str(Path(runtime["training"]).resolve()),
        "testing_path": str(Path(runtime["testing"]).resolve()),
        "k": runtime["k"],
        "distance": runtime["distance"],
        "workers": runtime["workers"],
        "start_method": runtime.get("start_method"),
        "timeout": runtime.get("timeout"),
        "scenario_path": runtime.get("scenario_path"),
        "scenario_name": runtime.get("scenario_name"),
    }


def _track(sink: TrackingSink, run: EvaluationRun, metadata: dict[str, Any]) -> None:
    for result in run.shard_results:
        sink.log_shard(
            worker=result.shard.index,
            start=result.shard.start,
            count=result.shard.count,
            correct=result.correct,
        )
    sink.log_run_summary(run=run, metadata=metadata)


def _open_tracking_sink(runtime: dict[str, Any]) -> TrackingSink:
    try:
        return build_tracking_sink(runtime=runtime)
    except (RuntimeError, ValueError) as exc:
        raise ConfigurationError(str(exc)) from exc


def run(runtime: dict[str, Any]) -> EvaluationRun:
    metadata = _build_metadata(runtime)
    sink = _open_tracking_sink(runtime)
    try:
        result = evaluate_run(
            runtime["training"],
            runtime["testing"],
            num_workers=runtime["workers"],
            k=runtime["k"],
            distance_name=runtime["distance"],
            start_method=runtime.get("start_method"),
            timeout=runtime.get("timeout"),
        )
        _track(sink, result, metadata)
        if runtime.get("output"):
            try:
                output = write_evaluation_report(runtime["output"], result, metadata)
            except OSError as exc:
                raise EvaluationError(f"Failed writing report to {runtime['output']}: {exc}") from exc
            logger.debug(f"report written: {output.resolve()}")
        return result
    finally:
        sink.finish()


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    _configure_logging(bool(args.verbose))
    try:
        runtime = _build_runtime_config(args)
        _configure_logging(bool(runtime["verbose"]))
        result = run(runtime)
    except EvaluationError as exc:
        logger.debug("evaluation failed", exc_info=True)
        print(str(exc), file=sys.stderr)
        return 1

    print(result.total_correct)
    return 0


if __name__ == "__main__":
    sys.exit(main())
