from __future__ import annotations

import argparse
from pathlib import Path

import h5py
import numpy as np


def _make_split(
    rng: np.random.Generator,
    centers: np.ndarray,
    size: int,
    cluster_noise: float,
) -> tuple[np.ndarray, np.ndarray]:
    labels = rng.integers(0, centers.shape[0], size=size)
    features = centers[labels] + rng.normal(scale=cluster_noise, size=(size, centers.shape[1]))
    return features.astype(np.float32), labels.astype(np.int64)


def _make_dataset(
    *,
    train_size: int,
    test_size: int,
    dim: int,
    n_classes: int,
    cluster_noise: float,
    seed: int,
) -> tuple[tuple[np.ndarray, np.ndarray], tuple[np.ndarray, np.ndarray]]:
    if train_size < 1:
        raise ValueError("train_size must be >= 1")
    if test_size < 0:
        raise ValueError("test_size must be >= 0")
    if dim < 1:
        raise ValueError("dim must be >= 1")
    if n_classes < 2:
        raise ValueError("n_classes must be >= 2")
    if cluster_noise <= 0.0:
        raise ValueError("cluster_noise must be > 0")

    rng = np.random.default_rng(seed)
    # One center per class; larger noise makes classes overlap.
    centers = rng.normal(size=(n_classes, dim))
    train = _make_split(rng, centers, train_size, cluster_noise)
    test = _make_split(rng, centers, test_size, cluster_noise)
    return train, test


def _write(path: Path, features: np.ndarray, labels: np.ndarray) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.suffix.lower() in {".hdf5", ".h5"}:
        with h5py.File(path, "w") as f:
            f.create_dataset("features", data=features)
            f.create_dataset("labels", data=labels)
    else:
        np.savez(path, features=features, labels=labels)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Generate clustered labeled training/testing datasets for knnpool-eval."
    )
    parser.add_argument("--training", required=True, help="Output training path (.npz/.hdf5/.h5)")
    parser.add_argument("--testing", required=True, help="Output testing path (.npz/.hdf5/.h5)")
    parser.add_argument("--train-size", type=int, default=5_000)
    parser.add_argument("--test-size", type=int, default=1_000)
    parser.add_argument("--dim", type=int, default=64)
    parser.add_argument("--n-classes", type=int, default=10)
    parser.add_argument("--cluster-noise", type=float, default=1.5)
    parser.add_argument("--seed", type=int, default=42)
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    (train_x, train_y), (test_x, test_y) = _make_dataset(
        train_size=args.train_size,
        test_size=args.test_size,
        dim=args.dim,
        n_classes=args.n_classes,
        cluster_noise=args.cluster_noise,
        seed=args.seed,
    )
    training = Path(args.training)
    testing = Path(args.testing)
    _write(training, train_x, train_y)
    _write(testing, test_x, test_y)

    print(f"written: {training.resolve()} {testing.resolve()}")
    print(f"train={train_x.shape}, test={test_x.shape}, classes={args.n_classes}")


if __name__ == "__main__":
    main()
