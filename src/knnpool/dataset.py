from __future__ import annotations

import zipfile
from pathlib import Path

import h5py
import numpy as np
from numpy.typing import NDArray

from .errors import DatasetError
from .types import LabeledDataset

FEATURE_KEYS = ("features", "vectors", "images")
LABEL_KEYS = ("labels",)


def _first_present(container: object, keys: tuple[str, ...]) -> str | None:
    for key in keys:
        if key in container:  # type: ignore[operator]
            return key
    return None


def _read_arrays(source: Path) -> tuple[NDArray[np.float32], NDArray[np.int64]]:
    suffix = source.suffix.lower()
    if suffix in {".hdf5", ".h5"}:
        with h5py.File(source, "r") as f:
            feature_key = _first_present(f, FEATURE_KEYS)
            label_key = _first_present(f, LABEL_KEYS)
            if feature_key is None or label_key is None:
                raise ValueError("HDF5 dataset must contain 'features' and 'labels'")
            features = np.asarray(f[feature_key], dtype=np.float32)
            labels = np.asarray(f[label_key], dtype=np.int64)
    elif suffix == ".npz":
        with np.load(source) as data:
            feature_key = _first_present(data, FEATURE_KEYS)
            label_key = _first_present(data, LABEL_KEYS)
            if feature_key is None or label_key is None:
                raise ValueError("NPZ dataset must contain 'features' and 'labels'")
            features = np.asarray(data[feature_key], dtype=np.float32)
            labels = np.asarray(data[label_key], dtype=np.int64)
    else:
        raise ValueError(f"Unsupported dataset format: {suffix or '<none>'}")
    return features, labels


def load_dataset(path: str | Path) -> LabeledDataset:
    source = Path(path)
    try:
        features, labels = _read_arrays(source)
    except (OSError, ValueError, KeyError, TypeError, zipfile.BadZipFile) as exc:
        raise DatasetError(str(path), str(exc)) from exc

    if features.ndim == 3:
        # Image stacks (n, height, width) are flattened to one vector per item.
        features = features.reshape(features.shape[0], int(np.prod(features.shape[1:])))
    if features.ndim != 2:
        raise DatasetError(str(path), "features must be a 2-D array")
    labels = labels.reshape(-1)
    if labels.shape[0] != features.shape[0]:
        raise DatasetError(
            str(path),
            f"features and labels length mismatch ({features.shape[0]} != {labels.shape[0]})",
        )

    features = np.ascontiguousarray(features, dtype=np.float32)
    labels = np.ascontiguousarray(labels, dtype=np.int64)
    features.flags.writeable = False
    labels.flags.writeable = False
    return LabeledDataset(features=features, labels=labels)


def check_compatible(training: LabeledDataset, testing: LabeledDataset, *, training_path: str, testing_path: str) -> None:
    if testing.num_items > 0 and training.num_items == 0:
        raise DatasetError(training_path, "training set is empty")
    if training.num_items > 0 and testing.num_items > 0 and training.dim != testing.dim:
        raise DatasetError(
            testing_path,
            f"dimensionality {testing.dim} does not match training dimensionality {training.dim}",
        )


__all__ = ["check_compatible", "load_dataset"]
