from pathlib import Path

import numpy as np
import pytest

from knnpool.types import LabeledDataset


def toy_arrays() -> tuple[tuple[np.ndarray, np.ndarray], tuple[np.ndarray, np.ndarray]]:
    train_x = np.array([[0.0, 0.0], [0.0, 1.0], [10.0, 10.0], [10.0, 11.0]], dtype=np.float32)
    train_y = np.array([0, 0, 1, 1], dtype=np.int64)
    # Items 0-2 share their nearest neighbour's label, item 3 sits next to class 0 but is labeled 1.
    test_x = np.array([[0.0, 0.2], [10.0, 10.4], [9.5, 10.0], [0.5, 0.5]], dtype=np.float32)
    test_y = np.array([0, 1, 1, 1], dtype=np.int64)
    return (train_x, train_y), (test_x, test_y)


@pytest.fixture
def toy_datasets() -> tuple[LabeledDataset, LabeledDataset]:
    (train_x, train_y), (test_x, test_y) = toy_arrays()
    return LabeledDataset(features=train_x, labels=train_y), LabeledDataset(features=test_x, labels=test_y)


@pytest.fixture
def toy_paths(tmp_path: Path) -> tuple[Path, Path]:
    (train_x, train_y), (test_x, test_y) = toy_arrays()
    training = tmp_path / "training.npz"
    testing = tmp_path / "testing.npz"
    np.savez(training, features=train_x, labels=train_y)
    np.savez(testing, features=test_x, labels=test_y)
    return training, testing
