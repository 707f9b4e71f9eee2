"""
Shared pytest fixtures.

The environment is pinned before anything imports ``anylayer``, so the
default device is the CPU and matplotlib never needs a display.
"""

import os

os.environ.setdefault("ANYLAYER_DEVICE", "cpu")
os.environ.setdefault("MPLBACKEND", "Agg")

import numpy as np
import pytest

from anylayer.layers import FullyConnectedLayer


@pytest.fixture(autouse=True)
def seeded():
    """Every test starts from the same NumPy random state."""
    np.random.seed(0)


@pytest.fixture()
def dense():
    """A small dense layer, 4 -> 3."""
    return FullyConnectedLayer(4, 3)


@pytest.fixture()
def images():
    """A batch of two (3, 16, 16) images, the input shape of the example models."""
    return np.random.randn(2, 3, 16, 16).astype(np.float32)


@pytest.fixture()
def toy_classification():
    """Linearly separable 3-class data: (x, y_onehot) with 60 samples of 8 features."""
    n, d, classes = 60, 8, 3
    centers = np.random.randn(classes, d).astype(np.float32) * 3.0
    labels = np.arange(n) % classes
    x = centers[labels] + 0.3 * np.random.randn(n, d).astype(np.float32)
    y = np.eye(classes, dtype=np.float32)[labels]
    return x.astype(np.float32), y
