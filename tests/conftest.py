"""Shared fixtures for the test suite."""

import matplotlib
matplotlib.use('Agg')

import numpy as np
import pytest

from fitkit.data.frame import XYFrame
from fitkit.utils.device import set_device


@pytest.fixture(autouse=True)
def cpu_device():
    """Run every test on the CPU."""
    return set_device('cpu')


@pytest.fixture
def regression_frame():
    """64 rows of 3 features with a linear target."""
    rng = np.random.default_rng(0)
    x = rng.normal(size=(64, 3))
    y = x @ np.array([[1.5], [-2.0], [0.5]]) + 0.1
    return XYFrame(x, y)


@pytest.fixture
def classification_frame():
    """90 rows of 4 features with 3 separable classes as integer labels."""
    rng = np.random.default_rng(1)
    labels = np.repeat(np.arange(3), 30)
    x = rng.normal(scale=0.3, size=(90, 4))
    x[:, 0] += labels * 2.0
    return XYFrame(x, labels)
