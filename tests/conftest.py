from __future__ import annotations

import sys
from pathlib import Path

import numpy as np
import pytest


def pytest_configure() -> None:
    """Ensure the repository root is on sys.path so `pyvarbvs` imports without installation."""

    repo_root = str(Path(__file__).resolve().parents[1])
    if repo_root not in sys.path:
        sys.path.insert(0, repo_root)


@pytest.fixture
def rng():
    return np.random.default_rng(42)


@pytest.fixture
def gaussian_data(rng):
    """Centred float32 design with two causal variables (0 and 3)."""
    n, p = 200, 10
    X = rng.standard_normal((n, p)).astype(np.float32)
    X = X - X.mean(axis=0)
    beta = np.zeros(p); beta[0] = 1.0; beta[3] = -0.8
    y = X.astype(float) @ beta + rng.standard_normal(n)
    y = y - y.mean()
    return X, y, beta


@pytest.fixture
def binomial_data(rng):
    """Uncentred design and binary outcome with one strong causal variable (index 2)."""
    n, p = 300, 8
    X = rng.standard_normal((n, p)).astype(np.float32)
    t = -0.5 + 2.0 * X[:, 2].astype(float)
    y = (rng.random(n) < 1 / (1 + np.exp(-t))).astype(float)
    return X, y
