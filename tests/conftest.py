from __future__ import annotations

import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest


def pytest_configure() -> None:
    """Ensure the repository root is on sys.path.

    Lets the test-suite import ``kktreg`` from a source checkout without an
    editable install.
    """

    repo_root = Path(__file__).resolve().parents[1]
    repo_root_str = str(repo_root)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


DESCRIPTORS = ["x0", "x1", "x2", "x3"]
MAKERS = ["Ford", "GM", "BMW"]
BETA_EXACT = np.array([10.0, 1.0, 2.0, -1.0, 3.0, -2.0, 4.0])


@pytest.fixture
def rng():
    return np.random.default_rng(42)


@pytest.fixture
def auto_frame():
    """Eleven observations: cubic descriptors, one maker dummy per row, a weight column."""
    rows = [f"row{i}" for i in range(1, 12)]
    x1 = np.arange(-5.0, 6.0)
    data = pd.DataFrame(
        {
            "x0": np.ones(11),
            "x1": x1,
            "x2": [25.0, 16.0, 9.0, 4.0, 1.0, 0.0, 1.0, 2.0, 9.0, 16.0, 25.0],
            "x3": x1**3,
            "Ford": [1.0, 1.0, 1.0, 0, 0, 0, 0, 0, 0, 0, 0],
            "GM": [0, 0, 0, 1.0, 1.0, 1.0, 1.0, 1.0, 1.0, 0, 0],
            "BMW": [0, 0, 0, 0, 0, 0, 0, 0, 0, 1.0, 1.0],
            "Weight": [1.0, 2.0, 3.0, 4.0, 0.0, 1.0, 2.0, 3.0, 1.0, 2.0, 1.0],
        },
        index=rows,
        dtype=np.float64,
    )
    data["Regressand"] = data[DESCRIPTORS + MAKERS].to_numpy() @ BETA_EXACT
    return data


@pytest.fixture
def descriptor_frame():
    return pd.DataFrame([[0.0, 1.0, 2.0, 0.0]], index=["DescriptorConstraint"], columns=DESCRIPTORS)
