"""Pytest configuration helpers for the test suite."""
from __future__ import annotations

import sys
from pathlib import Path
from typing import Callable

import numpy as np
import pandas as pd
import pytest

_HERE = Path(__file__).resolve()
_PKG_ROOT = _HERE.parents[1]
_SRC = _PKG_ROOT / "src"

if _SRC.is_dir():
    p = str(_SRC)
    if p not in sys.path:
        sys.path.insert(0, p)


@pytest.fixture
def make_returns() -> Callable[..., pd.DataFrame]:
    """Independent Gaussian returns on business days, columns A, B, C, ..."""

    def _make(n_dates: int = 30, n_assets: int = 4, seed: int = 0, scale: float = 0.01) -> pd.DataFrame:
        rng = np.random.default_rng(seed)
        data = rng.normal(0.0005, scale, size=(n_dates, n_assets))
        dates = pd.bdate_range("2021-01-04", periods=n_dates, name="date")
        columns = [chr(ord("A") + i) for i in range(n_assets)]
        return pd.DataFrame(data, index=dates, columns=columns)

    return _make


@pytest.fixture
def scenario_4x6() -> np.ndarray:
    """One quiet asset next to three volatile ones over six dates.

    The columns are zero-mean and mutually orthogonal, so the sample
    covariance is diagonal.
    """

    ortho = np.array(
        [
            [1.0, 1.0, 1.0, 1.0],
            [-1.0, 1.0, 1.0, -1.0],
            [1.0, -1.0, 1.0, -1.0],
            [-1.0, -1.0, 1.0, 1.0],
            [1.0, 0.0, -2.0, 0.0],
            [-1.0, 0.0, -2.0, 0.0],
        ]
    )
    return ortho * np.array([0.01, 0.5, 0.5, 0.5])
