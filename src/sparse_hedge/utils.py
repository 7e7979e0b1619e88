from __future__ import annotations

import numpy as np

from .errors import EmptyUniverseError, InsufficientDataError


def as_window(returns: np.ndarray) -> np.ndarray:
    """Validate a T x N training window and return it as a float array."""

    window = np.asarray(returns, dtype=float)
    if window.ndim != 2:
        raise ValueError("Returns window must be two dimensional")
    if window.shape[1] == 0:
        raise EmptyUniverseError("Cannot compute weights for zero assets")
    return window


def sample_cov(returns: np.ndarray) -> np.ndarray:
    """Unbiased sample covariance (rowvar=False), symmetrized."""

    window = as_window(returns)
    if window.shape[0] < 2:
        raise InsufficientDataError(
            f"Covariance needs at least two observations, got {window.shape[0]}"
        )
    cov = np.atleast_2d(np.cov(window, rowvar=False))
    return 0.5 * (cov + cov.T)


def ridge_cov(returns: np.ndarray, shrinkage: float = 0.01) -> np.ndarray:
    """Sample covariance plus ``shrinkage`` on the diagonal."""

    lam = float(shrinkage)
    if lam < 0.0:
        raise ValueError("shrinkage must be non-negative")
    cov = sample_cov(returns)
    ridge = cov + lam * np.eye(cov.shape[0], dtype=float)
    return 0.5 * (ridge + ridge.T)
