"""Equal-weight and shrinkage-regularized minimum-variance portfolios."""

from __future__ import annotations

import numpy as np
from scipy.linalg import LinAlgError, solve

from ..errors import DegenerateWeightsError, EmptyUniverseError, SingularMatrixError
from ..utils import as_window, ridge_cov

DEFAULT_SHRINKAGE = 0.01
DEFAULT_COND_LIMIT = 1e12


def normalize_weights(raw: np.ndarray) -> np.ndarray:
    """Scale a raw weight vector so that it sums to one."""

    w = np.asarray(raw, dtype=float)
    if w.ndim != 1:
        raise ValueError("Weights must be a one-dimensional vector")
    if w.size == 0:
        raise EmptyUniverseError("Cannot normalize an empty weight vector")
    total = float(w.sum())
    scale = float(np.abs(w).sum())
    if not np.isfinite(total) or scale == 0.0 or abs(total) <= 1e-12 * scale:
        raise DegenerateWeightsError(f"Raw weights sum to {total:.3e}; normalization undefined")
    return w / total


def equal_weight(n_assets: int) -> np.ndarray:
    n = int(n_assets)
    if n <= 0:
        raise EmptyUniverseError("Cannot compute weights for zero assets")
    return np.full(n, 1.0 / n, dtype=float)


def regularized_covariance(returns: np.ndarray, shrinkage: float = DEFAULT_SHRINKAGE) -> np.ndarray:
    return ridge_cov(returns, shrinkage=shrinkage)


def shrunk_min_variance(
    returns: np.ndarray,
    *,
    shrinkage: float = DEFAULT_SHRINKAGE,
    cond_limit: float = DEFAULT_COND_LIMIT,
) -> np.ndarray:
    """Solve ``(S + shrinkage * I) w = 1`` and normalize ``w`` to sum to one.

    The diagonal term keeps the system invertible when there are fewer
    observations than assets; the condition check still guards the solve
    for ``shrinkage=0`` or badly scaled inputs.
    """

    window = as_window(returns)
    cov = regularized_covariance(window, shrinkage=shrinkage)
    cond = float(np.linalg.cond(cov))
    if not np.isfinite(cond) or cond > cond_limit:
        raise SingularMatrixError(
            f"Regularized covariance is numerically singular (condition number {cond:.3e})"
        )
    ones = np.ones(cov.shape[0], dtype=float)
    try:
        raw = solve(cov, ones, assume_a="sym")
    except LinAlgError as exc:
        raise SingularMatrixError(f"Regularized covariance solve failed: {exc}") from exc
    return normalize_weights(raw)


__all__ = [
    "DEFAULT_SHRINKAGE",
    "equal_weight",
    "normalize_weights",
    "regularized_covariance",
    "shrunk_min_variance",
]
