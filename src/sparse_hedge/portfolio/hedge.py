"""Sparse hedging portfolio built from leave-one-out elastic-net regressions.

Each asset's return series is regressed on every other asset's series. The
regression coefficients are hedge ratios; the raw weight of asset ``i`` is

    w_i = (1 - sum_k beta_ik) / Var(y_i - y_hat_i)

and the raw vector is normalized to sum to one.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from ..errors import DegenerateAssetError
from ..regression.elastic_net import ElasticNetSolver, PenaltySpec
from ..utils import as_window
from .baselines import normalize_weights

logger = logging.getLogger(__name__)

_TINY = float(np.finfo(float).tiny)


class DegeneratePolicy(str, Enum):
    """What to do with an asset whose hedge residual variance is ~0."""

    RAISE = "raise"
    FLOOR = "floor"
    EXCLUDE = "exclude"

    @classmethod
    def parse(cls, value: "str | DegeneratePolicy") -> "DegeneratePolicy":
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower()
        for member in cls:
            if member.value == text:
                return member
        options = ", ".join(member.value for member in cls)
        raise ValueError(f"Unknown degenerate policy '{value}' (expected one of {options})")


@dataclass
class HedgeWeights:
    """Normalized weights plus the per-asset regression diagnostics."""

    weights: np.ndarray
    raw_weights: np.ndarray
    residual_variances: np.ndarray
    coefficients: np.ndarray
    n_iter: np.ndarray
    converged: np.ndarray
    adjusted: Dict[Any, str] = field(default_factory=dict)


@dataclass(frozen=True)
class _AssetFit:
    coef: np.ndarray
    variance: float
    target_variance: float
    n_iter: int
    converged: bool


class SparseHedgeWeights:
    """Compute sparse-hedge weights for a T x N window of returns."""

    def __init__(
        self,
        penalty: Optional[PenaltySpec] = None,
        *,
        solver: Optional[ElasticNetSolver] = None,
        degenerate_policy: "str | DegeneratePolicy" = DegeneratePolicy.RAISE,
        variance_floor: Optional[float] = None,
        degenerate_tol: float = 1e-8,
        max_workers: Optional[int] = None,
    ) -> None:
        self.penalty = penalty or PenaltySpec()
        self.solver = solver or ElasticNetSolver()
        self.degenerate_policy = DegeneratePolicy.parse(degenerate_policy)
        if variance_floor is not None and not (float(variance_floor) > 0.0):
            raise ValueError("variance_floor must be positive")
        if self.degenerate_policy is DegeneratePolicy.FLOOR and variance_floor is None:
            raise ValueError("degenerate_policy='floor' requires variance_floor")
        if degenerate_tol < 0.0:
            raise ValueError("degenerate_tol must be non-negative")
        if max_workers is not None and int(max_workers) <= 0:
            raise ValueError("max_workers must be positive when provided")
        self.variance_floor = None if variance_floor is None else float(variance_floor)
        self.degenerate_tol = float(degenerate_tol)
        self.max_workers = None if max_workers is None else int(max_workers)

    def _fit_asset(self, window: np.ndarray, asset: int, penalty: PenaltySpec) -> _AssetFit:
        y = window[:, asset]
        X = np.delete(window, asset, axis=1)
        fit = self.solver.fit(X, y, penalty)
        return _AssetFit(
            coef=fit.coef,
            variance=fit.residual_variance(ddof=1),
            target_variance=float(np.var(y, ddof=1)),
            n_iter=fit.n_iter,
            converged=fit.converged,
        )

    def _is_degenerate(self, fit: _AssetFit) -> bool:
        if fit.variance <= _TINY:
            return True
        return fit.variance <= self.degenerate_tol * max(fit.target_variance, _TINY)

    def _map_assets(self, window: np.ndarray, penalty: PenaltySpec) -> List[_AssetFit]:
        n_assets = window.shape[1]
        if self.max_workers is None or self.max_workers <= 1 or n_assets <= 1:
            return [self._fit_asset(window, i, penalty) for i in range(n_assets)]
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            return list(pool.map(lambda i: self._fit_asset(window, i, penalty), range(n_assets)))

    def compute(
        self,
        returns: np.ndarray,
        *,
        assets: Optional[Sequence[Any]] = None,
        penalty: Optional[PenaltySpec] = None,
    ) -> HedgeWeights:
        window = as_window(returns)
        n_assets = window.shape[1]
        labels = list(assets) if assets is not None else list(range(n_assets))
        if len(labels) != n_assets:
            raise ValueError("assets must have one label per column")
        spec = penalty or self.penalty

        fits = self._map_assets(window, spec)

        raw = np.zeros(n_assets, dtype=float)
        variances = np.zeros(n_assets, dtype=float)
        coefficients = np.zeros((n_assets, n_assets), dtype=float)
        adjusted: Dict[Any, str] = {}
        for i, fit in enumerate(fits):
            others = [k for k in range(n_assets) if k != i]
            coefficients[i, others] = fit.coef
            variance = fit.variance
            variances[i] = variance
            if self._is_degenerate(fit):
                if self.degenerate_policy is DegeneratePolicy.RAISE:
                    raise DegenerateAssetError(labels[i], variance)
                if self.degenerate_policy is DegeneratePolicy.EXCLUDE:
                    logger.warning(
                        "Excluding degenerate asset %s (residual variance %.3e)", labels[i], variance
                    )
                    adjusted[labels[i]] = "excluded"
                    continue
                logger.warning(
                    "Flooring residual variance of asset %s from %.3e to %.3e",
                    labels[i],
                    variance,
                    self.variance_floor,
                )
                adjusted[labels[i]] = "floored"
                variance = float(self.variance_floor)
            raw[i] = (1.0 - float(fit.coef.sum())) / variance

        return HedgeWeights(
            weights=normalize_weights(raw),
            raw_weights=raw,
            residual_variances=variances,
            coefficients=coefficients,
            n_iter=np.array([fit.n_iter for fit in fits], dtype=int),
            converged=np.array([fit.converged for fit in fits], dtype=bool),
            adjusted=adjusted,
        )

    def __call__(self, returns: np.ndarray, penalty: Optional[PenaltySpec] = None) -> np.ndarray:
        return self.compute(returns, penalty=penalty).weights


__all__ = ["DegeneratePolicy", "HedgeWeights", "SparseHedgeWeights"]
