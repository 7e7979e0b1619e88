"""Penalty selection policies applied once per training window."""

from __future__ import annotations

import logging
import math
from typing import List, Optional, Protocol, Sequence, Tuple, runtime_checkable

import numpy as np

from ..errors import InsufficientDataError
from .elastic_net import ElasticNetSolver, PenaltySpec, elastic_net_path, lambda_max

logger = logging.getLogger(__name__)


@runtime_checkable
class PenaltyPolicy(Protocol):
    """Chooses the :class:`PenaltySpec` used for one training window."""

    def select(self, window: np.ndarray) -> PenaltySpec:
        ...


class FixedPenalty:
    """Reuse one penalty for every window."""

    def __init__(self, spec: PenaltySpec) -> None:
        if not isinstance(spec, PenaltySpec):
            raise TypeError("spec must be a PenaltySpec")
        self.spec = spec

    def select(self, window: np.ndarray) -> PenaltySpec:
        return self.spec

    def __repr__(self) -> str:
        return f"FixedPenalty(alpha={self.spec.alpha}, lambda={self.spec.lambda_})"


def _forward_chaining_splits(n_obs: int, folds: int) -> List[Tuple[np.ndarray, np.ndarray]]:
    blocks = np.array_split(np.arange(n_obs), folds + 1)
    if any(block.size < 2 for block in blocks):
        raise InsufficientDataError(
            f"{n_obs} observations cannot form {folds} forward-chaining folds"
        )
    splits = []
    for fold in range(1, folds + 1):
        train = np.concatenate(blocks[:fold])
        splits.append((train, blocks[fold]))
    return splits


class CrossValidatedPenalty:
    """Forward-chaining cross-validation over an (alpha, lambda) grid.

    Every candidate is scored by the out-of-sample mean squared error of the
    leave-one-out asset regressions, using only rows of the window handed
    in. Lambdas are visited from strongest to weakest so ties resolve to
    the sparser model.
    """

    def __init__(
        self,
        alphas: Sequence[float] = (0.1,),
        lambdas: Optional[Sequence[float]] = None,
        *,
        n_lambdas: int = 10,
        eps: float = 1e-2,
        folds: int = 3,
        solver: Optional[ElasticNetSolver] = None,
    ) -> None:
        alpha_list = [float(a) for a in alphas]
        if not alpha_list:
            raise ValueError("alphas must contain at least one value")
        for value in alpha_list:
            if not (0.0 <= value <= 1.0):
                raise ValueError("alphas must lie in [0, 1]")
        if lambdas is not None:
            lam_arr = np.sort(np.asarray(list(lambdas), dtype=float))[::-1]
            if lam_arr.size == 0 or np.any(lam_arr < 0.0):
                raise ValueError("lambdas must be a non-empty sequence of non-negative values")
        else:
            lam_arr = None
        if int(folds) < 1:
            raise ValueError("folds must be at least one")
        if int(n_lambdas) <= 0:
            raise ValueError("n_lambdas must be positive")
        self.alphas = alpha_list
        self.lambdas = lam_arr
        self.n_lambdas = int(n_lambdas)
        self.eps = float(eps)
        self.folds = int(folds)
        self.solver = solver or ElasticNetSolver()

    def _grid(self, window: np.ndarray, alpha: float) -> np.ndarray:
        if self.lambdas is not None:
            return self.lambdas
        top = 0.0
        for asset in range(window.shape[1]):
            others = np.delete(window, asset, axis=1)
            top = max(top, lambda_max(others, window[:, asset], alpha))
        if top <= 0.0:
            return np.zeros(1)
        return np.geomspace(top, top * self.eps, self.n_lambdas)

    def _score(self, window: np.ndarray, alpha: float, grid: np.ndarray) -> np.ndarray:
        n_obs, n_assets = window.shape
        errors = np.zeros(grid.size, dtype=float)
        count = 0
        for train_idx, test_idx in _forward_chaining_splits(n_obs, self.folds):
            train = window[train_idx]
            test = window[test_idx]
            for asset in range(n_assets):
                x_train = np.delete(train, asset, axis=1)
                y_train = train[:, asset]
                x_test = np.delete(test, asset, axis=1)
                y_test = test[:, asset]
                _, coefs = elastic_net_path(
                    x_train, y_train, alpha, lambdas=grid, solver=self.solver
                )
                x_mean = x_train.mean(axis=0)
                y_mean = float(y_train.mean())
                preds = (x_test - x_mean) @ coefs.T + y_mean
                errors += np.mean((preds - y_test[:, None]) ** 2, axis=0)
                count += 1
        return errors / max(count, 1)

    def select(self, window: np.ndarray) -> PenaltySpec:
        data = np.asarray(window, dtype=float)
        if data.ndim != 2:
            raise ValueError("window must be two dimensional")
        if data.shape[1] < 2:
            raise InsufficientDataError("Cross-validation needs at least two assets")
        best: Optional[PenaltySpec] = None
        best_score = math.inf
        for alpha in self.alphas:
            grid = self._grid(data, alpha)
            scores = self._score(data, alpha, grid)
            for lam, score in zip(grid, scores):
                if score < best_score:
                    best_score = float(score)
                    best = PenaltySpec(alpha=alpha, lambda_=float(lam))
        if best is None:
            raise InsufficientDataError("Cross-validation produced no finite score")
        logger.debug(
            "Selected alpha=%.3g lambda=%.3g (cv mse %.3e)", best.alpha, best.lambda_, best_score
        )
        return best


def as_policy(penalty: "PenaltySpec | PenaltyPolicy") -> PenaltyPolicy:
    if isinstance(penalty, PenaltySpec):
        return FixedPenalty(penalty)
    if isinstance(penalty, PenaltyPolicy):
        return penalty
    raise TypeError("penalty must be a PenaltySpec or expose select(window)")


__all__ = ["CrossValidatedPenalty", "FixedPenalty", "PenaltyPolicy", "as_policy"]
