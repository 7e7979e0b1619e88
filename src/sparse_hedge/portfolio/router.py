"""Dispatch a strategy identifier to its weight computer."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional, Sequence

import numpy as np

from ..regression.elastic_net import ElasticNetSolver, PenaltySpec
from ..utils import as_window
from .baselines import DEFAULT_SHRINKAGE, equal_weight, shrunk_min_variance
from .hedge import DegeneratePolicy, SparseHedgeWeights


class Strategy(str, Enum):
    EQUAL_WEIGHT = "equal_weight"
    SHRUNK_MIN_VARIANCE = "shrunk_min_variance"
    SPARSE_HEDGE = "sparse_hedge"

    @property
    def requires_history(self) -> bool:
        """Whether the strategy needs at least N + 1 observations."""

        return self is not Strategy.EQUAL_WEIGHT

    @classmethod
    def parse(cls, value: "str | Strategy") -> "Strategy":
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower().replace("-", "_")
        found = _ALIASES.get(text)
        if found is None:
            options = ", ".join(member.value for member in cls)
            raise ValueError(f"Unknown strategy '{value}' (expected one of {options})")
        return found


_ALIASES: Dict[str, Strategy] = {
    "equal_weight": Strategy.EQUAL_WEIGHT,
    "equal": Strategy.EQUAL_WEIGHT,
    "ew": Strategy.EQUAL_WEIGHT,
    "shrunk_min_variance": Strategy.SHRUNK_MIN_VARIANCE,
    "min_variance": Strategy.SHRUNK_MIN_VARIANCE,
    "minvar": Strategy.SHRUNK_MIN_VARIANCE,
    "mv": Strategy.SHRUNK_MIN_VARIANCE,
    "sparse_hedge": Strategy.SPARSE_HEDGE,
    "hedge": Strategy.SPARSE_HEDGE,
    "sparse": Strategy.SPARSE_HEDGE,
}


class StrategyRouter:
    """Stateless mapping from :class:`Strategy` to a weight vector."""

    def __init__(
        self,
        *,
        shrinkage: float = DEFAULT_SHRINKAGE,
        degenerate_policy: "str | DegeneratePolicy" = DegeneratePolicy.RAISE,
        variance_floor: Optional[float] = None,
        degenerate_tol: float = 1e-8,
        solver: Optional[ElasticNetSolver] = None,
        max_workers: Optional[int] = None,
    ) -> None:
        if float(shrinkage) < 0.0:
            raise ValueError("shrinkage must be non-negative")
        self.shrinkage = float(shrinkage)
        self.hedge = SparseHedgeWeights(
            solver=solver,
            degenerate_policy=degenerate_policy,
            variance_floor=variance_floor,
            degenerate_tol=degenerate_tol,
            max_workers=max_workers,
        )

    def compute(
        self,
        strategy: "str | Strategy",
        returns: np.ndarray,
        penalty: Optional[PenaltySpec] = None,
        *,
        assets: Optional[Sequence[Any]] = None,
    ) -> np.ndarray:
        kind = Strategy.parse(strategy)
        window = as_window(returns)
        if kind is Strategy.EQUAL_WEIGHT:
            return equal_weight(window.shape[1])
        if kind is Strategy.SHRUNK_MIN_VARIANCE:
            return shrunk_min_variance(window, shrinkage=self.shrinkage)
        return self.hedge.compute(window, assets=assets, penalty=penalty).weights


__all__ = ["Strategy", "StrategyRouter"]
