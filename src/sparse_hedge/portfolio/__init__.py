"""Weight computers and strategy dispatch."""

from .baselines import equal_weight, normalize_weights, regularized_covariance, shrunk_min_variance
from .hedge import DegeneratePolicy, HedgeWeights, SparseHedgeWeights
from .router import Strategy, StrategyRouter

__all__ = [
    "DegeneratePolicy",
    "HedgeWeights",
    "SparseHedgeWeights",
    "Strategy",
    "StrategyRouter",
    "equal_weight",
    "normalize_weights",
    "regularized_covariance",
    "shrunk_min_variance",
]
