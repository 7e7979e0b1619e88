"""Sparse hedging portfolios and an expanding-window backtester."""
from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

try:  # runtime package version
    __version__ = version("sparse-hedge")
except PackageNotFoundError:  # editable/dev env
    __version__ = "0.0.0+local"

from .backtest import BacktestEngine, BacktestResult, EngineConfig, EngineState, FailureMarker, backtest
from .data import ReturnMatrix, load_returns_csv
from .errors import (
    DegenerateAssetError,
    DegenerateWeightsError,
    EmptyUniverseError,
    HedgeError,
    InsufficientDataError,
    InsufficientHistoryError,
    ReturnMatrixError,
    SingularMatrixError,
)
from .portfolio import DegeneratePolicy, SparseHedgeWeights, Strategy, StrategyRouter, shrunk_min_variance
from .regression import CrossValidatedPenalty, ElasticNetSolver, FixedPenalty, PenaltySpec

__all__ = [
    "BacktestEngine",
    "BacktestResult",
    "CrossValidatedPenalty",
    "DegenerateAssetError",
    "DegeneratePolicy",
    "DegenerateWeightsError",
    "ElasticNetSolver",
    "EmptyUniverseError",
    "EngineConfig",
    "EngineState",
    "FailureMarker",
    "FixedPenalty",
    "HedgeError",
    "InsufficientDataError",
    "InsufficientHistoryError",
    "PenaltySpec",
    "ReturnMatrix",
    "ReturnMatrixError",
    "SingularMatrixError",
    "SparseHedgeWeights",
    "Strategy",
    "StrategyRouter",
    "__version__",
    "backtest",
    "load_returns_csv",
    "shrunk_min_variance",
]
