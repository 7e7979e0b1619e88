"""Expanding-window backtest engine and reporting."""

from .engine import (
    BacktestEngine,
    BacktestResult,
    BacktestState,
    EngineConfig,
    EngineState,
    FailureMarker,
    backtest,
)
from .report import max_drawdown, performance_summary, turnover

__all__ = [
    "BacktestEngine",
    "BacktestResult",
    "BacktestState",
    "EngineConfig",
    "EngineState",
    "FailureMarker",
    "backtest",
    "max_drawdown",
    "performance_summary",
    "turnover",
]
