"""Performance statistics and CSV writers for backtest results."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional

import numpy as np
import pandas as pd

from ..data.returns import format_date

if TYPE_CHECKING:  # pragma: no cover
    from .engine import BacktestResult

METRIC_KEYS = (
    "ann_return",
    "ann_vol",
    "sharpe",
    "max_drawdown",
    "n_periods",
    "n_failures",
)


def turnover(previous: Optional[np.ndarray], current: np.ndarray) -> float:
    """Compute the L1 turnover between two weight vectors."""

    curr = np.asarray(current, dtype=float)
    if previous is None:
        return float(np.abs(curr).sum())
    prev = np.asarray(previous, dtype=float)
    if prev.shape != curr.shape:
        raise ValueError("turnover requires weight vectors of equal length")
    return float(np.abs(curr - prev).sum())


def max_drawdown(equity_curve: np.ndarray) -> float:
    """Largest peak-to-trough loss of an equity curve, as a fraction of the peak.

    Points whose running peak is not positive contribute no drawdown.
    """

    equity = np.asarray(equity_curve, dtype=float).ravel()
    if equity.size == 0:
        return 0.0
    peaks = np.maximum.accumulate(equity)
    positive = peaks > 0.0
    if not positive.any():
        return 0.0
    losses = 1.0 - equity[positive] / peaks[positive]
    return float(max(losses.max(), 0.0))


def _series_metrics(series: np.ndarray, periods_per_year: int) -> Dict[str, Any]:
    values = np.asarray(series, dtype=float)
    ok = values[np.isfinite(values)]
    n_failures = int(values.size - ok.size)
    if ok.size == 0:
        return {
            "ann_return": float("nan"),
            "ann_vol": float("nan"),
            "sharpe": float("nan"),
            "max_drawdown": 0.0,
            "n_periods": 0,
            "n_failures": n_failures,
        }
    ann_return = float(ok.mean() * periods_per_year)
    ann_vol = float(ok.std(ddof=1) * np.sqrt(periods_per_year)) if ok.size > 1 else 0.0
    sharpe = ann_return / ann_vol if ann_vol > 1e-12 else 0.0
    equity = np.cumprod(1.0 + ok)
    return {
        "ann_return": ann_return,
        "ann_vol": ann_vol,
        "sharpe": float(sharpe),
        "max_drawdown": max_drawdown(equity),
        "n_periods": int(ok.size),
        "n_failures": n_failures,
    }


def performance_summary(returns: pd.DataFrame, periods_per_year: int = 252) -> pd.DataFrame:
    """Per-strategy statistics; NaN entries count as failures and are skipped."""

    if periods_per_year <= 0:
        raise ValueError("periods_per_year must be positive")
    rows = {
        str(column): _series_metrics(returns[column].to_numpy(dtype=float), periods_per_year)
        for column in returns.columns
    }
    frame = pd.DataFrame.from_dict(rows, orient="index", columns=list(METRIC_KEYS))
    frame.index.name = "strategy"
    return frame


def average_turnover(weights: pd.DataFrame) -> float:
    rows = [row for row in weights.to_numpy(dtype=float) if np.all(np.isfinite(row))]
    if len(rows) < 2:
        return 0.0
    values = [turnover(prev, curr) for prev, curr in zip(rows[:-1], rows[1:])]
    return float(np.mean(values))


def _date_column(dates: List[Any]) -> List[str]:
    return [format_date(value) for value in dates]


def write_returns(path: Path, result: "BacktestResult") -> None:
    frame = result.returns.copy()
    frame.index = pd.Index(_date_column(result.dates), name="date")
    frame.to_csv(path)


def write_weights(path: Path, result: "BacktestResult") -> None:
    """Long format: one row per (date, strategy, asset)."""

    labels = _date_column(result.dates)
    tables = {s: result.weights[s].to_numpy(dtype=float) for s in result.strategies}
    records: List[Dict[str, Any]] = []
    for d_idx, label in enumerate(labels):
        for strategy in result.strategies:
            table = tables[strategy]
            for a_idx, asset in enumerate(result.assets):
                records.append(
                    {
                        "date": label,
                        "strategy": strategy.value,
                        "asset": asset,
                        "weight": table[d_idx, a_idx],
                    }
                )
    frame = pd.DataFrame.from_records(records, columns=["date", "strategy", "asset", "weight"])
    frame.to_csv(path, index=False)


def write_failures(path: Path, result: "BacktestResult") -> None:
    result.failure_frame().to_csv(path, index=False)


def write_metrics(path: Path, result: "BacktestResult", periods_per_year: int = 252) -> None:
    summary = performance_summary(result.returns, periods_per_year=periods_per_year)
    summary["avg_turnover"] = [
        average_turnover(result.weights[strategy]) for strategy in result.strategies
    ]
    summary.to_csv(path)


__all__ = [
    "METRIC_KEYS",
    "average_turnover",
    "max_drawdown",
    "performance_summary",
    "turnover",
    "write_failures",
    "write_metrics",
    "write_returns",
    "write_weights",
]
