from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from sparse_hedge.backtest import BacktestEngine, EngineConfig
from sparse_hedge.backtest.report import (
    average_turnover,
    max_drawdown,
    performance_summary,
    turnover,
    write_failures,
    write_metrics,
    write_returns,
    write_weights,
)
from sparse_hedge.regression import PenaltySpec


def test_max_drawdown() -> None:
    assert max_drawdown(np.array([1.0, 2.0, 1.0, 3.0])) == pytest.approx(0.5)
    assert max_drawdown(np.array([1.0, 1.1, 1.2])) == 0.0
    assert max_drawdown(np.array([])) == 0.0
    assert max_drawdown(np.array([-1.0, -2.0])) == 0.0
    assert max_drawdown(np.array([0.0, 1.0, 0.25, 2.0])) == pytest.approx(0.75)


def test_turnover() -> None:
    assert turnover(None, np.array([0.5, 0.5])) == pytest.approx(1.0)
    assert turnover(np.array([1.0, 0.0]), np.array([0.0, 1.0])) == pytest.approx(2.0)
    with pytest.raises(ValueError):
        turnover(np.ones(2), np.ones(3))


def test_average_turnover_skips_failed_rows() -> None:
    weights = pd.DataFrame([[1.0, 0.0], [np.nan, np.nan], [0.0, 1.0], [0.0, 1.0]])
    assert average_turnover(weights) == pytest.approx(1.0)


def test_performance_summary_counts_failures() -> None:
    returns = pd.DataFrame(
        {
            "equal_weight": [0.01, -0.02, 0.03, 0.00],
            "sparse_hedge": [np.nan, 0.01, np.nan, 0.01],
        }
    )
    summary = performance_summary(returns, periods_per_year=12)
    assert summary.loc["equal_weight", "n_periods"] == 4
    assert summary.loc["equal_weight", "n_failures"] == 0
    assert summary.loc["equal_weight", "ann_return"] == pytest.approx(0.005 * 12)
    assert summary.loc["sparse_hedge", "n_periods"] == 2
    assert summary.loc["sparse_hedge", "n_failures"] == 2
    assert summary.loc["sparse_hedge", "ann_vol"] == 0.0
    with pytest.raises(ValueError):
        performance_summary(returns, periods_per_year=0)


def test_writers_emit_long_format(tmp_path: Path, make_returns) -> None:
    frame = make_returns(n_dates=15, n_assets=3, seed=1)
    frame["D"] = frame["A"]
    cfg = EngineConfig(separation_date=frame.index[9], penalty=PenaltySpec(alpha=0.5, lambda_=0.0))
    result = BacktestEngine(frame, cfg).run()

    write_returns(tmp_path / "returns.csv", result)
    write_weights(tmp_path / "weights.csv", result)
    write_failures(tmp_path / "failures.csv", result)
    write_metrics(tmp_path / "metrics.csv", result)

    returns = pd.read_csv(tmp_path / "returns.csv")
    assert list(returns.columns) == ["date", "equal_weight", "shrunk_min_variance", "sparse_hedge"]
    assert returns["date"].iloc[0] == frame.index[10].date().isoformat()

    weights = pd.read_csv(tmp_path / "weights.csv")
    assert list(weights.columns) == ["date", "strategy", "asset", "weight"]
    assert len(weights) == 5 * 3 * 4
    first = weights[(weights["date"] == returns["date"].iloc[0]) & (weights["strategy"] == "equal_weight")]
    np.testing.assert_allclose(first["weight"].to_numpy(), 0.25)

    failures = pd.read_csv(tmp_path / "failures.csv")
    assert len(failures) == 5
    assert set(failures["kind"]) == {"degenerate_asset"}

    metrics = pd.read_csv(tmp_path / "metrics.csv", index_col=0)
    assert "avg_turnover" in metrics.columns
    assert metrics.loc["sparse_hedge", "n_failures"] == 5
