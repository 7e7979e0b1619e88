"""Expanding-window backtest over a schedule of rebalancing dates."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from ..data.returns import ReturnMatrix, format_date
from ..errors import HedgeError, InsufficientHistoryError
from ..portfolio.hedge import DegeneratePolicy
from ..portfolio.router import Strategy, StrategyRouter
from ..regression.calibration import PenaltyPolicy, as_policy
from ..regression.elastic_net import ElasticNetSolver, PenaltySpec

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s: %(message)s"))
    logger.addHandler(handler)
logger.setLevel(logging.INFO)


ProgressCallback = Callable[[int, int], None]
RebalanceLogCallback = Callable[[Dict[str, Any]], None]
StopCallback = Callable[[], bool]

_EMPTY = 0
_OK = 1
_FAILED = 2

ALL_STRATEGIES: Tuple[Strategy, ...] = (
    Strategy.EQUAL_WEIGHT,
    Strategy.SHRUNK_MIN_VARIANCE,
    Strategy.SPARSE_HEDGE,
)


class EngineState(str, Enum):
    NOT_STARTED = "not_started"
    REBALANCING = "rebalancing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class FailureMarker:
    """Why a (date, strategy) slot has no weights."""

    date: Any
    strategy: Strategy
    kind: str
    message: str

    def as_dict(self) -> Dict[str, Any]:
        return {
            "date": format_date(self.date),
            "strategy": self.strategy.value,
            "kind": self.kind,
            "message": self.message,
        }


@dataclass
class EngineConfig:
    """Run parameters for :class:`BacktestEngine`."""

    separation_date: Any
    strategies: Sequence[Union[str, Strategy]] = ALL_STRATEGIES
    rebalance_dates: Optional[Sequence[Any]] = None
    penalty: Union[PenaltySpec, PenaltyPolicy] = field(default_factory=PenaltySpec)
    shrinkage: float = 0.01
    degenerate_policy: Union[str, DegeneratePolicy] = DegeneratePolicy.RAISE
    variance_floor: Optional[float] = None
    degenerate_tol: float = 1e-8
    enforce_min_history: bool = True
    max_workers: Optional[int] = None
    solver_tol: float = 1e-7
    solver_max_iter: int = 1000

    def __post_init__(self) -> None:
        parsed: List[Strategy] = []
        for item in self.strategies:
            strategy = Strategy.parse(item)
            if strategy not in parsed:
                parsed.append(strategy)
        if not parsed:
            raise ValueError("At least one strategy must be configured")
        self.strategies = tuple(parsed)
        self.degenerate_policy = DegeneratePolicy.parse(self.degenerate_policy)
        if self.shrinkage < 0.0:
            raise ValueError("shrinkage must be non-negative")
        if self.max_workers is not None and int(self.max_workers) <= 0:
            raise ValueError("max_workers must be positive when provided")
        if self.solver_tol <= 0.0:
            raise ValueError("solver_tol must be positive")
        if self.solver_max_iter <= 0:
            raise ValueError("solver_max_iter must be positive")
        as_policy(self.penalty)


class BacktestState:
    """Pre-sized (date x strategy) result slots, each written exactly once.

    Distinct slots never overlap, so strategy workers of the same date can
    write concurrently without locking.
    """

    def __init__(self, n_dates: int, strategies: Sequence[Strategy], n_assets: int) -> None:
        self.strategies = tuple(strategies)
        self.weights = np.full((n_dates, len(self.strategies), n_assets), np.nan, dtype=float)
        self.returns = np.full((n_dates, len(self.strategies)), np.nan, dtype=float)
        self.status = np.zeros((n_dates, len(self.strategies)), dtype=np.int8)
        self.failures: Dict[Tuple[int, int], FailureMarker] = {}

    def _claim(self, date_idx: int, strat_idx: int) -> None:
        if self.status[date_idx, strat_idx] != _EMPTY:
            raise RuntimeError(
                f"Result slot ({date_idx}, {self.strategies[strat_idx].value}) already written"
            )

    def record(self, date_idx: int, strat_idx: int, weights: np.ndarray, realized: float) -> None:
        self._claim(date_idx, strat_idx)
        self.weights[date_idx, strat_idx] = weights
        self.returns[date_idx, strat_idx] = realized
        self.status[date_idx, strat_idx] = _OK

    def record_failure(self, date_idx: int, strat_idx: int, marker: FailureMarker) -> None:
        self._claim(date_idx, strat_idx)
        self.failures[(date_idx, strat_idx)] = marker
        self.status[date_idx, strat_idx] = _FAILED

    def ordered_failures(self, limit: Optional[int] = None) -> List[FailureMarker]:
        keys = sorted(self.failures)
        if limit is not None:
            keys = [key for key in keys if key[0] < limit]
        return [self.failures[key] for key in keys]


@dataclass
class BacktestResult:
    """Read-only outputs of a completed (or cancelled) run."""

    dates: List[Any]
    assets: List[Any]
    strategies: Tuple[Strategy, ...]
    returns: pd.DataFrame
    weights: Dict[Strategy, pd.DataFrame]
    failures: List[FailureMarker]
    penalties: List[Optional[PenaltySpec]]
    state: EngineState

    def failure_frame(self) -> pd.DataFrame:
        columns = ["date", "strategy", "kind", "message"]
        return pd.DataFrame([marker.as_dict() for marker in self.failures], columns=columns)

    def to_records(self) -> List[Dict[str, Any]]:
        rows: List[Dict[str, Any]] = []
        for date in self.dates:
            for strategy in self.strategies:
                value = self.returns.at[date, strategy.value]
                rows.append(
                    {
                        "date": format_date(date),
                        "strategy": strategy.value,
                        "return": None if np.isnan(value) else float(value),
                    }
                )
        return rows

    def summary(self, periods_per_year: int = 252) -> pd.DataFrame:
        from .report import performance_summary

        return performance_summary(self.returns, periods_per_year=periods_per_year)


class BacktestEngine:
    """Drive the rebalancing loop: NOT_STARTED -> REBALANCING(t) -> COMPLETED.

    At every date ``t`` the training window is every row dated strictly
    before ``t``; the realized return is the weight vector applied to the
    row at ``t``.
    """

    def __init__(self, returns: Union[ReturnMatrix, pd.DataFrame], config: EngineConfig) -> None:
        if isinstance(returns, pd.DataFrame):
            returns = ReturnMatrix.from_frame(returns)
        if not isinstance(returns, ReturnMatrix):
            raise TypeError("returns must be a ReturnMatrix or pandas DataFrame")
        self.returns = returns
        self.config = config
        self.policy = as_policy(config.penalty)
        self.router = StrategyRouter(
            shrinkage=config.shrinkage,
            degenerate_policy=config.degenerate_policy,
            variance_floor=config.variance_floor,
            degenerate_tol=config.degenerate_tol,
            solver=ElasticNetSolver(tol=config.solver_tol, max_iter=config.solver_max_iter),
            max_workers=config.max_workers,
        )
        self._schedule = self._resolve_schedule()
        self._state = EngineState.NOT_STARTED
        self._current: Optional[Any] = None

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def current_date(self) -> Optional[Any]:
        return self._current

    @property
    def rebalance_dates(self) -> List[Any]:
        return [self.returns.dates[idx] for idx in self._schedule]

    def _resolve_schedule(self) -> List[int]:
        matrix = self.returns
        separation = matrix.coerce_date(self.config.separation_date)
        dates = matrix.dates
        if self.config.rebalance_dates is None:
            return [idx for idx, date in enumerate(dates) if date > separation]
        schedule: List[int] = []
        for raw in self.config.rebalance_dates:
            try:
                idx = matrix.index_of(raw)
            except KeyError as exc:
                raise ValueError(str(exc.args[0])) from exc
            if not dates[idx] > separation:
                raise ValueError(
                    f"Rebalancing date {format_date(dates[idx])} is not after the separation date "
                    f"{format_date(separation)}"
                )
            if schedule and idx <= schedule[-1]:
                raise ValueError("Rebalancing dates must be strictly increasing")
            schedule.append(idx)
        return schedule

    def _compute_slot(
        self,
        state: BacktestState,
        pos: int,
        strat_idx: int,
        window: np.ndarray,
        realized_row: np.ndarray,
        penalty: Optional[PenaltySpec],
        penalty_error: Optional[HedgeError],
    ) -> None:
        strategy = state.strategies[strat_idx]
        date = self.returns.dates[self._schedule[pos]]
        n_obs, n_assets = window.shape
        try:
            required = n_assets + 1
            if strategy.requires_history and self.config.enforce_min_history and n_obs < required:
                raise InsufficientHistoryError(n_obs, required)
            if strategy is Strategy.SPARSE_HEDGE and penalty_error is not None:
                raise penalty_error
            weights = self.router.compute(strategy, window, penalty, assets=self.returns.assets)
        except HedgeError as exc:
            logger.warning(
                "%s failed on %s: %s (%s)", strategy.value, format_date(date), exc, exc.kind
            )
            state.record_failure(
                pos, strat_idx, FailureMarker(date, strategy, exc.kind, str(exc))
            )
            return
        state.record(pos, strat_idx, weights, float(weights @ realized_row))

    def _select_penalty(self, window: np.ndarray) -> Tuple[Optional[PenaltySpec], Optional[HedgeError]]:
        if Strategy.SPARSE_HEDGE not in self.config.strategies:
            return None, None
        n_obs, n_assets = window.shape
        if self.config.enforce_min_history and n_obs < n_assets + 1:
            return None, None
        try:
            return self.policy.select(window), None
        except HedgeError as exc:
            return None, exc

    def _rebalance_record(self, state: BacktestState, pos: int, n_obs: int, penalty: Optional[PenaltySpec]) -> Dict[str, Any]:
        date = self.returns.dates[self._schedule[pos]]
        per_strategy: Dict[str, Any] = {}
        for s_idx, strategy in enumerate(state.strategies):
            marker = state.failures.get((pos, s_idx))
            value = state.returns[pos, s_idx]
            per_strategy[strategy.value] = {
                "status": "ok" if marker is None else marker.kind,
                "return": None if marker is not None else float(value),
            }
        return {
            "date": format_date(date),
            "n_obs": int(n_obs),
            "penalty": None if penalty is None else penalty.as_dict(),
            "strategies": per_strategy,
        }

    def run(
        self,
        *,
        progress_callback: Optional[ProgressCallback] = None,
        rebalance_callback: Optional[RebalanceLogCallback] = None,
        should_stop: Optional[StopCallback] = None,
    ) -> BacktestResult:
        if self._state is not EngineState.NOT_STARTED:
            raise RuntimeError("BacktestEngine.run() may only be called once")

        strategies = tuple(self.config.strategies)
        n_assets = self.returns.n_assets
        total = len(self._schedule)
        state = BacktestState(total, strategies, n_assets)
        penalties: List[Optional[PenaltySpec]] = [None] * total
        logger.info(
            "Backtest starting: %d rebalancing dates, %d assets, strategies=%s",
            total,
            n_assets,
            ",".join(s.value for s in strategies),
        )
        if total == 0:
            logger.warning("No rebalancing dates after the separation date")
            if progress_callback is not None:
                progress_callback(0, 0)

        workers = self.config.max_workers or 1
        pool = ThreadPoolExecutor(max_workers=workers) if workers > 1 and len(strategies) > 1 else None
        completed = 0
        try:
            for pos, row_idx in enumerate(self._schedule):
                if should_stop is not None and should_stop():
                    self._state = EngineState.CANCELLED
                    logger.info("Backtest cancelled after %d of %d dates", completed, total)
                    break
                date = self.returns.dates[row_idx]
                self._state = EngineState.REBALANCING
                self._current = date
                window = self.returns.window_before(date)
                realized_row = self.returns.values[row_idx]
                penalty, penalty_error = self._select_penalty(window)
                penalties[pos] = penalty
                logger.debug("Rebalancing %s with %d observations", format_date(date), window.shape[0])

                args = (window, realized_row, penalty, penalty_error)
                if pool is None:
                    for s_idx in range(len(strategies)):
                        self._compute_slot(state, pos, s_idx, *args)
                else:
                    futures = [
                        pool.submit(self._compute_slot, state, pos, s_idx, *args)
                        for s_idx in range(len(strategies))
                    ]
                    for future in futures:
                        future.result()

                completed = pos + 1
                if rebalance_callback is not None:
                    rebalance_callback(self._rebalance_record(state, pos, window.shape[0], penalty))
                if progress_callback is not None:
                    progress_callback(completed, total)
        finally:
            if pool is not None:
                pool.shutdown(wait=True)

        if self._state is not EngineState.CANCELLED:
            self._state = EngineState.COMPLETED
        self._current = None
        result = self._build_result(state, completed, penalties[:completed])
        logger.info(
            "Backtest %s: %d dates, %d failures",
            self._state.value,
            completed,
            len(result.failures),
        )
        return result

    def _build_result(
        self, state: BacktestState, completed: int, penalties: List[Optional[PenaltySpec]]
    ) -> BacktestResult:
        dates = [self.returns.dates[idx] for idx in self._schedule[:completed]]
        index = pd.Index(dates, name="date")
        assets = self.returns.assets
        returns = pd.DataFrame(
            state.returns[:completed].copy(),
            index=index,
            columns=[s.value for s in state.strategies],
        )
        weights = {
            strategy: pd.DataFrame(state.weights[:completed, s_idx].copy(), index=index, columns=assets)
            for s_idx, strategy in enumerate(state.strategies)
        }
        return BacktestResult(
            dates=dates,
            assets=assets,
            strategies=state.strategies,
            returns=returns,
            weights=weights,
            failures=state.ordered_failures(limit=completed),
            penalties=penalties,
            state=self._state,
        )


def backtest(
    returns: Union[ReturnMatrix, pd.DataFrame],
    separation_date: Any,
    *,
    progress_callback: Optional[ProgressCallback] = None,
    rebalance_callback: Optional[RebalanceLogCallback] = None,
    should_stop: Optional[StopCallback] = None,
    **config: Any,
) -> BacktestResult:
    """Build an :class:`EngineConfig` from keyword arguments and run once."""

    engine = BacktestEngine(returns, EngineConfig(separation_date=separation_date, **config))
    return engine.run(
        progress_callback=progress_callback,
        rebalance_callback=rebalance_callback,
        should_stop=should_stop,
    )


__all__ = [
    "ALL_STRATEGIES",
    "BacktestEngine",
    "BacktestResult",
    "BacktestState",
    "EngineConfig",
    "EngineState",
    "FailureMarker",
    "backtest",
]
