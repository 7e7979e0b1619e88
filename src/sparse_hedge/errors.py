"""Error types raised by the weight computers and the backtest engine."""

from __future__ import annotations

from typing import Any, Optional


class HedgeError(RuntimeError):
    """Base class for failures of a single weight computation.

    The backtest engine converts these into failure markers keyed by
    ``kind`` instead of aborting the run.
    """

    kind = "hedge_error"


class InsufficientDataError(HedgeError):
    """Raised when too few observations are available to fit."""

    kind = "insufficient_data"


class SingularMatrixError(HedgeError):
    """Raised when the regularized covariance is still numerically singular."""

    kind = "singular_matrix"


class DegenerateAssetError(HedgeError):
    """Raised when an asset's hedge residual variance is numerically zero."""

    kind = "degenerate_asset"

    def __init__(self, asset: Any, variance: float, message: Optional[str] = None) -> None:
        self.asset = asset
        self.variance = float(variance)
        if message is None:
            message = f"Residual variance for asset {asset!s} is numerically zero ({self.variance:.3e})"
        super().__init__(message)


class EmptyUniverseError(HedgeError):
    """Raised when a weight vector is requested for zero assets."""

    kind = "empty_universe"


class InsufficientHistoryError(HedgeError):
    """Raised when the training window is too short at a rebalancing date."""

    kind = "insufficient_history"

    def __init__(self, observations: int, required: int, message: Optional[str] = None) -> None:
        self.observations = int(observations)
        self.required = int(required)
        if message is None:
            message = (
                f"Training window has {self.observations} observations, "
                f"{self.required} required"
            )
        super().__init__(message)


class DegenerateWeightsError(HedgeError):
    """Raised when raw weights sum to zero and cannot be normalized."""

    kind = "degenerate_weights"


class ReturnMatrixError(ValueError):
    """Raised when a return matrix violates its construction invariants."""


__all__ = [
    "DegenerateAssetError",
    "DegenerateWeightsError",
    "EmptyUniverseError",
    "HedgeError",
    "InsufficientDataError",
    "InsufficientHistoryError",
    "ReturnMatrixError",
    "SingularMatrixError",
]
