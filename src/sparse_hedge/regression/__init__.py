"""Penalized regression and penalty selection."""

from .calibration import CrossValidatedPenalty, FixedPenalty, PenaltyPolicy, as_policy
from .elastic_net import (
    ElasticNetSolver,
    PenaltySpec,
    RegressionFit,
    elastic_net_path,
    fit_elastic_net,
    lambda_max,
    soft_threshold,
)

__all__ = [
    "CrossValidatedPenalty",
    "ElasticNetSolver",
    "FixedPenalty",
    "PenaltyPolicy",
    "PenaltySpec",
    "RegressionFit",
    "as_policy",
    "elastic_net_path",
    "fit_elastic_net",
    "lambda_max",
    "soft_threshold",
]
