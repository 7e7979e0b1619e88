"""Validated run configuration for the backtest CLI."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .backtest.engine import EngineConfig
from .portfolio.router import Strategy
from .regression.calibration import CrossValidatedPenalty, PenaltyPolicy
from .regression.elastic_net import ElasticNetSolver, PenaltySpec


class RunConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True, populate_by_name=True)

    csv: str
    separation_date: str
    strategies: List[str] = Field(default_factory=lambda: [s.value for s in Strategy])
    alpha: float = Field(default=0.1, ge=0.0, le=1.0)
    lambda_: float = Field(default=0.1, ge=0.0, alias="lambda")
    penalty_mode: Literal["fixed", "cv"] = "fixed"
    cv_folds: int = Field(default=3, ge=1)
    shrinkage: float = Field(default=0.01, ge=0.0)
    degenerate_policy: Literal["raise", "floor", "exclude"] = "raise"
    variance_floor: Optional[float] = Field(default=None, gt=0.0)
    degenerate_tol: float = Field(default=1e-8, ge=0.0)
    enforce_min_history: bool = True
    max_workers: Optional[int] = Field(default=None, ge=1)
    solver_tol: float = Field(default=1e-7, gt=0.0)
    solver_max_iter: int = Field(default=1000, ge=1)
    out: str = "bt_out"
    log_json: Optional[str] = None
    progress: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    @field_validator("separation_date", mode="before")
    @classmethod
    def _date_to_text(cls, value: Any) -> Any:
        # YAML parses bare ISO dates into datetime.date
        if value is None or isinstance(value, str):
            return value
        return str(value)

    @field_validator("strategies", mode="before")
    @classmethod
    def _split_strategies(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [part for part in (p.strip() for p in value.split(",")) if part]
        return value

    @field_validator("strategies")
    @classmethod
    def _canonical_strategies(cls, value: List[str]) -> List[str]:
        out: List[str] = []
        for item in value:
            name = Strategy.parse(item).value
            if name not in out:
                out.append(name)
        if not out:
            raise ValueError("at least one strategy is required")
        return out

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_level(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value

    @model_validator(mode="after")
    def _check_floor(self) -> "RunConfig":
        if self.degenerate_policy == "floor" and self.variance_floor is None:
            raise ValueError("degenerate_policy='floor' requires variance_floor")
        return self

    def penalty(self) -> "PenaltySpec | PenaltyPolicy":
        if self.penalty_mode == "cv":
            return CrossValidatedPenalty(
                alphas=(self.alpha,),
                folds=self.cv_folds,
                solver=ElasticNetSolver(tol=self.solver_tol, max_iter=self.solver_max_iter),
            )
        return PenaltySpec(alpha=self.alpha, lambda_=self.lambda_)

    def to_engine_config(self, rebalance_dates: Optional[List[Any]] = None) -> EngineConfig:
        return EngineConfig(
            separation_date=self.separation_date,
            strategies=tuple(self.strategies),
            rebalance_dates=rebalance_dates,
            penalty=self.penalty(),
            shrinkage=self.shrinkage,
            degenerate_policy=self.degenerate_policy,
            variance_floor=self.variance_floor,
            degenerate_tol=self.degenerate_tol,
            enforce_min_history=self.enforce_min_history,
            max_workers=self.max_workers,
            solver_tol=self.solver_tol,
            solver_max_iter=self.solver_max_iter,
        )


def load_run_config(path: Path) -> Dict[str, Any]:
    """Read a YAML or JSON mapping, normalizing ``-`` in keys to ``_``."""

    path = Path(path)
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".json":
        data = json.loads(text)
    else:
        data = yaml.safe_load(text)
    if not isinstance(data, dict):
        raise ValueError("Run config must evaluate to a mapping")
    return {str(key).replace("-", "_"): value for key, value in data.items()}


def format_validation_error(exc: ValidationError) -> str:
    lines = []
    for err in exc.errors():
        loc = ".".join(map(str, err.get("loc", []))) or "<root>"
        lines.append(f"{loc}: {err.get('msg')}")
    return "Invalid config:\n  " + "\n  ".join(lines)


__all__ = ["RunConfig", "format_validation_error", "load_run_config"]
