"""Command line entry point: ``sparse-hedge-backtest``."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, TextIO, Tuple

from pydantic import ValidationError

from .. import __version__
from ..config import RunConfig, format_validation_error, load_run_config
from ..data.loader import load_returns_csv
from ..runid import compute_run_id, describe_files
from .engine import BacktestEngine, BacktestResult
from .report import write_failures, write_metrics, write_returns, write_weights

SCHEMA_VERSION = "1.0.0"

logger = logging.getLogger(__name__)


class _ProgressPrinter:
    """Render incremental progress updates for CLI runs."""

    def __init__(self, stream: TextIO) -> None:
        self._stream = stream
        self._is_tty = bool(getattr(stream, "isatty", lambda: False)())
        self._last: Tuple[int, int] = (-1, -1)
        self._finished = False

    def __call__(self, current: int, total: int) -> None:
        current = max(current, 0)
        total = max(total, 0)
        if (current, total) == self._last:
            return
        done = total == 0 or current >= total
        if self._is_tty:
            pct = (current / total) * 100.0 if total > 0 else 100.0
            self._stream.write(f"\rProgress: {current}/{total} ({pct:5.1f}%)")
            if done and not self._finished:
                self._stream.write("\n")
        else:
            self._stream.write(f"Progress: {current}/{total}\n")
        self._finished = self._finished or done
        self._stream.flush()
        self._last = (current, total)

    def close(self) -> None:
        if self._is_tty and not self._finished and self._last != (-1, -1):
            self._stream.write("\n")
            self._stream.flush()
        self._finished = True


class _JsonlWriter:
    """Rebalance callback that appends each record to a JSON-lines log."""

    def __init__(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        self.path = path
        self.n_records = 0
        self._handle = path.open("w", encoding="utf-8")

    def __call__(self, record: Mapping[str, Any]) -> None:
        self._handle.write(json.dumps(record, sort_keys=True) + "\n")
        self._handle.flush()
        self.n_records += 1

    def close(self) -> None:
        if not self._handle.closed:
            self._handle.close()
            logger.debug("Wrote %d rebalance records to %s", self.n_records, self.path)


def build_parser() -> argparse.ArgumentParser:
    """Construct the argument parser for the backtest CLI.

    Options not given on the command line are left out of the namespace so
    that values from ``--config`` survive unless explicitly overridden.
    """

    parser = argparse.ArgumentParser(
        prog="sparse-hedge-backtest", argument_default=argparse.SUPPRESS
    )
    parser.add_argument("--config", type=str, help="YAML/JSON file containing run parameters")
    parser.add_argument("--csv", type=str, help="CSV of returns with a date column")
    parser.add_argument(
        "--separation-date",
        dest="separation_date",
        type=str,
        help="Last in-sample date; rebalancing starts on the next date",
    )
    parser.add_argument(
        "--strategies",
        type=str,
        help="Comma separated strategies (equal_weight, shrunk_min_variance, sparse_hedge)",
    )
    parser.add_argument("--alpha", type=float, help="Elastic-net L1 mixing parameter in [0, 1]")
    parser.add_argument("--lambda", dest="lambda_", type=float, help="Elastic-net penalty strength")
    parser.add_argument(
        "--penalty-mode",
        dest="penalty_mode",
        choices=["fixed", "cv"],
        help="Use a fixed penalty or forward-chaining cross-validation per date",
    )
    parser.add_argument("--cv-folds", dest="cv_folds", type=int, help="Cross-validation folds")
    parser.add_argument("--shrinkage", type=float, help="Diagonal ridge added to the covariance")
    parser.add_argument(
        "--degenerate-policy",
        dest="degenerate_policy",
        choices=["raise", "floor", "exclude"],
        help="Handling of assets with ~0 hedge residual variance",
    )
    parser.add_argument("--variance-floor", dest="variance_floor", type=float)
    parser.add_argument("--degenerate-tol", dest="degenerate_tol", type=float)
    parser.add_argument(
        "--no-min-history",
        dest="enforce_min_history",
        action="store_false",
        help="Do not require N + 1 observations before optimizing",
    )
    parser.add_argument("--max-workers", dest="max_workers", type=int)
    parser.add_argument("--solver-tol", dest="solver_tol", type=float)
    parser.add_argument("--solver-max-iter", dest="solver_max_iter", type=int)
    parser.add_argument("--out", type=str, help="Output directory")
    parser.add_argument(
        "--log-json", dest="log_json", type=str, help="Write per-date JSON lines to this path"
    )
    parser.add_argument(
        "--progress", action="store_true", help="Print progress updates to stderr"
    )
    parser.add_argument(
        "--log-level",
        dest="log_level",
        type=str.upper,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    return parser


def resolve_config(argv: List[str]) -> Tuple[RunConfig, Optional[Path]]:
    parsed = vars(build_parser().parse_args(args=argv))
    config_path: Optional[Path] = None
    merged: Dict[str, Any] = {}
    raw_config = parsed.pop("config", None)
    if raw_config:
        config_path = Path(raw_config)
        merged.update(load_run_config(config_path))
    merged.update(parsed)
    try:
        return RunConfig.model_validate(merged), config_path
    except ValidationError as exc:
        raise SystemExit(format_validation_error(exc))


def _write_run_manifest(
    out_dir: Path,
    cfg: RunConfig,
    config_path: Optional[Path],
    result: BacktestResult,
    artifacts: Iterable[Path],
) -> Dict[str, Any]:
    manifest: Dict[str, Any] = {
        "schema_version": SCHEMA_VERSION,
        "package_version": __version__,
        "config": cfg.model_dump(by_alias=True),
        "state": result.state.value,
        "n_rebalances": len(result.dates),
        "n_failures": len(result.failures),
    }
    if config_path is not None:
        manifest["config_path"] = str(config_path)
    manifest["run_id"] = compute_run_id(manifest, describe_files(artifacts))
    (out_dir / "run_config.json").write_text(
        json.dumps(manifest, indent=2, sort_keys=True), encoding="utf-8"
    )
    return manifest


def main(args: Optional[Iterable[str]] = None) -> None:
    argv = list(args) if args is not None else sys.argv[1:]
    cfg, config_path = resolve_config(argv)
    logging.getLogger("sparse_hedge").setLevel(getattr(logging, cfg.log_level))
    logging.getLogger("sparse_hedge.backtest.engine").setLevel(getattr(logging, cfg.log_level))

    matrix = load_returns_csv(cfg.csv)
    try:
        engine = BacktestEngine(matrix, cfg.to_engine_config())
    except (KeyError, ValueError) as exc:
        raise SystemExit(f"Invalid config:\n  {exc}")

    out_dir = Path(cfg.out)
    out_dir.mkdir(parents=True, exist_ok=True)

    jsonl_writer: Optional[_JsonlWriter] = None
    progress_printer: Optional[_ProgressPrinter] = None
    try:
        if cfg.log_json:
            jsonl_writer = _JsonlWriter(Path(cfg.log_json))
        if cfg.progress:
            progress_printer = _ProgressPrinter(sys.stderr)
        result = engine.run(
            progress_callback=progress_printer,
            rebalance_callback=jsonl_writer,
        )
    finally:
        if progress_printer is not None:
            progress_printer.close()
        if jsonl_writer is not None:
            jsonl_writer.close()

    artifacts = [
        out_dir / "returns.csv",
        out_dir / "weights.csv",
        out_dir / "failures.csv",
        out_dir / "metrics.csv",
    ]
    write_returns(artifacts[0], result)
    write_weights(artifacts[1], result)
    write_failures(artifacts[2], result)
    write_metrics(artifacts[3], result)
    manifest = _write_run_manifest(out_dir, cfg, config_path, result, artifacts)
    logger.info("Wrote backtest outputs to %s (run_id %s)", out_dir, manifest["run_id"])


if __name__ == "__main__":  # pragma: no cover
    main()
