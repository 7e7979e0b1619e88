"""Deterministic identifiers for backtest runs."""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Sequence

import numpy as np


def _json_default(value: Any) -> Any:
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, Path):
        return str(value)
    return str(value)


def describe_file(path: Path) -> Dict[str, Any]:
    """Name, sha256 digest and size of an output artifact."""

    blob = Path(path).read_bytes()
    return {
        "name": Path(path).name,
        "sha256": hashlib.sha256(blob).hexdigest(),
        "size": len(blob),
    }


def describe_files(paths: Iterable[Path]) -> List[Dict[str, Any]]:
    return [describe_file(path) for path in paths]


def _canonical_files(files: Sequence[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    entries = [
        {
            "name": str(entry.get("name")),
            "sha256": str(entry.get("sha256")),
            "size": int(entry.get("size", 0)),
        }
        for entry in files
    ]
    entries.sort(key=lambda item: item["name"])
    return entries


def compute_run_id(manifest: Mapping[str, Any], files: Sequence[Mapping[str, Any]]) -> str:
    """Stable hex digest over a manifest and the artifacts it produced.

    Any ``run_id`` key already in ``manifest`` is ignored and file entries
    are order-insensitive, so recomputing over a written manifest yields the
    same identifier.
    """

    body = {key: value for key, value in manifest.items() if key != "run_id"}
    payload = {"manifest": body, "files": _canonical_files(files)}
    blob = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=_json_default)
    return hashlib.sha256(blob.encode("utf-8")).hexdigest()


__all__ = ["compute_run_id", "describe_file", "describe_files"]
