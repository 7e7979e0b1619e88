"""CSV loader producing a validated :class:`ReturnMatrix`."""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Sequence, Union

import pandas as pd

from ..errors import ReturnMatrixError
from .returns import ReturnMatrix


def _read_with_pandas(path: Path) -> pd.DataFrame:
    frame = pd.read_csv(path)
    if frame.empty or frame.columns.size < 2:
        raise ReturnMatrixError(f"Returns file {path} must contain a date column and at least one asset")
    lower_cols = [str(col).lower() for col in frame.columns]
    date_col = frame.columns[lower_cols.index("date")] if "date" in lower_cols else frame.columns[0]
    frame[date_col] = pd.to_datetime(frame[date_col])
    frame = frame.set_index(date_col)
    frame.index.name = "date"
    frame.columns = [str(col) for col in frame.columns]
    return frame


def load_returns_csv(
    path: Union[str, Path],
    *,
    assets: Optional[Sequence[str]] = None,
) -> ReturnMatrix:
    """Load a ``date,<asset...>`` CSV into a :class:`ReturnMatrix`.

    Missing values are rejected rather than filled; cleaning belongs to the
    caller.
    """

    if not isinstance(path, (str, Path)):
        raise TypeError("path must be str or Path")
    source = Path(path)
    if not source.exists():
        raise FileNotFoundError(f"Returns file not found: {source}")

    frame = _read_with_pandas(source)
    if assets:
        wanted = [str(asset) for asset in assets]
        missing = [name for name in wanted if name not in frame.columns]
        if missing:
            raise ReturnMatrixError(f"Requested assets missing from file: {', '.join(missing)}")
        frame = frame.loc[:, wanted]
    return ReturnMatrix.from_frame(frame)


__all__ = ["load_returns_csv"]
