"""Immutable dates x assets return matrix used by every weight computer."""

from __future__ import annotations

from typing import Any, List, Sequence

import numpy as np
import pandas as pd

from ..errors import ReturnMatrixError


def format_date(value: Any) -> str:
    if isinstance(value, pd.Timestamp) and value == value.normalize():
        return value.date().isoformat()
    return str(value)


def _build_index(dates: Sequence[Any]) -> pd.Index:
    index = dates if isinstance(dates, pd.Index) else pd.Index(list(dates))
    if index.size and index.inferred_type in {"datetime64", "date", "datetime"}:
        index = pd.DatetimeIndex(index)
    if index.has_duplicates:
        dupes = index[index.duplicated()].unique()
        offenders = ", ".join(format_date(val) for val in dupes[:5])
        raise ReturnMatrixError(f"Return matrix contains duplicate dates ({offenders})")
    if index.size > 1 and not index.is_monotonic_increasing:
        values = list(index)
        for pos in range(len(values) - 1):
            if values[pos + 1] <= values[pos]:
                raise ReturnMatrixError(
                    "Return matrix dates must be strictly increasing "
                    f"(saw {format_date(values[pos + 1])} <= {format_date(values[pos])})"
                )
    return index


class ReturnMatrix:
    """Validated, read-only panel of asset returns.

    Every asset has a finite return on every date and dates are strictly
    increasing. The underlying array is never writeable, so the same matrix
    can be shared across worker threads for a whole backtest run.
    """

    __slots__ = ("_values", "_dates", "_assets")

    def __init__(self, values: Any, dates: Sequence[Any], assets: Sequence[Any]) -> None:
        arr = np.array(values, dtype=float, copy=True)
        if arr.ndim != 2:
            raise ReturnMatrixError("Return matrix must be two dimensional")
        index = _build_index(dates)
        asset_list = [a for a in assets]
        if arr.shape != (len(index), len(asset_list)):
            raise ReturnMatrixError(
                f"Return matrix shape {arr.shape} does not match "
                f"{len(index)} dates x {len(asset_list)} assets"
            )
        if len(set(asset_list)) != len(asset_list):
            raise ReturnMatrixError("Asset identifiers must be unique")
        if arr.size and not np.all(np.isfinite(arr)):
            bad_row, bad_col = (int(v) for v in np.argwhere(~np.isfinite(arr))[0])
            raise ReturnMatrixError(
                f"Missing or non-finite return for asset {asset_list[bad_col]!s} "
                f"on {format_date(index[bad_row])}"
            )
        arr.setflags(write=False)
        self._values = arr
        self._dates = index
        self._assets = asset_list

    @classmethod
    def from_frame(cls, frame: pd.DataFrame) -> "ReturnMatrix":
        if not isinstance(frame, pd.DataFrame):
            raise TypeError("frame must be a pandas DataFrame")
        return cls(frame.to_numpy(dtype=float), frame.index, list(frame.columns))

    @property
    def values(self) -> np.ndarray:
        return self._values

    @property
    def dates(self) -> pd.Index:
        return self._dates

    @property
    def assets(self) -> List[Any]:
        return list(self._assets)

    @property
    def n_dates(self) -> int:
        return int(self._values.shape[0])

    @property
    def n_assets(self) -> int:
        return int(self._values.shape[1])

    def coerce_date(self, date: Any) -> Any:
        if isinstance(self._dates, pd.DatetimeIndex):
            return pd.Timestamp(date)
        return date

    def index_of(self, date: Any) -> int:
        key = self.coerce_date(date)
        try:
            loc = self._dates.get_loc(key)
        except KeyError:
            raise KeyError(f"Date {format_date(key)} not present in return matrix") from None
        return int(loc)

    def window_before(self, date: Any) -> np.ndarray:
        """Rows with date strictly less than ``date`` (expanding window)."""

        pos = int(self._dates.searchsorted(self.coerce_date(date), side="left"))
        return self._values[:pos]

    def row_at(self, date: Any) -> np.ndarray:
        return self._values[self.index_of(date)]

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self._values.copy(), index=self._dates.copy(), columns=list(self._assets))

    def __len__(self) -> int:
        return self.n_dates

    def __repr__(self) -> str:
        return f"ReturnMatrix(n_dates={self.n_dates}, n_assets={self.n_assets})"


__all__ = ["ReturnMatrix", "format_date"]
