"""Return grid value object shared by the loader and the optimiser."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Tuple

import numpy as np


@dataclass(frozen=True)
class ReturnGrid:
    """Per-tenor, per-month bond returns with rows sorted by ascending tenor.

    Parameters
    ----------
    tenors:
        Strictly ascending, unique, positive bond lengths in months.
    returns:
        Array of shape ``(len(tenors), num_months)``; ``returns[i, m]`` is the
        return locked in by buying tenor ``tenors[i]`` at month ``m``.
    source:
        Optional path of the file the grid was loaded from.
    """

    tenors: Tuple[int, ...]
    returns: np.ndarray
    source: Optional[str] = None

    def __post_init__(self) -> None:
        tenors = tuple(int(t) for t in self.tenors)
        if any(t <= 0 for t in tenors):
            raise ValueError("Tenors must be positive integers")
        if any(b <= a for a, b in zip(tenors, tenors[1:])):
            raise ValueError("Tenors must be unique and sorted in ascending order")

        arr = np.array(self.returns, dtype=float)
        if arr.ndim != 2:
            if arr.size == 0 and not tenors:
                arr = arr.reshape(0, 0)
            else:
                raise ValueError("returns must be 2-dimensional")
        if arr.shape[0] != len(tenors):
            raise ValueError(
                f"returns has {arr.shape[0]} row(s) but {len(tenors)} tenor(s) were given"
            )
        if not np.all(np.isfinite(arr)):
            raise ValueError("returns must all be finite")
        with np.errstate(over="ignore"):
            if not np.all(np.isfinite(1.0 + arr)):
                raise ValueError("1 + return must be finite for every grid entry")
        # A negative factor would reorder a descending stream.
        if np.any(1.0 + arr < 0.0):
            raise ValueError("returns below -1 (a negative 1 + return) are not allowed")
        arr.setflags(write=False)

        object.__setattr__(self, "tenors", tenors)
        object.__setattr__(self, "returns", arr)

    @classmethod
    def from_unsorted(
        cls,
        tenors: Iterable[int],
        returns: Sequence[Sequence[float]],
        source: Optional[str] = None,
    ) -> "ReturnGrid":
        """Build a grid from rows in arbitrary tenor order."""

        tenor_arr = np.asarray(list(tenors), dtype=np.int64)
        arr = np.asarray(returns, dtype=float)
        if len(np.unique(tenor_arr)) != len(tenor_arr):
            raise ValueError("Duplicate tenors are not allowed")
        if arr.ndim == 2 and arr.shape[0] == len(tenor_arr):
            order = np.argsort(tenor_arr, kind="stable")
            tenor_arr = tenor_arr[order]
            arr = arr[order]
        return cls(tenors=tuple(int(t) for t in tenor_arr), returns=arr, source=source)

    @property
    def num_tenors(self) -> int:
        return len(self.tenors)

    @property
    def num_months(self) -> int:
        return int(self.returns.shape[1])

    @property
    def max_tenor(self) -> int:
        if not self.tenors:
            raise ValueError("Grid has no tenors")
        return self.tenors[-1]

    def at(self, row: int, month: int) -> float:
        """Bounds-checked lookup of the return for ``tenors[row]`` bought at ``month``."""

        if row < 0 or row >= self.num_tenors:
            raise IndexError(f"Tenor row {row} out of range [0, {self.num_tenors})")
        if month < 0 or month >= self.num_months:
            raise IndexError(f"Month {month} out of range [0, {self.num_months})")
        return float(self.returns[row, month])

    def tenor_row(self, tenor: int) -> int:
        """Index of ``tenor`` within :attr:`tenors`."""

        try:
            return self.tenors.index(int(tenor))
        except ValueError:
            raise KeyError(f"Tenor {tenor} is not part of this grid") from None


__all__ = ["ReturnGrid"]
