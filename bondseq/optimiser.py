"""K-best bond purchase sequences via a windowed multi-result dynamic program.

Overview
--------
At every month an investor either buys a bond of some tenor (and cannot act
again until it matures) or waits one month. For each month ``m`` the forward
pass keeps the K best cumulative return factors (CRFs) that reach ``m``. They
are produced by a k-way merge over descending candidate streams:

- the wait stream, ``history[m - 1][r]`` for ranks ``r = 0, 1, ...``
- one stream per tenor ``t <= m``, ``history[m - t][r] * (1 + return(t, m - t))``

Only the last ``min(max_tenor, M) + 1`` months of CRFs are ever referenced, so
the CRF history is a rolling window. The decision trellis records, for every
``(month, rank)``, which action produced the value and which predecessor rank
it extended; it is the only full-horizon table and is walked backwards to
rebuild each of the final K strategies.

Ties between equal CRFs prefer buying over waiting, shorter tenors over longer
ones, and then the better predecessor rank, so results never depend on heap
order.
"""

from __future__ import annotations

import heapq
import logging
import math
import sys
from dataclasses import dataclass
from typing import List, NamedTuple, Sequence, Tuple

import numpy as np

from .actions import InvestmentAction
from .grid import ReturnGrid

logger = logging.getLogger(__name__)

WAIT = 0
_UNSET = -1
_NEG_INF = -math.inf
_WAIT_TIE_KEY = sys.maxsize


class CRFOverflowError(OverflowError):
    """Raised when a compounded CRF is no longer a finite float."""

    def __init__(self, month: int, value: float):
        self.month = month
        if math.copysign(1.0, value) > 0:
            self.direction = "above"
            message = (
                f"return exceeding finite limit ({sys.float_info.max:.3e}) possible by month {month}"
            )
        else:
            self.direction = "below"
            message = (
                f"return below finite limit ({-sys.float_info.max:.3e}) possible by month {month}"
            )
        super().__init__(message)


@dataclass(frozen=True)
class OptimalResults:
    """Final-month CRFs in non-increasing order and the strategy achieving each."""

    crfs: Tuple[float, ...]
    paths: Tuple[Tuple[InvestmentAction, ...], ...]

    def __len__(self) -> int:
        return len(self.crfs)

    @property
    def return_pcts(self) -> Tuple[float, ...]:
        """Total return of each result in percent (``100 * CRF - 100``)."""

        return tuple(100.0 * crf - 100.0 for crf in self.crfs)


class _Candidate(NamedTuple):
    # Field order is the heap ordering: best CRF, then tie_key (the tenor, or
    # _WAIT_TIE_KEY for waiting), then smallest predecessor rank.
    neg_crf: float
    tie_key: int
    prev_rank: int
    tenor: int
    prev_month: int
    factor: float


class CRFHistory:
    """Rolling window holding the K best CRFs (descending) for recent months."""

    def __init__(self, num_months: int, window: int, k: int):
        if window < 2:
            raise ValueError("CRF history window must hold at least two months")
        self.window = window
        self.k = k
        self._crfs = np.full((window, k), _NEG_INF, dtype=float)
        self._slots = [0] * (num_months + 1)
        self._next_slot = 1
        self._crfs[0, 0] = 1.0

    def open_month(self, month: int) -> None:
        """Assign ``month`` the next slot, evicting whatever month held it."""

        slot = self._next_slot
        self._slots[month] = slot
        self._next_slot = slot + 1 if slot + 1 < self.window else 0
        self._crfs[slot, :] = _NEG_INF

    def get(self, month: int, rank: int) -> float:
        return float(self._crfs[self._slots[month], rank])

    def set(self, month: int, rank: int, crf: float) -> None:
        self._crfs[self._slots[month], rank] = crf

    def ranks(self, month: int, count: int) -> List[float]:
        return [float(v) for v in self._crfs[self._slots[month], :count]]


class DecisionTrellis:
    """Full-horizon ``(month, rank) -> (action, predecessor rank)`` table.

    The action is :data:`WAIT` (0) or the tenor bought to arrive at ``month``.
    Cells are written once during the forward pass; unwritten cells hold -1.
    """

    def __init__(self, num_months: int, k: int, max_tenor: int):
        dtype = np.int32 if max(max_tenor, k) < 2**31 else np.int64
        self.num_months = num_months
        self.k = k
        self._cells = np.full((num_months + 1, k, 2), _UNSET, dtype=dtype)

    def record(self, month: int, rank: int, action: int, prev_rank: int) -> None:
        cell = self._cells[month, rank]
        if cell[0] != _UNSET:
            raise RuntimeError(f"Trellis cell (month {month}, rank {rank}) written twice")
        cell[0] = action
        cell[1] = prev_rank

    def is_populated(self, month: int, rank: int) -> bool:
        return bool(self._cells[month, rank, 0] != _UNSET)

    def lookup(self, month: int, rank: int) -> Tuple[int, int]:
        cell = self._cells[month, rank]
        return int(cell[0]), int(cell[1])


def _checked_product(crf: float, factor: float, month: int) -> float:
    value = crf * factor
    if not math.isfinite(value):
        raise CRFOverflowError(month, value)
    return value


def _expand_month(
    month: int,
    k: int,
    tenors: Sequence[int],
    returns: Sequence[Sequence[float]],
    history: CRFHistory,
    trellis: DecisionTrellis,
) -> int:
    """Merge the candidate streams ending at ``month`` and store the best ``k``.

    Returns the number of ranks populated, which is below ``k`` only when
    fewer strategies reach ``month``.
    """

    prev_month = month - 1
    heap: List[_Candidate] = [
        _Candidate(-history.get(prev_month, 0), _WAIT_TIE_KEY, 0, WAIT, prev_month, 1.0)
    ]
    for row, tenor in enumerate(tenors):
        if tenor > month:
            break
        prev_month = month - tenor
        factor = 1.0 + returns[row][prev_month]
        # Rank 0 always exists since waiting reaches every month.
        crf = _checked_product(history.get(prev_month, 0), factor, month)
        heap.append(_Candidate(-crf, tenor, 0, tenor, prev_month, factor))
    heapq.heapify(heap)

    found = 0
    while found < k and heap:
        best = heapq.heappop(heap)
        history.set(month, found, -best.neg_crf)
        trellis.record(month, found, best.tenor, best.prev_rank)
        found += 1

        next_rank = best.prev_rank + 1
        if next_rank >= k:
            continue
        prev_crf = history.get(best.prev_month, next_rank)
        if prev_crf == _NEG_INF:
            continue
        crf = _checked_product(prev_crf, best.factor, month)
        heapq.heappush(heap, best._replace(neg_crf=-crf, prev_rank=next_rank))
    return found


def _forward_pass(grid: ReturnGrid, k: int) -> Tuple[DecisionTrellis, List[float]]:
    num_months = grid.num_months
    window = min(grid.max_tenor, num_months) + 1
    logger.debug(
        "Forward pass: %d tenor(s), %d month(s), k=%d, window=%d",
        grid.num_tenors,
        num_months,
        k,
        window,
    )

    history = CRFHistory(num_months, window, k)
    trellis = DecisionTrellis(num_months, k, grid.max_tenor)
    trellis.record(0, 0, WAIT, _UNSET)

    tenors = list(grid.tenors)
    returns = grid.returns.tolist()

    found = 1
    for month in range(1, num_months + 1):
        history.open_month(month)
        found = _expand_month(month, k, tenors, returns, history, trellis)
    return trellis, history.ranks(num_months, found)


def _reconstruct_path(trellis: DecisionTrellis, num_months: int, final_rank: int) -> Tuple[InvestmentAction, ...]:
    actions: List[InvestmentAction] = []
    month = num_months
    rank = final_rank
    wait_run = 0
    while month > 0:
        if not trellis.is_populated(month, rank):
            raise RuntimeError(
                f"Missing trellis entry at month {month}, rank {rank} while rebuilding rank {final_rank}"
            )
        action, rank = trellis.lookup(month, rank)
        if action == WAIT:
            wait_run += 1
            month -= 1
            continue
        if wait_run:
            actions.append(InvestmentAction.wait(month, wait_run))
            wait_run = 0
        month -= action
        actions.append(InvestmentAction.buy(month, action))
    if wait_run:
        actions.append(InvestmentAction.wait(0, wait_run))
    # Built from the final month backwards.
    actions.reverse()
    return tuple(actions)


def reconstruct_paths(
    trellis: DecisionTrellis,
    num_months: int,
    num_results: int,
) -> List[Tuple[InvestmentAction, ...]]:
    """Decode the strategy behind each of the first ``num_results`` final ranks.

    Consecutive one-month waits are merged into a single wait action.
    """

    return [_reconstruct_path(trellis, num_months, rank) for rank in range(num_results)]


def compute_top_k_sequences(grid: ReturnGrid, k: int) -> OptimalResults:
    """Return up to ``k`` best final-month CRFs and the strategies achieving them.

    Fewer than ``k`` results are returned when fewer strategies exist. Raises
    :class:`CRFOverflowError` if any compounded CRF becomes non-finite and
    ``ValueError`` for a negative ``k``.
    """

    if isinstance(k, bool) or not isinstance(k, (int, np.integer)):
        raise TypeError(f"k must be an integer, received {type(k).__name__}")
    k = int(k)
    if k < 0:
        raise ValueError("Cannot request a negative number of results")
    if k == 0 or grid.num_tenors == 0 or grid.num_months == 0:
        return OptimalResults(crfs=(), paths=())

    trellis, crfs = _forward_pass(grid, k)
    paths = reconstruct_paths(trellis, grid.num_months, len(crfs))
    logger.info("Found %d of %d requested sequence(s) over %d month(s)", len(crfs), k, grid.num_months)
    return OptimalResults(crfs=tuple(crfs), paths=tuple(paths))


def replay_crf(grid: ReturnGrid, path: Sequence[InvestmentAction]) -> float:
    """Compound the returns of every buy in ``path`` (waits contribute nothing)."""

    crf = 1.0
    for action in path:
        if action.is_buy:
            crf *= 1.0 + grid.at(grid.tenor_row(action.length), action.start_month)
    return crf


__all__ = [
    "WAIT",
    "CRFHistory",
    "CRFOverflowError",
    "DecisionTrellis",
    "OptimalResults",
    "compute_top_k_sequences",
    "reconstruct_paths",
    "replay_crf",
]
