"""Count the distinct buy/wait strategies available for a set of tenors."""

from __future__ import annotations

from typing import Iterable, List


def count_strategies(tenors: Iterable[int], num_months: int) -> int:
    """Number of strategies spanning exactly ``num_months``.

    A one-month wait is a separate step from buying a one-month bond, matching
    the strategies the optimiser distinguishes.
    """

    if num_months < 0:
        raise ValueError("num_months must be >= 0")
    steps = [1] + sorted(int(t) for t in tenors)
    if any(step <= 0 for step in steps):
        raise ValueError("Tenors must be positive integers")

    counts: List[int] = [0] * (num_months + 1)
    counts[0] = 1
    for month in range(1, num_months + 1):
        total = 0
        for step in steps:
            if step > month:
                break
            total += counts[month - step]
        counts[month] = total
    return counts[num_months]


__all__ = ["count_strategies"]
