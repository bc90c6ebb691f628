"""Rendering and exporting optimiser results."""

from __future__ import annotations

import logging
import os
from typing import List, Optional, Sequence

import pandas as pd

from .actions import InvestmentAction
from .optimiser import OptimalResults

logger = logging.getLogger(__name__)

RESULTS_FILENAME = "bond_results"
# Caps the bond_results_<n>.csv search.
RESULT_FILES_LIMIT = 10_000


class ResultsExportError(RuntimeError):
    """Raised when results cannot be written to disk."""


def format_path(path: Sequence[InvestmentAction], sep: str = ",") -> str:
    """Join action tokens, e.g. ``w1,b3,b2``."""

    return sep.join(action.token for action in path)


def format_verbose_path(path: Sequence[InvestmentAction]) -> List[str]:
    return [action.describe() for action in path]


def _limit(results: OptimalResults, limit: Optional[int]) -> int:
    if limit is None:
        return len(results)
    if limit < 0:
        raise ValueError("limit must be >= 0")
    return min(limit, len(results))


def format_result_lines(results: OptimalResults, limit: Optional[int] = None) -> List[str]:
    """One ``"<rank>. <pct>%: <path>"`` line per result, rank starting at 1."""

    count = _limit(results, limit)
    pcts = results.return_pcts
    return [f"{i + 1}. {pcts[i]:.2f}%: {format_path(results.paths[i])}" for i in range(count)]


def results_to_frame(results: OptimalResults, limit: Optional[int] = None) -> pd.DataFrame:
    count = _limit(results, limit)
    return pd.DataFrame(
        {
            "rank": list(range(1, count + 1)),
            "crf": list(results.crfs[:count]),
            "return_pct": list(results.return_pcts[:count]),
            "path": [format_path(p) for p in results.paths[:count]],
        }
    )


def export_results_csv(results: OptimalResults, path: str, limit: Optional[int] = None) -> str:
    """Write ``<rank>,<pct>%,"<path>"`` rows (no header), replacing any existing file.

    Returns the path written.
    """

    frame = results_to_frame(results, limit)
    # The path column is always quoted since it contains commas.
    rows = [
        f'{rank},{pct:.2f}%,"{tokens}"'
        for rank, pct, tokens in frame[["rank", "return_pct", "path"]].itertuples(index=False, name=None)
    ]
    try:
        with open(path, "w", encoding="utf-8", newline="") as f:
            f.write("\n".join(rows))
    except OSError as e:
        raise ResultsExportError(f"Failed to write to {path}: {e}") from e
    logger.info("Exported %d result(s) to %s", len(rows), path)
    return path


def next_results_path(directory: str) -> str:
    """First unused ``bond_results.csv`` / ``bond_results_<n>.csv`` in ``directory``."""

    directory = os.path.expanduser(str(directory))
    if not os.path.isdir(directory):
        raise ResultsExportError(f"Unable to access directory {directory}")
    candidate = os.path.join(directory, f"{RESULTS_FILENAME}.csv")
    if not os.path.exists(candidate):
        return candidate
    for i in range(2, RESULT_FILES_LIMIT + 1):
        candidate = os.path.join(directory, f"{RESULTS_FILENAME}_{i}.csv")
        if not os.path.exists(candidate):
            return candidate
    raise ResultsExportError("Too many result files exist")


__all__ = [
    "RESULTS_FILENAME",
    "RESULT_FILES_LIMIT",
    "ResultsExportError",
    "export_results_csv",
    "format_path",
    "format_result_lines",
    "format_verbose_path",
    "next_results_path",
    "results_to_frame",
]
