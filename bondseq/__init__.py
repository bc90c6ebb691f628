"""Top-K bond purchase sequence optimisation."""

from .actions import ActionKind, InvestmentAction
from .counting import count_strategies
from .dataset import ReturnDataError, load_return_csv
from .grid import ReturnGrid
from .optimiser import (
    CRFOverflowError,
    OptimalResults,
    compute_top_k_sequences,
    replay_crf,
)
from .output import (
    ResultsExportError,
    export_results_csv,
    format_path,
    format_result_lines,
    format_verbose_path,
    next_results_path,
    results_to_frame,
)

__all__ = [
    "ActionKind",
    "InvestmentAction",
    "count_strategies",
    "ReturnDataError",
    "load_return_csv",
    "ReturnGrid",
    "CRFOverflowError",
    "OptimalResults",
    "compute_top_k_sequences",
    "replay_crf",
    "ResultsExportError",
    "export_results_csv",
    "format_path",
    "format_result_lines",
    "format_verbose_path",
    "next_results_path",
    "results_to_frame",
]
