"""
Top-K bond purchase sequences from a grid of monthly bond returns

Overview
--------
Given a CSV of bond returns by tenor and purchase month, this script finds the K
best cumulative returns achievable over the full horizon, together with the
buy/wait strategy that achieves each one. At every month the investor may buy a
bond of any listed tenor (and cannot act again until it matures) or wait.

Input
-----
CSV (or .txt) laid out as:

  Tenor,0,1,2,...
  1,0.010,0.020,0.000,...
  3,0.035,0.030,0.041,...

- Header: "Tenor" followed by the month labels 0, 1, 2, ... in order
- One row per tenor (in months); rows may be in any order
- Each cell is the return locked in by buying that tenor in that month

Output
------
- One line per result: rank, total return in percent (100 * CRF - 100), and the
  strategy as tokens (bN = buy an N-month bond, wN = wait N months)
- Optional CSV export (no header): rank,return%,"path"

CLI
---
python optimise_bonds.py returns.csv [-k 10] [--print] [--export-dir DIR | --export PATH] \
  [--verbose-paths] [--count] [--large-k-warning 1000000] [--log-level INFO]
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from typing import List, Optional

from bondseq import (
    CRFOverflowError,
    OptimalResults,
    ReturnDataError,
    ResultsExportError,
    compute_top_k_sequences,
    count_strategies,
    export_results_csv,
    format_path,
    format_result_lines,
    format_verbose_path,
    load_return_csv,
    next_results_path,
)

logger = logging.getLogger("optimise_bonds")


def _print_results(results: OptimalResults, verbose_paths: bool) -> None:
    print()
    print("Results:")
    print()
    if not verbose_paths:
        for line in format_result_lines(results):
            print(line)
        return
    for i, (pct, path) in enumerate(zip(results.return_pcts, results.paths), start=1):
        print(f"{i}. {pct:.2f}%: {format_path(path)}")
        for line in format_verbose_path(path):
            print(f"     {line}")


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Find the K best bond purchase sequences for a return grid")
    parser.add_argument("csv", help="Path to the bond return CSV")
    parser.add_argument("-k", "--num-results", type=int, default=10, help="Number of results to find (default 10)")
    parser.add_argument("--print", dest="print_results", action="store_true", help="Print results to the terminal")
    dest = parser.add_mutually_exclusive_group()
    dest.add_argument("--export-dir", default=None, help="Export to bond_results[_N].csv inside this directory")
    dest.add_argument("--export", default=None, help="Export to this exact file path (overwritten)")
    parser.add_argument("--verbose-paths", action="store_true", help="Also print each action in words")
    parser.add_argument("--count", action="store_true", help="Print the total number of possible strategies")
    parser.add_argument(
        "--large-k-warning",
        type=int,
        default=1_000_000,
        help="Warn before computing when K exceeds this (default 1,000,000)",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        type=str.upper,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default WARNING)",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(level=args.log_level, format="%(levelname)s %(name)s: %(message)s")

    if args.num_results < 0:
        parser.error("--num-results must be >= 0")
    if args.num_results > args.large_k_warning:
        logger.warning(
            "Requested %s results; memory use grows with K times the number of months",
            f"{args.num_results:,}",
        )

    try:
        grid = load_return_csv(args.csv)
    except ReturnDataError as e:
        print(f"Data error: {e}", file=sys.stderr)
        return 1

    export_path = args.export
    if args.export_dir is not None:
        try:
            export_path = next_results_path(args.export_dir)
        except ResultsExportError as e:
            print(f"Export error: {e}", file=sys.stderr)
            return 1

    start = time.perf_counter()
    try:
        results = compute_top_k_sequences(grid, args.num_results)
    except CRFOverflowError as e:
        print(f"Overflow: {e}", file=sys.stderr)
        return 1
    elapsed_ms = (time.perf_counter() - start) * 1000.0

    if export_path is not None:
        try:
            export_results_csv(results, export_path)
        except ResultsExportError as e:
            print(str(e), file=sys.stderr)
            # Fall back to the terminal so the computation is not lost.
            args.print_results = True
        else:
            print("Export complete, saved to:")
            print(export_path)

    if args.print_results or export_path is None:
        _print_results(results, args.verbose_paths)

    print()
    if len(results) < args.num_results:
        print(f"Note: {args.num_results:,} solutions requested, but only {len(results):,} found")
    print(f"Computation time: {elapsed_ms:.6f} milliseconds")

    if args.count:
        print()
        print("Total possible strategies:")
        print(f"{count_strategies(grid.tenors, grid.num_months):,}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
