"""Loading bond return grids from CSV files."""

from __future__ import annotations

import csv
import logging
import math
import os
import re
from typing import Dict, List, Tuple

import pandas as pd

from .grid import ReturnGrid

logger = logging.getLogger(__name__)

_SPREADSHEET_EXTENSIONS = {"xlsx", "xls", "xlsm", "xlsb", "numbers", "ods"}
_ALLOWED_EXTENSIONS = {"csv", "txt"}
_INTEGER_RE = re.compile(r"[+-]?\d+")


class ReturnDataError(RuntimeError):
    """Raised when a bond return CSV is missing or malformed."""


class _CellError(ValueError):
    pass


def _validated_path(path: str) -> str:
    expanded = os.path.expanduser(str(path))
    directory = os.path.dirname(os.path.abspath(expanded))
    if not os.path.isdir(directory):
        raise ReturnDataError(f"directory does not exist: {directory}")
    if not os.path.exists(expanded):
        raise ReturnDataError(f"file does not exist: {expanded}")
    if not os.path.isfile(expanded):
        raise ReturnDataError(f"not a file: {expanded}")

    ext = os.path.splitext(expanded)[1].lstrip(".").lower()
    if not ext:
        raise ReturnDataError("file has no extension, must be .csv or .txt")
    if ext in _SPREADSHEET_EXTENSIONS:
        raise ReturnDataError(f"file extension .{ext} is a spreadsheet format, save as CSV instead")
    if ext not in _ALLOWED_EXTENSIONS:
        raise ReturnDataError(f"file extension must be .csv or .txt, received .{ext}")
    return expanded


def _read_rows(path: str) -> List[Tuple[int, List[str]]]:
    """Read the file as strings, returning ``(line number, cells)`` for non-blank rows."""

    if os.path.getsize(path) == 0:
        raise ReturnDataError(f"{path}\nis empty")
    try:
        with open(path, "r", encoding="utf-8", newline="") as f:
            reader = csv.reader(f)
            records = [(reader.line_num, record) for record in reader]
    except csv.Error as e:
        raise ReturnDataError(f"malformed CSV: {e}") from e
    except (OSError, UnicodeDecodeError) as e:
        raise ReturnDataError(f"error reading\n{path}: {e}") from e
    if not any(record for _, record in records):
        raise ReturnDataError("all lines blank")

    # Short rows are padded by the frame; each row is cut back to the width it
    # was written with so that missing months can still be reported.
    frame = pd.DataFrame([record for _, record in records]).fillna("").astype(str)
    frame = frame.apply(lambda column: column.str.strip())

    rows: List[Tuple[int, List[str]]] = []
    for position, (line_num, record) in enumerate(records):
        cells = frame.iloc[position, : len(record)].tolist()
        if all(cell == "" for cell in cells):
            continue
        rows.append((line_num, cells))
    if not rows:
        raise ReturnDataError("all lines blank")
    return rows


def _num_months_in_header(cells: List[str]) -> int:
    first = cells[0] if cells else ""
    if first.lower() != "tenor":
        raise ReturnDataError(f'first entry should be "Tenor", received {first}')

    labels = cells[1:]
    for month, label in enumerate(labels):
        if not _INTEGER_RE.fullmatch(label) or int(label) != month:
            raise ReturnDataError(f"missing or mislabelled month {month}: found {label}")
    if not labels:
        raise ReturnDataError("no bond return data")
    return len(labels)


def _parse_tenor(text: str) -> int:
    if not text:
        raise _CellError("missing tenor")
    if not _INTEGER_RE.fullmatch(text):
        raise _CellError("invalid tenor")
    value = int(text)
    if value <= 0:
        raise _CellError("tenor must be a positive integer")
    return value


def _parse_return(text: str) -> float:
    if not text:
        raise _CellError("missing bond return")
    try:
        value = float(text)
    except ValueError:
        raise _CellError("invalid bond return") from None
    if math.isnan(value):
        raise _CellError("invalid bond return")
    # Returns are compounded as (1 + r), so that is what must stay finite.
    if not math.isfinite(1.0 + value):
        if value < 0:
            raise _CellError("bond return is too small")
        raise _CellError("bond return is too large")
    if 1.0 + value < 0.0:
        raise _CellError("bond return is too small")
    return value


def load_return_csv(path: str) -> ReturnGrid:
    """Load a ``Tenor,0,1,...`` CSV into a :class:`ReturnGrid` sorted by tenor.

    Parameters
    ----------
    path:
        CSV (or ``.txt``) path on disk; ``~`` is expanded.

    Returns
    -------
    ReturnGrid
        One row per tenor, one column per month.
    """

    resolved = _validated_path(path)
    rows = _read_rows(resolved)

    header_row, header_cells = rows[0]
    num_months = _num_months_in_header(header_cells)

    tenors: List[int] = []
    grid: List[List[float]] = []
    seen: Dict[int, int] = {}
    for row_num, cells in rows[1:]:
        try:
            tenor = _parse_tenor(cells[0])
        except _CellError as e:
            raise ReturnDataError(f"row {row_num}: {e}") from None
        if tenor in seen:
            raise ReturnDataError(f"row {row_num}: duplicate tenor {tenor}")
        seen[tenor] = row_num

        values = cells[1:]
        if len(values) > num_months:
            raise ReturnDataError(f"row {row_num}: more values than months in header")
        parsed: List[float] = []
        for month, text in enumerate(values):
            try:
                parsed.append(_parse_return(text))
            except _CellError as e:
                raise ReturnDataError(f"row {row_num}, month {month}: {e}") from None
        if len(parsed) != num_months:
            if len(parsed) == num_months - 1:
                raise ReturnDataError(f"row {row_num}: missing month {num_months - 1}")
            raise ReturnDataError(f"row {row_num}: missing months {len(parsed)} to {num_months - 1}")

        tenors.append(tenor)
        grid.append(parsed)

    if not tenors:
        raise ReturnDataError("no bond return data")

    shortest = min(tenors)
    if num_months < shortest:
        raise ReturnDataError(
            f"shortest tenor is {shortest} months, but only {num_months} months of data provided"
        )

    result = ReturnGrid.from_unsorted(tenors, grid, source=resolved)
    logger.info(
        "Loaded %d tenor(s) x %d month(s) from %s (header on row %d)",
        result.num_tenors,
        result.num_months,
        resolved,
        header_row,
    )
    return result


__all__ = ["ReturnDataError", "load_return_csv"]
