"""Report readers for XLSX and CSV files.

Both formats yield rows as ``{lowercased header: cell value}`` mappings:
- the first row is always the header;
- fully blank rows are skipped;
- unnamed header cells become ``col<N>`` (1-based column number).
"""

from __future__ import annotations

import csv
from collections.abc import Iterator, Sequence
from datetime import date, datetime, time
from pathlib import Path
from typing import Any

from openpyxl import load_workbook

from core.utils.errors import ReportFormatError

ReportRawRow = dict[str, Any]

SUPPORTED_REPORT_SUFFIXES = (".xlsx", ".csv")


def read_report(path: Path, sheet_index: int = 0, csv_delimiter: str = ",") -> Iterator[ReportRawRow]:
    """Validate ``path`` and return a lazy row iterator.

    Raises ReportFormatError immediately (before any row) for a missing file
    or an unsupported extension.
    """

    suffix = path.suffix.lower()
    if suffix not in SUPPORTED_REPORT_SUFFIXES:
        raise ReportFormatError(
            f"Unsupported report extension: {suffix or '<none>'} ({path})", path=path
        )
    if not path.is_file():
        raise ReportFormatError(f"Report not found: {path}", path=path)

    if suffix == ".xlsx":
        if sheet_index < 0:
            raise ValueError("sheet_index must be >= 0")
        return _iter_xlsx(path, sheet_index)

    if len(csv_delimiter) != 1:
        raise ValueError("csv_delimiter must be a single character")
    return _iter_csv(path, csv_delimiter)


def _iter_xlsx(path: Path, sheet_index: int) -> Iterator[ReportRawRow]:
    workbook = load_workbook(filename=str(path), read_only=True, data_only=True)
    try:
        try:
            sheet = workbook.worksheets[sheet_index]
        except IndexError as exc:
            raise ReportFormatError(
                f"Sheet index {sheet_index} out of range ({len(workbook.worksheets)} sheets): {path}",
                path=path,
            ) from exc

        headers: list[str] | None = None
        for values in sheet.iter_rows(values_only=True):
            if headers is None:
                headers = _build_headers(values)
                continue
            cells = [_cell_value(value) for value in values]
            if _is_blank(cells):
                continue
            yield _zip_row(headers, cells)
    finally:
        workbook.close()


def _iter_csv(path: Path, delimiter: str) -> Iterator[ReportRawRow]:
    with path.open("r", encoding="utf-8-sig", newline="") as handle:
        headers: list[str] | None = None
        for values in csv.reader(handle, delimiter=delimiter):
            if _is_blank(values):
                continue
            if headers is None:
                headers = _build_headers(values)
                continue
            yield _zip_row(headers, values)


def _build_headers(values: Sequence[Any]) -> list[str]:
    headers: list[str] = []
    for column, value in enumerate(values, start=1):
        name = "" if value is None else str(value).strip().lower()
        headers.append(name or f"col{column}")
    return headers


def _zip_row(headers: list[str], cells: Sequence[Any]) -> ReportRawRow:
    row: ReportRawRow = {}
    for column, value in enumerate(cells, start=1):
        key = headers[column - 1] if column <= len(headers) else f"col{column}"
        row[key] = value
    return row


def _cell_value(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    return str(value)


def _is_blank(cells: Sequence[Any]) -> bool:
    return all(value is None or str(value).strip() == "" for value in cells)
