"""Report export to CSV or XLSX.

Rows pass through the exclusion filter before they are written. Output is
written to a temporary sibling file first and moved into place on success.
"""

from __future__ import annotations

import csv
import os
import tempfile
from collections.abc import Iterable
from pathlib import Path
from typing import Literal

from openpyxl import Workbook
from openpyxl.drawing.image import Image
from openpyxl.styles import Alignment, Font
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from core.report.exclusions import filter_excluded
from core.report.models import IMAGE_FIELD, REPORT_FIELDS, ReportRow

ReportFormat = Literal["csv", "xlsx"]
REPORT_FORMATS: tuple[ReportFormat, ...] = ("csv", "xlsx")

_IMAGE_ROW_HEIGHT = 48.0
_IMAGE_COLUMN_WIDTH = 12.5


def write_report(
    rows: Iterable[ReportRow],
    path: Path,
    report_format: ReportFormat,
    *,
    excluded_ids: Iterable[int] | None = None,
    image_dir: Path | None = None,
    csv_delimiter: str = ",",
) -> int:
    """Write rows and return how many were written (after exclusions).

    ``image_dir`` only applies to XLSX: it adds an ``image`` column as the
    second column holding ``<id>.png`` when that file exists.
    """

    if report_format not in REPORT_FORMATS:
        raise ValueError(f"Unsupported report format: {report_format}")

    kept = filter_excluded(rows, excluded_ids)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, raw_tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f"{path.name}.", suffix=".tmp")
    os.close(fd)
    tmp_path = Path(raw_tmp_path)

    try:
        if report_format == "csv":
            written = _write_csv(kept, tmp_path, csv_delimiter)
        else:
            written = _write_xlsx(kept, tmp_path, image_dir)
        tmp_path.replace(path)
    except Exception:
        if tmp_path.exists():
            tmp_path.unlink(missing_ok=True)
        raise
    return written


def infer_report_format(path: Path, default: ReportFormat = "xlsx") -> ReportFormat:
    suffix = path.suffix.lower().lstrip(".")
    if suffix == "csv":
        return "csv"
    if suffix == "xlsx":
        return "xlsx"
    return default


def _write_csv(rows: Iterable[ReportRow], path: Path, delimiter: str) -> int:
    written = 0
    with path.open("w", encoding="utf-8", newline="") as handle:
        writer = csv.writer(handle, delimiter=delimiter)
        writer.writerow(REPORT_FIELDS)
        for row in rows:
            writer.writerow(row.as_values())
            written += 1
    return written


def _write_xlsx(rows: Iterable[ReportRow], path: Path, image_dir: Path | None) -> int:
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = "missing-items"

    headers = list(REPORT_FIELDS)
    if image_dir is not None:
        headers.insert(1, IMAGE_FIELD)
    sheet.append(headers)
    for cell in sheet[1]:
        cell.font = Font(bold=True)

    written = 0
    for row in rows:
        values = row.as_values()
        if image_dir is not None:
            values.insert(1, "")
        sheet.append(values)
        written += 1
        if image_dir is not None:
            _attach_image(sheet, image_dir / f"{row.id}.png", sheet.max_row)

    _finish_sheet(sheet, headers, written, with_images=image_dir is not None)
    workbook.save(str(path))
    return written


def _attach_image(sheet: Worksheet, image_path: Path, row_number: int) -> None:
    if not image_path.is_file():
        return
    sheet.add_image(Image(str(image_path)), f"B{row_number}")
    sheet.row_dimensions[row_number].height = _IMAGE_ROW_HEIGHT


def _finish_sheet(sheet: Worksheet, headers: list[str], written: int, *, with_images: bool) -> None:
    last_column = get_column_letter(len(headers))
    sheet.freeze_panes = "A2"
    sheet.auto_filter.ref = f"A1:{last_column}{written + 1}"

    occurrences_column = get_column_letter(headers.index("occurrences") + 1)
    for cell in sheet[occurrences_column][1:]:
        cell.alignment = Alignment(horizontal="right")

    if with_images:
        sheet.column_dimensions["B"].width = _IMAGE_COLUMN_WIDTH
    sheet.column_dimensions[get_column_letter(headers.index("example_positions") + 1)].width = 40
