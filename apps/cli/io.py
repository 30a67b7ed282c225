"""CLI I/O helpers: output path resolution and atomic summary writing."""

from __future__ import annotations

import json
import tempfile
from pathlib import Path
from typing import Any

from core.config.settings import AppSettings
from core.report.writer import ReportFormat


def enforce_report_suffix(path: Path, report_format: ReportFormat) -> Path:
    """Return ``path`` with the suffix matching ``report_format``."""

    expected = f".{report_format}"
    if path.suffix.lower() == expected:
        return path
    return path.with_suffix(expected)


def default_scan_output(settings: AppSettings, report_format: ReportFormat) -> Path:
    if report_format == "csv":
        return settings.paths.report_csv
    return settings.paths.report_xlsx


def default_merge_output(settings: AppSettings, report_format: ReportFormat) -> Path:
    if report_format == "csv":
        return settings.paths.merged_csv
    return settings.paths.merged_xlsx


def find_default_report(settings: AppSettings) -> Path | None:
    """Prefer the XLSX report, then the CSV one; None when neither exists."""

    for candidate in (settings.paths.report_xlsx, settings.paths.report_csv):
        if candidate.is_file():
            return candidate
    return None


def is_same_file(left: Path, right: Path) -> bool:
    return left.resolve() == right.resolve()


def write_summary_json_atomic(path: Path, payload: dict[str, Any]) -> None:
    """Write a command summary JSON atomically."""

    path.parent.mkdir(parents=True, exist_ok=True)
    _atomic_write_json(path, payload)


def _atomic_write_json(path: Path, payload: dict[str, Any]) -> None:
    with tempfile.NamedTemporaryFile(
        mode="w",
        encoding="utf-8",
        dir=path.parent,
        delete=False,
        prefix=f"{path.name}.",
        suffix=".tmp",
    ) as tmp:
        tmp_path = Path(tmp.name)
        try:
            json.dump(payload, tmp, ensure_ascii=False, sort_keys=True, separators=(",", ":"))
        except Exception:
            tmp.close()
            tmp_path.unlink(missing_ok=True)
            raise

    tmp_path.replace(path)
