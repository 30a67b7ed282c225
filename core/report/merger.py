"""Merge two scan reports keyed by item id."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from typing import Any

from core.report.models import ReportRow, SortOrder


def merge_reports(
    base_rows: Iterable[Mapping[str, Any]],
    other_rows: Iterable[Mapping[str, Any]],
    sort: SortOrder = "occurrences",
) -> Iterator[ReportRow]:
    """Merge ``other_rows`` into ``base_rows``.

    Rules by id:
    - rows without a positive integer id are dropped;
    - duplicate ids within base: last one wins;
    - both sides named: keep base;
    - only other named: take other;
    - neither named: keep base.

    Sorting:
    - ``occurrences``: count descending, then id ascending.
    - ``id-asc``: id ascending.
    """

    if sort not in ("occurrences", "id-asc"):
        raise ValueError(f"Unsupported sort order: {sort}")

    merged: dict[int, ReportRow] = {}
    for raw in base_rows:
        row = ReportRow.from_raw(raw)
        if row is not None:
            merged[row.id] = row

    for raw in other_rows:
        row = ReportRow.from_raw(raw)
        if row is None:
            continue
        existing = merged.get(row.id)
        if existing is None or (row.has_name and not existing.has_name):
            merged[row.id] = row

    if sort == "id-asc":
        ordered = sorted(merged.values(), key=lambda row: row.id)
    else:
        ordered = sorted(merged.values(), key=lambda row: (-row.occurrences, row.id))
    return iter(ordered)
