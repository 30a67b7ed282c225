"""Item ids that never appear in exported reports."""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from core.report.models import ReportRow

DEFAULT_EXCLUDED_IDS: frozenset[int] = frozenset(
    {
        13031,  # invisible, blocks walking
        8046,  # "something sparkling"
        8047,  # "something sparkling"
        8029,  # invisible
        7288,  # invisible, pins the item below it
    }
)


def filter_excluded(
    rows: Iterable[ReportRow], excluded_ids: Iterable[int] | None = None
) -> Iterator[ReportRow]:
    """Drop rows whose id is excluded; ``None`` means the default list."""

    excluded = DEFAULT_EXCLUDED_IDS if excluded_ids is None else frozenset(excluded_ids)
    for row in rows:
        if row.id not in excluded:
            yield row
