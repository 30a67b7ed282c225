"""Occurrence aggregation for item ids missing from the catalog."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator

from core.catalog.coverage import CoverageIndex
from core.mapscan.models import ItemRecord
from core.report.models import ReportRow, SortOrder

MAX_EXAMPLE_POSITIONS = 5
DEFAULT_TICK_EVERY = 10_000

ProgressCallback = Callable[[int], None]


class ItemOccurrenceCounter:
    """Count uncovered ids and keep the first few positions where each one appears."""

    def __init__(self) -> None:
        self._counts: dict[int, int] = {}
        self._positions: dict[int, list[str]] = {}
        self.processed = 0
        self.truncated = False

    def count(
        self,
        records: Iterable[ItemRecord],
        index: CoverageIndex,
        sample_limit: int | None = None,
        tick: ProgressCallback | None = None,
        *,
        tick_every: int = DEFAULT_TICK_EVERY,
    ) -> int:
        """Consume ``records`` and return how many were processed in this call.

        With ``sample_limit`` set, consumption stops once that many records have
        been processed; ``truncated`` records whether the limit was reached.
        """

        if sample_limit is not None and sample_limit < 1:
            raise ValueError("sample_limit must be >= 1")
        tick_every = max(1, tick_every)

        counts = self._counts
        positions = self._positions
        processed = 0
        for record in records:
            item_id = record.id
            if not index.exists(item_id):
                counts[item_id] = counts.get(item_id, 0) + 1
                samples = positions.setdefault(item_id, [])
                if len(samples) < MAX_EXAMPLE_POSITIONS:
                    samples.append(record.position)

            processed += 1
            if tick is not None and processed % tick_every == 0:
                tick(self.processed + processed)
            if sample_limit is not None and processed >= sample_limit:
                self.truncated = True
                break

        self.processed += processed
        return processed

    @property
    def uncovered_ids(self) -> int:
        return len(self._counts)

    def occurrences(self, item_id: int) -> int:
        return self._counts.get(item_id, 0)

    def positions(self, item_id: int) -> list[str]:
        return list(self._positions.get(item_id, []))

    def result(self, sort: SortOrder = "occurrences") -> Iterator[ReportRow]:
        """Yield one row per uncovered id from a snapshot of the current state.

        - ``occurrences``: count descending, ties by id ascending.
        - ``id-asc``: id ascending.
        """

        if sort == "id-asc":
            ordered = sorted(self._counts.items())
        elif sort == "occurrences":
            ordered = sorted(self._counts.items(), key=lambda item: (-item[1], item[0]))
        else:
            raise ValueError(f"Unsupported sort order: {sort}")

        snapshot = [
            (item_id, count, ",".join(self._positions.get(item_id, ())))
            for item_id, count in ordered
        ]
        return _iter_rows(snapshot)


def _iter_rows(snapshot: list[tuple[int, int, str]]) -> Iterator[ReportRow]:
    for item_id, count, examples in snapshot:
        yield ReportRow(id=item_id, occurrences=count, example_positions=examples)
