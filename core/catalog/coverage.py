"""Membership index over catalog item ids (exact ids plus merged inclusive ranges)."""

from __future__ import annotations

from bisect import bisect_right


class CoverageIndex:
    """Answer "is this id defined in the catalog?" in O(log R).

    Usage contract:
    - add ids/ranges, then call ``finalize()`` exactly once before ``exists()``.
    - adding after ``finalize()`` is unsupported.
    """

    def __init__(self) -> None:
        self._singles: set[int] = set()
        self._ranges: list[tuple[int, int]] = []
        self._starts: list[int] = []

    def add_single(self, item_id: int) -> None:
        self._singles.add(item_id)

    def add_range(self, from_id: int, to_id: int) -> None:
        """Record an inclusive range; reversed bounds are swapped, not rejected."""

        if to_id < from_id:
            from_id, to_id = to_id, from_id
        self._ranges.append((from_id, to_id))

    def finalize(self) -> None:
        """Sort ranges by start and merge overlapping or adjacent ones."""

        if not self._ranges:
            self._starts = []
            return

        ordered = sorted(self._ranges)
        merged: list[tuple[int, int]] = []
        current_start, current_end = ordered[0]
        for start, end in ordered[1:]:
            if start <= current_end + 1:
                current_end = max(current_end, end)
                continue
            merged.append((current_start, current_end))
            current_start, current_end = start, end
        merged.append((current_start, current_end))

        self._ranges = merged
        self._starts = [start for start, _ in merged]

    def exists(self, item_id: int) -> bool:
        if item_id in self._singles:
            return True
        return self._in_ranges(item_id)

    @property
    def singles(self) -> frozenset[int]:
        return frozenset(self._singles)

    @property
    def ranges(self) -> list[tuple[int, int]]:
        return list(self._ranges)

    def __contains__(self, item_id: object) -> bool:
        return isinstance(item_id, int) and self.exists(item_id)

    def __len__(self) -> int:
        """Number of distinct covered ids (valid after finalize)."""

        in_ranges = sum(end - start + 1 for start, end in self._ranges)
        outside = sum(1 for item_id in self._singles if not self._in_ranges(item_id))
        return in_ranges + outside

    def _in_ranges(self, item_id: int) -> bool:
        position = bisect_right(self._starts, item_id) - 1
        return position >= 0 and item_id <= self._ranges[position][1]
