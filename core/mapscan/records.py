"""Line-delimited item record reader."""

from __future__ import annotations

import json
from collections.abc import Generator
from pathlib import Path
from typing import IO, Any

from core.mapscan.map_json import iter_map_json_records
from core.mapscan.models import ItemRecord
from core.utils.errors import RecordSourceError

_RECORD_KEYS = ("id", "x", "y", "z")
MAP_JSON_SUFFIXES = frozenset({".json"})


def iter_item_records(path: Path) -> Generator[ItemRecord, None, None]:
    """Return a forward-only iterator of records from an NDJSON file.

    The file is opened immediately so an unreadable source fails here, not on
    first iteration. Empty, unparsable, or incomplete lines are skipped.
    """

    try:
        handle = path.open("rb")
    except OSError as exc:
        raise RecordSourceError(f"Cannot open record source: {path}", path=path) from exc
    return _iter_lines(handle)


def open_record_stream(path: Path) -> Generator[ItemRecord, None, None]:
    """Pick the reader by suffix: ``.json`` is a full map document, anything else NDJSON."""

    if path.suffix.lower() in MAP_JSON_SUFFIXES:
        return iter_map_json_records(path)
    return iter_item_records(path)


def parse_record(payload: Any) -> ItemRecord | None:
    """Coerce a decoded JSON object into an ItemRecord, or None when incomplete."""

    if not isinstance(payload, dict):
        return None
    values: list[int] = []
    for key in _RECORD_KEYS:
        raw = payload.get(key)
        if raw is None or isinstance(raw, bool):
            return None
        try:
            values.append(int(raw))
        except (TypeError, ValueError, OverflowError):
            return None
    return ItemRecord(*values)


def _iter_lines(handle: IO[bytes]) -> Generator[ItemRecord, None, None]:
    with handle:
        for line in handle:
            raw = line.strip()
            if not raw:
                continue
            try:
                payload = json.loads(raw.decode("utf-8"))
            except ValueError:
                continue
            record = parse_record(payload)
            if record is not None:
                yield record
