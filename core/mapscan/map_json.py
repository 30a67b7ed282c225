"""Flatten a full OTBM2JSON-style map document into item records.

Layout read here:
- ``data.nodes[].features[]`` are tile areas with absolute ``x``/``y``/``z``.
- ``tiles[]`` carry ``x``/``y`` offsets relative to the area.
- ``items[]`` may nest further items under ``content[]``.
"""

from __future__ import annotations

import json
from collections.abc import Generator, Iterator
from pathlib import Path
from typing import Any

from core.mapscan.models import ItemRecord
from core.utils.errors import RecordSourceError


def iter_map_json_records(path: Path) -> Generator[ItemRecord, None, None]:
    """Load the document eagerly and return a lazy record iterator over it."""

    try:
        with path.open("r", encoding="utf-8") as handle:
            document = json.load(handle)
    except OSError as exc:
        raise RecordSourceError(f"Cannot open record source: {path}", path=path) from exc
    except ValueError as exc:
        raise RecordSourceError(f"Invalid map JSON: {path}", path=path) from exc
    return iter_document_records(document)


def iter_document_records(document: Any) -> Generator[ItemRecord, None, None]:
    """Yield records for every item, container first, then its contents in order."""

    if not isinstance(document, dict):
        return
    data = document.get("data")
    nodes = data.get("nodes") if isinstance(data, dict) else None
    if not isinstance(nodes, list):
        return

    for node in nodes:
        features = node.get("features") if isinstance(node, dict) else None
        if not isinstance(features, list):
            continue
        for feature in features:
            origin = _coords(feature, ("x", "y", "z"))
            tiles = feature.get("tiles") if isinstance(feature, dict) else None
            if origin is None or not isinstance(tiles, list):
                continue
            area_x, area_y, z = origin
            for tile in tiles:
                offset = _coords(tile, ("x", "y"))
                items = tile.get("items") if isinstance(tile, dict) else None
                if offset is None or not isinstance(items, list):
                    continue
                yield from _flatten_items(items, area_x + offset[0], area_y + offset[1], z)


def _flatten_items(items: list[Any], x: int, y: int, z: int) -> Iterator[ItemRecord]:
    stack = list(reversed(items))
    while stack:
        item = stack.pop()
        if not isinstance(item, dict):
            continue
        item_id = _as_int(item.get("id"))
        if item_id is not None:
            yield ItemRecord(item_id, x, y, z)
        content = item.get("content")
        if isinstance(content, list):
            stack.extend(reversed(content))


def _coords(payload: Any, keys: tuple[str, ...]) -> tuple[int, ...] | None:
    if not isinstance(payload, dict):
        return None
    values = [_as_int(payload.get(key)) for key in keys]
    if any(value is None for value in values):
        return None
    return tuple(value for value in values if value is not None)


def _as_int(raw: Any) -> int | None:
    if raw is None or isinstance(raw, bool):
        return None
    try:
        return int(raw)
    except (TypeError, ValueError, OverflowError):
        return None
