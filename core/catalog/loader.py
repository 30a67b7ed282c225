"""Build a CoverageIndex from catalog ``<item>`` entries."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from pathlib import Path
from xml.etree import ElementTree as ET

from core.catalog.coverage import CoverageIndex
from core.utils.errors import CatalogError

ITEM_TAG = "item"


def load_coverage_index(catalog_path: Path) -> CoverageIndex:
    """Stream the catalog and index every ``id`` / ``fromid``+``toid`` entry.

    Elements are cleared as soon as they are read so large catalogs are
    never fully materialized.
    """

    if not catalog_path.is_file():
        raise CatalogError(f"Catalog not found: {catalog_path}", path=catalog_path)

    def _iter_attributes() -> Iterable[Mapping[str, str]]:
        for _, element in ET.iterparse(catalog_path, events=("end",)):
            if element.tag == ITEM_TAG:
                yield dict(element.attrib)
                element.clear()

    try:
        return build_coverage_index(_iter_attributes())
    except ET.ParseError as exc:
        raise CatalogError(f"Invalid catalog XML: {catalog_path}: {exc}", path=catalog_path) from exc


def build_coverage_index(entries: Iterable[Mapping[str, str]]) -> CoverageIndex:
    """Index entry attribute mappings and finalize the result.

    Entries without a usable positive integer ``id`` or ``fromid``/``toid``
    pair are ignored.
    """

    index = CoverageIndex()
    for attributes in entries:
        if "id" in attributes:
            item_id = _parse_attr_int(attributes["id"])
            if item_id is not None and item_id > 0:
                index.add_single(item_id)
            continue

        if "fromid" in attributes and "toid" in attributes:
            from_id = _parse_attr_int(attributes["fromid"])
            to_id = _parse_attr_int(attributes["toid"])
            if from_id is None or to_id is None:
                continue
            if min(from_id, to_id) > 0:
                index.add_range(from_id, to_id)

    index.finalize()
    return index


def _parse_attr_int(raw: str) -> int | None:
    try:
        return int(raw.strip())
    except ValueError:
        return None
