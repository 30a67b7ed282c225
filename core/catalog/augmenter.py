"""Append catalog entries for named report rows that the catalog does not cover yet.

Pipeline for one run:
1. resolve the working file (copy to ``output_path`` when given, else in place);
2. parse the catalog fully and index existing ``id`` / ``fromid``+``toid`` entries;
3. scan report rows, keeping positive ids with a name that are not covered;
4. sort by id and coalesce consecutive ids sharing ``(article, name)``;
5. stop here on dry-run;
6. back up the working file unless disabled;
7. append a marked block before the root close tag and save.

The existing document bytes are never re-serialized: new entries are spliced
in as text, so comments, attribute order and whitespace stay as they were.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import tempfile
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any
from xml.etree import ElementTree as ET
from xml.parsers import expat
from xml.sax.saxutils import escape

from core.catalog.coverage import CoverageIndex
from core.catalog.loader import ITEM_TAG, build_coverage_index
from core.catalog.models import (
    AugmentOptions,
    AugmentSummary,
    CandidateGroup,
    CandidateTriplet,
)
from core.report.models import canonical_values, cell_text, parse_positive_int
from core.report.reader import read_report
from core.utils.errors import BackupError, CatalogError, CatalogWriteError
from core.utils.events import log_event

logger = logging.getLogger("mapgaps.augment")

ROOT_TAG = "items"
BEGIN_MARKER = " BEGIN auto-appended by mapgaps augment "
END_MARKER = " END auto-appended by mapgaps augment "
BACKUP_TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"

ProgressMessage = Callable[[str], None]

_DECLARED_ENCODING_RE = re.compile(rb"""^\s*<\?xml[^>]*\bencoding\s*=\s*["']([A-Za-z0-9._-]+)["']""")
_ROOT_SELF_CLOSING_RE = re.compile(rb"""<items((?:\s+[^\s=/>]+\s*=\s*(?:"[^"]*"|'[^']*'))*)\s*/>""")
_ITEM_INDENT_RE = re.compile(rb"\n([ \t]+)<item\b")


@dataclass
class CatalogDocument:
    """Raw catalog bytes plus what was learned from parsing them."""

    path: Path
    raw: bytes
    encoding: str
    index: CoverageIndex
    root_start: int
    root_close: int


def augment_catalog(options: AugmentOptions, progress: ProgressMessage | None = None) -> AugmentSummary:
    """Run one augmentation and return its summary."""

    notify = progress or _ignore
    if not options.catalog_path.is_file():
        raise CatalogError(f"Catalog not found: {options.catalog_path}", path=options.catalog_path)
    rows = read_report(options.report_path, options.sheet_index, options.csv_delimiter)

    working = resolve_working_file(options.catalog_path, options.output_path)
    if working != options.catalog_path:
        notify(f"copied catalog to output: {working}")

    notify("[1/4] loading catalog")
    document = load_catalog_document(working)

    notify(f"[2/4] reading report: {options.report_path}")
    triplets, considered = collect_candidates(
        rows, document.index, row_chunk=options.row_chunk, progress=notify
    )
    notify(f"  scanned total {considered} rows")

    groups: list[CandidateGroup] = []
    if triplets:
        notify("[3/4] grouping consecutive ids with equal (article, name)")
        groups = group_triplets(sorted(triplets, key=lambda triplet: triplet.id))

    summary = AugmentSummary(
        working_catalog=str(working),
        considered_rows=considered,
        candidate_ids=len(triplets),
        groups=len(groups),
        appended_entries=0,
        dry_run=options.dry_run,
    )

    if not groups:
        notify("no candidates to append")
        log_event(logger, logging.INFO, "augment_noop", **summary.model_dump(mode="json"))
        return summary

    if options.dry_run:
        notify(f"dry-run: {len(groups)} group(s), {len(triplets)} candidate id(s)")
        log_event(logger, logging.INFO, "augment_dry_run", **summary.model_dump(mode="json"))
        return summary

    notify("[4/4] appending groups to catalog")
    backup_path: Path | None = None
    if options.backup:
        backup_path = create_backup(working)
        notify(f"  backup created: {backup_path}")

    updated = append_groups(document, groups)
    try:
        ET.fromstring(updated)
    except ET.ParseError as exc:
        raise CatalogError(f"Appended catalog is not well-formed: {working}: {exc}", path=working) from exc
    save_catalog(working, updated)

    summary.appended_entries = len(groups)
    summary.backup_path = str(backup_path) if backup_path is not None else None
    log_event(logger, logging.INFO, "augment_done", **summary.model_dump(mode="json"))
    return summary


def resolve_working_file(catalog_path: Path, output_path: Path | None) -> Path:
    """Return the file to mutate; copies the catalog first when an output path is given."""

    if output_path is None or str(output_path) == "":
        return catalog_path
    if output_path.exists() and output_path.resolve() == catalog_path.resolve():
        return catalog_path

    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(catalog_path, output_path)
    except OSError as exc:
        raise CatalogWriteError(
            f"Failed to copy catalog to output: {output_path}: {exc}", path=output_path
        ) from exc
    return output_path


def load_catalog_document(path: Path) -> CatalogDocument:
    """Fully parse the catalog before anything is mutated."""

    try:
        raw = path.read_bytes()
    except OSError as exc:
        raise CatalogError(f"Cannot read catalog: {path}: {exc}", path=path) from exc

    try:
        root = ET.fromstring(raw)
    except ET.ParseError as exc:
        raise CatalogError(f"Failed to parse catalog XML: {path}: {exc}", path=path) from exc
    if root.tag != ROOT_TAG:
        raise CatalogError(f"<{ROOT_TAG}> root not found in catalog: {path}", path=path)

    encoding = _declared_encoding(raw)
    if encoding.replace("-", "").replace("_", "").startswith(("utf16", "utf32")):
        raise CatalogError(f"Unsupported catalog encoding {encoding}: {path}", path=path)

    index = build_coverage_index(element.attrib for element in root.iter(ITEM_TAG))
    root_start, root_close = _locate_root(raw, path)
    return CatalogDocument(
        path=path,
        raw=raw,
        encoding=encoding,
        index=index,
        root_start=root_start,
        root_close=root_close,
    )


def collect_candidates(
    rows: Iterable[Mapping[str, Any]],
    index: CoverageIndex,
    *,
    row_chunk: int = 5000,
    progress: ProgressMessage | None = None,
) -> tuple[list[CandidateTriplet], int]:
    """Return ``(candidates, scanned_rows)``; an id seen twice keeps its first row."""

    row_chunk = max(1, row_chunk)
    triplets: list[CandidateTriplet] = []
    seen: set[int] = set()
    scanned = 0
    for raw in rows:
        scanned += 1
        if progress is not None and scanned % row_chunk == 0:
            progress(f"  scanned {scanned} rows")

        values = canonical_values(raw)
        item_id = parse_positive_int(values.get("id"))
        if item_id is None:
            continue
        name = cell_text(values.get("name")).strip()
        if not name:
            continue
        if item_id in seen or index.exists(item_id):
            continue

        seen.add(item_id)
        triplets.append(
            CandidateTriplet(id=item_id, article=cell_text(values.get("article")).strip(), name=name)
        )
    return triplets, scanned


def group_triplets(triplets: Sequence[CandidateTriplet]) -> list[CandidateGroup]:
    """Coalesce id-sorted triplets into single and range groups.

    A run continues while the next id is exactly previous + 1 and
    ``(article, name)`` is unchanged; runs of two or more become ranges.
    """

    groups: list[CandidateGroup] = []
    position = 0
    total = len(triplets)
    while position < total:
        first = triplets[position]
        end = position + 1
        while end < total:
            candidate = triplets[end]
            if (candidate.article, candidate.name) != (first.article, first.name):
                break
            if candidate.id != triplets[end - 1].id + 1:
                break
            end += 1

        last = triplets[end - 1]
        groups.append(
            CandidateGroup(
                kind="range" if end - position >= 2 else "single",
                from_id=first.id,
                to_id=last.id,
                article=first.article,
                name=first.name,
            )
        )
        position = end
    return groups


def create_backup(path: Path, *, now: datetime | None = None) -> Path:
    """Copy ``path`` to ``<path>.bak.<YYYYMMDD_HHMMSS>``."""

    stamp = (now or datetime.now()).strftime(BACKUP_TIMESTAMP_FORMAT)
    backup_path = path.with_name(f"{path.name}.bak.{stamp}")
    try:
        shutil.copy2(path, backup_path)
    except OSError as exc:
        raise BackupError(f"Failed to create backup: {backup_path}: {exc}", path=backup_path) from exc
    return backup_path


def append_groups(document: CatalogDocument, groups: Sequence[CandidateGroup]) -> bytes:
    """Return the catalog bytes with a marked block of new entries before the root close tag."""

    newline = "\r\n" if b"\r\n" in document.raw else "\n"
    indent_match = _ITEM_INDENT_RE.search(document.raw)
    indent = indent_match.group(1).decode("ascii") if indent_match else "\t"

    lines = [f"{indent}<!--{BEGIN_MARKER}-->"]
    for group in sorted(groups, key=lambda group: group.min_id):
        lines.append(f"{indent}{render_entry(group)}")
    lines.append(f"{indent}<!--{END_MARKER}-->")
    block = (newline + newline.join(lines) + newline).encode(
        document.encoding, errors="xmlcharrefreplace"
    )

    raw = document.raw
    self_closing = _ROOT_SELF_CLOSING_RE.match(raw, document.root_start)
    if self_closing is not None:
        opening = b"<items" + self_closing.group(1) + b">"
        return raw[: self_closing.start()] + opening + block + b"</items>" + raw[self_closing.end() :]

    if not raw.startswith(b"</items", document.root_close):
        raise CatalogError(
            f"<{ROOT_TAG}> close tag not found in catalog: {document.path}", path=document.path
        )
    return raw[: document.root_close] + block + raw[document.root_close :]


def render_entry(group: CandidateGroup) -> str:
    if group.kind == "range":
        attributes = [("fromid", str(group.from_id)), ("toid", str(group.to_id))]
    else:
        attributes = [("id", str(group.from_id))]
    if group.article:
        attributes.append(("article", group.article))
    attributes.append(("name", group.name))
    rendered = " ".join(f'{key}="{_escape_attr(value)}"' for key, value in attributes)
    return f"<{ITEM_TAG} {rendered} />"


def save_catalog(path: Path, payload: bytes) -> None:
    """Replace ``path`` atomically with ``payload``."""

    fd, raw_tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f"{path.name}.", suffix=".tmp")
    os.close(fd)
    tmp_path = Path(raw_tmp_path)
    try:
        tmp_path.write_bytes(payload)
        shutil.copymode(path, tmp_path)
        tmp_path.replace(path)
    except OSError as exc:
        tmp_path.unlink(missing_ok=True)
        raise CatalogWriteError(f"Failed to save catalog: {path}: {exc}", path=path) from exc


def _locate_root(raw: bytes, path: Path) -> tuple[int, int]:
    """Byte offsets of the root start tag and of the event that closes the root element."""

    parser = expat.ParserCreate()
    offsets: dict[str, int] = {}
    depth = 0

    def _start(_name: str, _attributes: dict[str, str]) -> None:
        nonlocal depth
        if depth == 0:
            offsets["start"] = parser.CurrentByteIndex
        depth += 1

    def _end(_name: str) -> None:
        nonlocal depth
        depth -= 1
        if depth == 0:
            offsets["close"] = parser.CurrentByteIndex

    parser.StartElementHandler = _start
    parser.EndElementHandler = _end
    try:
        parser.Parse(raw, True)
    except expat.ExpatError as exc:
        raise CatalogError(f"Failed to parse catalog XML: {path}: {exc}", path=path) from exc
    return offsets["start"], offsets["close"]


def _declared_encoding(raw: bytes) -> str:
    match = _DECLARED_ENCODING_RE.match(raw)
    if match is None:
        return "utf-8"
    return match.group(1).decode("ascii").lower()


def _escape_attr(value: str) -> str:
    return escape(value, {'"': "&quot;", "\n": "&#10;", "\r": "&#13;", "\t": "&#9;"})


def _ignore(_: str) -> None:
    return None
