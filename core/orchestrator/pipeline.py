"""Scan and merge pipelines used by the CLI."""

from __future__ import annotations

import logging
import tempfile
import time
from contextlib import closing
from collections.abc import Callable, Iterable
from pathlib import Path

from core.catalog.loader import load_coverage_index
from core.config.settings import DecoderSettings
from core.mapscan.counter import DEFAULT_TICK_EVERY, ItemOccurrenceCounter
from core.mapscan.decoder import run_decoder
from core.mapscan.records import open_record_stream
from core.orchestrator.models import MergeSummary, ScanSummary
from core.report.merger import merge_reports
from core.report.models import SortOrder
from core.report.reader import read_report
from core.report.writer import ReportFormat, write_report
from core.utils.events import elapsed_ms, log_event

logger = logging.getLogger("mapgaps.scan")
merge_logger = logging.getLogger("mapgaps.merge")

DECODED_RECORDS_NAME = "map-items.ndjson"

ProgressMessage = Callable[[str], None]


def run_scan(
    *,
    catalog_path: Path,
    output_path: Path,
    report_format: ReportFormat,
    decoder: DecoderSettings,
    map_path: Path | None = None,
    record_path: Path | None = None,
    sort: SortOrder = "occurrences",
    sample_limit: int | None = None,
    tick_every: int = DEFAULT_TICK_EVERY,
    excluded_ids: Iterable[int] | None = None,
    image_dir: Path | None = None,
    progress: ProgressMessage | None = None,
) -> ScanSummary:
    """Decoder -> record stream -> occurrence counter -> exclusion filter -> report.

    ``record_path`` skips the decoder and reads an existing NDJSON (or full
    ``.json`` map document) instead of converting ``map_path``.
    """

    if record_path is None and map_path is None:
        raise ValueError("Either map_path or record_path is required")

    notify = progress or (lambda _: None)
    start = time.perf_counter()

    notify("[1/4] building catalog index")
    index = load_coverage_index(catalog_path)
    log_event(logger, logging.INFO, "index_built", catalog=str(catalog_path), covered_ids=len(index))

    with tempfile.TemporaryDirectory(prefix="mapgaps-") as tmp_dir:
        source = record_path
        if source is None:
            assert map_path is not None
            notify("[2/4] converting map with external decoder")
            source = run_decoder(
                decoder.command,
                map_path=map_path,
                output_path=Path(tmp_dir) / DECODED_RECORDS_NAME,
                tools_dir=decoder.tools_dir,
                memory_limit_mb=decoder.memory_limit_mb,
                progress=notify,
            )
            log_event(logger, logging.INFO, "decoder_done", map=str(map_path), elapsed_ms=elapsed_ms(start))
        else:
            notify(f"[2/4] using record file: {record_path}")

        notify("[3/4] counting items missing from the catalog")

        def _tick(processed: int) -> None:
            notify(f"  processed {processed} records")
            log_event(logger, logging.INFO, "progress", processed=processed)

        counter = ItemOccurrenceCounter()
        with closing(open_record_stream(source)) as records:
            counter.count(
                records,
                index,
                sample_limit=sample_limit,
                tick=_tick,
                tick_every=tick_every,
            )

    if counter.truncated:
        notify(f"  sampling: stopped after {counter.processed} records")

    notify(f"[4/4] exporting {report_format} report: {output_path}")
    exported = write_report(
        counter.result(sort),
        output_path,
        report_format,
        excluded_ids=excluded_ids,
        image_dir=image_dir,
    )

    summary = ScanSummary(
        output_path=str(output_path),
        report_format=report_format,
        record_source=str(record_path) if record_path is not None else str(map_path),
        records_processed=counter.processed,
        sampled=counter.truncated,
        uncovered_ids=counter.uncovered_ids,
        exported_rows=exported,
        catalog_covered_ids=len(index),
    )
    log_event(
        logger,
        logging.INFO,
        "scan_done",
        outcome="ok",
        elapsed_ms=elapsed_ms(start),
        **summary.model_dump(mode="json"),
    )
    return summary


def run_merge(
    *,
    base_path: Path,
    other_path: Path,
    output_path: Path,
    report_format: ReportFormat,
    sort: SortOrder = "occurrences",
    base_delimiter: str = ",",
    other_delimiter: str = ",",
    excluded_ids: Iterable[int] | None = None,
    image_dir: Path | None = None,
    progress: ProgressMessage | None = None,
) -> MergeSummary:
    """Read two reports, merge them by id, and write the result."""

    notify = progress or (lambda _: None)

    notify(f"[1/4] reading base report: {base_path}")
    base_rows = list(read_report(base_path, 0, base_delimiter))
    notify(f"  base rows: {len(base_rows)}")

    notify(f"[2/4] reading other report: {other_path}")
    other_rows = list(read_report(other_path, 0, other_delimiter))
    notify(f"  other rows: {len(other_rows)}")

    notify(f"[3/4] merging and sorting ({sort})")
    merged = list(merge_reports(base_rows, other_rows, sort))
    notify(f"  result rows: {len(merged)}")

    notify(f"[4/4] writing output: {output_path}")
    exported = write_report(
        merged,
        output_path,
        report_format,
        excluded_ids=excluded_ids,
        image_dir=image_dir,
    )
    summary = MergeSummary(
        output_path=str(output_path),
        report_format=report_format,
        base_rows=len(base_rows),
        other_rows=len(other_rows),
        merged_rows=len(merged),
        exported_rows=exported,
    )
    log_event(merge_logger, logging.INFO, "merge_done", outcome="ok", **summary.model_dump(mode="json"))
    return summary
