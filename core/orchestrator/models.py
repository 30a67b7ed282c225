"""Summaries returned by the scan and merge pipelines."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class ScanSummary(BaseModel):
    """Outcome of one map scan."""

    model_config = ConfigDict(extra="forbid")

    output_path: str
    report_format: str
    record_source: str
    records_processed: int
    sampled: bool
    uncovered_ids: int
    exported_rows: int
    catalog_covered_ids: int


class MergeSummary(BaseModel):
    """Outcome of one report merge."""

    model_config = ConfigDict(extra="forbid")

    output_path: str
    report_format: str
    base_rows: int
    other_rows: int
    merged_rows: int
    exported_rows: int
