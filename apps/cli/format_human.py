"""Human-readable summaries for CLI output."""

from __future__ import annotations

from core.catalog.models import AugmentSummary
from core.orchestrator.models import MergeSummary, ScanSummary


def render_scan_summary(summary: ScanSummary) -> str:
    lines = [
        "scan_summary:",
        f"records_processed={summary.records_processed} sampled={summary.sampled}",
        f"catalog_covered_ids={summary.catalog_covered_ids}",
        f"uncovered_ids={summary.uncovered_ids} exported_rows={summary.exported_rows}",
        f"saved: {summary.output_path} ({summary.report_format})",
    ]
    if summary.uncovered_ids > summary.exported_rows:
        lines.append(f"excluded_rows={summary.uncovered_ids - summary.exported_rows}")
    return "\n".join(lines)


def render_augment_summary(summary: AugmentSummary) -> str:
    lines = [
        "augment_summary:",
        f"rows_scanned={summary.considered_rows} candidate_ids={summary.candidate_ids} "
        f"groups={summary.groups} appended_entries={summary.appended_entries}",
    ]
    if summary.dry_run:
        lines.append("DRY-RUN, no changes written.")
    elif summary.appended_entries:
        lines.append(f"changes appended. working file: {summary.working_catalog}")
        if summary.backup_path:
            lines.append(f"backup: {summary.backup_path}")
    else:
        lines.append("nothing to append.")
    return "\n".join(lines)


def render_merge_summary(summary: MergeSummary) -> str:
    return "\n".join(
        [
            "merge_summary:",
            f"base_rows={summary.base_rows} other_rows={summary.other_rows} "
            f"merged_rows={summary.merged_rows} exported_rows={summary.exported_rows}",
            f"saved: {summary.output_path} ({summary.report_format})",
        ]
    )
