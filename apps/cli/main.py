"""Typer CLI entrypoint for mapgaps."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated, cast

import typer

from apps.cli.format_human import (
    render_augment_summary,
    render_merge_summary,
    render_scan_summary,
)
from apps.cli.io import (
    default_merge_output,
    default_scan_output,
    enforce_report_suffix,
    find_default_report,
    is_same_file,
    write_summary_json_atomic,
)
from core.catalog.augmenter import augment_catalog
from core.catalog.models import AugmentOptions
from core.config.settings import AppSettings, load_settings
from core.orchestrator.pipeline import run_merge, run_scan
from core.report.models import SORT_ORDERS, SortOrder
from core.report.writer import REPORT_FORMATS, ReportFormat, infer_report_format
from core.utils.errors import (
    BackupError,
    CatalogError,
    CatalogWriteError,
    DecoderError,
    RecordSourceError,
    ReportFormatError,
)
from core.utils.events import configure_file_logging, detach_handler, log_event

app = typer.Typer(help="Map item gaps CLI", rich_markup_mode=None)
logger = logging.getLogger("mapgaps.cli")

EXIT_ERROR = 1
EXIT_MISSING_INPUT = 2
EXIT_INVALID_INPUT = 3
EXIT_WRITE_FAILED = 4
EXIT_DECODER_FAILED = 5

ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", help="Settings YAML (defaults to the bundled settings)."),
]
SummaryJsonOption = Annotated[
    Path | None,
    typer.Option("--summary-json", help="Also write the command summary as JSON."),
]
LogFileOption = Annotated[
    Path | None,
    typer.Option("--log-file", help="JSON-lines log file (defaults to the configured log file)."),
]


@app.callback()
def cli_callback() -> None:
    """CLI root callback to keep subcommands explicit."""


@app.command("scan")
def scan_command(
    items_xml: Annotated[Path | None, typer.Option(help="Catalog (items.xml) path.")] = None,
    map_path: Annotated[Path | None, typer.Option("--map", help="Map file to decode.")] = None,
    records: Annotated[
        Path | None,
        typer.Option(help="Existing NDJSON/JSON record file; skips the external decoder."),
    ] = None,
    report_format: Annotated[str | None, typer.Option("--format", help="csv|xlsx")] = None,
    output: Annotated[Path | None, typer.Option()] = None,
    tools_dir: Annotated[Path | None, typer.Option()] = None,
    memory_limit_mb: Annotated[int | None, typer.Option()] = None,
    sample: Annotated[
        int | None,
        typer.Option(help="Sampling: stop after N map records (quick dry run)."),
    ] = None,
    sort: Annotated[str | None, typer.Option(help="occurrences|id-asc")] = None,
    image_dir: Annotated[Path | None, typer.Option(help="Directory with <id>.png icons (xlsx).")] = None,
    log_file: LogFileOption = None,
    config: ConfigOption = None,
    summary_json: SummaryJsonOption = None,
) -> None:
    """Report item ids used on the map that the catalog does not define."""

    settings = _load_settings_or_exit(config)

    format_typed: ReportFormat
    if report_format is None and output is not None:
        format_typed = infer_report_format(output, default=settings.scan.format)
    else:
        chosen_format = _normalize_choice(report_format or settings.scan.format, REPORT_FORMATS, "--format")
        format_typed = cast(ReportFormat, chosen_format)
    sort_typed = cast(SortOrder, _normalize_choice(sort or settings.scan.sort, SORT_ORDERS, "--sort"))
    if sample is not None and sample < 1:
        typer.echo("ERROR: --sample must be an integer >= 1.")
        raise typer.Exit(code=EXIT_ERROR)
    if memory_limit_mb is not None and memory_limit_mb < 64:
        typer.echo("ERROR: --memory-limit-mb must be >= 64.")
        raise typer.Exit(code=EXIT_ERROR)

    catalog_path = items_xml or settings.paths.items_xml
    if not catalog_path.is_file():
        typer.echo(f"ERROR: catalog not found: {catalog_path}")
        raise typer.Exit(code=EXIT_MISSING_INPUT)

    source_map = map_path or settings.paths.map
    if records is not None:
        if not records.is_file():
            typer.echo(f"ERROR: record file not found: {records}")
            raise typer.Exit(code=EXIT_MISSING_INPUT)
    elif not source_map.is_file():
        typer.echo(f"ERROR: map file not found: {source_map}")
        raise typer.Exit(code=EXIT_MISSING_INPUT)

    output_path = enforce_report_suffix(
        output or default_scan_output(settings, format_typed), format_typed
    )
    decoder = settings.decoder.model_copy(
        update={
            key: value
            for key, value in (("tools_dir", tools_dir), ("memory_limit_mb", memory_limit_mb))
            if value is not None
        }
    )

    handler = configure_file_logging(log_file or settings.paths.log_file)
    log_event(
        logger,
        logging.INFO,
        "scan_start",
        items_xml=str(catalog_path),
        map=None if records is not None else str(source_map),
        records=str(records) if records is not None else None,
        format=format_typed,
        output=str(output_path),
        sample=sample,
    )

    exit_code = EXIT_ERROR
    try:
        summary = run_scan(
            catalog_path=catalog_path,
            map_path=None if records is not None else source_map,
            record_path=records,
            output_path=output_path,
            report_format=format_typed,
            decoder=decoder,
            sort=sort_typed,
            sample_limit=sample,
            tick_every=settings.scan.tick_every,
            excluded_ids=settings.excluded_ids,
            image_dir=image_dir,
            progress=_echo_step,
        )
        typer.echo(render_scan_summary(summary))
        if summary_json is not None:
            write_summary_json_atomic(summary_json, summary.model_dump(mode="json"))
        exit_code = 0
    except Exception as exc:  # noqa: BLE001
        exit_code = _report_failure("scan", exc)
    finally:
        detach_handler(handler)

    if exit_code == 0:
        typer.echo("INFO: success")
    raise typer.Exit(code=exit_code)


@app.command("augment")
def augment_command(
    items_xml: Annotated[Path | None, typer.Option(help="Catalog (items.xml) to modify.")] = None,
    output: Annotated[
        Path | None,
        typer.Option(help="Work on a copy written here instead of modifying the source."),
    ] = None,
    report: Annotated[
        Path | None,
        typer.Option(help="Filled report (xlsx or csv). Defaults to the scan output."),
    ] = None,
    csv_delimiter: Annotated[str | None, typer.Option()] = None,
    sheet: Annotated[int | None, typer.Option(help="0-based sheet index for xlsx.")] = None,
    row_chunk: Annotated[int | None, typer.Option(help="Progress granularity in rows.")] = None,
    dry_run: Annotated[
        bool, typer.Option("--dry-run", help="Preview without writing the catalog.")
    ] = False,
    no_backup: Annotated[
        bool, typer.Option("--no-backup", help="Skip the timestamped backup.")
    ] = False,
    log_file: LogFileOption = None,
    config: ConfigOption = None,
    summary_json: SummaryJsonOption = None,
) -> None:
    """Append named report rows to the catalog as new item entries."""

    settings = _load_settings_or_exit(config)

    catalog_path = items_xml or settings.paths.items_xml
    if not catalog_path.is_file():
        typer.echo(f"ERROR: catalog not found: {catalog_path}")
        raise typer.Exit(code=EXIT_MISSING_INPUT)

    report_path = report or find_default_report(settings)
    if report_path is None:
        typer.echo("ERROR: report not specified and no default report found.")
        raise typer.Exit(code=EXIT_MISSING_INPUT)
    if not report_path.is_file():
        typer.echo(f"ERROR: report not found: {report_path}")
        raise typer.Exit(code=EXIT_MISSING_INPUT)

    delimiter = csv_delimiter if csv_delimiter is not None else settings.augment.csv_delimiter
    if len(delimiter) != 1:
        typer.echo("ERROR: --csv-delimiter must be a single character.")
        raise typer.Exit(code=EXIT_ERROR)

    options = AugmentOptions(
        catalog_path=catalog_path,
        report_path=report_path,
        output_path=output,
        sheet_index=max(0, sheet if sheet is not None else settings.augment.sheet),
        csv_delimiter=delimiter,
        row_chunk=max(1, row_chunk if row_chunk is not None else settings.augment.row_chunk),
        dry_run=dry_run,
        backup=not no_backup,
    )

    handler = configure_file_logging(log_file or settings.paths.log_file)
    typer.echo("INFO: augmenting catalog")
    exit_code = EXIT_ERROR
    try:
        summary = augment_catalog(options, progress=_echo_step)
        typer.echo(render_augment_summary(summary))
        if summary_json is not None:
            write_summary_json_atomic(summary_json, summary.model_dump(mode="json"))
        exit_code = 0
    except Exception as exc:  # noqa: BLE001
        exit_code = _report_failure("augment", exc)
    finally:
        detach_handler(handler)

    if exit_code == 0:
        typer.echo("INFO: success")
    raise typer.Exit(code=exit_code)


@app.command("merge")
def merge_command(
    base: Annotated[Path, typer.Option(exists=True, dir_okay=False, file_okay=True)],
    other: Annotated[Path, typer.Option(exists=True, dir_okay=False, file_okay=True)],
    report_format: Annotated[
        str | None, typer.Option("--format", help="csv|xlsx (inferred from --output).")
    ] = None,
    output: Annotated[Path | None, typer.Option()] = None,
    image_dir: Annotated[Path | None, typer.Option(help="Directory with <id>.png icons (xlsx).")] = None,
    csv_delimiter_base: Annotated[str, typer.Option()] = ",",
    csv_delimiter_other: Annotated[str, typer.Option()] = ",",
    sort: Annotated[str, typer.Option(help="occurrences|id-asc")] = "occurrences",
    log_file: LogFileOption = None,
    config: ConfigOption = None,
    summary_json: SummaryJsonOption = None,
) -> None:
    """Merge two scan reports by id, preferring rows that carry a name."""

    settings = _load_settings_or_exit(config)
    sort_typed = cast(SortOrder, _normalize_choice(sort, SORT_ORDERS, "--sort"))

    format_typed: ReportFormat = "xlsx"
    if report_format is not None:
        chosen_format = _normalize_choice(report_format, REPORT_FORMATS, "--format")
        format_typed = cast(ReportFormat, chosen_format)
        output_path = output or default_merge_output(settings, format_typed)
    elif output is not None:
        format_typed = infer_report_format(output)
        output_path = enforce_report_suffix(output, format_typed)
    else:
        output_path = default_merge_output(settings, format_typed)

    if output_path.exists() and (
        is_same_file(output_path, base) or is_same_file(output_path, other)
    ):
        typer.echo("ERROR: output must be different from input files.")
        raise typer.Exit(code=EXIT_ERROR)

    for option_name, value in (
        ("--csv-delimiter-base", csv_delimiter_base),
        ("--csv-delimiter-other", csv_delimiter_other),
    ):
        if len(value) != 1:
            typer.echo(f"ERROR: {option_name} must be a single character.")
            raise typer.Exit(code=EXIT_ERROR)

    handler = configure_file_logging(log_file or settings.paths.log_file)
    typer.echo("INFO: merging reports")
    exit_code = EXIT_ERROR
    try:
        summary = run_merge(
            base_path=base,
            other_path=other,
            output_path=output_path,
            report_format=format_typed,
            sort=sort_typed,
            base_delimiter=csv_delimiter_base,
            other_delimiter=csv_delimiter_other,
            excluded_ids=settings.excluded_ids,
            image_dir=image_dir,
            progress=_echo_step,
        )
        typer.echo(render_merge_summary(summary))
        if summary_json is not None:
            write_summary_json_atomic(summary_json, summary.model_dump(mode="json"))
        exit_code = 0
    except Exception as exc:  # noqa: BLE001
        exit_code = _report_failure("merge", exc)
    finally:
        detach_handler(handler)

    if exit_code == 0:
        typer.echo("INFO: success")
    raise typer.Exit(code=exit_code)


def _load_settings_or_exit(path: Path | None) -> AppSettings:
    try:
        return load_settings(path)
    except ValueError as exc:
        typer.echo(f"ERROR: {exc}")
        raise typer.Exit(code=EXIT_ERROR) from exc


def _normalize_choice(value: str, allowed: tuple[str, ...], option_name: str) -> str:
    normalized = value.lower().strip()
    if normalized not in allowed:
        typer.echo(f"ERROR: {option_name} must be one of: {', '.join(allowed)}.")
        raise typer.Exit(code=EXIT_ERROR)
    return normalized


def _echo_step(message: str) -> None:
    typer.echo(f"  - {message}")


def _report_failure(command: str, exc: Exception) -> int:
    exit_code = _exit_code_for(exc)
    typer.echo(f"ERROR: {type(exc).__name__}: {exc}")
    if isinstance(exc, DecoderError) and exc.stderr_tail:
        typer.echo(exc.stderr_tail.rstrip())
    log_event(
        logger,
        logging.ERROR,
        f"{command}_failed",
        outcome="error",
        error_type=type(exc).__name__,
        error_message=str(exc),
        exit_code=exit_code,
    )
    return exit_code


def _exit_code_for(exc: Exception) -> int:
    if isinstance(exc, RecordSourceError):
        return EXIT_MISSING_INPUT
    if isinstance(exc, CatalogError | ReportFormatError):
        return EXIT_INVALID_INPUT
    if isinstance(exc, BackupError | CatalogWriteError | OSError):
        return EXIT_WRITE_FAILED
    if isinstance(exc, DecoderError):
        return EXIT_DECODER_FAILED
    return EXIT_ERROR


def main() -> None:
    """Console script entrypoint."""

    app()


if __name__ == "__main__":
    main()
