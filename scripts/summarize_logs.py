#!/usr/bin/env python3
"""Summarize mapgaps JSON line logs."""

from __future__ import annotations

import argparse
import json
import math
from collections import Counter
from pathlib import Path
from typing import Any


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Summarize mapgaps structured logs.")
    parser.add_argument("files", nargs="+", help="One or more JSONL log files.")
    parser.add_argument("--json", action="store_true", help="Output JSON.")
    return parser.parse_args()


def _percentile(values: list[int], p: float) -> int | None:
    if not values:
        return None
    ordered = sorted(values)
    index = min(len(ordered) - 1, max(0, math.ceil((p / 100) * len(ordered)) - 1))
    return ordered[index]


def summarize_log_files(paths: list[Path]) -> dict[str, Any]:
    event_counts: Counter[str] = Counter()
    outcome_counts: Counter[str] = Counter()
    error_types: Counter[str] = Counter()
    elapsed_values: list[int] = []
    records_processed = 0
    parse_errors = 0
    lines_total = 0

    for path in paths:
        try:
            lines = path.read_text(encoding="utf-8").splitlines()
        except Exception:  # noqa: BLE001
            parse_errors += 1
            continue

        for line in lines:
            lines_total += 1
            raw = line.strip()
            if not raw:
                continue

            try:
                payload = json.loads(raw)
            except Exception:  # noqa: BLE001
                parse_errors += 1
                continue

            if not isinstance(payload, dict):
                parse_errors += 1
                continue

            event = payload.get("event")
            if isinstance(event, str):
                event_counts[event] += 1

            outcome = payload.get("outcome")
            if isinstance(outcome, str):
                outcome_counts[outcome] += 1

            error_type = payload.get("error_type")
            if isinstance(error_type, str):
                error_types[error_type] += 1

            if event == "scan_done":
                elapsed = payload.get("elapsed_ms")
                if isinstance(elapsed, int | float):
                    elapsed_values.append(int(elapsed))
                processed = payload.get("records_processed")
                if isinstance(processed, int):
                    records_processed += processed

    return {
        "files": [str(path) for path in paths],
        "lines_total": lines_total,
        "parse_errors": parse_errors,
        "event_counts": dict(sorted(event_counts.items())),
        "outcome_counts": dict(sorted(outcome_counts.items())),
        "error_type_counts": dict(sorted(error_types.items())),
        "records_processed_total": records_processed,
        "scan_elapsed_ms_p50": _percentile(elapsed_values, 50),
        "scan_elapsed_ms_p95": _percentile(elapsed_values, 95),
    }


def main() -> None:
    args = _parse_args()
    paths = [Path(item).expanduser() for item in args.files]
    summary = summarize_log_files(paths)

    if args.json:
        print(json.dumps(summary, ensure_ascii=False, indent=2, sort_keys=True))
        return

    print("mapgaps Log Summary")
    print(f"files={len(summary['files'])}")
    print(f"lines_total={summary['lines_total']}")
    print(f"parse_errors={summary['parse_errors']}")
    print(f"event_counts={summary['event_counts']}")
    print(f"outcome_counts={summary['outcome_counts']}")
    print(f"error_type_counts={summary['error_type_counts']}")
    print(f"records_processed_total={summary['records_processed_total']}")
    print(f"scan_elapsed_ms_p50={summary['scan_elapsed_ms_p50']}")
    print(f"scan_elapsed_ms_p95={summary['scan_elapsed_ms_p95']}")


if __name__ == "__main__":
    main()
