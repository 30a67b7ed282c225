"""JSON-line event logging shared by CLI commands."""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Any

_HANDLER_MARK = "_mapgaps_file_handler"


def log_event(logger: logging.Logger, level: int, event: str, **fields: Any) -> None:
    """Emit one compact JSON object as the log message."""

    payload = {"event": event, **fields}
    logger.log(level, _dump_json(payload))


def configure_file_logging(path: Path, *, level: int = logging.INFO) -> logging.Handler:
    """Attach a file handler writing JSON lines to ``path`` for all mapgaps loggers.

    Re-configuring with the same path reuses the existing handler.
    """

    root = logging.getLogger("mapgaps")
    resolved = path.resolve()
    for handler in root.handlers:
        if getattr(handler, _HANDLER_MARK, None) == resolved:
            return handler

    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setFormatter(logging.Formatter("%(message)s"))
    setattr(handler, _HANDLER_MARK, resolved)
    root.addHandler(handler)
    root.setLevel(min(root.level or level, level))
    return handler


def detach_handler(handler: logging.Handler) -> None:
    logging.getLogger("mapgaps").removeHandler(handler)
    handler.close()


def elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


def _dump_json(payload: dict[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=False, sort_keys=True, separators=(",", ":"), default=str)
