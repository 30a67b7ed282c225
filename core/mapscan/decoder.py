"""Run the external map decoder that produces an item record file."""

from __future__ import annotations

import subprocess
from collections.abc import Callable, Sequence
from pathlib import Path

from core.utils.errors import DecoderError

_STDERR_TAIL_CHARS = 2000


def render_command(
    template: Sequence[str],
    *,
    map_path: Path,
    output_path: Path,
    tools_dir: Path,
    memory_limit_mb: int,
) -> list[str]:
    """Substitute ``{map}``, ``{output}``, ``{tools_dir}``, ``{memory_limit_mb}`` in each argument."""

    values = {
        "map": str(map_path),
        "output": str(output_path),
        "tools_dir": str(tools_dir),
        "memory_limit_mb": str(memory_limit_mb),
    }
    try:
        return [part.format(**values) for part in template]
    except (KeyError, IndexError, ValueError) as exc:
        raise DecoderError(f"Invalid decoder command template: {list(template)}") from exc


def run_decoder(
    template: Sequence[str],
    *,
    map_path: Path,
    output_path: Path,
    tools_dir: Path,
    memory_limit_mb: int,
    progress: Callable[[str], None] | None = None,
) -> Path:
    """Convert ``map_path`` into a record file at ``output_path``.

    When the template has no ``{output}`` placeholder, the decoder's stdout is
    written to ``output_path`` instead.
    """

    if not template:
        raise DecoderError("Decoder command is empty")
    if not map_path.is_file():
        raise DecoderError(f"Map file not found: {map_path}")

    command = render_command(
        template,
        map_path=map_path,
        output_path=output_path,
        tools_dir=tools_dir,
        memory_limit_mb=memory_limit_mb,
    )
    writes_output = any("{output}" in part for part in template)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    if progress is not None:
        progress(f"launching decoder: {command[0]}")

    try:
        if writes_output:
            completed = subprocess.run(command, capture_output=True, check=False)
        else:
            with output_path.open("wb") as handle:
                completed = subprocess.run(
                    command, stdout=handle, stderr=subprocess.PIPE, check=False
                )
    except FileNotFoundError as exc:
        raise DecoderError(f"Decoder executable not found: {command[0]}") from exc
    except OSError as exc:
        raise DecoderError(f"Decoder could not be started: {exc}") from exc

    if completed.returncode != 0:
        stderr_tail = (completed.stderr or b"").decode("utf-8", errors="replace")[
            -_STDERR_TAIL_CHARS:
        ]
        raise DecoderError(
            f"Decoder failed with exit code {completed.returncode}",
            returncode=completed.returncode,
            stderr_tail=stderr_tail,
        )

    if not output_path.is_file():
        raise DecoderError(f"Decoder did not produce output: {output_path}")

    if progress is not None:
        progress(f"decoder finished: {output_path}")
    return output_path
