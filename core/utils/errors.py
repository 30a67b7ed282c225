"""Custom exceptions for core logic."""

from __future__ import annotations

from pathlib import Path


class CatalogError(Exception):
    """Raised when the item catalog is missing, unparsable, or has no root container."""

    def __init__(self, message: str, *, path: Path | None = None) -> None:
        super().__init__(message)
        self.path = path


class CatalogWriteError(Exception):
    """Raised when copying or saving the working catalog fails."""

    def __init__(self, message: str, *, path: Path | None = None) -> None:
        super().__init__(message)
        self.path = path


class BackupError(Exception):
    """Raised when a requested catalog backup cannot be written."""

    def __init__(self, message: str, *, path: Path | None = None) -> None:
        super().__init__(message)
        self.path = path


class ReportFormatError(Exception):
    """Raised when a report file is missing or has an unsupported extension."""

    def __init__(self, message: str, *, path: Path | None = None) -> None:
        super().__init__(message)
        self.path = path


class RecordSourceError(Exception):
    """Raised when an item record source cannot be opened."""

    def __init__(self, message: str, *, path: Path | None = None) -> None:
        super().__init__(message)
        self.path = path


class DecoderError(Exception):
    """Raised when the external map decoder is unavailable or exits non-zero."""

    def __init__(
        self,
        message: str,
        *,
        returncode: int | None = None,
        stderr_tail: str | None = None,
    ) -> None:
        super().__init__(message)
        self.returncode = returncode
        self.stderr_tail = stderr_tail
