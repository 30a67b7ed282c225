"""Settings loading for the mapgaps CLI."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

import yaml  # type: ignore[import-untyped]
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

_DECODER_PLACEHOLDERS = ("{map}", "{output}", "{tools_dir}", "{memory_limit_mb}")


class PathSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    items_xml: Path
    map: Path
    report_xlsx: Path
    report_csv: Path
    merged_xlsx: Path
    merged_csv: Path
    log_file: Path


class DecoderSettings(BaseModel):
    """External map decoder invocation."""

    model_config = ConfigDict(extra="forbid")

    tools_dir: Path
    memory_limit_mb: int = Field(ge=64)
    command: list[str] = Field(min_length=1)

    @field_validator("command")
    @classmethod
    def _check_placeholders(cls, command: list[str]) -> list[str]:
        joined = " ".join(command)
        if "{map}" not in joined:
            raise ValueError(f"decoder command must reference {{map}}; known: {_DECODER_PLACEHOLDERS}")
        return command


class ScanSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    format: Literal["csv", "xlsx"] = "xlsx"
    sort: Literal["occurrences", "id-asc"] = "occurrences"
    tick_every: int = Field(default=10_000, ge=1)


class AugmentSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    row_chunk: int = Field(default=5000, ge=1)
    csv_delimiter: str = Field(default=",", min_length=1, max_length=1)
    sheet: int = Field(default=0, ge=0)


class AppSettings(BaseModel):
    """Top-level settings document."""

    model_config = ConfigDict(extra="forbid")

    paths: PathSettings
    decoder: DecoderSettings
    scan: ScanSettings = Field(default_factory=ScanSettings)
    augment: AugmentSettings = Field(default_factory=AugmentSettings)
    excluded_ids: frozenset[int] | None = None


def default_settings_path() -> Path:
    return Path(__file__).with_name("settings.yaml")


def load_settings(path: Path | None = None) -> AppSettings:
    """Load and validate settings from YAML (bundled defaults when ``path`` is None)."""

    settings_path = path or default_settings_path()

    try:
        raw = yaml.safe_load(settings_path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ValueError(f"Settings file not found: {settings_path}") from exc
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in settings file: {settings_path}") from exc

    if not isinstance(raw, dict):
        raise ValueError(f"Settings file must contain a mapping: {settings_path}")

    try:
        return AppSettings.model_validate(raw)
    except ValidationError as exc:
        raise ValueError(f"Invalid settings schema: {settings_path}: {exc}") from exc
