"""Data models for catalog augmentation."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict


@dataclass(frozen=True)
class CandidateTriplet:
    """A report row eligible for appending: positive id, non-empty name, not yet covered."""

    id: int
    article: str
    name: str


@dataclass(frozen=True)
class CandidateGroup:
    """A run of consecutive ids sharing ``(article, name)``; emitted as one catalog entry."""

    kind: Literal["single", "range"]
    from_id: int
    to_id: int
    article: str
    name: str

    @property
    def min_id(self) -> int:
        return self.from_id

    @property
    def size(self) -> int:
        return self.to_id - self.from_id + 1


@dataclass(frozen=True)
class AugmentOptions:
    """Inputs for one augmentation run."""

    catalog_path: Path
    report_path: Path
    output_path: Path | None = None
    sheet_index: int = 0
    csv_delimiter: str = ","
    row_chunk: int = 5000
    dry_run: bool = False
    backup: bool = True


class AugmentSummary(BaseModel):
    """Counts reported after an augmentation run."""

    model_config = ConfigDict(extra="forbid")

    working_catalog: str
    considered_rows: int
    candidate_ids: int
    groups: int
    appended_entries: int
    dry_run: bool
    backup_path: str | None = None
