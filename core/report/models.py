"""Report row model shared by scan export, merge, and catalog augmentation."""

from __future__ import annotations

import math
import re
from collections.abc import Mapping
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict

SortOrder = Literal["occurrences", "id-asc"]
SORT_ORDERS: tuple[SortOrder, ...] = ("occurrences", "id-asc")

REPORT_FIELDS: tuple[str, ...] = (
    "id",
    "occurrences",
    "example_positions",
    "article",
    "name",
    "weight_attr",
    "description_attr",
    "slotType_attr",
    "weaponType_attr",
    "armor_attr",
    "defense_attr",
)
IMAGE_FIELD = "image"

_FIELD_BY_LOWER = {field.lower(): field for field in REPORT_FIELDS}
_NUMBER_RE = re.compile(r"[+-]?\d+(?:\.\d+)?")
_NON_DIGIT_RE = re.compile(r"[^0-9-]")


class ReportRow(BaseModel):
    """One exported row: an uncovered id with its count, samples, and operator metadata."""

    model_config = ConfigDict(extra="forbid")

    id: int
    occurrences: int = 0
    example_positions: str = ""
    article: str = ""
    name: str = ""
    weight_attr: str = ""
    description_attr: str = ""
    slotType_attr: str = ""
    weaponType_attr: str = ""
    armor_attr: str = ""
    defense_attr: str = ""

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any]) -> ReportRow | None:
        """Normalize a reader row; returns None when ``id`` is not a positive integer.

        Keys are matched case-insensitively against the canonical field names.
        """

        values = canonical_values(raw)
        item_id = parse_positive_int(values.get("id"))
        if item_id is None:
            return None

        fields: dict[str, Any] = {"id": item_id, "occurrences": parse_count(values.get("occurrences"))}
        for field in REPORT_FIELDS[2:]:
            fields[field] = cell_text(values.get(field)).strip()
        return cls(**fields)

    def as_values(self) -> list[Any]:
        return [getattr(self, field) for field in REPORT_FIELDS]

    @property
    def has_name(self) -> bool:
        return bool(self.name.strip())


def canonical_values(raw: Mapping[str, Any]) -> dict[str, Any]:
    """Re-key a row by canonical field names; unknown columns (e.g. ``image``) are dropped."""

    values: dict[str, Any] = {}
    for key, value in raw.items():
        field = _FIELD_BY_LOWER.get(str(key).strip().lower())
        if field is not None:
            values[field] = value
    return values


def cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def parse_positive_int(value: Any) -> int | None:
    """Parse a cell as a positive integer id (``"12"``, ``12``, ``12.0``)."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        number = value
    elif isinstance(value, float):
        if not math.isfinite(value) or not value.is_integer():
            return None
        number = int(value)
    else:
        text = str(value).strip()
        if not _NUMBER_RE.fullmatch(text):
            return None
        as_float = float(text)
        if not as_float.is_integer():
            return None
        number = int(as_float)
    return number if number > 0 else None


def parse_count(value: Any) -> int:
    """Parse an occurrence count, stripping non-numeric characters; defaults to 0."""

    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else 0

    text = str(value).strip()
    if _NUMBER_RE.fullmatch(text):
        return int(float(text))
    digits = _NON_DIGIT_RE.sub("", text)
    try:
        return int(digits)
    except ValueError:
        return 0
