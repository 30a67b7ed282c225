from __future__ import annotations

import pytest

from core.report.models import ReportRow, parse_count, parse_positive_int


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (12, 12),
        (12.0, 12),
        ("12", 12),
        (" 12 ", 12),
        ("12.0", 12),
        ("12.5", None),
        (0, None),
        ("-3", None),
        ("", None),
        (None, None),
        (True, None),
        ("abc", None),
    ],
)
def test_parse_positive_int(value: object, expected: int | None) -> None:
    assert parse_positive_int(value) == expected


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (7, 7),
        (7.0, 7),
        ("7", 7),
        ("1 234", 1234),
        ("12x", 12),
        ("", 0),
        (None, 0),
        ("n/a", 0),
    ],
)
def test_parse_count(value: object, expected: int) -> None:
    assert parse_count(value) == expected


def test_from_raw_returns_none_without_positive_id() -> None:
    assert ReportRow.from_raw({"name": "x"}) is None
    assert ReportRow.from_raw({"id": "0", "name": "x"}) is None


def test_from_raw_normalizes_float_cells_to_text() -> None:
    row = ReportRow.from_raw({"id": 4.0, "weight_attr": 12.0, "armor_attr": 2.5})

    assert row is not None
    assert row.weight_attr == "12"
    assert row.armor_attr == "2.5"
