from __future__ import annotations

import json
from pathlib import Path

import pytest

from core.mapscan.map_json import iter_document_records, iter_map_json_records
from core.mapscan.models import ItemRecord
from core.mapscan.records import iter_item_records, open_record_stream
from core.utils.errors import RecordSourceError


def test_iter_item_records_skips_malformed_lines(tmp_path: Path) -> None:
    source = tmp_path / "items.ndjson"
    source.write_text(
        "\n".join(
            [
                json.dumps({"id": 100, "x": 1, "y": 2, "z": 7}),
                "",
                "not json",
                json.dumps({"id": 101, "x": 1, "y": 2}),
                json.dumps([1, 2, 3]),
                json.dumps({"id": "102", "x": "3", "y": 4, "z": 7}),
                json.dumps({"id": "abc", "x": 1, "y": 1, "z": 1}),
                "   ",
                json.dumps({"id": 103, "x": 5, "y": 6, "z": 0}),
            ]
        ),
        encoding="utf-8",
    )

    records = list(iter_item_records(source))

    assert records == [
        ItemRecord(100, 1, 2, 7),
        ItemRecord(102, 3, 4, 7),
        ItemRecord(103, 5, 6, 0),
    ]


def test_iter_item_records_is_forward_only(tmp_path: Path) -> None:
    source = tmp_path / "items.ndjson"
    source.write_text(
        json.dumps({"id": 1, "x": 0, "y": 0, "z": 0}) + "\n"
        + json.dumps({"id": 2, "x": 0, "y": 0, "z": 0}) + "\n",
        encoding="utf-8",
    )

    stream = iter_item_records(source)
    assert next(stream).id == 1
    assert [record.id for record in stream] == [2]
    assert list(stream) == []
    assert [record.id for record in iter_item_records(source)] == [1, 2]


def test_iter_item_records_missing_source_fails_immediately(tmp_path: Path) -> None:
    with pytest.raises(RecordSourceError, match="Cannot open record source"):
        iter_item_records(tmp_path / "missing.ndjson")


def test_iter_item_records_skips_undecodable_lines(tmp_path: Path) -> None:
    source = tmp_path / "items.ndjson"
    source.write_bytes(
        json.dumps({"id": 1, "x": 0, "y": 0, "z": 7}).encode("utf-8")
        + b'\n{"id": 2, "name": "\xff\xfe"}\n'
        + json.dumps({"id": 3, "x": 0, "y": 0, "z": 7}).encode("utf-8")
        + b"\n"
    )

    assert [record.id for record in iter_item_records(source)] == [1, 3]


def test_iter_item_records_skips_non_finite_numbers(tmp_path: Path) -> None:
    source = tmp_path / "items.ndjson"
    source.write_text(
        "\n".join(
            [
                json.dumps({"id": 1, "x": 0, "y": 0, "z": 7}),
                '{"id": Infinity, "x": 1, "y": 1, "z": 7}',
                '{"id": 2, "x": 1e400, "y": 1, "z": 7}',
                '{"id": 3, "x": NaN, "y": 1, "z": 7}',
                json.dumps({"id": 4, "x": 0, "y": 0, "z": 7}),
            ]
        ),
        encoding="utf-8",
    )

    assert [record.id for record in iter_item_records(source)] == [1, 4]


def test_map_document_skips_non_finite_ids() -> None:
    document = json.loads(
        '{"data": {"nodes": [{"features": [{"x": 0, "y": 0, "z": 7, "tiles": ['
        '{"x": 1, "y": 1, "items": [{"id": Infinity}, {"id": 5}]}]}]}]}}'
    )

    assert [record.id for record in iter_document_records(document)] == [5]


def _map_document() -> dict[str, object]:
    return {
        "data": {
            "nodes": [
                {
                    "features": [
                        {
                            "x": 1000,
                            "y": 2000,
                            "z": 7,
                            "tiles": [
                                {
                                    "x": 1,
                                    "y": 2,
                                    "items": [
                                        {
                                            "id": 10,
                                            "content": [
                                                {"id": 11, "content": [{"id": 12}]},
                                                {"id": 13},
                                            ],
                                        },
                                        {"id": 14},
                                    ],
                                },
                                {"x": 3, "items": [{"id": 99}]},
                            ],
                        },
                        {"x": 5, "y": 5, "tiles": [{"x": 0, "y": 0, "items": [{"id": 98}]}]},
                    ]
                },
                {"type": "towns"},
            ]
        }
    }


def test_map_document_flattens_containers_in_order() -> None:
    records = list(iter_document_records(_map_document()))

    assert [record.id for record in records] == [10, 11, 12, 13, 14]
    assert {record.position for record in records} == {"1001:2002:7"}


def test_map_document_flattening_handles_deep_nesting() -> None:
    leaf: dict[str, object] = {"id": 5000}
    for depth in range(5000):
        leaf = {"id": depth + 1, "content": [leaf]}
    document = {
        "data": {
            "nodes": [
                {"features": [{"x": 0, "y": 0, "z": 0, "tiles": [{"x": 0, "y": 0, "items": [leaf]}]}]}
            ]
        }
    }

    records = list(iter_document_records(document))

    assert len(records) == 5001
    assert records[0].id == 5000
    assert records[-1].id == 5000


def test_open_record_stream_reads_json_documents(tmp_path: Path) -> None:
    source = tmp_path / "map.json"
    source.write_text(json.dumps(_map_document()), encoding="utf-8")

    records = list(open_record_stream(source))

    assert [record.id for record in records] == [10, 11, 12, 13, 14]


def test_iter_map_json_records_invalid_document_raises(tmp_path: Path) -> None:
    source = tmp_path / "map.json"
    source.write_text("{broken", encoding="utf-8")

    with pytest.raises(RecordSourceError, match="Invalid map JSON"):
        iter_map_json_records(source)
