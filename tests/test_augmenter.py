from __future__ import annotations

import re
import shutil
from datetime import datetime
from pathlib import Path
from xml.etree import ElementTree as ET

import pytest
from openpyxl import Workbook

from core.catalog import augmenter
from core.catalog.augmenter import (
    BEGIN_MARKER,
    END_MARKER,
    augment_catalog,
    create_backup,
    group_triplets,
)
from core.catalog.loader import load_coverage_index
from core.catalog.models import AugmentOptions, CandidateGroup, CandidateTriplet
from core.utils.errors import BackupError, CatalogError, ReportFormatError

CATALOG = """<?xml version="1.0" encoding="UTF-8"?>
<items>
\t<!-- weapons -->
\t<item id="100" article="a" name="sword">
\t\t<attribute key="weight" value="100" />
\t</item>
\t<item fromid="200" toid="205" name="stone" />
</items>
"""

REPORT = """id,occurrences,example_positions,article,name
10,3,,,a
11,1,,,a
12,1,,,a
20,9,,,b
100,5,,a,new sword
203,1,,,x
0,1,,,zero
40,1,,,
31,2,,an,apple
30,2,,an,apple
33,2,,an,apple
"""

EXPECTED_ENTRIES = [
    '\t<item fromid="10" toid="12" name="a" />',
    '\t<item id="20" name="b" />',
    '\t<item fromid="30" toid="31" article="an" name="apple" />',
    '\t<item id="33" article="an" name="apple" />',
]


def _setup(tmp_path: Path, catalog: str = CATALOG, report: str = REPORT) -> tuple[Path, Path]:
    catalog_path = tmp_path / "items.xml"
    catalog_path.write_text(catalog, encoding="utf-8")
    report_path = tmp_path / "report.csv"
    report_path.write_text(report, encoding="utf-8")
    return catalog_path, report_path


def _expected_catalog(entries: list[str]) -> str:
    lines = [f"\t<!--{BEGIN_MARKER}-->", *entries, f"\t<!--{END_MARKER}-->"]
    block = "\n" + "\n".join(lines) + "\n"
    return CATALOG.replace("</items>", block + "</items>")


def test_group_triplets_coalesces_consecutive_runs() -> None:
    groups = group_triplets(
        [
            CandidateTriplet(10, "", "a"),
            CandidateTriplet(11, "", "a"),
            CandidateTriplet(12, "", "a"),
            CandidateTriplet(20, "", "b"),
        ]
    )

    assert groups == [
        CandidateGroup("range", 10, 12, "", "a"),
        CandidateGroup("single", 20, 20, "", "b"),
    ]


def test_group_triplets_breaks_on_attribute_change_and_gaps() -> None:
    groups = group_triplets(
        [
            CandidateTriplet(1, "", "a"),
            CandidateTriplet(2, "an", "a"),
            CandidateTriplet(3, "an", "a"),
            CandidateTriplet(5, "an", "a"),
            CandidateTriplet(6, "an", "b"),
        ]
    )

    assert [(group.kind, group.from_id, group.to_id) for group in groups] == [
        ("single", 1, 1),
        ("range", 2, 3),
        ("single", 5, 5),
        ("single", 6, 6),
    ]


def test_augment_appends_marked_block_and_preserves_existing_text(tmp_path: Path) -> None:
    catalog_path, report_path = _setup(tmp_path)

    summary = augment_catalog(
        AugmentOptions(catalog_path=catalog_path, report_path=report_path, backup=False)
    )

    assert summary.considered_rows == 11
    assert summary.candidate_ids == 7
    assert summary.groups == 4
    assert summary.appended_entries == 4
    assert summary.dry_run is False
    assert catalog_path.read_text(encoding="utf-8") == _expected_catalog(EXPECTED_ENTRIES)

    root = ET.parse(catalog_path).getroot()
    assert root.tag == "items"
    index = load_coverage_index(catalog_path)
    for item_id in (10, 11, 12, 20, 30, 31, 33, 100, 204):
        assert index.exists(item_id)
    assert not index.exists(32)


def test_augment_twice_appends_nothing_the_second_time(tmp_path: Path) -> None:
    catalog_path, report_path = _setup(tmp_path)
    options = AugmentOptions(catalog_path=catalog_path, report_path=report_path, backup=False)

    augment_catalog(options)
    after_first = catalog_path.read_bytes()
    second = augment_catalog(options)

    assert second.candidate_ids == 0
    assert second.appended_entries == 0
    assert catalog_path.read_bytes() == after_first


def test_dry_run_reports_counts_without_writing(tmp_path: Path) -> None:
    catalog_path, report_path = _setup(tmp_path)
    messages: list[str] = []

    summary = augment_catalog(
        AugmentOptions(catalog_path=catalog_path, report_path=report_path, dry_run=True),
        progress=messages.append,
    )

    assert summary.dry_run is True
    assert summary.groups == 4
    assert summary.candidate_ids == 7
    assert summary.appended_entries == 0
    assert catalog_path.read_text(encoding="utf-8") == CATALOG
    assert list(tmp_path.glob("items.xml.bak.*")) == []
    assert any("dry-run" in message for message in messages)


def test_backup_is_written_before_mutation(tmp_path: Path) -> None:
    catalog_path, report_path = _setup(tmp_path)

    summary = augment_catalog(AugmentOptions(catalog_path=catalog_path, report_path=report_path))

    backups = list(tmp_path.glob("items.xml.bak.*"))
    assert len(backups) == 1
    assert re.fullmatch(r"items\.xml\.bak\.\d{8}_\d{6}", backups[0].name)
    assert backups[0].read_text(encoding="utf-8") == CATALOG
    assert summary.backup_path == str(backups[0])


def test_create_backup_uses_timestamp_suffix(tmp_path: Path) -> None:
    catalog_path, _ = _setup(tmp_path)

    backup = create_backup(catalog_path, now=datetime(2024, 5, 6, 7, 8, 9))

    assert backup.name == "items.xml.bak.20240506_070809"


def test_backup_failure_aborts_before_mutation(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    catalog_path, report_path = _setup(tmp_path)

    def broken_copy(*_: object, **__: object) -> None:
        raise OSError("disk full")

    monkeypatch.setattr(augmenter.shutil, "copy2", broken_copy)

    with pytest.raises(BackupError, match="Failed to create backup"):
        augment_catalog(AugmentOptions(catalog_path=catalog_path, report_path=report_path))

    assert catalog_path.read_text(encoding="utf-8") == CATALOG


def test_output_path_works_on_copy(tmp_path: Path) -> None:
    catalog_path, report_path = _setup(tmp_path)
    output = tmp_path / "out" / "items.xml"

    summary = augment_catalog(
        AugmentOptions(catalog_path=catalog_path, report_path=report_path, output_path=output)
    )

    assert summary.working_catalog == str(output)
    assert catalog_path.read_text(encoding="utf-8") == CATALOG
    assert output.read_text(encoding="utf-8") == _expected_catalog(EXPECTED_ENTRIES)
    assert list(tmp_path.glob("items.xml.bak.*")) == []
    assert len(list(output.parent.glob("items.xml.bak.*"))) == 1


def test_reads_xlsx_reports(tmp_path: Path) -> None:
    catalog_path, _ = _setup(tmp_path)
    report_path = tmp_path / "report.xlsx"
    workbook = Workbook()
    sheet = workbook.active
    sheet.append(["id", "image", "occurrences", "article", "name"])
    sheet.append([50, None, 3, None, "lamp"])
    sheet.append([51, None, 1, None, "lamp"])
    workbook.save(str(report_path))

    augment_catalog(AugmentOptions(catalog_path=catalog_path, report_path=report_path, backup=False))

    assert catalog_path.read_text(encoding="utf-8") == _expected_catalog(
        ['\t<item fromid="50" toid="51" name="lamp" />']
    )


def test_duplicate_report_ids_keep_first_row(tmp_path: Path) -> None:
    catalog_path, report_path = _setup(
        tmp_path, report="id,name\n60,first\n60,second\n61,first\n"
    )

    summary = augment_catalog(
        AugmentOptions(catalog_path=catalog_path, report_path=report_path, backup=False)
    )

    assert summary.candidate_ids == 2
    assert catalog_path.read_text(encoding="utf-8") == _expected_catalog(
        ['\t<item fromid="60" toid="61" name="first" />']
    )


def test_attribute_values_are_escaped(tmp_path: Path) -> None:
    catalog_path, report_path = _setup(tmp_path, report='id,name\n70,"a ""big"" <box> & co"\n')

    augment_catalog(AugmentOptions(catalog_path=catalog_path, report_path=report_path, backup=False))

    root = ET.parse(catalog_path).getroot()
    appended = [item for item in root.iter("item") if item.get("id") == "70"]
    assert appended[0].get("name") == 'a "big" <box> & co'


def test_self_closing_root_is_expanded(tmp_path: Path) -> None:
    catalog_path, report_path = _setup(
        tmp_path, catalog='<?xml version="1.0"?>\n<items />\n', report="id,name\n5,x\n"
    )

    augment_catalog(AugmentOptions(catalog_path=catalog_path, report_path=report_path, backup=False))

    root = ET.parse(catalog_path).getroot()
    assert [item.get("id") for item in root.iter("item")] == ["5"]


def test_close_tag_text_in_comments_is_not_the_root_end(tmp_path: Path) -> None:
    catalog = (
        "<items>\n"
        '\t<item id="1" name="a" />\n'
        "\t<!-- moved </items> markers here -->\n"
        "</items>\n"
        "<!-- old </items> -->\n"
    )
    catalog_path, report_path = _setup(tmp_path, catalog=catalog, report="id,name\n5,b\n")

    augment_catalog(AugmentOptions(catalog_path=catalog_path, report_path=report_path, backup=False))

    block = (
        f"\n\t<!--{BEGIN_MARKER}-->\n"
        '\t<item id="5" name="b" />\n'
        f"\t<!--{END_MARKER}-->\n"
    )
    expected = catalog.replace("-->\n</items>\n", "-->\n" + block + "</items>\n", 1)
    assert catalog_path.read_text(encoding="utf-8") == expected
    root = ET.parse(catalog_path).getroot()
    assert [item.get("id") for item in root.iter("item")] == ["1", "5"]


def test_self_closing_root_with_quoted_angle_bracket(tmp_path: Path) -> None:
    catalog_path, report_path = _setup(
        tmp_path,
        catalog='<!-- <items/> -->\n<items note="a>b" />\n<!-- tail -->\n',
        report="id,name\n6,y\n",
    )

    augment_catalog(AugmentOptions(catalog_path=catalog_path, report_path=report_path, backup=False))

    text = catalog_path.read_text(encoding="utf-8")
    assert text.startswith('<!-- <items/> -->\n<items note="a>b">')
    assert text.endswith("</items>\n<!-- tail -->\n")
    root = ET.parse(catalog_path).getroot()
    assert root.get("note") == "a>b"
    assert [item.get("id") for item in root.iter("item")] == ["6"]


def test_missing_root_container_is_fatal(tmp_path: Path) -> None:
    catalog_path, report_path = _setup(tmp_path, catalog="<catalog><item id='1'/></catalog>")

    with pytest.raises(CatalogError, match="root not found"):
        augment_catalog(AugmentOptions(catalog_path=catalog_path, report_path=report_path))

    assert catalog_path.read_text(encoding="utf-8") == "<catalog><item id='1'/></catalog>"


def test_malformed_catalog_is_fatal(tmp_path: Path) -> None:
    catalog_path, report_path = _setup(tmp_path, catalog="<items><item id='1'></items>")

    with pytest.raises(CatalogError, match="Failed to parse catalog XML"):
        augment_catalog(AugmentOptions(catalog_path=catalog_path, report_path=report_path))


def test_missing_catalog_is_fatal(tmp_path: Path) -> None:
    _, report_path = _setup(tmp_path)

    with pytest.raises(CatalogError, match="Catalog not found"):
        augment_catalog(
            AugmentOptions(catalog_path=tmp_path / "missing.xml", report_path=report_path)
        )


def test_unsupported_report_extension_is_fatal(tmp_path: Path) -> None:
    catalog_path, report_path = _setup(tmp_path)
    other = tmp_path / "report.txt"
    shutil.copyfile(report_path, other)

    with pytest.raises(ReportFormatError, match="Unsupported report extension"):
        augment_catalog(AugmentOptions(catalog_path=catalog_path, report_path=other))

    assert catalog_path.read_text(encoding="utf-8") == CATALOG


def test_progress_ticks_follow_row_chunk(tmp_path: Path) -> None:
    catalog_path, report_path = _setup(tmp_path)
    messages: list[str] = []

    augment_catalog(
        AugmentOptions(
            catalog_path=catalog_path, report_path=report_path, row_chunk=5, dry_run=True
        ),
        progress=messages.append,
    )

    ticks = [message for message in messages if message.startswith("  scanned ") and "total" not in message]
    assert ticks == [
        "  scanned 5 rows",
        "  scanned 10 rows",
    ]


def test_malformed_result_is_never_saved(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    catalog_path, report_path = _setup(tmp_path)

    def broken_append(*_: object) -> bytes:
        return b"<items><!-- <!-- --></items>"

    monkeypatch.setattr(augmenter, "append_groups", broken_append)

    with pytest.raises(CatalogError, match="not well-formed"):
        augment_catalog(AugmentOptions(catalog_path=catalog_path, report_path=report_path, backup=False))

    assert catalog_path.read_text(encoding="utf-8") == CATALOG
