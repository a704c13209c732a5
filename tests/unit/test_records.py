# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Unit tests for input CSV parsing and categorized output files."""

import csv
from pathlib import Path

import pytest

from revoker.model import AccessRecord
from revoker.records import OUTPUT_HEADER, CategoryWriter, InputSourceError, read_access_records


def test_recs_001_reads_rows_with_bom_and_whitespace(tmp_path: Path) -> None:
    path = tmp_path / "in.csv"
    path.write_text(
        "\ufeffUsername,Account ID,Project Key,Access Permission,Access Status\n"
        " jdoe ,acc-1, PROJ1 ,PROJECT_WRITE,HAS_ACCESS\n"
        ",acc-2,PROJ1,PROJECT_READ,HAS_ACCESS\n"
        "ann,acc-3,,PROJECT_READ,HAS_ACCESS\n"
        '"smith, j",acc-4,PROJ2,PROJECT_READ,NO_ACCESS\n',
        encoding="utf-8",
    )

    records = read_access_records(path)

    assert records == [
        AccessRecord("jdoe", "acc-1", "PROJ1", "PROJECT_WRITE", "HAS_ACCESS"),
        AccessRecord("smith, j", "acc-4", "PROJ2", "PROJECT_READ", "NO_ACCESS"),
    ]
    assert records[0].is_actionable is True
    assert records[1].is_actionable is False


def test_recs_002_missing_file_raises_input_error(tmp_path: Path) -> None:
    with pytest.raises(InputSourceError, match="CSV not found"):
        read_access_records(tmp_path / "missing.csv")


def test_recs_003_writer_resets_and_routes_rows_by_category(tmp_path: Path) -> None:
    writer = CategoryWriter(
        has_access_path=tmp_path / "has.csv", no_access_path=tmp_path / "no.csv"
    )
    (tmp_path / "has.csv").write_text("stale\n", encoding="utf-8")
    writer.reset()
    record = AccessRecord("o'neil, a", "acc", "PROJ1", "PROJECT_ADMIN", "HAS_ACCESS")

    target = writer.append(record, "NO_ACCESS", "2026-03-01 09:30:00", tmp_path / "a.png")

    assert target == tmp_path / "no.csv"
    with (tmp_path / "has.csv").open(newline="", encoding="utf-8") as handle:
        assert list(csv.reader(handle)) == [list(OUTPUT_HEADER)]
    with (tmp_path / "no.csv").open(newline="", encoding="utf-8") as handle:
        rows = list(csv.reader(handle))
    assert rows[1] == [
        "o'neil, a",
        "acc",
        "PROJ1",
        "PROJECT_ADMIN",
        "NO_ACCESS",
        "2026-03-01 09:30:00",
        str(tmp_path / "a.png"),
    ]
