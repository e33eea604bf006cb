"""Tests for JSON/CSV export."""

from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from pagepick.export.formats import CSV_HEADERS, ExportError, export_records, to_csv, to_json
from pagepick.extraction.models import Record

CREATED = datetime(2026, 3, 1, 12, 30, tzinfo=timezone.utc)


@pytest.fixture
def records():
    return [
        Record(
            id=1,
            url="https://x/1",
            title='The "Big" One',
            description="line, with comma",
            image="https://x/1.jpg",
            price="$5",
            verified=True,
            created_at=CREATED,
        ),
        Record(id=2, title="Plain"),
    ]


def test_csv_layout(records):
    lines = to_csv(records).split("\n")
    assert lines[0] == ",".join(CSV_HEADERS)
    assert lines[1] == (
        '1,"https://x/1","The ""Big"" One","line, with comma","https://x/1.jpg","$5",Yes,'
        "2026-03-01T12:30:00+00:00"
    )
    assert lines[2] == '2,"","Plain","","","",No,'


def test_csv_of_nothing_is_just_the_header():
    assert to_csv([]) == "ID,URL,Title,Description,Image,Price,Verified,Created At"


def test_json_is_indented(records):
    text = to_json(records)
    assert text.startswith("[\n  {")
    assert json.loads(text)[0]["title"] == 'The "Big" One'


def test_export_infers_format_from_suffix(records, tmp_path):
    result = export_records(records, tmp_path / "out.csv")
    assert result.format == "csv"
    assert result.count == 2
    assert (tmp_path / "out.csv").read_text(encoding="utf-8").startswith("ID,URL")


def test_export_defaults_to_json(records, tmp_path):
    result = export_records(records, tmp_path / "out.txt")
    assert result.format == "json"
    assert len(json.loads(result.path.read_text(encoding="utf-8"))) == 2


def test_explicit_format_wins(records, tmp_path):
    assert export_records(records, tmp_path / "out.json", fmt="csv").format == "csv"


def test_unknown_format_rejected(records, tmp_path):
    with pytest.raises(ExportError):
        export_records(records, tmp_path / "out.xml", fmt="xml")


def test_write_errors_are_wrapped(records, tmp_path):
    with pytest.raises(ExportError):
        export_records(records, tmp_path / "missing" / "out.json")
