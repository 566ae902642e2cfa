from __future__ import annotations

import io
import tracemalloc
import zipfile
from pathlib import Path

import pytest

from ers_ingest.errors import ContentStreamError
from ers_ingest.stream.reader import (
    MAX_COLUMNS,
    RawRow,
    SheetStart,
    open_csv_lines,
    read_content_stream,
    read_csv_stream,
)


def _records(path: Path) -> list:
    with path.open("rb") as f:
        return list(read_content_stream(f))


def test_sheet_and_row_records_in_document_order(make_ods):
    path = make_ods({"Sheet_A": [["a1", "b1"], ["a2"]], "Sheet_B": [["x"]]})
    assert _records(path) == [
        SheetStart("Sheet_A"),
        RawRow(["a1", "b1"]),
        RawRow(["a2"]),
        SheetStart("Sheet_B"),
        RawRow(["x"]),
    ]


def test_repeated_rows_are_reported_not_expanded(make_ods):
    path = make_ods({"S": [(["same"], 3), ([], 1048570)]})
    records = _records(path)
    assert records[1] == RawRow(["same"], 3)
    assert records[2] == RawRow([], 1048570)


def test_trailing_empty_cells_dropped_inner_blanks_kept(make_ods):
    path = make_ods({"S": [["a", "", "c", "", ""]]})
    assert _records(path)[1] == RawRow(["a", "", "c"])


def test_typed_cells(make_ods, raw_cell):
    date_cell = raw_cell(
        '<table:table-cell office:value-type="date" office:date-value="2015-06-01T00:00:00">'
        "<text:p>01/06/2015</text:p></table:table-cell>"
    )
    float_cell = raw_cell(
        '<table:table-cell office:value-type="float" office:value="10.1234">'
        "<text:p>10.12</text:p></table:table-cell>"
    )
    repeated_cell = raw_cell(
        '<table:table-cell table:number-columns-repeated="3" office:value-type="string">'
        "<text:p>no</text:p></table:table-cell>"
    )
    path = make_ods({"S": [[date_cell, float_cell, repeated_cell]]})
    assert _records(path)[1].cells == ["2015-06-01", "10.1234", "no", "no", "no"]


def test_text_spacing_elements(make_ods, raw_cell):
    cell = raw_cell(
        '<table:table-cell office:value-type="string">'
        '<text:p>John<text:s text:c="2"/>Smith</text:p><text:p>line two</text:p></table:table-cell>'
    )
    path = make_ods({"S": [[cell]]})
    assert _records(path)[1].cells == ["John  Smith\nline two"]


def test_huge_column_repeat_is_capped(make_ods, raw_cell):
    cell = raw_cell(
        '<table:table-cell table:number-columns-repeated="100000" office:value-type="string">'
        "<text:p>x</text:p></table:table-cell>"
    )
    path = make_ods({"S": [[cell]]})
    assert len(_records(path)[1].cells) == MAX_COLUMNS


def test_not_a_zip_raises_stream_error():
    with pytest.raises(ContentStreamError) as e:
        read_content_stream(io.BytesIO(b"definitely not a zip"))
    assert e.value.message == "FileProcessingService failed to stream file"


def test_missing_content_entry_raises_stream_error(make_ods):
    path = make_ods({}, include_content=False)
    with path.open("rb") as f, pytest.raises(ContentStreamError):
        read_content_stream(f)


def test_malformed_xml_raises_while_iterating(tmp_path: Path):
    path = tmp_path / "broken.ods"
    with zipfile.ZipFile(path, "w") as zf:
        zf.writestr("content.xml", "<office:document-content><unclosed>")
    with path.open("rb") as f:
        stream = read_content_stream(f)
        with pytest.raises(ContentStreamError) as e:
            list(stream)
    assert "malformed content.xml" in e.value.context


@pytest.mark.parametrize("attr", ['table:number-rows-repeated="many"', 'table:number-rows-repeated="0"'])
def test_malformed_row_repeat_raises_stream_error(tmp_path: Path, attr):
    path = tmp_path / "bad_repeat.ods"
    with zipfile.ZipFile(path, "w") as zf:
        zf.writestr(
            "content.xml",
            '<office:document-content'
            ' xmlns:office="urn:oasis:names:tc:opendocument:xmlns:office:1.0"'
            ' xmlns:table="urn:oasis:names:tc:opendocument:xmlns:table:1.0">'
            f'<office:body><office:spreadsheet><table:table table:name="S"><table:table-row {attr}/>'
            "</table:table></office:spreadsheet></office:body></office:document-content>",
        )
    with pytest.raises(ContentStreamError) as e:
        _records(path)
    assert "number-rows-repeated" in e.value.context


def test_malformed_column_repeat_raises_stream_error(make_ods, raw_cell):
    cell = raw_cell('<table:table-cell table:number-columns-repeated="-2"><text:p>x</text:p></table:table-cell>')
    path = make_ods({"S": [[cell]]})
    with pytest.raises(ContentStreamError) as e:
        _records(path)
    assert "number-columns-repeated" in e.value.context


def _peak_bytes(path: Path) -> int:
    with path.open("rb") as f:
        tracemalloc.start()
        try:
            rows = sum(1 for r in read_content_stream(f) if isinstance(r, RawRow))
            _, peak = tracemalloc.get_traced_memory()
        finally:
            tracemalloc.stop()
    assert rows > 0
    return peak


def test_memory_does_not_grow_with_row_count(make_ods):
    row = ["yes", "2015-06-01", "AB123456C"]
    small = _peak_bytes(make_ods({"S": [row] * 2_000}, name="small.ods"))
    large = _peak_bytes(make_ods({"S": [row] * 40_000}, name="large.ods"))
    assert large < small * 2


def test_read_csv_stream_quoted_fields():
    lines = io.StringIO('2015-06-01,"Smith, John",,10\n\nno,yes\n')
    assert list(read_csv_stream(lines)) == [["2015-06-01", "Smith, John", "", "10"], [], ["no", "yes"]]


def test_open_csv_lines_strips_bom():
    source = io.BytesIO("\ufeffyes,no\r\nno,yes\r\n".encode("utf-8"))
    assert list(read_csv_stream(open_csv_lines(source))) == [["yes", "no"], ["no", "yes"]]


def test_invalid_utf8_csv_raises_stream_error():
    source = io.BytesIO(b"yes,no\n\xff\xfe,no\n")
    stream = read_csv_stream(open_csv_lines(source))
    with pytest.raises(ContentStreamError) as e:
        list(stream)
    assert e.value.message == "FileProcessingService failed to stream file"
    assert isinstance(e.value.__cause__, UnicodeDecodeError)
