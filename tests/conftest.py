# Shared pytest fixtures
from __future__ import annotations

import zipfile
from datetime import UTC, datetime
from pathlib import Path
from xml.sax.saxutils import escape

import pytest

from ers_ingest.logging.init import reset_logging
from ers_ingest.models.scheme_info import SchemeInfo
from ers_ingest.sheets.registry import default_registry

ODS_HEADER = (
    '<?xml version="1.0" encoding="UTF-8"?>'
    '<office:document-content'
    ' xmlns:office="urn:oasis:names:tc:opendocument:xmlns:office:1.0"'
    ' xmlns:table="urn:oasis:names:tc:opendocument:xmlns:table:1.0"'
    ' xmlns:text="urn:oasis:names:tc:opendocument:xmlns:text:1.0">'
    "<office:body><office:spreadsheet>"
)
ODS_FOOTER = "</office:spreadsheet></office:body></office:document-content>"


def _cell_xml(value) -> str:
    if value == "" or value is None:
        return "<table:table-cell/>"
    if isinstance(value, str):
        return f'<table:table-cell office:value-type="string"><text:p>{escape(value)}</text:p></table:table-cell>'
    # raw XML passthrough for tests that need typed cells
    return value.xml


class RawCell:
    """Hand-written cell XML (dates, numbers, column repeats)."""

    def __init__(self, xml: str) -> None:
        self.xml = xml


def content_xml(sheets: dict[str, list]) -> str:
    """Build a content.xml document.

    Each row is a list of cell values, or ``(cells, repeated)`` for a row
    carrying ``table:number-rows-repeated``.
    """
    parts = [ODS_HEADER]
    for name, rows in sheets.items():
        parts.append(f'<table:table table:name="{escape(name)}">')
        for row in rows:
            cells, repeated = row if isinstance(row, tuple) else (row, 1)
            attr = f' table:number-rows-repeated="{repeated}"' if repeated > 1 else ""
            parts.append(f"<table:table-row{attr}>")
            parts.extend(_cell_xml(c) for c in cells or [""])
            parts.append("</table:table-row>")
        parts.append("</table:table>")
    parts.append(ODS_FOOTER)
    return "".join(parts)


def template_rows(sheet_name: str, data_rows: list) -> list:
    """Title row, blank rows down to the header row, the header labels, then data."""
    info = default_registry()[sheet_name]
    rows: list = [[info.sheet_title]]
    if info.header_row_count > 2:
        rows.append(([], info.header_row_count - 2))
    rows.append(list(info.headers))
    rows.extend(data_rows)
    return rows


@pytest.fixture()
def temp_workdir(tmp_path: Path, monkeypatch) -> Path:
    (tmp_path / "config").mkdir()
    (tmp_path / "data").mkdir()
    (tmp_path / "logs").mkdir()
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture()
def sample_config_yaml() -> str:
    return """largefiles:
  enabled: true
  max_rows_per_sheet: 10000
submissions:
  url: http://localhost:9292/ers-submissions/submit-presubmission
  timeout_seconds: 5
audit:
  directory: ./logs
database:
  host: localhost
  port: 5432
  user: ers
  password: secret
  database: ers
workers: 2
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "ingest.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def make_ods(tmp_path: Path):
    """Write an ODS zip; ``sheets`` maps sheet name -> rows (see content_xml)."""

    def _make(sheets: dict[str, list], name: str = "upload.ods", include_content: bool = True) -> Path:
        path = tmp_path / name
        with zipfile.ZipFile(path, "w") as zf:
            zf.writestr("mimetype", "application/vnd.oasis.opendocument.spreadsheet")
            if include_content:
                zf.writestr("content.xml", content_xml(sheets))
        return path

    return _make


@pytest.fixture()
def make_scheme_info():
    def _make(scheme_type: str = "EMI") -> SchemeInfo:
        return SchemeInfo(
            scheme_ref="XA1100000000000",
            timestamp=datetime(2015, 12, 5, 12, 50, 55, tzinfo=UTC),
            scheme_id="123PA12345678",
            tax_year="2014/15",
            scheme_name="MyScheme",
            scheme_type=scheme_type,
        )

    return _make


@pytest.fixture()
def emi_scheme_info(make_scheme_info) -> SchemeInfo:
    return make_scheme_info("EMI")


@pytest.fixture(autouse=True)
def _clean_logging():
    yield
    reset_logging()


@pytest.fixture()
def sheet_rows():
    """``sheet_rows(sheet_name, data_rows)`` -> rows for ``make_ods`` (see template_rows)."""
    return template_rows


@pytest.fixture()
def raw_cell():
    return RawCell
