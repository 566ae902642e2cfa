from __future__ import annotations

import csv
import io
import zipfile
import xml.etree.ElementTree as ET
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import BinaryIO

from ..errors import MSG_BULK_ENTITY, MSG_FAILED_STREAM, ContentStreamError

"""Row stream extraction.

An ODS upload is a zip archive; the spreadsheet lives in the ``content.xml``
entry. ``read_content_stream`` parses that entry incrementally and yields one
record per sheet start and one per spreadsheet row, in document order, so the
whole document is never held in memory. CSV uploads are read line by line.

Both streams are single pass: to read again, reopen the source.
"""

__all__ = [
    "CONTENT_ENTRY",
    "SheetStart",
    "RawRow",
    "read_content_stream",
    "read_csv_stream",
    "open_csv_lines",
]

CONTENT_ENTRY = "content.xml"
# Upper bound for cells materialised from one row (column repeats can be huge)
MAX_COLUMNS = 1024

_TABLE_NS = "urn:oasis:names:tc:opendocument:xmlns:table:1.0"
_OFFICE_NS = "urn:oasis:names:tc:opendocument:xmlns:office:1.0"
_TEXT_NS = "urn:oasis:names:tc:opendocument:xmlns:text:1.0"

_TABLE = f"{{{_TABLE_NS}}}table"
_ROW = f"{{{_TABLE_NS}}}table-row"
_CELL = f"{{{_TABLE_NS}}}table-cell"
_COVERED_CELL = f"{{{_TABLE_NS}}}covered-table-cell"
_TABLE_NAME = f"{{{_TABLE_NS}}}name"
_ROWS_REPEATED = f"{{{_TABLE_NS}}}number-rows-repeated"
_COLS_REPEATED = f"{{{_TABLE_NS}}}number-columns-repeated"
_VALUE_TYPE = f"{{{_OFFICE_NS}}}value-type"
_VALUE = f"{{{_OFFICE_NS}}}value"
_DATE_VALUE = f"{{{_OFFICE_NS}}}date-value"
_P = f"{{{_TEXT_NS}}}p"
_S = f"{{{_TEXT_NS}}}s"
_S_COUNT = f"{{{_TEXT_NS}}}c"
_TAB = f"{{{_TEXT_NS}}}tab"
_LINE_BREAK = f"{{{_TEXT_NS}}}line-break"
_ANNOTATION = f"{{{_OFFICE_NS}}}annotation"

_NUMERIC_TYPES = frozenset({"float", "percentage", "currency"})


@dataclass(frozen=True)
class SheetStart:
    """A new sheet (``table:table``) begins."""
    name: str


@dataclass(frozen=True)
class RawRow:
    """One physical row. ``repeated`` > 1 when the row stands for several identical rows."""
    cells: list[str]
    repeated: int = 1


def read_content_stream(source: BinaryIO) -> Iterator[SheetStart | RawRow]:
    """Open the zip in ``source`` and stream the rows of its content document.

    The archive is checked eagerly; rows are produced lazily.

    Raises:
        ContentStreamError: not a zip archive, or no ``content.xml`` entry
    """
    try:
        archive = zipfile.ZipFile(source)
    except (zipfile.BadZipFile, OSError) as e:
        raise ContentStreamError(MSG_FAILED_STREAM, MSG_BULK_ENTITY) from e
    if CONTENT_ENTRY not in archive.namelist():
        archive.close()
        raise ContentStreamError(MSG_FAILED_STREAM, MSG_BULK_ENTITY)
    return _iter_content(archive)


def _iter_content(archive: zipfile.ZipFile) -> Iterator[SheetStart | RawRow]:
    # open elements, root first; finished rows and tables are detached from their parent
    open_elems: list[ET.Element] = []
    with archive, archive.open(CONTENT_ENTRY) as stream:
        try:
            for event, elem in ET.iterparse(stream, events=("start", "end")):
                if event == "start":
                    open_elems.append(elem)
                    if elem.tag == _TABLE:
                        yield SheetStart(elem.get(_TABLE_NAME, ""))
                    continue
                open_elems.pop()
                if elem.tag == _ROW:
                    row = RawRow(_row_cells(elem), _repeat_count(elem, _ROWS_REPEATED))
                    open_elems[-1].remove(elem)
                    yield row
                elif elem.tag == _TABLE and open_elems:
                    open_elems[-1].remove(elem)
        except ET.ParseError as e:
            raise ContentStreamError(MSG_FAILED_STREAM, f"malformed {CONTENT_ENTRY}: {e}") from e


def _repeat_count(elem: ET.Element, attr: str) -> int:
    raw = elem.get(attr, "1")
    if not raw.isdigit() or int(raw) < 1:
        name = attr.rsplit("}", 1)[-1]
        raise ContentStreamError(MSG_FAILED_STREAM, f"malformed {CONTENT_ENTRY}: {name}={raw!r}")
    return int(raw)


def _row_cells(row: ET.Element) -> list[str]:
    # trailing empty cells are dropped; the row normaliser pads to template width
    cells: list[str] = []
    pending_blank = 0
    for cell in row:
        if cell.tag not in (_CELL, _COVERED_CELL):
            continue
        repeat = _repeat_count(cell, _COLS_REPEATED)
        value = _cell_value(cell)
        if not value:
            pending_blank += repeat
            continue
        if pending_blank:
            cells.extend([""] * min(pending_blank, MAX_COLUMNS - len(cells)))
            pending_blank = 0
        cells.extend([value] * min(repeat, MAX_COLUMNS - len(cells)))
        if len(cells) >= MAX_COLUMNS:
            break
    return cells


def _cell_value(cell: ET.Element) -> str:
    value_type = cell.get(_VALUE_TYPE)
    if value_type == "date" and cell.get(_DATE_VALUE):
        return cell.get(_DATE_VALUE, "").split("T", 1)[0]
    if value_type in _NUMERIC_TYPES and cell.get(_VALUE) is not None:
        return cell.get(_VALUE, "")
    return "\n".join(_paragraph_text(p) for p in cell if p.tag == _P)


def _paragraph_text(elem: ET.Element) -> str:
    parts = [elem.text or ""]
    for child in elem:
        if child.tag == _S:
            parts.append(" " * int(child.get(_S_COUNT, "1")))
        elif child.tag == _TAB:
            parts.append("\t")
        elif child.tag == _LINE_BREAK:
            parts.append("\n")
        elif child.tag != _ANNOTATION:
            parts.append(_paragraph_text(child))
        parts.append(child.tail or "")
    return "".join(parts)


def open_csv_lines(source: BinaryIO, encoding: str = "utf-8-sig") -> Iterator[str]:
    """Decode a binary CSV source into lines without reading it all."""
    return iter(io.TextIOWrapper(source, encoding=encoding, newline=""))


def read_csv_stream(lines: Iterable[str]) -> Iterator[list[str]]:
    """One cell list per CSV record.

    Raises:
        ContentStreamError: the bytes do not decode or the CSV is malformed
    """
    try:
        yield from csv.reader(lines)
    except (UnicodeDecodeError, csv.Error) as e:
        raise ContentStreamError(MSG_FAILED_STREAM, f"unreadable CSV: {e}") from e
