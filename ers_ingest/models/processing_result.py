from __future__ import annotations

from dataclasses import dataclass, field

"""Upload callback and processing result models."""

__all__ = [
    "FileCallback",
    "SheetStat",
    "ProcessingResult",
]


@dataclass(frozen=True)
class FileCallback:
    """Upload notification for one file ready to be processed."""
    reference: str  # upload reference token
    name: str  # original file name, e.g. EMI40_Adjustments_V3.csv
    download_url: str  # http(s) URL, file:// URL or local path


@dataclass(frozen=True)
class SheetStat:
    sheet_name: str
    rows: int
    submissions: int  # batches sent for this sheet


@dataclass(frozen=True)
class ProcessingResult:
    """Outcome of one processed file."""
    file_name: str
    submissions: int  # total batches sent across all sheets
    total_rows: int  # total data rows across all sheets
    elapsed_seconds: float
    sheets: list[SheetStat] = field(default_factory=list)
