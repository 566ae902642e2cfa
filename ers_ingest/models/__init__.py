"""Domain models for the ERS file ingestion pipeline."""

from .audit_event import AuditEvent
from .processing_result import FileCallback, ProcessingResult, SheetStat
from .scheme_data import SchemeData
from .scheme_info import SchemeInfo
from .sheet_info import SheetInfo
from .validation import Cell, Row, ValidationError

__all__ = [
    # Submission identity
    "SchemeInfo",
    # Registry
    "SheetInfo",
    # Row data
    "Cell",
    "Row",
    "ValidationError",
    "SchemeData",
    # Processing
    "AuditEvent",
    "FileCallback",
    "ProcessingResult",
    "SheetStat",
]
