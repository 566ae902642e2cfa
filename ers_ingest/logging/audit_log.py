from __future__ import annotations

import threading
from collections.abc import Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol

from ..models.audit_event import AuditEvent
from ..models.scheme_info import SchemeInfo
from ..models.validation import ValidationError

"""Audit sink and its JSON lines implementation.

The pipeline reports five kinds of event through ``AuditSink``: sheet
resolution failures, row validation failures, submitted batches, total rows
per file and unexpected runtime errors. Delivery is fire-and-forget: callers
never wait on, or fail because of, the audit log.

``AuditLog`` buffers events in memory and appends them to
``<directory>/audit-YYYYMMDD-HHMMSS.log`` (UTC, one file per process) on
``flush()``. Sheets of one file are submitted from worker threads, so
``append`` and ``flush`` take a lock.
"""

__all__ = [
    "AuditSink",
    "AuditLog",
]

TIMESTAMP_FMT = "%Y%m%d-%H%M%S"


class AuditSink(Protocol):
    def file_processing_error(self, scheme_info: SchemeInfo, sheet_name: str, reason: str) -> bool: ...

    def validation_error(
        self, errors: Sequence[ValidationError], scheme_info: SchemeInfo, sheet_name: str
    ) -> bool: ...

    def batch_submitted(self, scheme_info: SchemeInfo, sheet_name: str, rows: int, part: int | None) -> bool: ...

    def total_rows(self, total: int, scheme_info: SchemeInfo) -> bool: ...

    def runtime_error(self, exc: BaseException, scheme_info: SchemeInfo, sheet_name: str) -> bool: ...


class AuditLog:
    """In-memory audit event buffer. Flush writes JSON Lines."""

    def __init__(self, directory: Path | str = "./logs") -> None:
        self.directory = Path(directory)
        self._events: list[AuditEvent] = []
        self._file_path: Path | None = None
        self._lock = threading.Lock()

    @property
    def file_path(self) -> Path:
        if self._file_path is None:
            self.directory.mkdir(parents=True, exist_ok=True)
            stamp = datetime.now(UTC).strftime(TIMESTAMP_FMT)
            self._file_path = self.directory / f"audit-{stamp}.log"
        return self._file_path

    @property
    def events(self) -> list[AuditEvent]:
        with self._lock:
            return list(self._events)

    def append(self, event: AuditEvent) -> None:
        with self._lock:
            self._events.append(event)

    def __len__(self) -> int:  # pragma: no cover (trivial)
        return len(self._events)

    def flush(self) -> Path:
        with self._lock:
            fp = self.file_path
            if not self._events:
                return fp
            with fp.open("a", encoding="utf-8") as f:
                for event in self._events:
                    f.write(event.to_json_line() + "\n")
            self._events.clear()
            return fp

    def _record(self, event_type: str, scheme_info: SchemeInfo, sheet: str, detail: dict) -> bool:
        self.append(AuditEvent.create(event_type, scheme_info.scheme_ref, scheme_info.tax_year, sheet, detail))
        return True

    # AuditSink

    def file_processing_error(self, scheme_info: SchemeInfo, sheet_name: str, reason: str) -> bool:
        return self._record(
            "FILE_PROCESSING_ERROR", scheme_info, sheet_name,
            {"schemeType": scheme_info.scheme_type, "reason": reason},
        )

    def validation_error(
        self, errors: Sequence[ValidationError], scheme_info: SchemeInfo, sheet_name: str
    ) -> bool:
        return self._record(
            "VALIDATION_ERROR", scheme_info, sheet_name,
            {"errorCount": len(errors), "errors": [e.to_dict() for e in errors]},
        )

    def batch_submitted(self, scheme_info: SchemeInfo, sheet_name: str, rows: int, part: int | None) -> bool:
        return self._record("BATCH_SUBMITTED", scheme_info, sheet_name, {"rows": rows, "numberOfParts": part})

    def total_rows(self, total: int, scheme_info: SchemeInfo) -> bool:
        return self._record("TOTAL_ROWS", scheme_info, "", {"totalRows": total})

    def runtime_error(self, exc: BaseException, scheme_info: SchemeInfo, sheet_name: str) -> bool:
        return self._record(
            "RUNTIME_ERROR", scheme_info, sheet_name,
            {"exception": type(exc).__name__, "message": str(exc)},
        )
