from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any

"""AuditEvent model for the audit log.

Each event is written as one JSON line with a fixed key set (see
``ers_ingest/logging/audit_event_schema.json``). ``sheet`` is empty for
file-level events such as TOTAL_ROWS.
"""

__all__ = [
    "AuditEvent",
    "EVENT_TYPES",
]

EVENT_TYPES = frozenset({
    "FILE_PROCESSING_ERROR",
    "VALIDATION_ERROR",
    "BATCH_SUBMITTED",
    "TOTAL_ROWS",
    "RUNTIME_ERROR",
})


@dataclass(frozen=True)
class AuditEvent:
    """Structured audit record.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        event_type: one of EVENT_TYPES
        scheme_ref: scheme reference of the submission
        tax_year: tax year of the submission
        sheet: sheet name, or "" for file-level events
        detail: event specific payload (reason, errors, row counts)
    """
    timestamp: str
    event_type: str
    scheme_ref: str
    tax_year: str
    sheet: str
    detail: dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def create(
        event_type: str, scheme_ref: str, tax_year: str, sheet: str, detail: dict[str, Any] | None = None
    ) -> AuditEvent:
        if event_type not in EVENT_TYPES:
            raise ValueError(f"unknown audit event type: {event_type}")
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return AuditEvent(
            timestamp=ts,
            event_type=event_type,
            scheme_ref=scheme_ref,
            tax_year=tax_year,
            sheet=sheet,
            detail=dict(detail or {}),
        )

    def to_json_line(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False)
