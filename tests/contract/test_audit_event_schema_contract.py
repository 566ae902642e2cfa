from __future__ import annotations

import json
from pathlib import Path

import jsonschema
import pytest

from ers_ingest.logging.audit_log import AuditLog
from ers_ingest.models.validation import Cell, ValidationError

"""Audit log JSON lines contract (ers_ingest/logging/audit_event_schema.json)."""

SCHEMA_PATH = Path(__file__).resolve().parents[2] / "ers_ingest" / "logging" / "audit_event_schema.json"


@pytest.fixture(scope="module")
def schema() -> dict:
    return json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))


def test_schema_valid_example(schema):
    record = {
        "timestamp": "2015-12-05T12:50:55.123456Z",
        "event_type": "BATCH_SUBMITTED",
        "scheme_ref": "XA1100000000000",
        "tax_year": "2014/15",
        "sheet": "EMI40_Adjustments_V3",
        "detail": {"rows": 10000, "numberOfParts": 2},
    }
    jsonschema.validate(record, schema)


def test_schema_rejects_extra_key(schema):
    record = {
        "timestamp": "2015-12-05T12:50:55Z",
        "event_type": "TOTAL_ROWS",
        "scheme_ref": "XA1100000000000",
        "tax_year": "2014/15",
        "sheet": "",
        "detail": {"totalRows": 1},
        "extra": "not allowed",
    }
    with pytest.raises(jsonschema.exceptions.ValidationError):
        jsonschema.validate(record, schema)


def test_schema_rejects_unknown_event_type(schema):
    record = {
        "timestamp": "2015-12-05T12:50:55Z",
        "event_type": "SOMETHING",
        "scheme_ref": "X",
        "tax_year": "2014/15",
        "sheet": "",
        "detail": {},
    }
    with pytest.raises(jsonschema.exceptions.ValidationError):
        jsonschema.validate(record, schema)


def test_every_written_line_matches_schema(schema, tmp_path: Path, emi_scheme_info):
    audit = AuditLog(tmp_path)
    audit.file_processing_error(emi_scheme_info, "EMI40_Adjustments_V3", "emi is not equal to csop")
    audit.validation_error(
        [ValidationError(Cell("A", 10, "23/10/2014"), "error.1", "001", "Enter a date that matches the yyyy-mm-dd pattern.")],
        emi_scheme_info,
        "Other_Grants_V3",
    )
    audit.batch_submitted(emi_scheme_info, "EMI40_Adjustments_V3", 1, None)
    audit.total_rows(1, emi_scheme_info)
    audit.runtime_error(ValueError("x"), emi_scheme_info, "")
    lines = audit.flush().read_text(encoding="utf-8").splitlines()
    assert len(lines) == 5
    for line in lines:
        jsonschema.validate(json.loads(line), schema)
