from __future__ import annotations

from pathlib import Path

import pytest

from ers_ingest.errors import ConfigError
from ers_ingest.validation.engine import build_row, get_validator, load_rule_sets

VALID_EMI_ADJUSTMENT = [
    "yes", "no", "yes", "1", "2015-06-01", "John", "", "Smith",
    "AB123456C", "123/XZ55555", "10.1234", "100.00", "10.1234", "10.1234",
]


def test_build_row_addresses_cells():
    row = build_row(["a", "b", "c"], 10)
    assert row.row_number == 10
    assert [c.coordinate for c in row.cells] == ["A10", "B10", "C10"]
    assert row.cells[1].value == "b"


def test_valid_row_has_no_errors():
    validator = get_validator("ers-emi-adjustments-validation")
    assert validator.column_count == 14
    assert validator.validate_row(build_row(VALID_EMI_ADJUSTMENT, 10)) == []


def test_bad_date_on_other_grants():
    validator = get_validator("ers-other-grants-validation")
    errors = validator.validate_row(build_row(["23/10/2014", "", "", ""], 10))
    assert len(errors) == 1
    err = errors[0]
    assert err.cell.column == "A"
    assert err.cell.row == 10
    assert err.cell.value == "23/10/2014"
    assert err.rule_id == "error.1"
    assert err.error_id == "001"
    assert err.message == "Enter a date that matches the yyyy-mm-dd pattern."


def test_pattern_match_but_impossible_date():
    validator = get_validator("ers-other-grants-validation")
    errors = validator.validate_row(build_row(["2014-02-30", "", "", ""], 12))
    assert [e.cell.coordinate for e in errors] == ["A12"]


def test_missing_mandatory_cell():
    row = list(VALID_EMI_ADJUSTMENT)
    row[5] = "  "
    errors = get_validator("ers-emi-adjustments-validation").validate_row(build_row(row, 11))
    assert [(e.cell.coordinate, e.error_id) for e in errors] == [("F11", "006")]


def test_required_if_condition():
    validator = get_validator("ers-emi-adjustments-validation")
    row = list(VALID_EMI_ADJUSTMENT)
    row[3] = ""
    errors = validator.validate_row(build_row(row, 10))
    assert len(errors) == 1
    assert errors[0].rule_id == "mandatory.4"
    assert errors[0].error_id == "M004"
    assert errors[0].message == "Enter a value when column C is 'yes'."

    row[2] = "No"
    assert validator.validate_row(build_row(row, 10)) == []


def test_yes_no_is_case_insensitive():
    row = list(VALID_EMI_ADJUSTMENT)
    row[0] = "YES"
    assert get_validator("ers-emi-adjustments-validation").validate_row(build_row(row, 10)) == []


def test_several_errors_reported_together():
    row = list(VALID_EMI_ADJUSTMENT)
    row[4] = "yesterday"
    row[9] = "ABC"
    row[11] = "1.234"
    errors = get_validator("ers-emi-adjustments-validation").validate_row(build_row(row, 15))
    assert [e.cell.coordinate for e in errors] == ["E15", "J15", "L15"]


def test_wrong_row_width_raises():
    with pytest.raises(ValueError):
        get_validator("ers-other-grants-validation").validate_row(build_row(["2014-01-01"], 10))


def test_unknown_rule_set():
    with pytest.raises(ConfigError):
        get_validator("ers-nope-validation")


def test_load_rule_sets_unknown_type(tmp_path: Path):
    p = tmp_path / "rules.yml"
    p.write_text(
        "types:\n  date:\n    pattern: '\\d+'\n    message: m\n"
        "rule_sets:\n  r:\n    - {type: money}\n",
        encoding="utf-8",
    )
    with pytest.raises(ConfigError) as e:
        load_rule_sets(p)
    assert "unknown cell type 'money'" in str(e.value)


def test_load_rule_sets_required_if_out_of_range(tmp_path: Path):
    p = tmp_path / "rules.yml"
    p.write_text(
        "types:\n  t:\n    pattern: 'x'\n    message: m\n"
        "rule_sets:\n  r:\n    - {type: t, required_if: {column: C, equals: 'yes'}}\n",
        encoding="utf-8",
    )
    with pytest.raises(ConfigError) as e:
        load_rule_sets(p)
    assert "out of range" in str(e.value)


def test_load_rule_sets_bad_regex(tmp_path: Path):
    p = tmp_path / "rules.yml"
    p.write_text(
        "types:\n  t:\n    pattern: '(['\n    message: m\n"
        "rule_sets:\n  r:\n    - {type: t}\n",
        encoding="utf-8",
    )
    with pytest.raises(ConfigError) as e:
        load_rule_sets(p)
    assert "invalid pattern" in str(e.value)
