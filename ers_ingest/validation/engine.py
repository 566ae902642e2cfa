from __future__ import annotations

import json
import re
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError as SchemaValidationError

from ..errors import ConfigError
from ..models.validation import Cell, Row, ValidationError
from ..sheets.normalize import column_letter

"""Rule evaluation engine.

Rule sets are data (``rule_sets.yml``): a table of reusable cell types and,
per rule set id, one rule per template column. ``DataValidator`` evaluates a
rule set against one ``Row`` and returns every failing cell; it never raises
for bad data. Exceptions coming out of ``validate_row`` mean the engine itself
is broken (wrong row width, bad configuration) and are left to propagate.
"""

__all__ = [
    "CellType",
    "ColumnRule",
    "RuleSet",
    "DataValidator",
    "load_rule_sets",
    "get_validator",
    "build_row",
]

RULE_SETS_PATH = Path(__file__).with_name("rule_sets.yml")
SCHEMA_PATH = Path(__file__).with_name("rule_sets_schema.json")


@dataclass(frozen=True)
class CellType:
    name: str
    pattern: re.Pattern[str]
    message: str
    calendar_date: bool = False

    def accepts(self, value: str) -> bool:
        if self.pattern.fullmatch(value) is None:
            return False
        if self.calendar_date:
            try:
                date.fromisoformat(value)
            except ValueError:
                return False
        return True


@dataclass(frozen=True)
class ColumnRule:
    cell_type: CellType
    mandatory: bool = False
    required_if: tuple[int, str] | None = None  # (0-based column, expected value)


@dataclass(frozen=True)
class RuleSet:
    rule_set_id: str
    columns: tuple[ColumnRule, ...]


class DataValidator:
    """Validates rows against one rule set."""

    def __init__(self, rule_set: RuleSet) -> None:
        self.rule_set = rule_set

    @property
    def column_count(self) -> int:
        return len(self.rule_set.columns)

    def validate_row(self, row: Row) -> list[ValidationError]:
        if len(row.cells) != self.column_count:
            raise ValueError(
                f"rule set {self.rule_set.rule_set_id} expects {self.column_count} cells, "
                f"got {len(row.cells)} (row {row.row_number})"
            )
        errors: list[ValidationError] = []
        for number, (rule, cell) in enumerate(zip(self.rule_set.columns, row.cells), start=1):
            value = cell.value.strip()
            if not value:
                if rule.mandatory:
                    errors.append(ValidationError(cell, f"error.{number}", f"{number:03d}", rule.cell_type.message))
                elif rule.required_if is not None and self._condition_met(row, rule.required_if):
                    other, expected = rule.required_if
                    errors.append(ValidationError(
                        cell,
                        f"mandatory.{number}",
                        f"M{number:03d}",
                        f"Enter a value when column {column_letter(other)} is '{expected}'.",
                    ))
                continue
            if not rule.cell_type.accepts(value):
                errors.append(ValidationError(cell, f"error.{number}", f"{number:03d}", rule.cell_type.message))
        return errors

    @staticmethod
    def _condition_met(row: Row, condition: tuple[int, str]) -> bool:
        index, expected = condition
        return row.cells[index].value.strip().lower() == expected.lower()


def _column_index(letters: str) -> int:
    index = 0
    for ch in letters:
        index = index * 26 + (ord(ch) - ord("A") + 1)
    return index - 1


def _validate_rule_sets_schema(data: dict[str, Any]) -> None:
    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid rule set schema file: {e}") from e
    except SchemaValidationError as e:
        raise ConfigError(f"rule set validation failed: {e.message}") from e


def load_rule_sets(path: Path | None = None) -> Mapping[str, RuleSet]:
    """Load, validate and compile a rule set file.

    Raises:
        ConfigError: file missing or malformed, unknown cell type, bad regex,
            or a ``required_if`` pointing outside the rule set
    """
    source = path or RULE_SETS_PATH
    if not source.exists():
        raise ConfigError(f"rule set file not found: {source}")
    try:
        data = yaml.safe_load(source.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e

    _validate_rule_sets_schema(data)

    types: dict[str, CellType] = {}
    for name, raw in data["types"].items():
        try:
            pattern = re.compile(raw["pattern"])
        except re.error as e:
            raise ConfigError(f"cell type '{name}': invalid pattern: {e}") from e
        types[name] = CellType(name, pattern, raw["message"], raw.get("calendar_date", False))

    rule_sets: dict[str, RuleSet] = {}
    for rule_set_id, raw_columns in data["rule_sets"].items():
        columns: list[ColumnRule] = []
        for number, raw in enumerate(raw_columns, start=1):
            cell_type = types.get(raw["type"])
            if cell_type is None:
                raise ConfigError(f"{rule_set_id} column {number}: unknown cell type '{raw['type']}'")
            condition = None
            if "required_if" in raw:
                other = _column_index(raw["required_if"]["column"])
                if other >= len(raw_columns):
                    raise ConfigError(f"{rule_set_id} column {number}: required_if column out of range")
                condition = (other, raw["required_if"]["equals"])
            columns.append(ColumnRule(cell_type, raw.get("mandatory", False), condition))
        rule_sets[rule_set_id] = RuleSet(rule_set_id, tuple(columns))
    return MappingProxyType(rule_sets)


@lru_cache(maxsize=1)
def default_rule_sets() -> Mapping[str, RuleSet]:
    return load_rule_sets()


@lru_cache(maxsize=None)
def get_validator(rule_set_id: str) -> DataValidator:
    """DataValidator bound to a rule set from the default rule set file.

    Raises:
        ConfigError: no rule set with that id
    """
    try:
        return DataValidator(default_rule_sets()[rule_set_id])
    except KeyError:
        raise ConfigError(f"no validation rule set named '{rule_set_id}'") from None


def build_row(values: list[str], row_number: int) -> Row:
    """Address each value by column letter and row number."""
    return Row(
        row_number=row_number,
        cells=tuple(Cell(column_letter(i), row_number, v) for i, v in enumerate(values)),
    )
