from __future__ import annotations

from dataclasses import dataclass

"""Validator row / cell / error models.

A ``Row`` addresses each cell by column letter and 1-based sheet row number so
that every ``ValidationError`` points at the exact source coordinate.
"""

__all__ = [
    "Cell",
    "Row",
    "ValidationError",
]


@dataclass(frozen=True)
class Cell:
    column: str  # column letter, A..AP
    row: int  # 1-based row number within the sheet
    value: str

    @property
    def coordinate(self) -> str:
        return f"{self.column}{self.row}"


@dataclass(frozen=True)
class Row:
    row_number: int
    cells: tuple[Cell, ...]


@dataclass(frozen=True)
class ValidationError:
    cell: Cell
    rule_id: str  # e.g. error.1
    error_id: str  # e.g. 001
    message: str

    def to_dict(self) -> dict[str, object]:
        return {
            "cell": self.cell.coordinate,
            "value": self.cell.value,
            "ruleId": self.rule_id,
            "errorId": self.error_id,
            "message": self.message,
        }
