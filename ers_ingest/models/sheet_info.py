from __future__ import annotations

from dataclasses import dataclass

"""SheetInfo model (schema registry entry)."""

__all__ = [
    "SheetInfo",
]


@dataclass(frozen=True)
class SheetInfo:
    """Static description of one ERS template sheet.

    ``header_row_count`` is the 1-based row holding the column labels; data
    starts on the row after it.
    """
    scheme_type: str  # family code (CSOP / SIP / EMI / OTHER)
    header_row_count: int
    sheet_name: str
    sheet_title: str
    rule_set_id: str  # key into the validation rule sets
    headers: tuple[str, ...]

    @property
    def column_count(self) -> int:
        return len(self.headers)

    @property
    def first_data_row(self) -> int:
        return self.header_row_count + 1
