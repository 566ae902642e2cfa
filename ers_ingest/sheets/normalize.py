from __future__ import annotations

from collections.abc import Sequence

"""Row shape normalisation.

Rows read from a spreadsheet rarely have exactly the template's column count:
trailing optional cells are simply absent, and stray content beyond the last
template column is ignored. These helpers are pure and never fail.
"""

__all__ = [
    "construct_column_data",
    "is_blank_row",
    "column_letter",
]


def construct_column_data(row: Sequence[str], expected_count: int) -> list[str]:
    """Return ``row`` truncated or right-padded with "" to ``expected_count`` cells."""
    expected_count = max(expected_count, 0)
    if len(row) >= expected_count:
        return list(row[:expected_count])
    return list(row) + [""] * (expected_count - len(row))


def is_blank_row(row: Sequence[str]) -> bool:
    """True when every cell is empty or whitespace only."""
    return all(not cell.strip() for cell in row)


def column_letter(index: int) -> str:
    """0-based column index -> spreadsheet letter (0 -> A, 26 -> AA)."""
    if index < 0:
        raise ValueError(f"column index must be >= 0: {index}")
    letters = ""
    n = index + 1
    while n:
        n, rem = divmod(n - 1, 26)
        letters = chr(ord("A") + rem) + letters
    return letters
