from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .scheme_info import SchemeInfo

"""SchemeData model.

One sheet's worth of normalised, validated rows. A sheet that is too large to
send in one request is re-sliced into several SchemeData values; each slice
carries ``number_of_parts`` so the receiving service knows how many to expect.
"""

__all__ = [
    "SchemeData",
]


@dataclass(frozen=True)
class SchemeData:
    scheme_info: SchemeInfo
    sheet_name: str
    number_of_parts: int | None  # set only on slices of a split sheet
    data: list[list[str]] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.data)

    def slice(self, start: int, stop: int, parts: int) -> SchemeData:
        """Return a copy holding ``data[start:stop]`` marked as one of ``parts``."""
        return SchemeData(
            scheme_info=self.scheme_info,
            sheet_name=self.sheet_name,
            number_of_parts=parts,
            data=self.data[start:stop],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "schemeInfo": self.scheme_info.to_dict(),
            "sheetName": self.sheet_name,
            "numberOfParts": self.number_of_parts,
            "data": self.data,
        }
