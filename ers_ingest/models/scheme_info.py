from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

"""SchemeInfo model.

SchemeInfo identifies one submission: which scheme, which tax year and which
scheme family the employer declared. It is created once per uploaded file and
passed by reference through the whole pipeline.
"""

__all__ = [
    "SchemeInfo",
    "SCHEME_TYPES",
]

# Scheme family codes accepted on a submission
SCHEME_TYPES = frozenset({"CSOP", "SIP", "EMI", "OTHER"})


@dataclass(frozen=True)
class SchemeInfo:
    """Immutable identity of a submission.

    ``scheme_type`` is compared case-insensitively against the family of every
    sheet found in the upload.
    """
    scheme_ref: str  # e.g. XA1100000000000
    timestamp: datetime  # submission start
    scheme_id: str
    tax_year: str  # e.g. 2014/F15
    scheme_name: str
    scheme_type: str  # CSOP | SIP | EMI | OTHER

    def to_dict(self) -> dict[str, Any]:
        return {
            "schemeRef": self.scheme_ref,
            "timestamp": self.timestamp.isoformat(),
            "schemeId": self.scheme_id,
            "taxYear": self.tax_year,
            "schemeName": self.scheme_name,
            "schemeType": self.scheme_type,
        }
