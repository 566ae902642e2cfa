from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models.validation import ValidationError

"""Ingestion error taxonomy.

Every error raised while turning an upload into submitted batches is an
``IngestionError``. ``message`` is the user facing text (what the employer is
told to fix), ``context`` is the diagnostic detail written to logs and audit.
All of them are terminal for the file being processed.
"""

__all__ = [
    "IngestionError",
    "ContentStreamError",
    "UnrecognisedSheetError",
    "SchemeMismatchError",
    "HeaderMismatchError",
    "EmptyFileError",
    "RowValidationError",
    "SubmissionError",
    "CallbackStorageError",
    "ConfigError",
]

MSG_FAILED_STREAM = "FileProcessingService failed to stream file"
MSG_BULK_ENTITY = "Could not read the content document of the uploaded file"
MSG_INCORRECT_SHEET_NAME = "Incorrect ERS Template - Sheet Name isn't as expected"
MSG_INCORRECT_SCHEME_TYPE = "Incorrect ERS Template - Scheme Type isn't as expected"
MSG_HEADER_MISMATCH = "Incorrect ERS Template - Header doesn't match"
MSG_VALIDATION_FAILED = "Row validation failed"


class IngestionError(Exception):
    def __init__(self, message: str, context: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return (self.message, self.context) == (other.message, other.context)  # type: ignore[attr-defined]

    def __hash__(self) -> int:
        return hash((type(self), self.message, self.context))


class ContentStreamError(IngestionError):
    """Upload could not be opened, or the content document is missing."""


class UnrecognisedSheetError(IngestionError):
    """Sheet name is not one of the registered templates."""


class SchemeMismatchError(IngestionError):
    """Sheet belongs to a different scheme family than the submission."""


class HeaderMismatchError(IngestionError):
    """Header row does not match the registered template."""


class EmptyFileError(IngestionError):
    """Template is recognised but there are no data rows after the header."""


class RowValidationError(IngestionError):
    """One or more cells failed validation; carries the full error list."""

    def __init__(self, message: str, context: str = "", errors: list[ValidationError] | None = None) -> None:
        super().__init__(message, context)
        self.errors: list[ValidationError] = list(errors or [])


class SubmissionError(IngestionError):
    """Downstream submission transport failed. The cause is chained."""


class CallbackStorageError(IngestionError):
    """Completion state could not be persisted after rows were submitted."""


class ConfigError(Exception):
    pass


def empty_file_message(header_row_count: int) -> str:
    if header_row_count <= 0:
        return "The file that you chose doesn’t have any data. The reportable events data must start in cell A1."
    return (
        f"The file that you chose doesn’t have any data after row {header_row_count}. "
        f"The reportable events data must start in cell A{header_row_count + 1}."
    )


def unidentifiable_sheet_context(sheet_name: str) -> str:
    return f"Couldn't identify SheetName {sheet_name}"
