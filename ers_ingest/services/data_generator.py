from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable, Mapping, Sequence

from ..errors import (
    MSG_HEADER_MISMATCH,
    MSG_INCORRECT_SCHEME_TYPE,
    MSG_VALIDATION_FAILED,
    ConfigError,
    EmptyFileError,
    HeaderMismatchError,
    RowValidationError,
    SchemeMismatchError,
    UnrecognisedSheetError,
    empty_file_message,
)
from ..logging.audit_log import AuditSink
from ..models.scheme_data import SchemeData
from ..models.scheme_info import SchemeInfo
from ..models.sheet_info import SheetInfo
from ..sheets.normalize import construct_column_data, is_blank_row
from ..sheets.registry import default_registry, get_sheet
from ..stream.reader import RawRow, SheetStart
from ..validation.engine import DataValidator, build_row, get_validator

"""Sheet identification, header checks, row validation and aggregation.

``DataGenerator`` turns the record stream of one upload into one SchemeData per
sheet. It keeps no state between calls: everything accumulated for a file
lives in a ``_SheetBuilder`` local to ``get_data``, so one instance can serve
several files concurrently.

Every failure is terminal for the file. Sheet level failures are audited here,
exactly once, before the error is raised.
"""

__all__ = [
    "DataGenerator",
    "REASON_NO_VALIDATOR",
]

logger = logging.getLogger(__name__)

REASON_NO_VALIDATOR = "Could not set the validator"
REASON_HEADER_MISMATCH = "Header doesn't match"
REASON_NO_DATA = "No data rows after the header"

# Header labels are compared on letters and digits only
_HEADER_STRIP = re.compile(r"[^a-zA-Z0-9]")


def _header_key(label: str) -> str:
    return _HEADER_STRIP.sub("", label)


class DataGenerator:
    def __init__(
        self,
        audit: AuditSink,
        registry: Mapping[str, SheetInfo] | None = None,
        validator_factory: Callable[[str], DataValidator] = get_validator,
    ) -> None:
        self.audit = audit
        self.sheets = default_registry() if registry is None else registry
        self.validator_factory = validator_factory

    def identify_and_define_sheet(self, sheet_name: str, scheme_info: SchemeInfo) -> SheetInfo:
        """Resolve ``sheet_name`` and check it belongs to the declared scheme family.

        Raises:
            UnrecognisedSheetError: not a registered sheet
            SchemeMismatchError: registered under another scheme family
        """
        try:
            sheet_info = get_sheet(sheet_name, self.sheets)
        except UnrecognisedSheetError as e:
            logger.warning(f"{e.context} (scheme {scheme_info.scheme_ref})")
            self.audit.file_processing_error(scheme_info, sheet_name, REASON_NO_VALIDATOR)
            raise

        sheet_type = sheet_info.scheme_type.lower()
        declared_type = scheme_info.scheme_type.lower()
        if sheet_type != declared_type:
            reason = f"{sheet_type} is not equal to {declared_type}"
            logger.warning(f"sheet {sheet_name}: {reason} (scheme {scheme_info.scheme_ref})")
            self.audit.file_processing_error(scheme_info, sheet_name, reason)
            raise SchemeMismatchError(MSG_INCORRECT_SCHEME_TYPE, reason)
        return sheet_info

    def set_validator(self, sheet_info: SheetInfo) -> DataValidator:
        validator = self.validator_factory(sheet_info.rule_set_id)
        if validator.column_count != sheet_info.column_count:
            raise ConfigError(
                f"rule set {sheet_info.rule_set_id} has {validator.column_count} columns, "
                f"sheet {sheet_info.sheet_name} has {sheet_info.column_count}"
            )
        return validator

    def validate_header_row(self, row: Sequence[str], sheet_name: str, scheme_info: SchemeInfo) -> int:
        """Check a header row against the registered labels; return the column count.

        Only the first ``len(headers)`` cells are compared, ignoring anything
        that is not a letter or digit.

        Raises:
            UnrecognisedSheetError: ``sheet_name`` is not registered
            HeaderMismatchError: labels or column count differ
        """
        try:
            sheet_info = get_sheet(sheet_name, self.sheets)
        except UnrecognisedSheetError:
            self.audit.file_processing_error(scheme_info, sheet_name, REASON_NO_VALIDATOR)
            raise

        expected = [_header_key(h) for h in sheet_info.headers]
        found = [_header_key(c) for c in construct_column_data(row, len(expected))]
        if found != expected:
            mismatched = [i + 1 for i, (a, b) in enumerate(zip(found, expected)) if a != b]
            context = f"{sheet_name}: header columns {mismatched} differ from the template"
            logger.warning(context)
            self.audit.file_processing_error(scheme_info, sheet_name, REASON_HEADER_MISMATCH)
            raise HeaderMismatchError(MSG_HEADER_MISMATCH, context)
        return len(expected)

    def generate_row_data(
        self,
        raw_row: Sequence[str],
        row_index: int,
        validator: DataValidator,
        scheme_info: SchemeInfo,
        sheet_name: str,
    ) -> list[str]:
        """Normalise and validate one data row.

        Exceptions raised by the validator itself are deliberately not caught.

        Raises:
            RowValidationError: the rule set reported at least one error
        """
        row_data = construct_column_data(raw_row, validator.column_count)
        errors = validator.validate_row(build_row(row_data, row_index))
        if errors:
            cells = ", ".join(e.cell.coordinate for e in errors)
            logger.warning(f"{sheet_name}: validation failed at {cells}")
            self.audit.validation_error(errors, scheme_info, sheet_name)
            raise RowValidationError(
                MSG_VALIDATION_FAILED,
                f"{len(errors)} validation error(s) in {sheet_name} row {row_index}",
                errors,
            )
        return row_data

    def get_data(self, records: Iterable[SheetStart | RawRow], scheme_info: SchemeInfo) -> list[SchemeData]:
        """Drain an ODS record stream into one SchemeData per sheet.

        Raises:
            HeaderMismatchError: rows before the first sheet, or a sheet whose
                header row is missing or wrong
            EmptyFileError: no sheet has any data row
            (plus the identification and validation errors above)
        """
        results: list[SchemeData] = []
        builder: _SheetBuilder | None = None
        first_sheet: SheetInfo | None = None

        for record in records:
            if isinstance(record, SheetStart):
                if builder is not None:
                    results.append(builder.finish())
                sheet_info = self.identify_and_define_sheet(record.name, scheme_info)
                first_sheet = first_sheet or sheet_info
                builder = _SheetBuilder(self, sheet_info, self.set_validator(sheet_info), scheme_info)
            elif builder is None:
                raise HeaderMismatchError(MSG_HEADER_MISMATCH, "row found before any sheet")
            else:
                builder.add(record)

        if builder is not None:
            results.append(builder.finish())

        if not any(sd.data for sd in results):
            header_rows = first_sheet.header_row_count if first_sheet else 0
            sheet_name = first_sheet.sheet_name if first_sheet else ""
            self.audit.file_processing_error(scheme_info, sheet_name, REASON_NO_DATA)
            raise EmptyFileError(empty_file_message(header_rows), f"{len(results)} sheet(s), no data rows")

        logger.debug(f"{len(results)} sheet(s): " + ", ".join(f"{sd.sheet_name}={sd.row_count}" for sd in results))
        return results

    def get_csv_data(
        self, rows: Iterable[Sequence[str]], scheme_info: SchemeInfo, sheet_name: str
    ) -> list[list[str]]:
        """Validate the rows of a single-sheet CSV upload.

        CSV uploads carry no header rows: the sheet comes from the file name
        and data starts on line 1.
        """
        sheet_info = self.identify_and_define_sheet(sheet_name, scheme_info)
        validator = self.set_validator(sheet_info)

        data: list[list[str]] = []
        for row_number, raw in enumerate(rows, start=1):
            normalized = construct_column_data(raw, sheet_info.column_count)
            if is_blank_row(normalized):
                continue
            data.append(self.generate_row_data(normalized, row_number, validator, scheme_info, sheet_name))

        if not data:
            self.audit.file_processing_error(scheme_info, sheet_name, REASON_NO_DATA)
            raise EmptyFileError(empty_file_message(0), f"{sheet_name}: no data rows")
        return data


class _SheetBuilder:
    """Accumulates the rows of one sheet while its records stream past.

    ``row_number`` tracks the source position (1-based), so a row repeated n
    times advances it by n and every expanded copy is validated at its own
    row number.
    """

    def __init__(
        self,
        generator: DataGenerator,
        sheet_info: SheetInfo,
        validator: DataValidator,
        scheme_info: SchemeInfo,
    ) -> None:
        self.generator = generator
        self.sheet_info = sheet_info
        self.validator = validator
        self.scheme_info = scheme_info
        self.row_number = 0
        self.header_checked = False
        self.rows: list[list[str]] = []

    def add(self, record: RawRow) -> None:
        header_row = self.sheet_info.header_row_count
        repeated = max(record.repeated, 1)

        # blank runs (often thousands of formatted but empty rows) are skipped
        # in one step unless they cover the header row
        if is_blank_row(record.cells) and (self.header_checked or self.row_number + repeated < header_row):
            self.row_number += repeated
            return

        for _ in range(repeated):
            self.row_number += 1
            if self.row_number < header_row:
                continue
            if self.row_number == header_row:
                self.generator.validate_header_row(record.cells, self.sheet_info.sheet_name, self.scheme_info)
                self.header_checked = True
                continue
            normalized = construct_column_data(record.cells, self.sheet_info.column_count)
            if is_blank_row(normalized):
                continue
            self.rows.append(self.generator.generate_row_data(
                normalized, self.row_number, self.validator, self.scheme_info, self.sheet_info.sheet_name
            ))

    def finish(self) -> SchemeData:
        if not self.header_checked:
            sheet_name = self.sheet_info.sheet_name
            self.generator.audit.file_processing_error(self.scheme_info, sheet_name, REASON_HEADER_MISMATCH)
            raise HeaderMismatchError(
                MSG_HEADER_MISMATCH,
                f"{sheet_name}: only {self.row_number} row(s), header expected on row {self.sheet_info.header_row_count}",
            )
        return SchemeData(self.scheme_info, self.sheet_info.sheet_name, None, self.rows)
