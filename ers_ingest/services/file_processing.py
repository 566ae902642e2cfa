from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import BinaryIO

from ..config.loader import IngestConfig
from ..db.callback_store import CallbackStore
from ..errors import (
    CallbackStorageError,
    ContentStreamError,
    IngestionError,
    SubmissionError,
)
from ..logging.audit_log import AuditSink
from ..models.processing_result import FileCallback, ProcessingResult, SheetStat
from ..models.scheme_data import SchemeData
from ..models.scheme_info import SchemeInfo
from ..stream.reader import open_csv_lines, read_content_stream, read_csv_stream
from ..transport.byte_source import open_download
from ..transport.submissions import SubmissionTransport
from .data_generator import DataGenerator

"""File processing service (one uploaded file -> submitted batches).

Flow for one file:
1. Open the upload through the byte source
2. Stream rows, validate and aggregate them per sheet (``DataGenerator``)
3. Submit every sheet with data; sheets run concurrently, the slices of one
   sheet go strictly in order
4. Persist the completion callback, then audit the total row count

Any failure is terminal for the file and re-raised after logging. Batches
already submitted are never withdrawn: if the callback store fails after
step 3 the call still fails.
"""

__all__ = [
    "FileProcessingService",
    "MSG_SUBMISSION_FAILED",
    "MSG_CALLBACK_FAILED",
]

logger = logging.getLogger(__name__)

MSG_SUBMISSION_FAILED = "Exception sending scheme data"
MSG_CALLBACK_FAILED = "Failed to store callback data"


class FileProcessingService:
    def __init__(
        self,
        config: IngestConfig,
        data_generator: DataGenerator,
        audit: AuditSink,
        transport: SubmissionTransport,
        callback_store: CallbackStore,
        opener: Callable[[str], BinaryIO] | None = None,
    ) -> None:
        self.config = config
        self.data_generator = data_generator
        self.audit = audit
        self.transport = transport
        self.callback_store = callback_store
        self.opener = opener or (lambda url: open_download(url, timeout=config.submissions.timeout_seconds))

    # -- submission ------------------------------------------------------

    def send_scheme_data(self, scheme_data: SchemeData, emp_ref: str) -> None:
        """Submit one batch and audit the outcome.

        Raises:
            SubmissionError: the transport failed; the cause is chained
        """
        try:
            self.transport.submit(scheme_data, emp_ref)
        except Exception as e:
            self.audit.runtime_error(e, scheme_data.scheme_info, scheme_data.sheet_name)
            logger.error(
                f"{MSG_SUBMISSION_FAILED}: scheme {scheme_data.scheme_info.scheme_ref} "
                f"sheet {scheme_data.sheet_name}: {e}"
            )
            raise SubmissionError(MSG_SUBMISSION_FAILED, f"{scheme_data.sheet_name}: {e}") from e
        self.audit.batch_submitted(
            scheme_data.scheme_info, scheme_data.sheet_name, scheme_data.row_count, scheme_data.number_of_parts
        )

    def send_scheme(self, scheme_data: SchemeData, emp_ref: str) -> int:
        """Submit a sheet, split into slices when large files are enabled.

        Returns the number of batches sent. A sheet of R rows with a limit of
        M rows goes out as ceil(R/M) slices, each marked with that count.
        """
        largefiles = self.config.largefiles
        max_rows = largefiles.max_rows_per_sheet
        if not largefiles.enabled or scheme_data.row_count <= max_rows:
            self.send_scheme_data(scheme_data, emp_ref)
            return 1

        slices = math.ceil(scheme_data.row_count / max_rows)
        logger.info(f"{scheme_data.sheet_name}: {scheme_data.row_count} rows split into {slices} slices")
        for start in range(0, slices * max_rows, max_rows):
            self.send_scheme_data(scheme_data.slice(start, start + max_rows, slices), emp_ref)
        return slices

    # -- files -----------------------------------------------------------

    def process_file(self, callback: FileCallback, emp_ref: str, scheme_info: SchemeInfo) -> ProcessingResult:
        """Process an ODS upload."""
        start = time.perf_counter()
        try:
            with self.opener(callback.download_url) as source:
                sheets = self.data_generator.get_data(read_content_stream(source), scheme_info)
            return self._submit(callback, emp_ref, scheme_info, sheets, start)
        except Exception as e:
            self._report(e, callback, scheme_info)
            raise

    def process_csv_file(self, callback: FileCallback, emp_ref: str, scheme_info: SchemeInfo) -> ProcessingResult:
        """Process a single-sheet CSV upload; the sheet name is the file name."""
        start = time.perf_counter()
        sheet_name = csv_sheet_name(callback.name)
        try:
            with self.opener(callback.download_url) as source:
                rows = read_csv_stream(open_csv_lines(source))
                data = self.data_generator.get_csv_data(rows, scheme_info, sheet_name)
            sheet = SchemeData(scheme_info, sheet_name, None, data)
            return self._submit(callback, emp_ref, scheme_info, [sheet], start)
        except Exception as e:
            self._report(e, callback, scheme_info)
            raise

    def _submit(
        self,
        callback: FileCallback,
        emp_ref: str,
        scheme_info: SchemeInfo,
        sheets: list[SchemeData],
        start: float,
    ) -> ProcessingResult:
        with_data = [s for s in sheets if s.data]
        workers = max(1, min(self.config.workers, len(with_data)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="ers-submit") as pool:
            futures = [pool.submit(self.send_scheme, sd, emp_ref) for sd in with_data]
            # first failure in sheet order wins; the pool still drains the rest
            counts = [f.result() for f in futures]

        stats = [SheetStat(sd.sheet_name, sd.row_count, n) for sd, n in zip(with_data, counts)]
        total_rows = sum(s.rows for s in stats)
        submissions = sum(counts)

        # totals are recorded whether or not the callback is stored
        logger.info(f"Total rows for schemeRef {scheme_info.scheme_ref}: {total_rows}")
        self.audit.total_rows(total_rows, scheme_info)
        try:
            stored = self.callback_store.store(callback, total_rows)
        except Exception as e:
            raise CallbackStorageError(MSG_CALLBACK_FAILED, f"{callback.reference}: {e}") from e
        if not stored:
            raise CallbackStorageError(MSG_CALLBACK_FAILED, callback.reference)
        return ProcessingResult(
            file_name=callback.name,
            submissions=submissions,
            total_rows=total_rows,
            elapsed_seconds=round(time.perf_counter() - start, 3),
            sheets=stats,
        )

    def _report(self, exc: Exception, callback: FileCallback, scheme_info: SchemeInfo) -> None:
        # lower layers audit their own terminal errors; stream and callback
        # failures and anything unexpected are audited here
        if isinstance(exc, (ContentStreamError, CallbackStorageError)) or not isinstance(exc, IngestionError):
            self.audit.runtime_error(exc, scheme_info, "")
        if isinstance(exc, IngestionError):
            logger.error(f"{callback.name}: {exc.message} ({exc.context})")
        else:
            logger.exception(f"{callback.name}: unexpected error: {exc}")


def csv_sheet_name(file_name: str) -> str:
    """``EMI40_Adjustments_V3.csv`` -> ``EMI40_Adjustments_V3``."""
    if file_name.lower().endswith(".csv"):
        return file_name[: -len(".csv")]
    return file_name
