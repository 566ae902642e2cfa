from __future__ import annotations

import logging
import threading
from typing import Protocol

import httpx

from ..models.scheme_data import SchemeData

"""Downstream submission transports.

A transport takes one batch (a whole sheet or one slice of it) plus the
employer reference and either returns normally or raises. Retries, if any,
are the transport's business; the pipeline never retries.
"""

__all__ = [
    "SubmissionTransport",
    "HttpSubmissionTransport",
    "DryRunSubmissionTransport",
]

logger = logging.getLogger(__name__)


class SubmissionTransport(Protocol):
    def submit(self, scheme_data: SchemeData, emp_ref: str) -> None: ...


class HttpSubmissionTransport:
    """POST each batch as JSON to ``<base_url>/<emp_ref>``.

    One ``httpx.Client`` is shared by all sheets of a run; httpx clients are
    safe to use from several threads.
    """

    def __init__(self, base_url: str, timeout: float = 30.0, client: httpx.Client | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.client = client or httpx.Client(timeout=timeout)

    def submit(self, scheme_data: SchemeData, emp_ref: str) -> None:
        url = f"{self.base_url}/{emp_ref}"
        response = self.client.post(url, json=scheme_data.to_dict())
        response.raise_for_status()
        logger.debug(
            f"POST {url} sheet={scheme_data.sheet_name} rows={scheme_data.row_count} -> {response.status_code}"
        )

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> HttpSubmissionTransport:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


class DryRunSubmissionTransport:
    """Record batches instead of sending them (``--dry-run``)."""

    def __init__(self) -> None:
        self.batches: list[tuple[str, SchemeData]] = []
        self._lock = threading.Lock()

    def submit(self, scheme_data: SchemeData, emp_ref: str) -> None:
        with self._lock:
            self.batches.append((emp_ref, scheme_data))
        logger.info(
            f"dry-run: {scheme_data.sheet_name} rows={scheme_data.row_count} "
            f"parts={scheme_data.number_of_parts} emp_ref={emp_ref}"
        )

    def close(self) -> None:
        pass
