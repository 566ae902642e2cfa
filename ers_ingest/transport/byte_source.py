from __future__ import annotations

import logging
import tempfile
from pathlib import Path
from typing import BinaryIO
from urllib.parse import unquote, urlparse

import httpx

from ..errors import MSG_FAILED_STREAM, ContentStreamError

"""Open an upload's bytes from its download reference.

``http``/``https`` references are streamed into a spooled temporary file (kept
in memory up to ``SPOOL_MAX_BYTES``, then on disk) so the zip reader gets the
seekable stream it needs. ``file://`` URLs and plain paths are opened directly.
"""

__all__ = [
    "open_download",
    "SPOOL_MAX_BYTES",
]

logger = logging.getLogger(__name__)

SPOOL_MAX_BYTES = 8 * 1024 * 1024
CHUNK_SIZE = 64 * 1024


def open_download(url: str, timeout: float = 30.0) -> BinaryIO:
    """Return a seekable binary stream positioned at the start of the upload.

    The caller owns (and must close) the returned stream.

    Raises:
        ContentStreamError: the reference cannot be fetched or opened
    """
    parsed = urlparse(url)
    if parsed.scheme in ("http", "https"):
        return _download(url, timeout)
    path = Path(unquote(parsed.path)) if parsed.scheme == "file" else Path(url)
    try:
        return path.open("rb")
    except OSError as e:
        raise ContentStreamError(MSG_FAILED_STREAM, f"cannot open {path}: {e}") from e


def _download(url: str, timeout: float) -> BinaryIO:
    spool = tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_BYTES)
    try:
        with httpx.stream("GET", url, timeout=timeout, follow_redirects=True) as response:
            response.raise_for_status()
            for chunk in response.iter_bytes(CHUNK_SIZE):
                spool.write(chunk)
    except httpx.HTTPError as e:
        spool.close()
        raise ContentStreamError(MSG_FAILED_STREAM, f"download failed for {url}: {e}") from e
    logger.debug(f"downloaded {spool.tell()} bytes from {url}")
    spool.seek(0)
    return spool  # type: ignore[return-value]
