from __future__ import annotations

from collections.abc import Sequence

from ..models.processing_result import ProcessingResult

"""SUMMARY line rendering.

Format::

    SUMMARY files={done}/{total} success={ok} failed={failed} submissions={batches} rows={rows} elapsed_sec={secs}

``done`` counts files that were attempted. Elapsed time is printed without
trailing zeros and never in scientific notation.
"""

__all__ = [
    "render_summary_line",
    "format_seconds",
]


def format_seconds(seconds: float) -> str:
    if seconds == int(seconds):
        return str(int(seconds))
    return f"{seconds:.6f}".rstrip("0").rstrip(".")


def render_summary_line(
    total_files: int,
    results: Sequence[ProcessingResult],
    failed_files: int,
    elapsed_seconds: float,
) -> str:
    """Render the run summary from the results of the successful files.

    >>> render_summary_line(2, [ProcessingResult("a.ods", 2, 10001, 1.5)], 1, 2.25)
    'SUMMARY files=2/2 success=1 failed=1 submissions=2 rows=10001 elapsed_sec=2.25'
    """
    done = len(results) + failed_files
    return (
        f"SUMMARY files={done}/{total_files} "
        f"success={len(results)} "
        f"failed={failed_files} "
        f"submissions={sum(r.submissions for r in results)} "
        f"rows={sum(r.total_rows for r in results)} "
        f"elapsed_sec={format_seconds(elapsed_seconds)}"
    )
