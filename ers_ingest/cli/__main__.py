from __future__ import annotations

import argparse
import logging
import os
import sys
import time
from contextlib import ExitStack
from datetime import UTC, datetime
from pathlib import Path
from urllib.parse import urlparse

import psycopg2
from dotenv import load_dotenv

from ..config.loader import ConfigError, IngestConfig, load_config
from ..db.callback_store import (
    CallbackStore,
    InMemoryCallbackStore,
    PostgresCallbackStore,
    db_connection,
    resolve_dsn,
)
from ..errors import RowValidationError
from ..logging.audit_log import AuditLog
from ..logging.init import log_summary, setup_logging
from ..models.processing_result import FileCallback, ProcessingResult
from ..models.scheme_info import SCHEME_TYPES, SchemeInfo
from ..services.data_generator import DataGenerator
from ..services.file_processing import FileProcessingService
from ..services.progress import ProgressTracker
from ..services.summary import render_summary_line
from ..transport.submissions import DryRunSubmissionTransport, HttpSubmissionTransport

"""CLI entrypoint.

    python -m ers_ingest.cli FILE... --scheme-ref XA1100000000000 --scheme-id 123 \\
        --tax-year 2015/16 --scheme-name MyScheme --scheme-type EMI --emp-ref 123/AB456

Each FILE is a local path, ``file://`` URL or ``http(s)`` URL. ``.csv`` files
are single-sheet uploads; anything else is read as an ODS spreadsheet.

Exit codes: 0 every file submitted, 2 at least one file failed, 1 the run
could not start (bad config).

The callback store runs in mock mode (in memory) when ``DISABLE_DB_CONNECT=1``
or when the database cannot be reached.
"""

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1

DEFAULT_CONFIG = Path("config/ingest.yml")


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load ``.env``; its values win over the process environment."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="ers-ingest", description="ERS spreadsheet validation and submission")
    p.add_argument("files", nargs="+", metavar="FILE", help="ODS or CSV upload (path or URL)")
    p.add_argument("--scheme-ref", required=True)
    p.add_argument("--scheme-id", required=True)
    p.add_argument("--tax-year", required=True, help="e.g. 2015/16")
    p.add_argument("--scheme-name", required=True)
    p.add_argument("--scheme-type", required=True, type=str.upper, choices=sorted(SCHEME_TYPES))
    p.add_argument("--emp-ref", required=True, help="employer PAYE reference")
    p.add_argument("--config", type=Path, default=DEFAULT_CONFIG, help=f"default: {DEFAULT_CONFIG}")
    p.add_argument("--dry-run", action="store_true", help="Validate and log batches without sending them")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    return p.parse_args(argv)


def _open_callback_store(cfg: IngestConfig, stack: ExitStack, logger: logging.Logger) -> tuple[CallbackStore, str]:
    if os.getenv("DISABLE_DB_CONNECT") == "1":
        logger.debug("DB connect disabled via DISABLE_DB_CONNECT=1 -> mock mode")
        return InMemoryCallbackStore(), "mock"
    try:
        conn = stack.enter_context(db_connection(resolve_dsn(cfg.database)))
        return PostgresCallbackStore(conn), "live"
    except psycopg2.Error as e:
        logger.info(f"DB connection failed -> fallback to mock mode: {e}")
        return InMemoryCallbackStore(), "mock"


def _file_callback(source: str, scheme_ref: str) -> FileCallback:
    name = Path(urlparse(source).path).name or source
    return FileCallback(reference=f"{scheme_ref}-{name}", name=name, download_url=source)


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    _load_env_file(Path(".env"))
    logger = setup_logging(logging.DEBUG if args.debug else logging.INFO)
    if args.debug:
        logger.debug("debug mode enabled")

    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    scheme_info = SchemeInfo(
        scheme_ref=args.scheme_ref,
        timestamp=datetime.now(UTC),
        scheme_id=args.scheme_id,
        tax_year=args.tax_year,
        scheme_name=args.scheme_name,
        scheme_type=args.scheme_type,
    )
    audit = AuditLog(cfg.audit_directory)
    if args.dry_run:
        transport: DryRunSubmissionTransport | HttpSubmissionTransport = DryRunSubmissionTransport()
    else:
        transport = HttpSubmissionTransport(cfg.submissions.url, cfg.submissions.timeout_seconds)

    results: list[ProcessingResult] = []
    failed = 0
    start = time.perf_counter()
    with ExitStack() as stack:
        stack.callback(transport.close)
        store, db_mode = _open_callback_store(cfg, stack, logger)
        service = FileProcessingService(cfg, DataGenerator(audit), audit, transport, store)
        logger.info(f"Processing {len(args.files)} file(s) for scheme {scheme_info.scheme_ref} mode={db_mode}")

        with ProgressTracker(len(args.files)) as progress:
            for source in args.files:
                callback = _file_callback(source, scheme_info.scheme_ref)
                progress.start_file(callback.name)
                process = service.process_csv_file if callback.name.lower().endswith(".csv") else service.process_file
                try:
                    result = process(callback, args.emp_ref, scheme_info)
                except RowValidationError as e:
                    for err in e.errors:
                        logger.warning(f"  {err.cell.coordinate} [{err.error_id}] {err.message}")
                    failed += 1
                    progress.finish_file(False)
                    continue
                except Exception:
                    # already logged and audited by the service
                    failed += 1
                    progress.finish_file(False)
                    continue
                results.append(result)
                progress.finish_file(True, result.total_rows)
                logger.info(
                    f"{result.file_name}: rows={result.total_rows} submissions={result.submissions} "
                    f"elapsed_sec={result.elapsed_seconds}"
                )

    audit_path = audit.flush()
    logger.info(f"audit log: {audit_path}")

    summary_line = render_summary_line(len(args.files), results, failed, time.perf_counter() - start)
    log_summary(summary_line[len("SUMMARY "):])

    return EXIT_PARTIAL_FAILURE if failed else EXIT_SUCCESS_ALL


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
