from __future__ import annotations

import json
import os
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..errors import ConfigError

"""Configuration loader.

Responsibilities:
- Load the YAML config (default ``config/ingest.yml``)
- Validate it against ``config_schema.json``
- Apply defaults (batch splitting off, 10000 rows per submission)
- Apply environment overrides (``.env`` is loaded by the CLI beforehand)
"""

__all__ = [
    "ConfigError",
    "DatabaseConfig",
    "LargeFilesConfig",
    "SubmissionsConfig",
    "IngestConfig",
    "load_config",
    "apply_env_overrides",
]

SCHEMA_PATH = Path(__file__).with_name("config_schema.json")

DEFAULT_MAX_ROWS = 10000
DEFAULT_TIMEOUT = 30.0
DEFAULT_WORKERS = 4


@dataclass(frozen=True)
class DatabaseConfig:
    """Callback store connection; environment variables take precedence."""
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class LargeFilesConfig:
    enabled: bool = False  # split sheets larger than max_rows_per_sheet
    max_rows_per_sheet: int = DEFAULT_MAX_ROWS


@dataclass(frozen=True)
class SubmissionsConfig:
    url: str
    timeout_seconds: float = DEFAULT_TIMEOUT


@dataclass(frozen=True)
class IngestConfig:
    submissions: SubmissionsConfig
    largefiles: LargeFilesConfig = field(default_factory=LargeFilesConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    audit_directory: str = "./logs"
    workers: int = DEFAULT_WORKERS


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the JSON schema.

    Raises:
        ConfigError: schema file missing or not JSON, or the data violates it
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")
    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def load_config(path: Path, env: Mapping[str, str] | None = None) -> IngestConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e

    _validate_config_schema(data)

    lf_raw = data.get("largefiles", {})
    sub_raw = data["submissions"]
    db_raw = data.get("database", {})
    cfg = IngestConfig(
        submissions=SubmissionsConfig(
            url=sub_raw["url"],
            timeout_seconds=float(sub_raw.get("timeout_seconds", DEFAULT_TIMEOUT)),
        ),
        largefiles=LargeFilesConfig(
            enabled=lf_raw.get("enabled", False),
            max_rows_per_sheet=lf_raw.get("max_rows_per_sheet", DEFAULT_MAX_ROWS),
        ),
        database=DatabaseConfig(
            host=db_raw.get("host"),
            port=db_raw.get("port"),
            user=db_raw.get("user"),
            password=db_raw.get("password"),
            database=db_raw.get("database"),
            dsn=db_raw.get("dsn"),
        ),
        audit_directory=data.get("audit", {}).get("directory", "./logs"),
        workers=data.get("workers", DEFAULT_WORKERS),
    )
    return apply_env_overrides(cfg, os.environ if env is None else env)


def _env_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise ConfigError(f"{name}: expected a boolean, got '{value}'")


def apply_env_overrides(cfg: IngestConfig, env: Mapping[str, str]) -> IngestConfig:
    """Override batching and endpoint settings from the environment.

    ERS_LARGEFILES_ENABLED, ERS_MAX_ROWS_PER_SHEET, ERS_SUBMISSIONS_URL,
    DATABASE_URL (callback store DSN).
    """
    largefiles = cfg.largefiles
    if "ERS_LARGEFILES_ENABLED" in env:
        largefiles = replace(largefiles, enabled=_env_bool("ERS_LARGEFILES_ENABLED", env["ERS_LARGEFILES_ENABLED"]))
    if "ERS_MAX_ROWS_PER_SHEET" in env:
        try:
            max_rows = int(env["ERS_MAX_ROWS_PER_SHEET"])
        except ValueError as e:
            raise ConfigError(f"ERS_MAX_ROWS_PER_SHEET: {e}") from e
        if max_rows < 1:
            raise ConfigError("ERS_MAX_ROWS_PER_SHEET must be >= 1")
        largefiles = replace(largefiles, max_rows_per_sheet=max_rows)

    submissions = cfg.submissions
    if env.get("ERS_SUBMISSIONS_URL"):
        submissions = replace(submissions, url=env["ERS_SUBMISSIONS_URL"])

    database = cfg.database
    if env.get("DATABASE_URL"):
        database = replace(database, dsn=env["DATABASE_URL"])

    return replace(cfg, largefiles=largefiles, submissions=submissions, database=database)
