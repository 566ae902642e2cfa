from __future__ import annotations

import json
from collections.abc import Mapping
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError as SchemaValidationError

from ..errors import ConfigError, UnrecognisedSheetError, MSG_INCORRECT_SHEET_NAME, unidentifiable_sheet_context
from ..models.sheet_info import SheetInfo

"""Schema registry: sheet name -> SheetInfo.

The table of recognised ERS templates is data (``ers_sheets.yml``), validated
against ``registry_schema.json`` when loaded. The default registry is loaded
once per process and is read-only, so it can be shared by concurrent file
processing.
"""

__all__ = [
    "REGISTRY_PATH",
    "load_registry",
    "default_registry",
    "get_sheet",
]

REGISTRY_PATH = Path(__file__).with_name("ers_sheets.yml")
SCHEMA_PATH = Path(__file__).with_name("registry_schema.json")


def _validate_registry_schema(data: dict[str, Any], source: Path) -> None:
    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid registry schema file: {e}") from e
    except SchemaValidationError as e:
        raise ConfigError(f"sheet registry validation failed ({source.name}): {e.message}") from e


def load_registry(path: Path | None = None) -> Mapping[str, SheetInfo]:
    """Load and validate a sheet registry file.

    Raises:
        ConfigError: file missing, not YAML, or not matching the registry schema
    """
    source = path or REGISTRY_PATH
    if not source.exists():
        raise ConfigError(f"sheet registry not found: {source}")
    try:
        data = yaml.safe_load(source.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e

    _validate_registry_schema(data, source)

    sheets: dict[str, SheetInfo] = {}
    for name, entry in data["sheets"].items():
        sheets[str(name)] = SheetInfo(
            scheme_type=entry["scheme_type"],
            header_row_count=entry["header_row_count"],
            sheet_name=str(name),
            sheet_title=entry["title"],
            rule_set_id=entry["rule_set"],
            headers=tuple(entry["headers"]),
        )
    return MappingProxyType(sheets)


@lru_cache(maxsize=1)
def default_registry() -> Mapping[str, SheetInfo]:
    return load_registry()


def get_sheet(sheet_name: str, registry: Mapping[str, SheetInfo] | None = None) -> SheetInfo:
    """Look up ``sheet_name`` (exact match).

    Raises:
        UnrecognisedSheetError: name is not a registered template
    """
    sheets = default_registry() if registry is None else registry
    try:
        return sheets[sheet_name]
    except KeyError:
        raise UnrecognisedSheetError(
            MSG_INCORRECT_SHEET_NAME, unidentifiable_sheet_context(sheet_name)
        ) from None
