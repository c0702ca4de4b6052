from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..models.config_models import (
    DEFAULT_CATEGORIES,
    DEFAULT_FALLBACK_CATEGORY,
    DEFAULT_MAX_ROWS,
    DEFAULT_ROUNDING_DECIMALS,
    DEFAULT_UOMS,
    AddOnDefaults,
    CommitMode,
    DatabaseConfig,
    ImportSettings,
)

"""Config loader.

Responsibilities:
- Load YAML config (default ``config/import.yml``)
- Validate against the bundled JSON schema (config_schema.json)
- Apply defaults for every optional key
- Cross-field checks the schema cannot express (fallback_category must be
  one of categories)
"""

__all__ = [
    "SCHEMA_PATH",
    "DEFAULT_CONFIG_PATH",
    "ConfigError",
    "load_config",
    "settings_from_dict",
]

SCHEMA_PATH = Path(__file__).with_name("config_schema.json")
DEFAULT_CONFIG_PATH = Path("config/import.yml")


class ConfigError(Exception):
    pass


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the JSON schema.

    Raises:
        ConfigError: schema file missing or unreadable, or the data violates it.
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


def settings_from_dict(data: dict[str, Any]) -> ImportSettings:
    """Build ImportSettings from already-parsed config data."""
    if not isinstance(data, dict):
        raise ConfigError(f"config root must be a mapping, got {type(data).__name__}")
    _validate_config_schema(data)

    categories = tuple(data.get("categories", DEFAULT_CATEGORIES))
    fallback = data.get("fallback_category", DEFAULT_FALLBACK_CATEGORY)
    if fallback not in categories:
        raise ConfigError(f"fallback_category '{fallback}' is not one of categories {list(categories)}")

    add_raw = data.get("add_ons", {})
    db_raw = data.get("database", {})
    return ImportSettings(
        max_rows=data.get("max_rows", DEFAULT_MAX_ROWS),
        rounding_decimals=data.get("rounding_decimals", DEFAULT_ROUNDING_DECIMALS),
        categories=categories,
        fallback_category=fallback,
        uoms=tuple(data.get("uoms", DEFAULT_UOMS)),
        commit_mode=CommitMode(data.get("commit_mode", CommitMode.SEQUENTIAL.value)),
        storage_directory=data.get("storage_directory", "./import-files"),
        add_ons=AddOnDefaults(
            prelims_pct=float(add_raw.get("prelims_pct", 0)),
            contingency_pct=float(add_raw.get("contingency_pct", 0)),
            profit_pct=float(add_raw.get("profit_pct", 0)),
            tax_pct=float(add_raw.get("tax_pct", 0)),
        ),
        database=DatabaseConfig(
            host=db_raw.get("host"),
            port=db_raw.get("port"),
            user=db_raw.get("user"),
            password=db_raw.get("password"),
            database=db_raw.get("database"),
            dsn=db_raw.get("dsn"),
        ),
    )


def load_config(path: Path, *, missing_ok: bool = False) -> ImportSettings:
    """Load and validate a YAML config file.

    ``missing_ok`` returns defaults when the file does not exist.
    """
    if not path.exists():
        if missing_ok:
            return ImportSettings()
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    return settings_from_dict(data)
