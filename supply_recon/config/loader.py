from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..models.config_models import (
    ApplySettings,
    ColumnSynonyms,
    DatabaseConfig,
    ImportConfig,
    SupplyDefaults,
)

"""Config loader.

Responsibilities:
- Resolve the config path (explicit > SUPPLY_RECON_CONFIG env > config/supply_import.yml)
- Load YAML and validate it against the bundled JSON schema
- Overlay the values on the ImportConfig defaults
"""

__all__ = [
    "ConfigError",
    "DEFAULT_CONFIG_PATH",
    "SCHEMA_PATH",
    "load_config",
    "resolve_config_path",
]

SCHEMA_PATH = Path(__file__).with_name("config_schema.json")
DEFAULT_CONFIG_PATH = Path("config/supply_import.yml")
CONFIG_ENV_VAR = "SUPPLY_RECON_CONFIG"


class ConfigError(Exception):
    pass


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the JSON schema.

    Raises:
        ConfigError: If the schema file is missing or unreadable, or the
            config data violates it (unknown keys, wrong types, bad ranges).
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


def resolve_config_path(path: Path | None = None) -> Path | None:
    """Pick the config file to load, or None to run on built-in defaults.

    An explicit path or the env var is always returned (a missing file is then
    an error at load time); the conventional default path only if it exists.
    """
    if path is not None:
        return path
    env_path = os.getenv(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)
    if DEFAULT_CONFIG_PATH.exists():
        return DEFAULT_CONFIG_PATH
    return None


def _synonyms(raw: dict[str, Any]) -> ColumnSynonyms:
    defaults = ColumnSynonyms()
    return ColumnSynonyms(
        sku=tuple(raw.get("sku", defaults.sku)),
        name=tuple(raw.get("name", defaults.name)),
        quantity=tuple(raw.get("quantity", defaults.quantity)),
    )


def load_config(path: Path | None = None) -> ImportConfig:
    path = resolve_config_path(path)
    if path is None:
        return ImportConfig()
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"config root must be a mapping: {path}")

    _validate_config_schema(data)

    defaults = ImportConfig()
    supply_raw = data.get("supply_defaults", {})
    apply_raw = data.get("apply", {})
    db_raw = data.get("database", {})
    return ImportConfig(
        column_synonyms=_synonyms(data.get("column_synonyms", {})),
        header_scan_rows=data.get("header_scan_rows", defaults.header_scan_rows),
        max_file_size_bytes=data.get("max_file_size_bytes", defaults.max_file_size_bytes),
        supply_defaults=SupplyDefaults(
            category=supply_raw.get("category", defaults.supply_defaults.category),
            unit=supply_raw.get("unit", defaults.supply_defaults.unit),
            cost=float(supply_raw.get("cost", defaults.supply_defaults.cost)),
            base_price=float(supply_raw.get("base_price", defaults.supply_defaults.base_price)),
        ),
        apply=ApplySettings(
            workers=apply_raw.get("workers", defaults.apply.workers),
            max_version_retries=apply_raw.get(
                "max_version_retries", defaults.apply.max_version_retries
            ),
        ),
        error_log_directory=data.get("error_log", {}).get("directory", defaults.error_log_directory),
        database=DatabaseConfig(
            host=db_raw.get("host"),
            port=db_raw.get("port"),
            user=db_raw.get("user"),
            password=db_raw.get("password"),
            database=db_raw.get("database"),
            dsn=db_raw.get("dsn"),
        ),
    )
