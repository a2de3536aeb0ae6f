from __future__ import annotations

from dataclasses import dataclass, field

"""Config dataclasses for the supply spreadsheet import.

Defaults here are what the tool runs with when no config file is present.
The loader in supply_recon/config/loader.py overlays YAML values on top.
"""

DEFAULT_SKU_SYNONYMS = ("sku", "code", "item code", "supply code", "sku code")
DEFAULT_NAME_SYNONYMS = (
    "name", "description", "item", "item name", "supply", "supply name", "product",
)
DEFAULT_QUANTITY_SYNONYMS = (
    "quantity", "count", "qty", "on hand", "qty on hand", "stock", "ground count",
)


@dataclass(frozen=True)
class DatabaseConfig:
    """Database connection configuration.

    Used as fallback when environment variables are not set.
    Environment variables take precedence over these values.
    """
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class ColumnSynonyms:
    """Header names (case-insensitive) accepted for each semantic column role."""
    sku: tuple[str, ...] = DEFAULT_SKU_SYNONYMS
    name: tuple[str, ...] = DEFAULT_NAME_SYNONYMS
    quantity: tuple[str, ...] = DEFAULT_QUANTITY_SYNONYMS


@dataclass(frozen=True)
class SupplyDefaults:
    """Catalog fields given to supplies created by an import."""
    category: str = "other"
    unit: str = "each"
    cost: float = 0.0
    base_price: float = 0.0


@dataclass(frozen=True)
class ApplySettings:
    workers: int = 1  # 1 = sequential
    max_version_retries: int = 3


@dataclass(frozen=True)
class ImportConfig:
    """Root configuration object for parse and apply runs."""
    column_synonyms: ColumnSynonyms = field(default_factory=ColumnSynonyms)
    header_scan_rows: int = 10
    max_file_size_bytes: int = 5 * 1024 * 1024
    supply_defaults: SupplyDefaults = field(default_factory=SupplyDefaults)
    apply: ApplySettings = field(default_factory=ApplySettings)
    error_log_directory: str = "./logs"
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
