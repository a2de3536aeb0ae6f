from __future__ import annotations

from collections.abc import Iterable, Mapping
from contextlib import AbstractContextManager
from dataclasses import dataclass
from typing import Protocol

"""Collaborator contracts consumed by the reconciliation pipeline.

The pipeline never owns catalog or inventory data. It talks to three
services (catalog, inventory, locations) through the protocols below; a
store implementation usually provides all three at once plus
row_transaction(), which scopes one apply row's writes so they commit or
roll back together.
"""

__all__ = [
    "StoreError",
    "SupplyNotFoundError",
    "DuplicateSkuError",
    "StaleInventoryError",
    "LocationInvalidError",
    "CatalogEntry",
    "NewSupply",
    "InventoryRecord",
    "CatalogService",
    "InventoryService",
    "LocationService",
    "SupplyStore",
    "CatalogSnapshot",
    "require_active_location",
]


class StoreError(Exception):
    """Base class for collaborator failures scoped to a single operation."""


class SupplyNotFoundError(StoreError):
    pass


class DuplicateSkuError(StoreError):
    pass


class StaleInventoryError(StoreError):
    """An inventory write lost an optimistic version check."""


class LocationInvalidError(Exception):
    """The target location is unknown or inactive. Fatal for parse and apply."""


@dataclass(frozen=True)
class CatalogEntry:
    supply_id: str
    sku: str
    name: str


@dataclass(frozen=True)
class NewSupply:
    sku: str
    name: str
    category: str
    unit: str
    cost: float
    base_price: float


@dataclass(frozen=True)
class InventoryRecord:
    supply_id: str
    location_id: str
    qty_on_hand: int
    version: int


class CatalogService(Protocol):
    def list_supplies(self) -> Iterable[CatalogEntry]: ...

    def find_by_sku(self, sku: str) -> CatalogEntry | None: ...

    def get_supply(self, supply_id: str) -> CatalogEntry | None: ...

    def create_supply(self, supply: NewSupply) -> CatalogEntry: ...


class InventoryService(Protocol):
    def get_record(self, supply_id: str, location_id: str) -> InventoryRecord | None: ...

    def get_qty_on_hand(self, supply_id: str, location_id: str) -> int | None: ...

    def set_qty_on_hand(
        self, supply_id: str, location_id: str, qty: int, expected_version: int | None
    ) -> InventoryRecord:
        """Absolute set. expected_version None means "no record exists yet"."""
        ...


class LocationService(Protocol):
    def is_active(self, location_id: str) -> bool: ...


class SupplyStore(CatalogService, InventoryService, LocationService, Protocol):
    def row_transaction(self) -> AbstractContextManager[None]: ...


class CatalogSnapshot:
    """Case-insensitive SKU -> CatalogEntry view taken at parse time."""

    def __init__(self, entries: Iterable[CatalogEntry]) -> None:
        self._by_sku: dict[str, CatalogEntry] = {}
        for entry in entries:
            # first entry wins if the catalog itself holds case variants
            self._by_sku.setdefault(entry.sku.strip().lower(), entry)

    @classmethod
    def from_catalog(cls, catalog: CatalogService) -> CatalogSnapshot:
        return cls(catalog.list_supplies())

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, tuple[str, str]]) -> CatalogSnapshot:
        """Build from ``{sku: (supply_id, name)}``."""
        return cls(CatalogEntry(supply_id=sid, sku=sku, name=name) for sku, (sid, name) in mapping.items())

    def lookup(self, sku: str) -> CatalogEntry | None:
        if not sku:
            return None
        return self._by_sku.get(sku.strip().lower())

    def __len__(self) -> int:
        return len(self._by_sku)


def require_active_location(locations: LocationService, location_id: str | None) -> str:
    """Return ``location_id`` if it names an active location, else raise LocationInvalidError."""
    if not location_id or not str(location_id).strip():
        raise LocationInvalidError("location is required")
    location_id = str(location_id).strip()
    if not locations.is_active(location_id):
        raise LocationInvalidError(f"location '{location_id}' is not an active location")
    return location_id
