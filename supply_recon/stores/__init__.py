"""Collaborator stores: catalog, inventory and location services."""

from .base import (
    CatalogEntry,
    CatalogSnapshot,
    DuplicateSkuError,
    InventoryRecord,
    LocationInvalidError,
    NewSupply,
    StaleInventoryError,
    StoreError,
    SupplyNotFoundError,
    SupplyStore,
    require_active_location,
)
from .memory import InMemoryStore

__all__ = [
    "CatalogEntry",
    "CatalogSnapshot",
    "DuplicateSkuError",
    "InMemoryStore",
    "InventoryRecord",
    "LocationInvalidError",
    "NewSupply",
    "StaleInventoryError",
    "StoreError",
    "SupplyNotFoundError",
    "SupplyStore",
    "require_active_location",
]
