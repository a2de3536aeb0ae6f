from __future__ import annotations

import itertools
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import replace

from .base import (
    CatalogEntry,
    DuplicateSkuError,
    InventoryRecord,
    NewSupply,
    StaleInventoryError,
    StoreError,
    SupplyNotFoundError,
)

"""In-memory SupplyStore.

Backs the test suite and dry runs. All state sits behind one re-entrant
lock. row_transaction() snapshots the state and restores it if the block
raises, so a row that created a supply and then failed its inventory write
leaves nothing behind.
"""

__all__ = [
    "InMemoryStore",
]


class InMemoryStore:
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._ids = itertools.count(1)
        self._supplies: dict[str, CatalogEntry] = {}
        self._supply_details: dict[str, NewSupply] = {}
        self._inventory: dict[tuple[str, str], InventoryRecord] = {}
        self._locations: dict[str, bool] = {}

    # -- seeding helpers -------------------------------------------------

    def add_location(self, location_id: str, active: bool = True) -> None:
        with self._lock:
            self._locations[location_id] = active

    def add_supply(self, sku: str, name: str, supply_id: str | None = None) -> CatalogEntry:
        with self._lock:
            if self.find_by_sku(sku) is not None:
                raise DuplicateSkuError(f"supply with SKU '{sku}' already exists")
            supply_id = supply_id or f"sup-{next(self._ids)}"
            entry = CatalogEntry(supply_id=supply_id, sku=sku, name=name)
            self._supplies[supply_id] = entry
            return entry

    def put_inventory(self, supply_id: str, location_id: str, qty: int) -> InventoryRecord:
        with self._lock:
            current = self._inventory.get((supply_id, location_id))
            version = current.version + 1 if current else 1
            record = InventoryRecord(supply_id, location_id, qty, version)
            self._inventory[(supply_id, location_id)] = record
            return record

    # -- CatalogService --------------------------------------------------

    def list_supplies(self) -> list[CatalogEntry]:
        with self._lock:
            return list(self._supplies.values())

    def find_by_sku(self, sku: str) -> CatalogEntry | None:
        key = sku.strip().lower()
        with self._lock:
            for entry in self._supplies.values():
                if entry.sku.lower() == key:
                    return entry
        return None

    def get_supply(self, supply_id: str) -> CatalogEntry | None:
        with self._lock:
            return self._supplies.get(supply_id)

    def create_supply(self, supply: NewSupply) -> CatalogEntry:
        if not supply.sku.strip():
            raise StoreError("supply SKU must not be empty")
        with self._lock:
            entry = self.add_supply(supply.sku, supply.name)
            self._supply_details[entry.supply_id] = supply
            return entry

    # -- InventoryService ------------------------------------------------

    def get_record(self, supply_id: str, location_id: str) -> InventoryRecord | None:
        with self._lock:
            return self._inventory.get((supply_id, location_id))

    def get_qty_on_hand(self, supply_id: str, location_id: str) -> int | None:
        record = self.get_record(supply_id, location_id)
        return record.qty_on_hand if record else None

    def set_qty_on_hand(
        self, supply_id: str, location_id: str, qty: int, expected_version: int | None
    ) -> InventoryRecord:
        with self._lock:
            if supply_id not in self._supplies:
                raise SupplyNotFoundError(f"supply '{supply_id}' not found")
            current = self._inventory.get((supply_id, location_id))
            current_version = current.version if current else None
            if current_version != expected_version:
                raise StaleInventoryError(
                    f"inventory for supply '{supply_id}' at '{location_id}' changed "
                    f"(expected version {expected_version}, found {current_version})"
                )
            if current is None:
                record = InventoryRecord(supply_id, location_id, qty, 1)
            else:
                record = replace(current, qty_on_hand=qty, version=current.version + 1)
            self._inventory[(supply_id, location_id)] = record
            return record

    # -- LocationService -------------------------------------------------

    def is_active(self, location_id: str) -> bool:
        with self._lock:
            return self._locations.get(location_id, False)

    # -- transactions ----------------------------------------------------

    @contextmanager
    def row_transaction(self) -> Iterator[None]:
        with self._lock:
            saved = (
                dict(self._supplies),
                dict(self._supply_details),
                dict(self._inventory),
            )
            try:
                yield
            except Exception:
                self._supplies, self._supply_details, self._inventory = saved
                raise
