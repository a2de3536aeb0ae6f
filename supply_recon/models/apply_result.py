from __future__ import annotations

import threading
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

"""Apply-stage models for the supply import.

ApplyRequest is the finalized row set a client submits for commit;
ApplyResult is the outcome of committing it. ApplyStatsAccumulator collects
per-row outcomes while the engine runs and is safe to share between workers.
"""

__all__ = [
    "ApplyRequestRow",
    "ApplyRequest",
    "ApplyRowError",
    "ApplyStats",
    "ApplyResult",
    "ApplyStatsAccumulator",
]


@dataclass(frozen=True)
class ApplyRequestRow:
    row_index: int
    sku: str
    name: str
    quantity: int  # final quantity: override if set, else parsed
    existing_supply_id: str | None
    included: bool = True
    is_new: bool = False
    category: str | None = None  # only used when a supply gets created

    @property
    def creates_supply(self) -> bool:
        return self.is_new or self.existing_supply_id is None

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "rowIndex": self.row_index,
            "sku": self.sku,
            "name": self.name,
            "quantity": self.quantity,
            "existingSupplyId": self.existing_supply_id,
            "included": self.included,
            "isNew": self.is_new,
        }
        if self.category is not None:
            body["category"] = self.category
        return body

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> ApplyRequestRow:
        supply_id = data.get("existingSupplyId")
        return ApplyRequestRow(
            row_index=int(data["rowIndex"]),
            sku=str(data.get("sku") or ""),
            name=str(data.get("name") or ""),
            quantity=int(data["quantity"]),
            existing_supply_id=str(supply_id) if supply_id is not None else None,
            included=bool(data.get("included", True)),
            is_new=bool(data.get("isNew", False)),
            category=data.get("category"),
        )


@dataclass(frozen=True)
class ApplyRequest:
    filename: str
    file_type: str
    location_id: str
    rows: tuple[ApplyRequestRow, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "rows", tuple(self.rows))

    def to_dict(self) -> dict[str, Any]:
        return {
            "filename": self.filename,
            "fileType": self.file_type,
            "locationId": self.location_id,
            "rows": [r.to_dict() for r in self.rows],
        }

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> ApplyRequest:
        return ApplyRequest(
            filename=str(data.get("filename") or ""),
            file_type=str(data.get("fileType") or ""),
            location_id=str(data["locationId"]),
            rows=tuple(ApplyRequestRow.from_dict(r) for r in data.get("rows") or ()),
        )


@dataclass(frozen=True)
class ApplyRowError:
    """A single row's failure. Never aborts the batch."""
    row: int
    sku: str
    error: str

    def to_dict(self) -> dict[str, Any]:
        return {"row": self.row, "sku": self.sku, "error": self.error}


@dataclass(frozen=True)
class ApplyStats:
    supplies_created: int = 0
    inventory_updated: int = 0
    rows_skipped: int = 0
    errors_count: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "suppliesCreated": self.supplies_created,
            "inventoryUpdated": self.inventory_updated,
            "rowsSkipped": self.rows_skipped,
            "errorsCount": self.errors_count,
        }


@dataclass(frozen=True)
class ApplyResult:
    stats: ApplyStats
    errors: tuple[ApplyRowError, ...] = ()
    elapsed_seconds: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "errors", tuple(self.errors))

    @property
    def total_rows(self) -> int:
        return self.stats.rows_skipped + self.stats.inventory_updated + len(self.errors)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "stats": self.stats.to_dict(),
            "errors": [e.to_dict() for e in self.errors],
        }


class ApplyStatsAccumulator:
    """Collects row outcomes during an apply run.

    Every row lands in exactly one bucket (skipped, updated, error). A lock
    guards the counters so workers can record concurrently; errors come back
    sorted by row so the result doesn't depend on completion order.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._created = 0
        self._updated = 0
        self._skipped = 0
        self._errors: list[ApplyRowError] = []

    def record_skipped(self) -> None:
        with self._lock:
            self._skipped += 1

    def record_updated(self, *, created: bool = False) -> None:
        with self._lock:
            self._updated += 1
            if created:
                self._created += 1

    def record_error(self, row: int, sku: str, error: str) -> ApplyRowError:
        err = ApplyRowError(row=row, sku=sku, error=error)
        with self._lock:
            self._errors.append(err)
        return err

    @property
    def errors_count(self) -> int:
        with self._lock:
            return len(self._errors)

    def result(self, elapsed_seconds: float = 0.0) -> ApplyResult:
        with self._lock:
            errors = tuple(sorted(self._errors, key=lambda e: e.row))
            stats = ApplyStats(
                supplies_created=self._created,
                inventory_updated=self._updated,
                rows_skipped=self._skipped,
                errors_count=len(errors),
            )
        return ApplyResult(stats=stats, errors=errors, elapsed_seconds=elapsed_seconds)
