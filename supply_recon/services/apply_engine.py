from __future__ import annotations

import logging
import threading
import time
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed

from ..logging.error_log import ErrorLogBuffer, ErrorRecord
from ..models.apply_result import ApplyRequest, ApplyRequestRow, ApplyResult, ApplyStatsAccumulator
from ..models.config_models import SupplyDefaults
from ..stores.base import (
    NewSupply,
    StaleInventoryError,
    StoreError,
    SupplyNotFoundError,
    SupplyStore,
    require_active_location,
)
from .progress import ProgressTracker

"""Commit of a finalized supply import.

The location is checked once up front (LocationInvalidError aborts before
any row is touched). After that every row stands alone:

- excluded rows are counted as skipped and never touch a store
- new rows create a catalog supply, then set its quantity at the location
- matched rows set qty_on_hand at the location (absolute value, not a delta)

Each included row runs inside store.row_transaction(), so a supply created
for a row whose inventory write then fails is rolled back with it. Failures
become ApplyRowErrors and the batch carries on.

Inventory writes use optimistic versioning: read the record, write with the
version that was read, and on a conflict re-read and retry a bounded number
of times.

With workers > 1 rows are grouped so two rows writing the same inventory
record (same supply, or same new SKU) always run on one worker in file
order; the later row's quantity wins, exactly as in a sequential run.
"""

__all__ = [
    "ApplyEngine",
    "RowApplyError",
]

logger = logging.getLogger(__name__)


class RowApplyError(Exception):
    """A single row could not be applied."""

    def __init__(self, error_type: str, message: str) -> None:
        super().__init__(message)
        self.error_type = error_type


class ApplyEngine:
    def __init__(
        self,
        store: SupplyStore,
        supply_defaults: SupplyDefaults | None = None,
        *,
        workers: int = 1,
        max_version_retries: int = 3,
        error_log: ErrorLogBuffer | None = None,
        show_progress: bool | None = None,
    ) -> None:
        self._store = store
        self._defaults = supply_defaults or SupplyDefaults()
        self._workers = max(1, workers)
        self._max_version_retries = max(0, max_version_retries)
        self._error_log = error_log
        self._show_progress = show_progress
        self._created_lock = threading.Lock()

    def apply(self, request: ApplyRequest) -> ApplyResult:
        """Commit ``request`` and return per-bucket stats plus row errors.

        Args:
            request: Finalized rows and the target location

        Returns:
            ApplyResult. Every row is counted in exactly one of skipped,
            updated or errors; errors are sorted by row.

        Raises:
            LocationInvalidError: the location is missing or inactive. Nothing
                has been written when this is raised.
        """
        start = time.perf_counter()
        location_id = require_active_location(self._store, request.location_id)
        acc = ApplyStatsAccumulator()
        created: dict[str, str] = {}  # lower-cased SKU -> supply created earlier in this run

        logger.info(
            "applying %d rows from %s to location %s", len(request.rows), request.filename, location_id
        )
        with ProgressTracker(len(request.rows), enabled=self._show_progress) as progress:
            if self._workers == 1:
                for row in request.rows:
                    self._apply_row(row, request, location_id, acc, created)
                    progress.advance()
                    progress.set_postfix(errors=acc.errors_count)
            else:
                groups = self._group_rows(request.rows, location_id)
                with ThreadPoolExecutor(max_workers=self._workers) as pool:
                    futures = {
                        pool.submit(self._apply_group, group, request, location_id, acc, created): len(group)
                        for group in groups
                    }
                    for future in as_completed(futures):
                        future.result()
                        progress.advance(futures[future])
                        progress.set_postfix(errors=acc.errors_count)

        result = acc.result(elapsed_seconds=time.perf_counter() - start)
        logger.info(
            "apply finished: created=%d updated=%d skipped=%d errors=%d",
            result.stats.supplies_created,
            result.stats.inventory_updated,
            result.stats.rows_skipped,
            result.stats.errors_count,
        )
        return result

    @staticmethod
    def _group_rows(rows: Sequence[ApplyRequestRow], location_id: str) -> list[list[ApplyRequestRow]]:
        """Partition rows by the inventory record they write, keeping file order."""
        groups: dict[tuple[str, ...], list[ApplyRequestRow]] = {}
        for row in rows:
            if not row.included:
                key: tuple[str, ...] = ("skip", str(row.row_index))
            elif row.creates_supply:
                key = ("new", row.sku.strip().lower(), location_id)
            else:
                key = ("supply", str(row.existing_supply_id), location_id)
            groups.setdefault(key, []).append(row)
        return list(groups.values())

    def _apply_group(
        self,
        group: Sequence[ApplyRequestRow],
        request: ApplyRequest,
        location_id: str,
        acc: ApplyStatsAccumulator,
        created: dict[str, str],
    ) -> None:
        for row in group:
            self._apply_row(row, request, location_id, acc, created)

    def _apply_row(
        self,
        row: ApplyRequestRow,
        request: ApplyRequest,
        location_id: str,
        acc: ApplyStatsAccumulator,
        created: dict[str, str],
    ) -> None:
        if not row.included:
            acc.record_skipped()
            return
        try:
            with self._store.row_transaction():
                supply_id, was_created = self._resolve_supply(row, created)
                self._write_quantity(supply_id, location_id, row.quantity)
        except RowApplyError as e:
            self._record_error(acc, request, location_id, row, e.error_type, str(e))
            return
        except Exception as e:  # any failure stays scoped to this row
            logger.exception("row %d (%s): unexpected apply failure", row.row_index, row.sku)
            self._record_error(acc, request, location_id, row, "UNEXPECTED_ERROR", str(e) or type(e).__name__)
            return

        if was_created:
            # only remembered once the row's transaction has committed
            with self._created_lock:
                created[row.sku.strip().lower()] = supply_id
        acc.record_updated(created=was_created)

    def _resolve_supply(self, row: ApplyRequestRow, created: dict[str, str]) -> tuple[str, bool]:
        """Return the supply id the row writes to and whether this row created it."""
        if not row.creates_supply:
            return str(row.existing_supply_id), False

        sku = row.sku.strip()
        if not sku:
            raise RowApplyError("MISSING_SKU", "missing SKU")

        with self._created_lock:
            earlier = created.get(sku.lower())
        if earlier is not None:
            return earlier, False

        try:
            existing = self._store.find_by_sku(sku)
            if existing is not None:
                # created by an earlier run of the same request, or by someone else since parse
                logger.info("row %d: SKU %s already in catalog, reusing %s", row.row_index, sku, existing.supply_id)
                return existing.supply_id, False
            entry = self._store.create_supply(
                NewSupply(
                    sku=sku,
                    name=row.name.strip() or sku,
                    category=row.category or self._defaults.category,
                    unit=self._defaults.unit,
                    cost=self._defaults.cost,
                    base_price=self._defaults.base_price,
                )
            )
        except StoreError as e:
            raise RowApplyError("SUPPLY_CREATE_FAILED", f"failed to create supply: {e}") from e
        logger.debug("row %d: created supply %s for SKU %s", row.row_index, entry.supply_id, sku)
        return entry.supply_id, True

    def _write_quantity(self, supply_id: str, location_id: str, qty: int) -> None:
        attempts = self._max_version_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                record = self._store.get_record(supply_id, location_id)
                self._store.set_qty_on_hand(
                    supply_id, location_id, qty, record.version if record else None
                )
                return
            except StaleInventoryError as e:
                if attempt == attempts:
                    raise RowApplyError(
                        "INVENTORY_CONFLICT",
                        f"inventory changed concurrently, gave up after {attempts} attempts: {e}",
                    ) from e
                logger.debug("supply %s at %s: version conflict, retrying (%d/%d)",
                             supply_id, location_id, attempt, attempts)
            except SupplyNotFoundError as e:
                raise RowApplyError("SUPPLY_NOT_FOUND", f"supply '{supply_id}' not found") from e
            except StoreError as e:
                raise RowApplyError("INVENTORY_UPDATE_FAILED", f"failed to update inventory: {e}") from e

    def _record_error(
        self,
        acc: ApplyStatsAccumulator,
        request: ApplyRequest,
        location_id: str,
        row: ApplyRequestRow,
        error_type: str,
        message: str,
    ) -> None:
        acc.record_error(row.row_index, row.sku, message)
        logger.warning("row %d (%s): %s", row.row_index, row.sku or "-", message)
        if self._error_log is not None:
            self._error_log.append(
                ErrorRecord.create(
                    file=request.filename,
                    location=location_id,
                    row=row.row_index,
                    sku=row.sku,
                    error_type=error_type,
                    message=message,
                )
            )
