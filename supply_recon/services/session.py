from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from ..models.apply_result import ApplyRequest, ApplyRequestRow, ApplyResult
from ..ingest.validator import MAX_QUANTITY
from ..models.parse_result import ParsedRow, ParseResult

"""Review-stage state for one parsed upload.

A ReconciliationSession wraps an immutable ParseResult and holds the user's
edits: which rows are included and which quantities are overridden. Counts,
final quantities and diffs are derived on every read. The session never
touches a store; it only snapshots an ApplyRequest when asked.

It also tracks where the upload is in the pipeline:

    UPLOADING -> PARSED -> APPLYING -> COMPLETED
                   ^          |
                   +----------+  (fatal apply error, edits kept)
"""

__all__ = [
    "PipelineState",
    "RowFilter",
    "ReviewRow",
    "SessionStateError",
    "ApplyInProgressError",
    "ReconciliationSession",
    "DEFAULT_PAGE_SIZE",
]

DEFAULT_PAGE_SIZE = 25


class PipelineState(Enum):
    UPLOADING = "uploading"
    PARSED = "parsed"
    APPLYING = "applying"
    COMPLETED = "completed"


class RowFilter(Enum):
    """Row subsets for review views and bulk inclusion toggles."""
    ALL = "all"
    NEW = "new"
    MATCHED = "matched"
    WITH_WARNINGS = "with_warnings"
    CHANGED = "changed"  # new rows, or matched rows whose diff != 0


class SessionStateError(Exception):
    """An operation isn't allowed in the session's current pipeline state."""


class ApplyInProgressError(SessionStateError):
    """A second apply was attempted while one is still running."""


@dataclass(frozen=True)
class ReviewRow:
    """Display projection of one row with the session's edits applied."""
    row: ParsedRow
    included: bool
    quantity_override: int | None
    final_quantity: int
    current_quantity: int | None
    diff: int | None


class ReconciliationSession:
    """Caller-owned edit state over one ParseResult."""

    def __init__(self, parse_result: ParseResult) -> None:
        self._result = parse_result
        self._rows = {row.row_index: row for row in parse_result.rows}
        self._included: dict[int, bool] = {index: True for index in self._rows}
        self._overrides: dict[int, int] = {}
        self._state = PipelineState.PARSED
        self._state_lock = threading.Lock()
        self.apply_error: str | None = None
        self.apply_result: ApplyResult | None = None

    @property
    def parse_result(self) -> ParseResult:
        return self._result

    @property
    def state(self) -> PipelineState:
        return self._state

    def _row(self, row_index: int) -> ParsedRow:
        try:
            return self._rows[row_index]
        except KeyError:
            raise KeyError(f"unknown row index {row_index}") from None

    def _require_editable(self) -> None:
        if self._state is not PipelineState.PARSED:
            raise SessionStateError(f"rows can't be edited while {self._state.value}")

    # -- edits -----------------------------------------------------------

    def set_included(self, row_index: int, included: bool) -> None:
        self._require_editable()
        self._row(row_index)
        self._included[row_index] = bool(included)

    def bulk_set_included(self, included: bool, row_filter: RowFilter = RowFilter.ALL) -> int:
        """Set inclusion on every row in ``row_filter``; returns how many rows were touched."""
        self._require_editable()
        touched = 0
        for row in self.filtered_rows(row_filter):
            self._included[row.row_index] = bool(included)
            touched += 1
        return touched

    def set_quantity_override(self, row_index: int, quantity: int) -> None:
        self._require_editable()
        self._row(row_index)
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise ValueError(f"quantity override must be an integer, got {quantity!r}")
        if not 0 <= quantity <= MAX_QUANTITY:
            raise ValueError(f"quantity override must be between 0 and {MAX_QUANTITY}, got {quantity}")
        self._overrides[row_index] = quantity

    def clear_quantity_override(self, row_index: int) -> None:
        self._require_editable()
        self._row(row_index)
        self._overrides.pop(row_index, None)

    # -- derived values --------------------------------------------------

    def is_included(self, row_index: int) -> bool:
        self._row(row_index)
        return self._included[row_index]

    def quantity_override(self, row_index: int) -> int | None:
        self._row(row_index)
        return self._overrides.get(row_index)

    @property
    def included_count(self) -> int:
        return sum(1 for included in self._included.values() if included)

    def final_quantity(self, row_index: int) -> int:
        override = self._overrides.get(row_index)
        return override if override is not None else self._row(row_index).quantity

    def current_quantity(self, row_index: int) -> int | None:
        row = self._row(row_index)
        if row.existing_supply_id is None:
            return None
        return self._result.existing_inventory.get(row.existing_supply_id, 0)

    def diff(self, row_index: int) -> int | None:
        current = self.current_quantity(row_index)
        if current is None:
            return None
        return self.final_quantity(row_index) - current

    def _predicate(self, row_filter: RowFilter) -> Callable[[ParsedRow], bool]:
        if row_filter is RowFilter.NEW:
            return lambda r: r.existing_supply_id is None
        if row_filter is RowFilter.MATCHED:
            return lambda r: r.existing_supply_id is not None
        if row_filter is RowFilter.WITH_WARNINGS:
            return lambda r: bool(r.warnings)
        if row_filter is RowFilter.CHANGED:
            return lambda r: self.diff(r.row_index) != 0
        return lambda r: True

    def filtered_rows(self, row_filter: RowFilter = RowFilter.ALL) -> list[ParsedRow]:
        keep = self._predicate(row_filter)
        return [row for row in self._result.rows if keep(row)]

    def review_rows(self, row_filter: RowFilter = RowFilter.ALL) -> list[ReviewRow]:
        return [
            ReviewRow(
                row=row,
                included=self._included[row.row_index],
                quantity_override=self._overrides.get(row.row_index),
                final_quantity=self.final_quantity(row.row_index),
                current_quantity=self.current_quantity(row.row_index),
                diff=self.diff(row.row_index),
            )
            for row in self.filtered_rows(row_filter)
        ]

    def page(
        self,
        number: int,
        per_page: int = DEFAULT_PAGE_SIZE,
        row_filter: RowFilter = RowFilter.ALL,
    ) -> list[ReviewRow]:
        """1-based page of review rows. Out-of-range pages are empty."""
        if number < 1 or per_page < 1:
            raise ValueError("page number and page size must be >= 1")
        start = (number - 1) * per_page
        return self.review_rows(row_filter)[start:start + per_page]

    def to_apply_request(self, location_id: str) -> ApplyRequest:
        return ApplyRequest(
            filename=self._result.filename,
            file_type=self._result.file_type,
            location_id=location_id,
            rows=tuple(
                ApplyRequestRow(
                    row_index=row.row_index,
                    sku=row.sku,
                    name=row.name,
                    quantity=self.final_quantity(row.row_index),
                    existing_supply_id=row.existing_supply_id,
                    included=self._included[row.row_index],
                    is_new=row.is_new,
                )
                for row in self._result.rows
            ),
        )

    # -- pipeline state --------------------------------------------------

    def begin_apply(self) -> None:
        """Enter APPLYING. Rejects (never queues) a concurrent or repeated apply."""
        with self._state_lock:
            if self._state is PipelineState.APPLYING:
                raise ApplyInProgressError("an apply is already in progress for this upload")
            if self._state is PipelineState.COMPLETED:
                raise SessionStateError("this upload has already been applied")
            self._state = PipelineState.APPLYING
            self.apply_error = None

    def complete_apply(self, result: ApplyResult) -> None:
        with self._state_lock:
            if self._state is not PipelineState.APPLYING:
                raise SessionStateError(f"no apply in progress (state is {self._state.value})")
            self._state = PipelineState.COMPLETED
            self.apply_result = result

    def fail_apply(self, message: str) -> None:
        """Return to PARSED after a fatal apply error; edits are kept for a retry."""
        with self._state_lock:
            if self._state is not PipelineState.APPLYING:
                raise SessionStateError(f"no apply in progress (state is {self._state.value})")
            self._state = PipelineState.PARSED
            self.apply_error = message
