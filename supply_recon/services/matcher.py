from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, replace

from ..models.parse_result import ParsedRow
from ..stores.base import CatalogSnapshot, InventoryService

"""SKU matching against the catalog snapshot.

Each candidate row is classified as matched (existing supply) or new by an
exact, case-insensitive SKU lookup. Rows repeating a SKU all resolve to the
same supply. The inventory map built alongside is only used to show diffs
during review.
"""

__all__ = [
    "MatchResult",
    "match_rows",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MatchResult:
    rows: tuple[ParsedRow, ...]
    existing_inventory: dict[str, int]  # supply id -> qty_on_hand at the target location
    matched_rows: int
    new_rows: int


def match_rows(
    candidates: Sequence[ParsedRow],
    catalog: CatalogSnapshot,
    inventory: InventoryService | None = None,
    location_id: str | None = None,
) -> MatchResult:
    """Classify candidate rows and collect current quantities for matched supplies.

    Matched supplies with no inventory record at the location show up as 0.
    Without an inventory service or location the map is left empty.

    Args:
        candidates: Validated rows, in file order
        catalog: Snapshot of the supply catalog, keyed by case-folded SKU
        inventory: Source of current quantities (optional)
        location_id: Location whose quantities are looked up

    Returns:
        MatchResult with every candidate marked matched or new, and the
        current quantity per matched supply id.
    """
    rows: list[ParsedRow] = []
    existing_inventory: dict[str, int] = {}
    matched = 0

    for row in candidates:
        entry = catalog.lookup(row.sku)
        if entry is None:
            rows.append(
                replace(
                    row,
                    existing_supply_id=None,
                    existing_supply_name=None,
                    is_new=True,
                    name=row.name or row.sku,
                )
            )
            continue

        matched += 1
        rows.append(
            replace(
                row,
                existing_supply_id=entry.supply_id,
                existing_supply_name=entry.name,
                is_new=False,
                name=row.name or entry.name or row.sku,
            )
        )
        if inventory is not None and location_id and entry.supply_id not in existing_inventory:
            qty = inventory.get_qty_on_hand(entry.supply_id, location_id)
            existing_inventory[entry.supply_id] = qty if qty is not None else 0

    logger.debug(
        "matched %d of %d rows against %d catalog supplies", matched, len(rows), len(catalog)
    )
    return MatchResult(
        rows=tuple(rows),
        existing_inventory=existing_inventory,
        matched_rows=matched,
        new_rows=len(rows) - matched,
    )
