"""Row-level normalization of ingested spreadsheet rows."""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from ..models.parse_result import ParsedRow
from ..models.row_data import RawRow

__all__ = [
    "MISSING_SKU",
    "INVALID_QUANTITY",
    "MAX_QUANTITY",
    "QUANTITY_ROUNDED",
    "DUPLICATE_SKU",
    "ValidationResult",
    "clean_string",
    "parse_quantity",
    "validate_rows",
]

MISSING_SKU = "missing SKU"
INVALID_QUANTITY = "invalid quantity"
QUANTITY_ROUNDED = "quantity rounded"
DUPLICATE_SKU = "duplicate SKU"

# Largest count the inventory table (postgres integer) can hold
MAX_QUANTITY = 2**31 - 1

_WHITESPACE_RE = re.compile(r"\s+")
_QTY_NOISE_RE = re.compile(r"[,\s]")


@dataclass(frozen=True)
class ValidationResult:
    rows: tuple[ParsedRow, ...]  # candidates: no match fields set yet
    warnings: tuple[str, ...]  # file-level
    duplicate_skus: tuple[str, ...]


def clean_string(value: str | None) -> str:
    """Collapse newlines and whitespace runs to single spaces and trim."""
    if not value:
        return ""
    return _WHITESPACE_RE.sub(" ", value).strip()


def parse_quantity(value: str | None) -> tuple[int, str | None]:
    """Parse a quantity cell into a non-negative int.

    Returns the quantity and the row warning it earned, if any. Blank cells
    count as 0 without a warning; unparsable or negative values become 0 with
    INVALID_QUANTITY; fractions are rounded half-up with QUANTITY_ROUNDED.
    """
    cleaned = _QTY_NOISE_RE.sub("", value or "")
    if cleaned == "":
        return 0, None
    try:
        parsed = Decimal(cleaned)
    except InvalidOperation:
        return 0, INVALID_QUANTITY
    if not parsed.is_finite() or parsed < 0 or parsed > MAX_QUANTITY:
        return 0, INVALID_QUANTITY
    rounded = parsed.to_integral_value(rounding=ROUND_HALF_UP)
    if rounded != parsed:
        return int(rounded), QUANTITY_ROUNDED
    return int(rounded), None


def validate_rows(
    raw_rows: Iterable[RawRow],
    sku_header: str | None,
    name_header: str | None,
    quantity_header: str | None,
) -> ValidationResult:
    """Project raw rows onto sku/name/quantity and collect warnings.

    Every row is kept, including ones without a SKU. SKUs repeating within the
    file (compared case-insensitively) are flagged on each affected row and
    reported once, under their first spelling, in ``duplicate_skus``.

    Args:
        raw_rows: Rows from the ingested sheet
        sku_header: Header of the SKU column
        name_header: Header of the name column, or None when the file has none
        quantity_header: Header of the quantity column

    Returns:
        ValidationResult holding one ParsedRow per raw row plus file-level
        warnings.
    """
    drafts: list[tuple[RawRow, str, str, int, list[str]]] = []
    file_warnings: list[str] = []
    first_seen: dict[str, tuple[int, str]] = {}
    duplicates: dict[str, str] = {}  # lower sku -> first spelling, insertion ordered

    for raw in raw_rows:
        sku = clean_string(raw.get(sku_header))
        name = clean_string(raw.get(name_header))
        quantity, qty_warning = parse_quantity(raw.get(quantity_header))

        warnings: list[str] = []
        if not sku:
            warnings.append(MISSING_SKU)
        if qty_warning:
            warnings.append(qty_warning)

        if sku:
            key = sku.lower()
            if key not in first_seen:
                first_seen[key] = (raw.row_number, sku)
            elif key not in duplicates:
                first_row, first_sku = first_seen[key]
                duplicates[key] = first_sku
                file_warnings.append(
                    f'Duplicate SKU "{first_sku}" on row {raw.row_number} (first seen on row {first_row})'
                )

        drafts.append((raw, sku, name, quantity, warnings))

    rows: list[ParsedRow] = []
    for raw, sku, name, quantity, warnings in drafts:
        if sku and sku.lower() in duplicates:
            warnings.append(DUPLICATE_SKU)
        rows.append(
            ParsedRow(
                row_index=raw.row_number,
                sku=sku,
                name=name,
                quantity=quantity,
                warnings=tuple(warnings),
                raw=raw.values,
            )
        )

    return ValidationResult(
        rows=tuple(rows),
        warnings=tuple(file_warnings),
        duplicate_skus=tuple(duplicates.values()),
    )
