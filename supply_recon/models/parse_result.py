from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

"""Parse-stage models: ColumnInfo, ParsedRow, ParseStats, ParseResult.

A ParseResult is the immutable outcome of ingesting, validating and matching
one uploaded file. It is what the parse endpoint returns and what a client
holds (and later resubmits, edited) until it applies the import.

Serialization uses the camelCase keys of the parse response contract.
"""

__all__ = [
    "ColumnInfo",
    "ParsedRow",
    "ParseStats",
    "ParseResult",
    "FILE_TYPE_CSV",
    "FILE_TYPE_TSV",
    "FILE_TYPE_XLSX",
]

FILE_TYPE_CSV = "csv"
FILE_TYPE_TSV = "tsv"
FILE_TYPE_XLSX = "xlsx"


@dataclass(frozen=True)
class ColumnInfo:
    """A detected header column and the semantic role assigned to it."""
    index: int
    header: str
    role: str  # sku | name | quantity | skip

    def to_dict(self) -> dict[str, Any]:
        return {"index": self.index, "header": self.header, "role": self.role}

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> ColumnInfo:
        return ColumnInfo(index=int(data["index"]), header=str(data["header"]), role=str(data["role"]))


@dataclass(frozen=True)
class ParsedRow:
    """Typed projection of one RawRow plus its catalog match outcome.

    existing_supply_id / existing_supply_name / is_new are filled in by the
    matcher; a validator-stage candidate has them unset (is_new False).
    """
    row_index: int
    sku: str
    name: str
    quantity: int
    warnings: tuple[str, ...] = ()
    existing_supply_id: str | None = None
    existing_supply_name: str | None = None
    is_new: bool = False
    raw: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.quantity < 0:
            raise ValueError(f"row {self.row_index}: quantity must be >= 0, got {self.quantity}")
        if self.existing_supply_id is not None and self.is_new:
            raise ValueError(f"row {self.row_index}: a matched row cannot be new")
        object.__setattr__(self, "warnings", tuple(self.warnings))
        object.__setattr__(self, "raw", MappingProxyType(dict(self.raw)))

    @property
    def is_matched(self) -> bool:
        return self.existing_supply_id is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "rowIndex": self.row_index,
            "sku": self.sku,
            "name": self.name,
            "quantity": self.quantity,
            "warnings": list(self.warnings),
            "existingSupplyId": self.existing_supply_id,
            "existingSupplyName": self.existing_supply_name,
            "isNew": self.is_new,
            "raw": dict(self.raw),
        }

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> ParsedRow:
        supply_id = data.get("existingSupplyId")
        return ParsedRow(
            row_index=int(data["rowIndex"]),
            sku=str(data.get("sku") or ""),
            name=str(data.get("name") or ""),
            quantity=int(data.get("quantity") or 0),
            warnings=tuple(data.get("warnings") or ()),
            existing_supply_id=str(supply_id) if supply_id is not None else None,
            existing_supply_name=data.get("existingSupplyName"),
            is_new=bool(data.get("isNew", False)),
            raw=data.get("raw") or {},
        )


@dataclass(frozen=True)
class ParseStats:
    total_rows: int  # data lines after the header, blank ones included
    valid_rows: int  # rows retained in ParseResult.rows
    empty_rows: int
    matched_supplies: int  # rows, not distinct SKUs
    new_supplies: int
    duplicate_skus: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalRows": self.total_rows,
            "validRows": self.valid_rows,
            "emptyRows": self.empty_rows,
            "matchedSupplies": self.matched_supplies,
            "newSupplies": self.new_supplies,
            "duplicateSkus": list(self.duplicate_skus),
        }

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> ParseStats:
        return ParseStats(
            total_rows=int(data.get("totalRows", 0)),
            valid_rows=int(data.get("validRows", 0)),
            empty_rows=int(data.get("emptyRows", 0)),
            matched_supplies=int(data.get("matchedSupplies", 0)),
            new_supplies=int(data.get("newSupplies", 0)),
            duplicate_skus=tuple(data.get("duplicateSkus") or ()),
        )


@dataclass(frozen=True)
class ParseResult:
    """Immutable source of truth for one reconciliation attempt."""
    filename: str
    file_type: str
    rows: tuple[ParsedRow, ...]
    warnings: tuple[str, ...]
    existing_inventory: Mapping[str, int]
    stats: ParseStats
    columns: tuple[ColumnInfo, ...] = ()
    location_id: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "rows", tuple(self.rows))
        object.__setattr__(self, "warnings", tuple(self.warnings))
        object.__setattr__(self, "columns", tuple(self.columns))
        object.__setattr__(self, "existing_inventory", MappingProxyType(dict(self.existing_inventory)))
        previous = 0
        for row in self.rows:
            if row.row_index <= previous:
                raise ValueError(
                    f"row indexes must be unique and increasing: {row.row_index} after {previous}"
                )
            previous = row.row_index

    def row(self, row_index: int) -> ParsedRow:
        for r in self.rows:
            if r.row_index == row_index:
                return r
        raise KeyError(row_index)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "success": True,
            "filename": self.filename,
            "fileType": self.file_type,
            "columns": [c.to_dict() for c in self.columns],
            "rows": [r.to_dict() for r in self.rows],
            "warnings": list(self.warnings),
            "existingInventory": dict(self.existing_inventory),
            "stats": self.stats.to_dict(),
        }
        if self.location_id is not None:
            body["locationId"] = self.location_id
        return body

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> ParseResult:
        """Rebuild a ParseResult from a parse response body (e.g. a saved preview)."""
        return ParseResult(
            filename=str(data["filename"]),
            file_type=str(data["fileType"]),
            rows=tuple(ParsedRow.from_dict(r) for r in data.get("rows") or ()),
            warnings=tuple(data.get("warnings") or ()),
            existing_inventory={str(k): int(v) for k, v in (data.get("existingInventory") or {}).items()},
            stats=ParseStats.from_dict(data.get("stats") or {}),
            columns=tuple(ColumnInfo.from_dict(c) for c in data.get("columns") or ()),
            location_id=data.get("locationId"),
        )
