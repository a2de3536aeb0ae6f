from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

"""RawRow model for the supply spreadsheet import.

RawRow is a single data line exactly as it came out of the uploaded file:
the original header -> cell text mapping (in column order) plus the line's
position in the file. The typed projection (sku/name/quantity) is derived
once by the validator and never re-read from here.
"""

__all__ = [
    "RawRow",
]


@dataclass(frozen=True)
class RawRow:
    """One non-blank data line of an uploaded spreadsheet.

    row_number counts data lines from 1, starting at the line after the header.
    Blank lines are not emitted but still consume a number, so gaps are normal.
    """
    row_number: int  # 1-based, header excluded
    values: Mapping[str, str] = field(default_factory=dict)  # header -> cell text, column order

    def __post_init__(self) -> None:
        # Read-only view over a private copy so the caller's dict can't leak edits in
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))

    def get(self, header: str | None) -> str:
        """Return the cell text under ``header`` ('' when the column is absent)."""
        if header is None:
            return ""
        return self.values.get(header, "")

    def to_dict(self) -> dict[str, str]:
        return dict(self.values)
