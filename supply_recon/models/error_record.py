from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""ErrorRecord model for the apply error log.

Each failed row of an apply run becomes one JSON Lines record. row=-1 is
allowed for request-level failures (for example a rejected location) where
no single row is to blame.
"""

__all__ = [
    "ErrorRecord",
]


@dataclass(frozen=True)
class ErrorRecord:
    """Structured error record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        file: Uploaded filename the apply request came from
        location: Target location id
        row: Spreadsheet row index. -1 for request-level errors
        sku: SKU of the failed row ('' when unknown)
        error_type: Error classification in UPPER_SNAKE_CASE format
        message: Human readable failure description
    """
    timestamp: str  # ISO8601 UTC
    file: str
    location: str
    row: int
    sku: str
    error_type: str  # UPPER_SNAKE
    message: str

    @staticmethod
    def create(
        file: str, location: str, row: int, sku: str, error_type: str, message: str
    ) -> ErrorRecord:
        """Create a new ErrorRecord stamped with the current UTC time."""
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            file=file,
            location=location,
            row=row,
            sku=sku,
            error_type=error_type,
            message=message,
        )

    def to_json_line(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False)
