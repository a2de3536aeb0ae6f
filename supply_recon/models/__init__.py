"""Domain models for the supply spreadsheet import.

Parse-stage models (RawRow, ParsedRow, ParseResult), apply-stage models
(ApplyRequest, ApplyResult) and configuration dataclasses.
"""

from .apply_result import (
    ApplyRequest,
    ApplyRequestRow,
    ApplyResult,
    ApplyRowError,
    ApplyStats,
    ApplyStatsAccumulator,
)
from .config_models import DatabaseConfig, ImportConfig
from .parse_result import ColumnInfo, ParsedRow, ParseResult, ParseStats
from .row_data import RawRow

__all__ = [
    # Configuration models
    "DatabaseConfig",
    "ImportConfig",
    # Parse models
    "RawRow",
    "ColumnInfo",
    "ParsedRow",
    "ParseStats",
    "ParseResult",
    # Apply models
    "ApplyRequestRow",
    "ApplyRequest",
    "ApplyRowError",
    "ApplyStats",
    "ApplyResult",
    "ApplyStatsAccumulator",
]
