from .reader import FormatError, IngestedSheet, detect_file_type, ingest_file
from .validator import ValidationResult, validate_rows

__all__ = [
    "FormatError",
    "IngestedSheet",
    "ValidationResult",
    "detect_file_type",
    "ingest_file",
    "validate_rows",
]
