"""Supply spreadsheet reconciliation: parse an inventory count upload, review, apply."""

__version__ = "0.1.0"
