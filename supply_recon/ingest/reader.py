from __future__ import annotations

import csv
import io
import re
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from pathlib import PurePath
from typing import Any

import pandas as pd

from ..models.config_models import ColumnSynonyms
from ..models.parse_result import FILE_TYPE_CSV, FILE_TYPE_TSV, FILE_TYPE_XLSX, ColumnInfo
from ..models.row_data import RawRow

"""Spreadsheet ingestion: uploaded bytes -> header detection -> RawRow sequence.

The file is read with pandas without a header (every cell as text), then the
first few lines are scanned for a header that carries both a SKU column and a
quantity column. Lines below the header become RawRows; entirely blank lines
are counted and dropped but keep their slot in the numbering.
"""

__all__ = [
    "FormatError",
    "ROLE_SKU",
    "ROLE_NAME",
    "ROLE_QUANTITY",
    "ROLE_SKIP",
    "IngestedSheet",
    "detect_file_type",
    "normalize_header",
    "assign_roles",
    "read_frame",
    "ingest_file",
]

ROLE_SKU = "sku"
ROLE_NAME = "name"
ROLE_QUANTITY = "quantity"
ROLE_SKIP = "skip"

_EXTENSIONS = {
    ".csv": FILE_TYPE_CSV,
    ".tsv": FILE_TYPE_TSV,
    ".xlsx": FILE_TYPE_XLSX,
    ".xlsm": FILE_TYPE_XLSX,
}

_HEADER_SEPARATORS = re.compile(r"[\s_\-]+")


class FormatError(Exception):
    """Raised when an upload can't be read or lacks a required column."""


@dataclass(frozen=True, eq=False)
class IngestedSheet:
    """A loaded upload with its detected header.

    ``data`` holds the text cells below the header row. iter_rows() walks it
    from the top on every call, so the row sequence can be restarted freely.
    """
    file_type: str
    header_line: int  # 0-based line of the header inside the file
    columns: tuple[ColumnInfo, ...]
    data: pd.DataFrame
    blank_mask: tuple[bool, ...]

    @property
    def headers(self) -> list[str]:
        return [c.header for c in self.columns]

    @property
    def total_rows(self) -> int:
        return len(self.blank_mask)

    @property
    def empty_rows(self) -> int:
        return sum(self.blank_mask)

    def header_for(self, role: str) -> str | None:
        for c in self.columns:
            if c.role == role:
                return c.header
        return None

    def iter_rows(self) -> Iterator[RawRow]:
        headers = self.headers
        rows = self.data.itertuples(index=False, name=None)
        for row_number, (values, blank) in enumerate(zip(rows, self.blank_mask), start=1):
            if blank:
                continue
            yield RawRow(row_number=row_number, values=dict(zip(headers, values)))


def detect_file_type(filename: str) -> str:
    suffix = PurePath(filename).suffix.lower()
    if suffix == ".xls":
        raise FormatError("legacy .xls workbooks are not supported: save the file as .xlsx or CSV")
    try:
        return _EXTENSIONS[suffix]
    except KeyError:
        raise FormatError(
            f"unsupported file type '{suffix or filename}': upload a CSV or XLSX file"
        ) from None


def normalize_header(text: str) -> str:
    """Lower-case a header and collapse whitespace/underscores/hyphens to one space."""
    return _HEADER_SEPARATORS.sub(" ", text).strip().lower()


def assign_roles(headers: Sequence[str], synonyms: ColumnSynonyms) -> tuple[ColumnInfo, ...]:
    """Give each header at most one role; the first column per role wins.

    A header is checked against the SKU synonyms first, then name, then quantity.
    """
    lookup = [
        (ROLE_SKU, {normalize_header(s) for s in synonyms.sku}),
        (ROLE_NAME, {normalize_header(s) for s in synonyms.name}),
        (ROLE_QUANTITY, {normalize_header(s) for s in synonyms.quantity}),
    ]
    taken: set[str] = set()
    columns: list[ColumnInfo] = []
    for index, header in enumerate(headers):
        key = normalize_header(header)
        role = ROLE_SKIP
        for candidate, names in lookup:
            if key in names:
                if candidate not in taken:
                    role = candidate
                    taken.add(candidate)
                break
        columns.append(ColumnInfo(index=index, header=header, role=role))
    return tuple(columns)


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    try:
        if pd.isna(value):
            return ""
    except (TypeError, ValueError):  # pragma: no cover - non-scalar cell
        return str(value)
    if isinstance(value, float) and value.is_integer():
        # Excel stores 50 as 50.0
        return str(int(value))
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


def read_frame(data: bytes, file_type: str) -> pd.DataFrame:
    """Read raw bytes into a header-less DataFrame of text cells."""
    try:
        if file_type == FILE_TYPE_XLSX:
            raw = pd.read_excel(
                io.BytesIO(data), sheet_name=0, header=None, dtype=object, engine="openpyxl"
            )
        elif file_type in (FILE_TYPE_CSV, FILE_TYPE_TSV):
            text = data.decode("utf-8-sig")
            sep = "\t" if file_type == FILE_TYPE_TSV else ","
            # Title lines above the header are often narrower than the table
            width = max((len(r) for r in csv.reader(io.StringIO(text), delimiter=sep)), default=0)
            if width == 0:
                raise FormatError("file has no rows")
            raw = pd.read_csv(
                io.StringIO(text),
                header=None,
                names=list(range(width)),
                dtype=str,
                keep_default_na=False,
                skip_blank_lines=False,
                sep=sep,
            )
        else:
            raise FormatError(f"unsupported file type: {file_type}")
    except FormatError:
        raise
    except pd.errors.EmptyDataError as e:
        raise FormatError("file has no rows") from e
    except pd.errors.ParserError as e:
        raise FormatError(f"unable to parse {file_type} file: {e}") from e
    except UnicodeDecodeError as e:
        raise FormatError(f"file is not valid UTF-8 text: {e}") from e
    except Exception as e:  # openpyxl / zipfile raise a variety of types on corrupt files
        raise FormatError(f"unable to read {file_type} file: {e}") from e
    return raw.map(_cell_text)


def _header_names(cells: Sequence[str]) -> list[str]:
    """Trimmed header texts, with blanks named and repeats suffixed so every key is unique."""
    base_names = [cell.strip() or f"column_{index}" for index, cell in enumerate(cells, start=1)]
    # Reserve every literal header first so a suffix never shadows a real column
    used = set(base_names)
    names: list[str] = []
    claimed: set[str] = set()
    suffixes: dict[str, int] = {}
    for base in base_names:
        name = base
        if name in claimed:
            n = suffixes.get(base, 0)
            while True:
                n += 1
                name = f"{base}.{n}"
                if name not in used:
                    break
            suffixes[base] = n
            used.add(name)
        claimed.add(name)
        names.append(name)
    return names


def _missing_roles_message(synonyms: ColumnSynonyms, scanned: int) -> str:
    return (
        f"no header row found in the first {scanned} rows: need a SKU column "
        f"({', '.join(synonyms.sku)}) and a quantity column ({', '.join(synonyms.quantity)})"
    )


def ingest_file(
    data: bytes,
    file_type: str,
    synonyms: ColumnSynonyms | None = None,
    header_scan_rows: int = 10,
    max_file_size_bytes: int | None = None,
) -> IngestedSheet:
    """Load an upload and locate its header row.

    Args:
        data: Raw uploaded bytes
        file_type: One of csv, tsv, xlsx (see detect_file_type)
        synonyms: Header names accepted per column role
        header_scan_rows: How many leading lines may hold the header
        max_file_size_bytes: Upload size limit, or None for no limit

    Returns:
        IngestedSheet with the detected columns and the rows below the header.

    Raises:
        FormatError: the upload is too large, unreadable, empty, or has no line
            within ``header_scan_rows`` that satisfies both the SKU and the
            quantity role.
    """
    synonyms = synonyms or ColumnSynonyms()
    if max_file_size_bytes is not None and len(data) > max_file_size_bytes:
        raise FormatError(f"file exceeds maximum size of {max_file_size_bytes} bytes")
    if not data.strip():
        raise FormatError("file is empty")

    frame = read_frame(data, file_type)
    if frame.empty:
        raise FormatError("file has no rows")

    scan_limit = min(header_scan_rows, len(frame))
    for line in range(scan_limit):
        headers = _header_names(frame.iloc[line].tolist())
        columns = assign_roles(headers, synonyms)
        roles = {c.role for c in columns}
        if ROLE_SKU not in roles or ROLE_QUANTITY not in roles:
            continue
        body = frame.iloc[line + 1:].reset_index(drop=True)
        blank = body.apply(lambda col: col.str.strip() == "").all(axis=1) if len(body) else []
        return IngestedSheet(
            file_type=file_type,
            header_line=line,
            columns=columns,
            data=body,
            blank_mask=tuple(bool(b) for b in blank),
        )

    raise FormatError(_missing_roles_message(synonyms, scan_limit))
