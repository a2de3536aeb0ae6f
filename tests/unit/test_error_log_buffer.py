from __future__ import annotations

import json
import re
from pathlib import Path

from supply_recon.logging.error_log import ErrorLogBuffer
from supply_recon.models.error_record import ErrorRecord


def _record(row: int, error_type: str = "SUPPLY_NOT_FOUND") -> ErrorRecord:
    return ErrorRecord.create(
        file="counts.csv",
        location="L1",
        row=row,
        sku=f"SKU-{row}",
        error_type=error_type,
        message="supply 'x' not found",
    )


def test_error_record_create_stamps_utc():
    rec = _record(3)
    assert rec.timestamp.endswith("Z")
    assert "+00:00" not in rec.timestamp


def test_error_record_json_line_has_fixed_keys():
    data = json.loads(_record(3).to_json_line())
    assert list(data) == ["timestamp", "file", "location", "row", "sku", "error_type", "message"]
    assert data["row"] == 3


def test_flush_without_records_writes_nothing(tmp_path: Path):
    buf = ErrorLogBuffer(tmp_path / "logs")
    assert buf.flush() is None
    assert not (tmp_path / "logs").exists()


def test_flush_writes_sorted_json_lines(tmp_path: Path):
    buf = ErrorLogBuffer(tmp_path / "logs")
    for row in (9, 2, 5):
        buf.append(_record(row))
    assert len(buf) == 3

    path = buf.flush()

    assert path is not None and path.parent == tmp_path / "logs"
    assert re.fullmatch(r"apply-errors-\d{8}-\d{6}\.log", path.name)
    rows = [json.loads(line)["row"] for line in path.read_text(encoding="utf-8").splitlines()]
    assert rows == [2, 5, 9]
    assert buf.records == []


def test_second_flush_appends_to_same_file(tmp_path: Path):
    buf = ErrorLogBuffer(tmp_path)
    buf.append(_record(1))
    first = buf.flush()
    buf.append(_record(2))
    second = buf.flush()

    assert first == second
    assert len(first.read_text(encoding="utf-8").splitlines()) == 2


def test_default_directory_is_relative_logs(temp_workdir: Path):
    buf = ErrorLogBuffer()
    buf.append(_record(1))
    path = buf.flush()
    assert path.resolve().parent == (temp_workdir / "logs").resolve()


def test_non_ascii_sku_is_kept(tmp_path: Path):
    buf = ErrorLogBuffer(tmp_path)
    buf.append(ErrorRecord.create("zählung.csv", "L1", 1, "KÄSE-1", "MISSING_SKU", "missing SKU"))
    text = buf.flush().read_text(encoding="utf-8")
    assert "KÄSE-1" in text
