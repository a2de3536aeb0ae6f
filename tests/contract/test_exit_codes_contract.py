from __future__ import annotations

import json
from contextlib import contextmanager
from pathlib import Path
from unittest.mock import patch

import pytest

from supply_recon.cli.__main__ import EXIT_FATAL, EXIT_PARTIAL_FAILURE, EXIT_SUCCESS_ALL, main
from supply_recon.stores.base import StoreError


@pytest.fixture()
def fake_store(store):
    @contextmanager
    def _open(cfg):
        yield store

    with patch("supply_recon.cli.__main__._open_store", _open):
        yield store


@pytest.fixture()
def counts_file(temp_workdir: Path, csv_bytes) -> Path:
    p = temp_workdir / "data" / "counts.csv"
    p.write_bytes(csv_bytes([
        ["SKU", "Name", "Quantity"],
        ["BOX-1", "Shipping box small", 50],
        ["BOX-NEW", "New box", 20],
        ["TAPE-5", "Packing tape", 10],
    ]))
    return p


def _parse(counts_file: Path) -> Path:
    assert main(["parse", str(counts_file), "--location", "L1"]) == EXIT_SUCCESS_ALL
    return counts_file.with_name("counts.preview.json")


def test_parse_writes_preview_and_exits_zero(fake_store, counts_file, capsys):
    preview = _parse(counts_file)

    body = json.loads(preview.read_text(encoding="utf-8"))
    assert body["locationId"] == "L1"
    assert body["stats"]["newSupplies"] == 1
    assert f"INFO preview written to {preview}" in capsys.readouterr().out
    assert fake_store.find_by_sku("BOX-NEW") is None


def test_parse_custom_out_path(fake_store, counts_file, temp_workdir):
    out = temp_workdir / "review.json"
    assert main(["parse", str(counts_file), "--location", "L1", "--out", str(out)]) == EXIT_SUCCESS_ALL
    assert out.exists()


def test_apply_all_rows_exits_zero(fake_store, counts_file, temp_workdir, capsys):
    preview = _parse(counts_file)
    out = temp_workdir / "result.json"

    code = main(["apply", str(preview), "--exclude", "3", "--set", "1=60", "--out", str(out)])

    assert code == EXIT_SUCCESS_ALL
    assert fake_store.get_qty_on_hand("s1", "L1") == 60
    assert fake_store.get_qty_on_hand("s2", "L1") == 10
    result = json.loads(out.read_text(encoding="utf-8"))
    assert result["stats"] == {"suppliesCreated": 1, "inventoryUpdated": 2, "rowsSkipped": 1, "errorsCount": 0}
    assert "INFO 2 of 3 rows selected" in capsys.readouterr().out


def test_apply_only_new_rows(fake_store, counts_file):
    preview = _parse(counts_file)
    assert main(["apply", str(preview), "--only", "new"]) == EXIT_SUCCESS_ALL
    assert fake_store.get_qty_on_hand("s1", "L1") == 40
    assert fake_store.find_by_sku("BOX-NEW") is not None


def test_apply_with_row_errors_exits_two(fake_store, counts_file, temp_workdir):
    preview = _parse(counts_file)
    body = json.loads(preview.read_text(encoding="utf-8"))
    body["rows"][0]["existingSupplyId"] = "deleted-supply"
    preview.write_text(json.dumps(body), encoding="utf-8")

    assert main(["apply", str(preview)]) == EXIT_PARTIAL_FAILURE
    assert list((temp_workdir / "logs").glob("apply-errors-*.log"))


def test_apply_to_inactive_location_exits_one(fake_store, counts_file, capsys):
    preview = _parse(counts_file)
    assert main(["apply", str(preview), "--location", "L-OLD"]) == EXIT_FATAL
    assert "ERROR apply: location 'L-OLD' is not an active location" in capsys.readouterr().out
    assert fake_store.find_by_sku("BOX-NEW") is None


def test_apply_unknown_row_override_exits_one(fake_store, counts_file):
    preview = _parse(counts_file)
    assert main(["apply", str(preview), "--set", "99=1"]) == EXIT_FATAL


def test_apply_invalid_preview_exits_one(fake_store, temp_workdir):
    bad = temp_workdir / "bad.json"
    bad.write_text("{not json", encoding="utf-8")
    assert main(["apply", str(bad)]) == EXIT_FATAL


def test_parse_bad_location_exits_one(fake_store, counts_file, capsys):
    assert main(["parse", str(counts_file), "--location", "L-OLD"]) == EXIT_FATAL
    assert "ERROR parse:" in capsys.readouterr().out


def test_parse_missing_file_exits_one(fake_store, temp_workdir):
    assert main(["parse", str(temp_workdir / "nope.csv"), "--location", "L1"]) == EXIT_FATAL


def test_invalid_config_exits_one(fake_store, counts_file, temp_workdir, capsys):
    cfg = temp_workdir / "config" / "supply_import.yml"
    cfg.write_text("apply:\n  workers: 0\n", encoding="utf-8")

    assert main(["parse", str(counts_file), "--location", "L1"]) == EXIT_FATAL
    assert "ERROR config: config validation failed" in capsys.readouterr().out


def test_database_unreachable_exits_one(counts_file, capsys):
    @contextmanager
    def _unreachable(cfg):
        raise StoreError("database connection failed: refused")
        yield

    with patch("supply_recon.cli.__main__._open_store", _unreachable):
        assert main(["parse", str(counts_file), "--location", "L1"]) == EXIT_FATAL
    assert "ERROR database: database connection failed" in capsys.readouterr().out


def test_missing_subcommand_is_usage_error(temp_workdir):
    with pytest.raises(SystemExit) as excinfo:
        main([])
    assert excinfo.value.code == 2
