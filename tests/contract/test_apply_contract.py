from __future__ import annotations

import json
from pathlib import Path

import pytest

from supply_recon.models.config_models import ImportConfig
from supply_recon.services.handlers import handle_apply

STATS_KEYS = {"suppliesCreated", "inventoryUpdated", "rowsSkipped", "errorsCount"}


def _body(*rows, location="L1"):
    return {"filename": "counts.csv", "fileType": "csv", "locationId": location, "rows": list(rows)}


def _row(idx, sku, qty, supply_id=None, included=True):
    return {
        "rowIndex": idx,
        "sku": sku,
        "name": "",
        "quantity": qty,
        "existingSupplyId": supply_id,
        "included": included,
        "isNew": supply_id is None,
    }


@pytest.fixture()
def config(temp_workdir: Path) -> ImportConfig:
    return ImportConfig(error_log_directory=str(temp_workdir / "logs"))


def test_apply_success_body(store, config):
    status, body = handle_apply(
        _body(_row(1, "BOX-1", 50, "s1"), _row(2, "BOX-NEW", 20), _row(3, "TAPE-5", 1, "s2", included=False)),
        store,
        config,
    )

    assert status == 200
    assert body == {
        "success": True,
        "stats": {"suppliesCreated": 1, "inventoryUpdated": 2, "rowsSkipped": 1, "errorsCount": 0},
        "errors": [],
    }


def test_row_failures_are_embedded_in_200(store, config):
    status, body = handle_apply(
        _body(_row(2, "", 5), _row(1, "BOX-1", 7, "s1"), _row(4, "GONE", 1, "no-such-id")),
        store,
        config,
    )

    assert status == 200
    assert set(body["stats"]) == STATS_KEYS
    assert body["stats"]["errorsCount"] == 2
    assert body["errors"] == [
        {"row": 2, "sku": "", "error": "missing SKU"},
        {"row": 4, "sku": "GONE", "error": "supply 'no-such-id' not found"},
    ]
    assert store.get_qty_on_hand("s1", "L1") == 7


def test_all_rows_excluded_is_a_successful_no_op(store, config):
    status, body = handle_apply(_body(_row(1, "BOX-1", 1, "s1", included=False)), store, config)
    assert status == 200
    assert body["stats"] == {"suppliesCreated": 0, "inventoryUpdated": 0, "rowsSkipped": 1, "errorsCount": 0}


@pytest.mark.parametrize(
    "body",
    [
        {"rows": [_row(1, "A", 1)]},
        {"locationId": "L1"},
        {"locationId": "L1", "rows": []},
        {"locationId": "L1", "rows": [_row(1, "A", -1)]},
        {"locationId": "L1", "rows": [_row(0, "A", 1)]},
        {"locationId": "L1", "rows": [{"rowIndex": 1, "sku": "A", "quantity": 1}]},
        {"locationId": "L1", "rows": [_row(1, "A", 1.5)]},
        {"locationId": "L1", "rows": [_row(1, "A", 2**31)]},
        "not an object",
    ],
)
def test_malformed_requests_are_400(store, config, body):
    status, resp = handle_apply(body, store, config)
    assert status == 400
    assert resp["error"].startswith("invalid apply request")


@pytest.mark.parametrize("location", ["", "L-OLD", "L-UNKNOWN"])
def test_bad_location_is_400_and_writes_nothing(store, config, location):
    status, body = handle_apply(_body(_row(1, "BOX-1", 99, "s1"), location=location), store, config)
    assert status == 400
    assert "location" in body["error"]
    assert store.get_qty_on_hand("s1", "L1") == 40


def test_row_errors_are_logged_as_json_lines(store, config, temp_workdir: Path):
    handle_apply(_body(_row(3, "", 1), _row(9, "GONE", 1, "missing")), store, config)

    logs = list((temp_workdir / "logs").glob("apply-errors-*.log"))
    assert len(logs) == 1
    records = [json.loads(line) for line in logs[0].read_text(encoding="utf-8").splitlines()]
    assert [r["row"] for r in records] == [3, 9]
    assert [r["error_type"] for r in records] == ["MISSING_SKU", "SUPPLY_NOT_FOUND"]
    for r in records:
        assert set(r) == {"timestamp", "file", "location", "row", "sku", "error_type", "message"}
        assert r["file"] == "counts.csv"
        assert r["location"] == "L1"


def test_rejected_location_is_logged_as_request_level_record(store, config, temp_workdir: Path):
    status, _ = handle_apply(_body(_row(1, "BOX-1", 99, "s1"), location="L-OLD"), store, config)

    assert status == 400
    logs = list((temp_workdir / "logs").glob("apply-errors-*.log"))
    assert len(logs) == 1
    [record] = [json.loads(line) for line in logs[0].read_text(encoding="utf-8").splitlines()]
    assert record["row"] == -1
    assert record["sku"] == ""
    assert record["error_type"] == "LOCATION_INVALID"
    assert record["location"] == "L-OLD"
    assert "not an active location" in record["message"]


def test_clean_run_writes_no_error_log(store, config, temp_workdir: Path):
    handle_apply(_body(_row(1, "BOX-1", 3, "s1")), store, config)
    assert list((temp_workdir / "logs").glob("*.log")) == []
