from __future__ import annotations

import pytest

from supply_recon.ingest.validator import (
    DUPLICATE_SKU,
    INVALID_QUANTITY,
    MAX_QUANTITY,
    MISSING_SKU,
    QUANTITY_ROUNDED,
    clean_string,
    parse_quantity,
    validate_rows,
)
from supply_recon.models.row_data import RawRow


def _rows(*triples):
    return [
        RawRow(row_number=i, values={"SKU": sku, "Name": name, "Qty": qty})
        for i, (sku, name, qty) in enumerate(triples, start=1)
    ]


def _validate(raw_rows):
    return validate_rows(raw_rows, sku_header="SKU", name_header="Name", quantity_header="Qty")


@pytest.mark.parametrize(
    "cell, expected",
    [
        ("50", (50, None)),
        (" 1,200 ", (1200, None)),
        ("7.0", (7, None)),
        ("", (0, None)),
        (None, (0, None)),
        ("2.5", (3, QUANTITY_ROUNDED)),
        ("2.4", (2, QUANTITY_ROUNDED)),
        ("abc", (0, INVALID_QUANTITY)),
        ("-3", (0, INVALID_QUANTITY)),
        ("nan", (0, INVALID_QUANTITY)),
        ("inf", (0, INVALID_QUANTITY)),
        ("2147483647", (MAX_QUANTITY, None)),
        ("2147483648", (0, INVALID_QUANTITY)),
        ("1e999999999", (0, INVALID_QUANTITY)),
    ],
)
def test_parse_quantity(cell, expected):
    assert parse_quantity(cell) == expected


def test_clean_string_collapses_whitespace():
    assert clean_string("  Shipping\nbox   small ") == "Shipping box small"
    assert clean_string(None) == ""


def test_validate_rows_projects_and_trims():
    result = _validate(_rows((" BOX-1 ", " Shipping box ", "50")))
    row = result.rows[0]
    assert (row.row_index, row.sku, row.name, row.quantity) == (1, "BOX-1", "Shipping box", 50)
    assert row.warnings == ()
    assert row.raw["SKU"] == " BOX-1 "
    assert row.existing_supply_id is None and row.is_new is False


def test_invalid_quantity_is_kept_as_zero_with_warning():
    result = _validate(_rows(("BOX-1", "Box", "abc")))
    assert result.rows[0].quantity == 0
    assert result.rows[0].warnings == (INVALID_QUANTITY,)


def test_row_without_sku_is_kept_and_flagged():
    result = _validate(_rows(("", "Mystery item", "4"), ("BOX-1", "", "2")))
    assert len(result.rows) == 2
    assert result.rows[0].warnings == (MISSING_SKU,)
    assert result.rows[0].quantity == 4
    assert result.rows[1].warnings == ()


def test_row_numbers_come_from_raw_rows():
    raw = [
        RawRow(row_number=1, values={"SKU": "A", "Qty": "1"}),
        RawRow(row_number=4, values={"SKU": "B", "Qty": "2"}),
    ]
    result = validate_rows(raw, "SKU", None, "Qty")
    assert [r.row_index for r in result.rows] == [1, 4]
    assert [r.name for r in result.rows] == ["", ""]


def test_duplicate_skus_flag_every_occurrence_case_insensitively():
    result = _validate(_rows(
        ("TAPE-5", "Tape", "3"),
        ("BOX-1", "Box", "1"),
        ("tape-5", "Tape", "4"),
        ("Tape-5", "Tape", "5"),
    ))

    flagged = [r.row_index for r in result.rows if DUPLICATE_SKU in r.warnings]
    assert flagged == [1, 3, 4]
    assert result.duplicate_skus == ("TAPE-5",)
    assert result.warnings == ('Duplicate SKU "TAPE-5" on row 3 (first seen on row 1)',)


def test_warnings_accumulate_on_one_row():
    result = _validate(_rows(("A", "", "1.5"), ("a", "", "x")))
    assert result.rows[0].warnings == (QUANTITY_ROUNDED, DUPLICATE_SKU)
    assert result.rows[1].warnings == (INVALID_QUANTITY, DUPLICATE_SKU)
