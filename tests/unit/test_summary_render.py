from __future__ import annotations

from supply_recon.models.apply_result import ApplyResult, ApplyRowError, ApplyStats
from supply_recon.services.summary import _format_seconds, render_summary_fields


def test_render_summary_fields_counts_every_bucket():
    result = ApplyResult(
        stats=ApplyStats(supplies_created=1, inventory_updated=2, rows_skipped=1, errors_count=1),
        errors=(ApplyRowError(row=4, sku="X", error="missing SKU"),),
        elapsed_seconds=1.25,
    )
    line = render_summary_fields("counts.csv", "L1", result)
    assert line == (
        "file=counts.csv location=L1 rows=4 created=1 updated=2 "
        "skipped=1 errors=1 elapsed_sec=1.25"
    )


def test_render_summary_fields_empty_run():
    line = render_summary_fields("empty.csv", "L2", ApplyResult(stats=ApplyStats()))
    assert line.endswith("rows=0 created=0 updated=0 skipped=0 errors=0 elapsed_sec=0")


def test_format_seconds():
    assert _format_seconds(0) == "0"
    assert _format_seconds(2.0) == "2"
    assert _format_seconds(0.5) == "0.5"
    assert _format_seconds(1.23456) == "1.235"
    assert _format_seconds(0.004) == "0.004"
    assert "e" not in _format_seconds(0.00001)
