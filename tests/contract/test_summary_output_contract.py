from __future__ import annotations

import re
from pathlib import Path

from supply_recon.models.apply_result import ApplyRequest, ApplyRequestRow
from supply_recon.models.config_models import ImportConfig
from supply_recon.services.pipeline import apply_request

SUMMARY_RE = re.compile(
    r"^SUMMARY file=(?P<file>\S+) location=(?P<location>\S+) rows=(?P<rows>\d+) "
    r"created=(?P<created>\d+) updated=(?P<updated>\d+) skipped=(?P<skipped>\d+) "
    r"errors=(?P<errors>\d+) elapsed_sec=(?P<elapsed>\d+(\.\d+)?)$"
)


def _request():
    return ApplyRequest(
        filename="counts.csv",
        file_type="csv",
        location_id="L1",
        rows=(
            ApplyRequestRow(1, "BOX-1", "", 50, "s1"),
            ApplyRequestRow(2, "BOX-NEW", "New box", 20, None, is_new=True),
            ApplyRequestRow(3, "TAPE-5", "", 10, "s2", included=False),
            ApplyRequestRow(4, "", "", 1, None, is_new=True),
        ),
    )


def test_apply_emits_exactly_one_summary_line(store, temp_workdir: Path, capsys):
    cfg = ImportConfig(error_log_directory=str(temp_workdir / "logs"))

    apply_request(_request(), store, cfg, show_progress=False)

    out = capsys.readouterr().out.splitlines()
    summary = [line for line in out if line.startswith("SUMMARY")]
    assert len(summary) == 1
    m = SUMMARY_RE.match(summary[0])
    assert m is not None, summary[0]
    assert m.group("file") == "counts.csv"
    assert m.group("location") == "L1"
    assert int(m.group("rows")) == 4
    assert int(m.group("created")) == 1
    assert int(m.group("updated")) == 2
    assert int(m.group("skipped")) == 1
    assert int(m.group("errors")) == 1


def test_summary_counts_add_up(store, temp_workdir: Path, capsys):
    cfg = ImportConfig(error_log_directory=str(temp_workdir / "logs"))
    apply_request(_request(), store, cfg, show_progress=False)

    line = next(x for x in capsys.readouterr().out.splitlines() if x.startswith("SUMMARY"))
    m = SUMMARY_RE.match(line)
    assert int(m.group("rows")) == int(m.group("updated")) + int(m.group("skipped")) + int(m.group("errors"))
