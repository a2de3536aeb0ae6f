# Shared pytest fixtures
from __future__ import annotations

import io
import tempfile
from pathlib import Path

import pandas as pd
import pytest

from supply_recon.logging.init import reset_logging
from supply_recon.stores.memory import InMemoryStore


@pytest.fixture(autouse=True)
def _clean_logging():
    # The app logger binds sys.stdout when created; rebuild it per test so capsys sees output
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        monkeypatch.delenv("SUPPLY_RECON_CONFIG", raising=False)
        yield p


@pytest.fixture()
def sample_config_yaml() -> str:
    return """column_synonyms:
  sku: [sku, code, item code]
  name: [name, description]
  quantity: [quantity, count, qty]
header_scan_rows: 5
max_file_size_bytes: 1048576
supply_defaults:
  category: packing
  unit: each
  cost: 0
  base_price: 0
apply:
  workers: 1
  max_version_retries: 2
error_log:
  directory: ./logs
database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: appdb
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "supply_import.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def store() -> InMemoryStore:
    """Catalog with BOX-1 (40 on hand at L1) and TAPE-5 (10 on hand at L1)."""
    s = InMemoryStore()
    s.add_location("L1")
    s.add_location("L-OLD", active=False)
    s.add_supply("BOX-1", "Shipping box small", supply_id="s1")
    s.add_supply("TAPE-5", "Packing tape 5cm", supply_id="s2")
    s.add_supply("BUBBLE", "Bubble wrap roll", supply_id="s3")
    s.put_inventory("s1", "L1", 40)
    s.put_inventory("s2", "L1", 10)
    return s


def make_csv(rows: list[list[object]]) -> bytes:
    lines = [",".join("" if v is None else str(v) for v in row) for row in rows]
    return ("\n".join(lines) + "\n").encode("utf-8")


def make_xlsx(rows: list[list[object]], sheet_name: str = "Counts") -> bytes:
    buf = io.BytesIO()
    with pd.ExcelWriter(buf, engine="openpyxl") as writer:
        pd.DataFrame(rows).to_excel(writer, sheet_name=sheet_name, header=False, index=False)
    return buf.getvalue()


@pytest.fixture()
def csv_bytes():
    return make_csv


@pytest.fixture()
def xlsx_bytes():
    return make_xlsx
