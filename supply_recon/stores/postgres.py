from __future__ import annotations

import os
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import psycopg2
import psycopg2.errors
from psycopg2.pool import ThreadedConnectionPool

from ..models.config_models import DatabaseConfig
from .base import (
    CatalogEntry,
    DuplicateSkuError,
    InventoryRecord,
    NewSupply,
    StaleInventoryError,
    StoreError,
    SupplyNotFoundError,
)

"""PostgreSQL SupplyStore on psycopg2.

Tables used (ids are compared as text so uuid and serial keys both work):
- supplies(id, sku, name, category, unit, cost, base_price, is_active)
- supply_inventory(supply_id, location_id, qty_on_hand, version, updated_at),
  unique on (supply_id, location_id)
- locations(id, active)

Inventory writes are guarded by the `version` column: an UPDATE only lands
when the row still carries the version the caller read, and a first INSERT
only lands when no row exists yet. Anything else raises StaleInventoryError.

Connections come from a ThreadedConnectionPool. Inside row_transaction() the
calling thread keeps one connection for the whole block and commits or rolls
back at the end; outside it every call runs in its own short transaction.
"""

__all__ = [
    "PostgresStore",
    "build_dsn",
]


def build_dsn(db_cfg: DatabaseConfig) -> str:
    """Resolve the connection string.

    Priority:
        1. DATABASE_URL / PGDSN environment variables (whole DSN)
        2. PGHOST / PGPORT / PGUSER / PGPASSWORD / PGDATABASE
        3. the `database` section of the config file
    """
    dsn = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or db_cfg.dsn
    if dsn:
        return dsn
    host = os.getenv("PGHOST", db_cfg.host or "localhost")
    port = os.getenv("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
    user = os.getenv("PGUSER", db_cfg.user or "postgres")
    password = os.getenv("PGPASSWORD", db_cfg.password or "")
    database = os.getenv("PGDATABASE", db_cfg.database or "postgres")
    dsn = f"host={host} port={port} user={user} dbname={database}"
    if password:
        dsn += f" password={password}"
    return dsn


@contextmanager
def _translate_errors() -> Iterator[None]:
    try:
        yield
    except psycopg2.errors.UniqueViolation as e:
        raise DuplicateSkuError(str(e).strip()) from e
    except (psycopg2.errors.ForeignKeyViolation, psycopg2.errors.InvalidTextRepresentation) as e:
        raise SupplyNotFoundError(str(e).strip()) from e
    except psycopg2.Error as e:
        raise StoreError(str(e).strip()) from e


class PostgresStore:
    def __init__(self, pool: Any) -> None:
        self._pool = pool
        self._local = threading.local()

    @classmethod
    def connect(cls, dsn: str, max_connections: int = 4) -> PostgresStore:
        try:
            pool = ThreadedConnectionPool(1, max(1, max_connections), dsn)
        except psycopg2.Error as e:
            raise StoreError(f"database connection failed: {e}") from e
        return cls(pool)

    def close(self) -> None:
        self._pool.closeall()

    # -- connection handling --------------------------------------------

    @contextmanager
    def row_transaction(self) -> Iterator[None]:
        if getattr(self._local, "conn", None) is not None:
            # nested: the outer block owns commit/rollback
            yield
            return
        conn = self._pool.getconn()
        self._local.conn = conn
        try:
            yield
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            self._local.conn = None
            self._pool.putconn(conn)

    @contextmanager
    def _cursor(self) -> Iterator[Any]:
        bound = getattr(self._local, "conn", None)
        if bound is not None:
            with _translate_errors(), bound.cursor() as cur:
                yield cur
            return
        conn = self._pool.getconn()
        try:
            with _translate_errors(), conn.cursor() as cur:
                yield cur
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            self._pool.putconn(conn)

    # -- CatalogService --------------------------------------------------

    def list_supplies(self) -> list[CatalogEntry]:
        with self._cursor() as cur:
            cur.execute("SELECT id::text, sku, name FROM supplies ORDER BY sku")
            return [CatalogEntry(supply_id=r[0], sku=r[1], name=r[2]) for r in cur.fetchall()]

    def find_by_sku(self, sku: str) -> CatalogEntry | None:
        with self._cursor() as cur:
            cur.execute(
                "SELECT id::text, sku, name FROM supplies WHERE lower(sku) = lower(%s) LIMIT 1",
                (sku.strip(),),
            )
            row = cur.fetchone()
        return CatalogEntry(supply_id=row[0], sku=row[1], name=row[2]) if row else None

    def get_supply(self, supply_id: str) -> CatalogEntry | None:
        with self._cursor() as cur:
            cur.execute("SELECT id::text, sku, name FROM supplies WHERE id::text = %s", (supply_id,))
            row = cur.fetchone()
        return CatalogEntry(supply_id=row[0], sku=row[1], name=row[2]) if row else None

    def create_supply(self, supply: NewSupply) -> CatalogEntry:
        if not supply.sku.strip():
            raise StoreError("supply SKU must not be empty")
        with self._cursor() as cur:
            cur.execute(
                "INSERT INTO supplies (sku, name, category, unit, cost, base_price, is_active) "
                "VALUES (%s, %s, %s, %s, %s, %s, TRUE) RETURNING id::text, sku, name",
                (supply.sku, supply.name, supply.category, supply.unit, supply.cost, supply.base_price),
            )
            row = cur.fetchone()
        return CatalogEntry(supply_id=row[0], sku=row[1], name=row[2])

    # -- InventoryService ------------------------------------------------

    def get_record(self, supply_id: str, location_id: str) -> InventoryRecord | None:
        with self._cursor() as cur:
            cur.execute(
                "SELECT qty_on_hand, version FROM supply_inventory "
                "WHERE supply_id::text = %s AND location_id::text = %s",
                (supply_id, location_id),
            )
            row = cur.fetchone()
        if row is None:
            return None
        return InventoryRecord(supply_id, location_id, int(row[0]), int(row[1]))

    def get_qty_on_hand(self, supply_id: str, location_id: str) -> int | None:
        record = self.get_record(supply_id, location_id)
        return record.qty_on_hand if record else None

    def set_qty_on_hand(
        self, supply_id: str, location_id: str, qty: int, expected_version: int | None
    ) -> InventoryRecord:
        with self._cursor() as cur:
            if expected_version is None:
                cur.execute(
                    "INSERT INTO supply_inventory (supply_id, location_id, qty_on_hand, version, updated_at) "
                    "VALUES (%s, %s, %s, 1, now()) "
                    "ON CONFLICT (supply_id, location_id) DO NOTHING "
                    "RETURNING qty_on_hand, version",
                    (supply_id, location_id, qty),
                )
            else:
                cur.execute(
                    "UPDATE supply_inventory SET qty_on_hand = %s, version = version + 1, updated_at = now() "
                    "WHERE supply_id::text = %s AND location_id::text = %s AND version = %s "
                    "RETURNING qty_on_hand, version",
                    (qty, supply_id, location_id, expected_version),
                )
            row = cur.fetchone()
        if row is None:
            raise StaleInventoryError(
                f"inventory for supply '{supply_id}' at '{location_id}' changed "
                f"(expected version {expected_version})"
            )
        return InventoryRecord(supply_id, location_id, int(row[0]), int(row[1]))

    # -- LocationService -------------------------------------------------

    def is_active(self, location_id: str) -> bool:
        with self._cursor() as cur:
            cur.execute("SELECT active FROM locations WHERE id::text = %s", (location_id,))
            row = cur.fetchone()
        return bool(row and row[0])
