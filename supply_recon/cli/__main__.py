from __future__ import annotations

import argparse
import json
import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from supply_recon.config.loader import ConfigError, load_config
from supply_recon.logging.init import setup_logging
from supply_recon.models.config_models import ImportConfig
from supply_recon.models.parse_result import ParseResult
from supply_recon.services.handlers import handle_parse
from supply_recon.services.pipeline import apply_session
from supply_recon.services.session import ReconciliationSession, RowFilter, SessionStateError
from supply_recon.stores.base import LocationInvalidError, StoreError
from supply_recon.stores.postgres import PostgresStore, build_dsn

"""CLI entrypoint.

Two steps, mirroring the parse/apply contracts:

    supply-recon parse counts.xlsx --location WH1          -> counts.preview.json
    supply-recon apply counts.preview.json --exclude 4 --set 7=120

The preview file is the parse response; edit it or pass edits as flags, then
apply. Nothing is written to the database until apply.
"""

EXIT_SUCCESS_ALL = 0
EXIT_FATAL = 1
EXIT_PARTIAL_FAILURE = 2


@contextmanager
def _open_store(cfg: ImportConfig) -> Iterator[PostgresStore]:
    """Connect to PostgreSQL (DSN resolution: env first, config as fallback)."""
    store = PostgresStore.connect(build_dsn(cfg.database), max_connections=max(2, cfg.apply.workers))
    try:
        yield store
    finally:
        store.close()


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env so its connection settings take priority over the shell's."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_row_override(text: str) -> tuple[int, int]:
    row, sep, qty = text.partition("=")
    if not sep:
        raise argparse.ArgumentTypeError(f"expected ROW=QTY, got '{text}'")
    try:
        return int(row), int(qty)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected integers in ROW=QTY, got '{text}'") from None


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="supply-recon", description="Supply spreadsheet reconciliation")
    p.add_argument("--config", type=Path, default=None, help="YAML config file")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    sub = p.add_subparsers(dest="command", required=True)

    parse_p = sub.add_parser("parse", help="Parse an upload and write a preview JSON")
    parse_p.add_argument("file", type=Path, help="CSV/TSV/XLSX file")
    parse_p.add_argument("--location", required=True, help="Target location id")
    parse_p.add_argument("--out", type=Path, default=None, help="Preview path (default: <stem>.preview.json)")

    apply_p = sub.add_parser("apply", help="Apply a (reviewed) preview JSON")
    apply_p.add_argument("preview", type=Path, help="Preview JSON written by `parse`")
    apply_p.add_argument("--location", default=None, help="Target location id (default: the preview's)")
    apply_p.add_argument(
        "--only",
        choices=[f.value for f in RowFilter],
        default=RowFilter.ALL.value,
        help="Include only this subset of rows",
    )
    apply_p.add_argument("--exclude", type=int, nargs="*", default=[], metavar="ROW", help="Row indexes to skip")
    apply_p.add_argument(
        "--set", dest="overrides", type=_parse_row_override, nargs="*", default=[], metavar="ROW=QTY",
        help="Quantity overrides",
    )
    apply_p.add_argument("--workers", type=int, default=None, help="Parallel apply workers")
    apply_p.add_argument("--out", type=Path, default=None, help="Write the apply response JSON here")
    return p.parse_args(argv)


def _write_json(path: Path, body: dict[str, Any]) -> None:
    path.write_text(json.dumps(body, indent=2, ensure_ascii=False), encoding="utf-8")


def _run_parse(args: argparse.Namespace, cfg: ImportConfig, logger: logging.Logger) -> int:
    try:
        data = args.file.read_bytes()
    except OSError as e:
        logger.error(f"parse: cannot read {args.file}: {e}")
        return EXIT_FATAL

    try:
        with _open_store(cfg) as store:
            status, body = handle_parse(data, args.file.name, args.location, store, cfg)
    except StoreError as e:
        logger.error(f"database: {e}")
        return EXIT_FATAL
    if status != 200:
        logger.error(f"parse: {body['error']}")
        return EXIT_FATAL

    out = args.out or args.file.with_name(f"{args.file.stem}.preview.json")
    _write_json(out, body)
    for warning in body["warnings"]:
        logger.warning(warning)
    logger.info(f"preview written to {out}")
    return EXIT_SUCCESS_ALL


def _build_session(args: argparse.Namespace, preview: ParseResult) -> ReconciliationSession:
    session = ReconciliationSession(preview)
    row_filter = RowFilter(args.only)
    if row_filter is not RowFilter.ALL:
        session.bulk_set_included(False)
        session.bulk_set_included(True, row_filter)
    for row_index in args.exclude:
        session.set_included(row_index, False)
    for row_index, qty in args.overrides:
        session.set_quantity_override(row_index, qty)
    return session


def _run_apply(args: argparse.Namespace, cfg: ImportConfig, logger: logging.Logger) -> int:
    try:
        preview = ParseResult.from_dict(json.loads(args.preview.read_text(encoding="utf-8")))
    except (OSError, ValueError, KeyError, TypeError) as e:
        logger.error(f"apply: invalid preview {args.preview}: {e}")
        return EXIT_FATAL

    location_id = args.location or preview.location_id
    if not location_id:
        logger.error("apply: no location given and none recorded in the preview")
        return EXIT_FATAL

    try:
        session = _build_session(args, preview)
    except (KeyError, ValueError) as e:
        logger.error(f"apply: {e}")
        return EXIT_FATAL
    logger.info(f"{session.included_count} of {len(preview.rows)} rows selected")

    try:
        with _open_store(cfg) as store:
            result = apply_session(session, location_id, store, cfg, workers=args.workers)
    except (LocationInvalidError, SessionStateError, StoreError) as e:
        logger.error(f"apply: {e}")
        return EXIT_FATAL

    if args.out:
        _write_json(args.out, result.to_dict())
    return EXIT_PARTIAL_FAILURE if result.errors else EXIT_SUCCESS_ALL


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # Only read sys.argv when argv is None; an explicit [] must stay empty.
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    _load_env_file(Path(".env"), override=True)

    if args.debug:
        setup_logging(logging.DEBUG)
        logger.debug("debug mode enabled")

    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    if args.command == "parse":
        return _run_parse(args, cfg, logger)
    return _run_apply(args, cfg, logger)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
