from __future__ import annotations

import logging

from ..ingest.reader import ROLE_NAME, ROLE_QUANTITY, ROLE_SKU, detect_file_type, ingest_file
from ..ingest.validator import validate_rows
from ..logging.error_log import ErrorLogBuffer, ErrorRecord
from ..logging.init import log_summary
from ..models.apply_result import ApplyRequest, ApplyResult
from ..models.config_models import ImportConfig
from ..models.parse_result import ParseResult, ParseStats
from ..stores.base import CatalogSnapshot, LocationInvalidError, SupplyStore, require_active_location
from .apply_engine import ApplyEngine
from .matcher import match_rows
from .session import ReconciliationSession
from .summary import render_summary_fields

"""Pipeline orchestration: parse an upload, then apply a reviewed session.

parse_upload() runs FileIngester -> RowValidator -> SkuMatcher and returns
an immutable ParseResult. Nothing is written during parse.

apply_request() commits an ApplyRequest through the ApplyEngine, flushes the
error log and emits the SUMMARY line. apply_session() does the same for a
ReconciliationSession and drives its state: APPLYING while the engine runs,
COMPLETED on return, back to PARSED (edits intact) on a fatal error.
"""

__all__ = [
    "parse_upload",
    "apply_request",
    "apply_session",
]

logger = logging.getLogger(__name__)


def parse_upload(
    data: bytes,
    filename: str,
    location_id: str | None,
    store: SupplyStore,
    config: ImportConfig | None = None,
) -> ParseResult:
    """Ingest, validate and match one uploaded file.

    Raises:
        FormatError: unsupported/unreadable file or missing SKU/quantity column
        LocationInvalidError: location missing or inactive
    """
    config = config or ImportConfig()
    file_type = detect_file_type(filename)
    location_id = require_active_location(store, location_id)

    sheet = ingest_file(
        data,
        file_type,
        synonyms=config.column_synonyms,
        header_scan_rows=config.header_scan_rows,
        max_file_size_bytes=config.max_file_size_bytes,
    )
    logger.debug(
        "%s: header on line %d, columns=%s",
        filename,
        sheet.header_line + 1,
        [(c.header, c.role) for c in sheet.columns],
    )

    validation = validate_rows(
        sheet.iter_rows(),
        sku_header=sheet.header_for(ROLE_SKU),
        name_header=sheet.header_for(ROLE_NAME),
        quantity_header=sheet.header_for(ROLE_QUANTITY),
    )
    snapshot = CatalogSnapshot.from_catalog(store)
    match = match_rows(validation.rows, snapshot, store, location_id)

    result = ParseResult(
        filename=filename,
        file_type=file_type,
        rows=match.rows,
        warnings=validation.warnings,
        existing_inventory=match.existing_inventory,
        stats=ParseStats(
            total_rows=sheet.total_rows,
            valid_rows=len(match.rows),
            empty_rows=sheet.empty_rows,
            matched_supplies=match.matched_rows,
            new_supplies=match.new_rows,
            duplicate_skus=validation.duplicate_skus,
        ),
        columns=sheet.columns,
        location_id=location_id,
    )
    logger.info(
        "parsed %s: rows=%d empty=%d matched=%d new=%d duplicates=%d warnings=%d",
        filename,
        result.stats.valid_rows,
        result.stats.empty_rows,
        result.stats.matched_supplies,
        result.stats.new_supplies,
        len(result.stats.duplicate_skus),
        len(result.warnings),
    )
    return result


def apply_request(
    request: ApplyRequest,
    store: SupplyStore,
    config: ImportConfig | None = None,
    *,
    workers: int | None = None,
    show_progress: bool | None = None,
) -> ApplyResult:
    """Commit a finalized row set.

    Raises:
        LocationInvalidError: before any row is touched. The rejection is
            still written to the error log as a row=-1 LOCATION_INVALID record.
    """
    config = config or ImportConfig()
    error_log = ErrorLogBuffer(config.error_log_directory)
    engine = ApplyEngine(
        store,
        config.supply_defaults,
        workers=workers if workers is not None else config.apply.workers,
        max_version_retries=config.apply.max_version_retries,
        error_log=error_log,
        show_progress=show_progress,
    )
    try:
        result = engine.apply(request)
    except LocationInvalidError as e:
        error_log.append(
            ErrorRecord.create(
                file=request.filename,
                location=request.location_id,
                row=-1,
                sku="",
                error_type="LOCATION_INVALID",
                message=str(e),
            )
        )
        logger.warning("location rejection written to %s", error_log.flush())
        raise

    log_path = error_log.flush()
    if log_path is not None:
        logger.warning("%d row errors written to %s", result.stats.errors_count, log_path)
    log_summary(render_summary_fields(request.filename, request.location_id, result))
    return result


def apply_session(
    session: ReconciliationSession,
    location_id: str,
    store: SupplyStore,
    config: ImportConfig | None = None,
    *,
    workers: int | None = None,
    show_progress: bool | None = None,
) -> ApplyResult:
    """Apply the session's current edits.

    A second call while one is running raises ApplyInProgressError. A fatal
    error (e.g. LocationInvalidError) puts the session back in PARSED with
    ``session.apply_error`` set and is re-raised.
    """
    session.begin_apply()
    try:
        result = apply_request(
            session.to_apply_request(location_id),
            store,
            config,
            workers=workers,
            show_progress=show_progress,
        )
    except Exception as e:
        session.fail_apply(str(e) or type(e).__name__)
        raise
    session.complete_apply(result)
    return result
