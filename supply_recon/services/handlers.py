from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import jsonschema
from jsonschema.exceptions import ValidationError

from ..ingest.reader import FormatError
from ..models.apply_result import ApplyRequest
from ..models.config_models import ImportConfig
from ..stores.base import LocationInvalidError, SupplyStore
from .pipeline import apply_request, parse_upload

"""Transport-agnostic handlers for the parse and apply contracts.

Each handler returns ``(status, body)``; a web layer only has to serialize
the body as JSON with that status. Fatal problems (bad file, bad location,
malformed request) come back as 400 with ``{"error": ...}``. Row-level apply
failures are embedded in a 200 body. Nothing is cached between the two
calls: the client resubmits the full, edited row set on apply.
"""

__all__ = [
    "APPLY_REQUEST_SCHEMA_PATH",
    "handle_parse",
    "handle_apply",
]

logger = logging.getLogger(__name__)

APPLY_REQUEST_SCHEMA_PATH = Path(__file__).with_name("apply_request_schema.json")

_apply_schema: dict[str, Any] | None = None


def _load_apply_schema() -> dict[str, Any]:
    global _apply_schema
    if _apply_schema is None:
        _apply_schema = json.loads(APPLY_REQUEST_SCHEMA_PATH.read_text(encoding="utf-8"))
    return _apply_schema


def _error(status: int, message: str, **extra: Any) -> tuple[int, dict[str, Any]]:
    return status, {"error": message, **extra}


def handle_parse(
    file: bytes | None,
    filename: str | None,
    location_id: str | None,
    store: SupplyStore,
    config: ImportConfig | None = None,
) -> tuple[int, dict[str, Any]]:
    if not file or not filename:
        return _error(400, "No file provided")
    try:
        result = parse_upload(file, filename, location_id, store, config)
    except (FormatError, LocationInvalidError) as e:
        logger.warning("parse rejected for %s: %s", filename, e)
        return _error(400, str(e))
    except Exception as e:
        logger.exception("parse failed for %s", filename)
        return _error(500, "Failed to parse file", details=str(e))
    return 200, result.to_dict()


def handle_apply(
    body: Any,
    store: SupplyStore,
    config: ImportConfig | None = None,
) -> tuple[int, dict[str, Any]]:
    try:
        jsonschema.validate(body, _load_apply_schema())
    except ValidationError as e:
        return _error(400, f"invalid apply request: {e.message}")

    request = ApplyRequest.from_dict(body)
    try:
        result = apply_request(request, store, config)
    except LocationInvalidError as e:
        logger.warning("apply rejected for %s: %s", request.filename, e)
        return _error(400, str(e))
    except Exception as e:
        logger.exception("apply failed for %s", request.filename)
        return _error(500, "Failed to apply supply import", details=str(e))
    return 200, result.to_dict()
