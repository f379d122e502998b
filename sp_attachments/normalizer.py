"""Turn attachment-list response bodies into :class:`AttachmentRecord` lists.

Depending on the endpoint that answered, a successful body arrives as

* ``{"value": [{"AttachmentFiles": [...]}]}`` for ``items?$filter=...`` queries,
* ``{"AttachmentFiles": [...]}`` for ``items(<id>)`` lookups,
* ``{"d": {...}}`` when the server ignores ``odata=nometadata`` and answers
  in verbose mode, where arrays are wrapped in ``{"results": [...]}``.

Anything else means the request reached an endpoint that does not speak this
shape, which the repository treats as "try the next candidate".
"""

from __future__ import annotations

import json
import logging
from enum import Enum
from typing import Any

from .errors import NormalizationError
from .models import AttachmentRecord

logger = logging.getLogger(__name__)


class ResponseShape(str, Enum):
    WRAPPED_COLLECTION = "wrapped_collection"
    BARE_ITEM = "bare_item"
    VERBOSE = "verbose"


def normalize_attachments(body: bytes | str | None, content_type: str | None = None) -> list[AttachmentRecord]:
    """Parse ``body`` and return its attachments, or raise :class:`NormalizationError`."""
    payload = _decode_json(body, content_type)
    shape, files = classify(payload)
    records = [record for record in (_to_record(raw) for raw in files) if record is not None]
    dropped = len(files) - len(records)
    if dropped:
        logger.debug("Dropped %d malformed attachment entries from %s payload", dropped, shape.value)
    return records


def classify(payload: Any) -> tuple[ResponseShape, list[Any]]:
    """Identify the payload shape and return its raw attachment entries."""
    if isinstance(payload, dict):
        verbose = payload.get("d")
        if isinstance(verbose, dict):
            return ResponseShape.VERBOSE, _verbose_files(verbose)
        if isinstance(payload.get("value"), list):
            rows = payload["value"]
            if not rows:
                return ResponseShape.WRAPPED_COLLECTION, []
            if isinstance(rows[0], dict):
                return ResponseShape.WRAPPED_COLLECTION, _as_list(rows[0].get("AttachmentFiles"))
        elif "AttachmentFiles" in payload:
            return ResponseShape.BARE_ITEM, _as_list(payload.get("AttachmentFiles"))
    raise NormalizationError(f"Unrecognized attachment payload: {_describe(payload)}")


def _decode_json(body: bytes | str | None, content_type: str | None) -> Any:
    if body is None or len(body) == 0:
        raise NormalizationError("Empty response body where an attachment payload was expected")
    try:
        return json.loads(body)
    except ValueError as exc:
        kind = content_type or "unknown content type"
        raise NormalizationError(f"Response body is not JSON ({kind})") from exc


def _verbose_files(container: dict) -> list[Any]:
    results = container.get("results")
    if isinstance(results, list):
        if not results:
            return []
        container = results[0] if isinstance(results[0], dict) else {}
    elif "AttachmentFiles" not in container:
        raise NormalizationError(f"Unrecognized verbose payload: {_describe(container)}")
    files = container.get("AttachmentFiles")
    if isinstance(files, dict):
        files = files.get("results")
    return _as_list(files)


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise NormalizationError(f"AttachmentFiles is {type(value).__name__}, expected a list")
    return value


def _to_record(raw: Any) -> AttachmentRecord | None:
    if not isinstance(raw, dict):
        return None
    file_name = raw.get("FileName")
    url = raw.get("ServerRelativeUrl")
    if not isinstance(file_name, str) or not file_name or not isinstance(url, str) or not url:
        return None
    return AttachmentRecord(file_name=file_name, server_relative_url=url)


def _describe(payload: Any) -> str:
    if isinstance(payload, dict):
        keys = ", ".join(sorted(str(key) for key in payload)[:5])
        return f"object with keys [{keys}]"
    return type(payload).__name__
