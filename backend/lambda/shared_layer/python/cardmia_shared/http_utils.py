"""cardmia_shared.http_utils - HTTP response helpers with CORS.

Standard response envelope and request accessors shared by every Cardmia API
Lambda. Handles both API Gateway REST (v1) and HTTP API (v2) event shapes.
"""

from __future__ import annotations

import base64
import json
import logging
import os
from typing import Any, Dict, Optional, Tuple

from cardmia_shared.multipart import (
    DecodedFields,
    MalformedBodyError,
    parse_multipart,
    raw_body_from_event,
)

logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = int(os.environ.get("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))

CORS_ORIGIN = os.environ.get("CORS_ORIGIN", "*")
CORS_HEADERS = {
    "Access-Control-Allow-Origin": CORS_ORIGIN,
    "Access-Control-Allow-Headers": "Content-Type,Authorization,X-API-Key",
    "Access-Control-Allow-Methods": "GET,POST,OPTIONS",
}


def _response(status_code: int, body: Any) -> Dict[str, Any]:
    """Wrap a JSON payload in the Cardmia API envelope (CORS on every reply)."""
    headers = {"Content-Type": "application/json"}
    headers.update(CORS_HEADERS)
    return {
        "statusCode": status_code,
        "headers": headers,
        "body": json.dumps(body, default=str),
    }


def _error(
    status_code: int,
    message: str,
    code: Optional[str] = None,
    **extra: Any,
) -> Dict[str, Any]:
    """Error reply for the upload and content endpoints.

    The portal client reads ``error.message`` and ``error.code``, so both live
    in a nested object: ``{"success": false, "error": {"message", "code"}}``.
    """
    detail: Dict[str, Any] = {"message": message}
    if code:
        detail["code"] = code
    payload: Dict[str, Any] = {"success": False, "error": detail}
    payload.update(extra)
    return _response(status_code, payload)


def _failure(status_code: int, message: str, **extra: Any) -> Dict[str, Any]:
    """Flat ``{"success": false, "message": ...}`` reply used by the listing
    and doctor-profile endpoints."""
    payload: Dict[str, Any] = {"success": False, "message": message}
    payload.update(extra)
    return _response(status_code, payload)


def _preflight() -> Dict[str, Any]:
    return _response(200, {"message": "CORS preflight"})


def _path_method(event: Dict[str, Any]) -> Tuple[str, str]:
    """Extract HTTP method and path from a v1 or v2 API Gateway event."""
    rc = event.get("requestContext") or {}
    http = rc.get("http") or {}
    route_key = event.get("routeKey") or ""
    route_method = route_key.split(" ")[0] if " " in route_key else ""
    method = (
        http.get("method")
        or event.get("httpMethod")
        or rc.get("httpMethod")
        or route_method
        or ""
    ).upper()
    path = http.get("path") or event.get("rawPath") or event.get("path") or "/"
    return method, path


def _header(event: Dict[str, Any], name: str) -> Optional[str]:
    """Case-insensitive header lookup."""
    headers = event.get("headers") or {}
    wanted = name.lower()
    for key, value in headers.items():
        if str(key).lower() == wanted:
            return value
    return None


def _query_params(event: Dict[str, Any]) -> Dict[str, str]:
    return event.get("queryStringParameters") or event.get("queryParameters") or {}


def _parse_body(event: Dict[str, Any]) -> Any:
    """Parse JSON body from API Gateway event (handles base64)."""
    raw = event.get("body")
    if isinstance(raw, dict):
        return raw
    raw = raw or "{}"
    try:
        if event.get("isBase64Encoded"):
            raw = base64.b64decode(raw).decode("utf-8")
        return json.loads(raw)
    except (ValueError, TypeError):
        return None


def _decode_form(
    event: Dict[str, Any],
    file_field: str,
    *,
    max_bytes: Optional[int] = None,
) -> Tuple[Optional[DecodedFields], Optional[Dict[str, Any]]]:
    """Decode a multipart upload request.

    Returns (fields, None) on success or (None, error_response) when the
    request is not a well-formed multipart body. Required-field checks are
    left to the caller.
    """
    content_type = _header(event, "content-type") or ""
    if "multipart/form-data" not in content_type.lower():
        return None, _error(400, "Content-Type must be multipart/form-data")
    if not event.get("body"):
        return None, _error(400, "Request body is required")

    limit = max_bytes if max_bytes is not None else MAX_UPLOAD_BYTES
    try:
        body = raw_body_from_event(event)
        if len(body) > limit:
            return None, _error(
                413, f"Request body too large ({len(body)} bytes, max {limit})"
            )
        fields = parse_multipart(body, content_type, file_field=file_field)
    except MalformedBodyError as exc:
        logger.warning("multipart decode failed: %s", exc)
        return None, _error(400, f"Malformed multipart body: {exc}")

    logger.info(
        "multipart decoded: fields=%s file_field=%s skipped=%d ignored_files=%d",
        sorted(fields.keys()),
        file_field,
        fields.skipped_parts,
        fields.ignored_files,
    )
    return fields, None
