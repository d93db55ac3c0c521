"""s3_file_content/lambda_function.py

Proxies the content of a single bucket object so the browser never fetches S3
directly. `.json` objects are parsed and returned as JSON; anything else is
returned as UTF-8 text.

Routes (via API Gateway proxy):
    GET     /api/s3-file-content?key={url-encoded key}
    OPTIONS /api/s3-file-content

Error codes:
    MISSING_KEY, FILE_NOT_FOUND, EMPTY_FILE, INVALID_JSON, S3_FETCH_ERROR
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict
from urllib.parse import unquote

from cardmia_shared.http_utils import _error, _path_method, _preflight, _query_params, _response
from cardmia_shared.storage import ObjectNotFoundError, ObjectStorage

logger = logging.getLogger()
logger.setLevel(logging.INFO)

_storage = None


def _get_storage() -> ObjectStorage:
    global _storage
    if _storage is None:
        _storage = ObjectStorage()
    return _storage


def _handle_get(event: Dict) -> Dict:
    raw_key = _query_params(event).get("key")
    if not raw_key:
        return _error(400, "Missing required parameter: key", code="MISSING_KEY")
    key = unquote(raw_key)

    try:
        data = _get_storage().get(key)
    except ObjectNotFoundError:
        return _error(404, "File not found in S3", code="FILE_NOT_FOUND")
    except Exception as exc:
        logger.error("S3 get_object failed: key=%s error=%s", key, exc)
        return _error(500, "Failed to fetch file content", code="S3_FETCH_ERROR")

    if not data:
        return _error(404, "File content is empty or not found", code="EMPTY_FILE")

    content = data.decode("utf-8", errors="replace")
    if key.lower().endswith(".json"):
        try:
            parsed: Any = json.loads(content)
        except json.JSONDecodeError:
            return _error(400, "Invalid JSON content", code="INVALID_JSON")
    else:
        parsed = content

    return _response(200, {"success": True, "data": parsed})


def lambda_handler(event: Dict, context: Any) -> Dict:
    method, path = _path_method(event)
    logger.info("request: method=%s path=%s", method, path)

    if method == "OPTIONS":
        return _preflight()
    if method != "GET":
        return _error(405, "Method not allowed")
    return _handle_get(event)
