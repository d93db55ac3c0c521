"""doctor_reports/lambda_function.py

Lists a doctor's PDF reports with short-lived presigned download URLs.

Routes (via API Gateway proxy):
    GET     /api/doctor/reports?doctorId={id}[&status=reviewed]
    OPTIONS /api/doctor/reports

Assigned reports are read from doctor-assigned-reports/{doctorId}/, reviewed
ones (status=reviewed) from doctor-reviewed-reports/{doctorId}/. Results are
sorted newest first. Keys that vanished between listing and signing are
skipped rather than failing the whole listing.

Environment variables:
    S3_BUCKET           default: deck-backend-demo
    PRESIGNED_URL_TTL   default: 300
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Dict, List

from cardmia_shared.http_utils import _failure, _path_method, _preflight, _query_params, _response
from cardmia_shared.report_keys import doctor_reports_prefix, sanitize_doctor_id
from cardmia_shared.storage import ObjectStorage

logger = logging.getLogger()
logger.setLevel(logging.INFO)

_storage = None


def _get_storage() -> ObjectStorage:
    global _storage
    if _storage is None:
        _storage = ObjectStorage()
    return _storage


def _iso(value: Any) -> str:
    if isinstance(value, dt.datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=dt.timezone.utc)
        return value.astimezone(dt.timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    return str(value or "")


def _collect_reports(storage: ObjectStorage, prefix: str) -> List[Dict[str, Any]]:
    reports: List[Dict[str, Any]] = []
    for obj in storage.iter_objects(prefix):
        key = obj["key"]
        if not key.lower().endswith(".pdf"):
            continue
        try:
            if not storage.exists(key):
                logger.warning("skipping stale key (object missing): %s", key)
                continue
            url = storage.presigned_url(key)
        except Exception as exc:
            logger.error("presigned URL generation failed for %s: %s", key, exc)
            continue
        uploaded_at = _iso(obj.get("last_modified"))
        reports.append({
            "key": key,
            "fileName": key.rsplit("/", 1)[-1],
            "url": url,
            "size": obj.get("size"),
            "uploadedAt": uploaded_at,
            "lastModified": uploaded_at,
        })
    reports.sort(key=lambda r: r["uploadedAt"], reverse=True)
    return reports


def _handle_list(event: Dict) -> Dict:
    qs = _query_params(event)
    doctor_id = sanitize_doctor_id(qs.get("doctorId"))
    if not doctor_id:
        return _failure(400, "doctorId query parameter is required and must be valid", reports=[])

    reviewed = (qs.get("status") or "").strip().lower() == "reviewed"
    prefix = doctor_reports_prefix(doctor_id, reviewed=reviewed)
    try:
        reports = _collect_reports(_get_storage(), prefix)
    except Exception as exc:
        logger.error("report listing failed: prefix=%s error=%s", prefix, exc)
        return _failure(500, "Failed to fetch reports. Please try again.", reports=[])

    logger.info("reports listed: doctor=%s reviewed=%s count=%d", doctor_id, reviewed, len(reports))
    return _response(200, {"success": True, "reports": reports})


def lambda_handler(event: Dict, context: Any) -> Dict:
    method, path = _path_method(event)
    logger.info("request: method=%s path=%s", method, path)

    if method == "OPTIONS":
        return _preflight()
    if method != "GET":
        return _failure(405, "Method not allowed")
    return _handle_list(event)
