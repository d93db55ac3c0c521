"""doctor_upload_assigned/lambda_function.py

Lambda API that assigns an ECG report PDF to a doctor.
Accepts multipart/form-data with a `file` part and a `doctorId` text field and
stores the PDF under a dated, per-doctor prefix.

Routes (via API Gateway proxy):
    POST    /api/doctor/upload-assigned   - upload a report for a doctor
    OPTIONS /api/doctor/upload-assigned   - CORS preflight

Storage key:
    doctor-assigned-reports/{doctorId}/{YYYY}/{MM}/{DD}/{safeFileName}

Environment variables:
    S3_BUCKET           default: deck-backend-demo
    MAX_UPLOAD_BYTES    default: 10485760
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Dict

from cardmia_shared.http_utils import _decode_form, _error, _path_method, _preflight, _response
from cardmia_shared.report_keys import (
    DEFAULT_REPORT_FILE_NAME,
    assigned_report_key,
    now_z,
    sanitize_doctor_id,
)
from cardmia_shared.storage import ObjectStorage

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

FILE_FIELD = "file"
PDF_CONTENT_TYPE = "application/pdf"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logger = logging.getLogger()
logger.setLevel(logging.INFO)

_storage = None


def _get_storage() -> ObjectStorage:
    global _storage
    if _storage is None:
        _storage = ObjectStorage()
    return _storage


def _handle_upload(event: Dict) -> Dict:
    fields, form_err = _decode_form(event, FILE_FIELD)
    if form_err:
        return form_err

    pdf = fields.get_file(FILE_FIELD)
    if pdf is None:
        return _error(400, "Missing file")
    raw_doctor_id = fields.get_text("doctorId")
    if not raw_doctor_id:
        return _error(400, "Missing doctorId")
    doctor_id = sanitize_doctor_id(raw_doctor_id)
    if not doctor_id:
        return _error(400, "Invalid doctorId")

    file_name = fields.original_filename or DEFAULT_REPORT_FILE_NAME
    now = dt.datetime.now(dt.timezone.utc)
    key = assigned_report_key(doctor_id, file_name, now)

    storage = _get_storage()
    try:
        storage.put(
            key,
            pdf.data,
            PDF_CONTENT_TYPE,
            metadata={
                "doctorId": doctor_id,
                "uploadedAt": now_z(now),
                "originalName": file_name,
            },
        )
    except Exception as exc:
        logger.error("S3 upload failed: key=%s error=%s", key, exc)
        return _error(500, "Failed to upload file to storage")

    logger.info("report assigned: doctor=%s key=%s size=%d", doctor_id, key, pdf.size)
    return _response(201, {
        "success": True,
        "message": "File uploaded successfully",
        "key": key,
        "location": f"s3://{storage.bucket}/{key}",
    })


# ---------------------------------------------------------------------------
# Handler
# ---------------------------------------------------------------------------


def lambda_handler(event: Dict, context: Any) -> Dict:
    method, path = _path_method(event)
    logger.info("request: method=%s path=%s", method, path)

    if method == "OPTIONS":
        return _preflight()
    if method != "POST":
        return _error(405, "Method not allowed")
    return _handle_upload(event)
