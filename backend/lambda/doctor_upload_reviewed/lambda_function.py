"""doctor_upload_reviewed/lambda_function.py

Lambda API for doctors submitting an annotated (reviewed) ECG report.
Accepts multipart/form-data with a `reviewedPdf` file part plus the
`originalFileName` and `doctorId` text fields.

Routes (via API Gateway proxy):
    POST    /api/doctor/upload-reviewed   - store a reviewed report
    OPTIONS /api/doctor/upload-reviewed   - CORS preflight

Storage key:
    doctor-reviewed-reports/{doctorId}/{safeOriginalFileName}

Environment variables:
    S3_BUCKET           default: deck-backend-demo
    MAX_UPLOAD_BYTES    default: 10485760
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from cardmia_shared.http_utils import _decode_form, _error, _path_method, _preflight, _response
from cardmia_shared.report_keys import now_z, reviewed_report_key, sanitize_doctor_id
from cardmia_shared.storage import ObjectStorage

FILE_FIELD = "reviewedPdf"
PDF_CONTENT_TYPE = "application/pdf"

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
        return _error(400, "No reviewedPdf file uploaded")
    # An explicit originalFileName field names the report being reviewed;
    # the uploaded filename is only a fallback.
    original_file_name = fields.get_text("originalFileName") or fields.original_filename
    if not original_file_name:
        return _error(400, "originalFileName is required")
    raw_doctor_id = fields.get_text("doctorId")
    if not raw_doctor_id:
        return _error(400, "doctorId is required")
    doctor_id = sanitize_doctor_id(raw_doctor_id)
    if not doctor_id:
        return _error(400, "Invalid doctorId")

    key = reviewed_report_key(doctor_id, original_file_name)
    try:
        result = _get_storage().put(
            key,
            pdf.data,
            PDF_CONTENT_TYPE,
            metadata={
                "doctorId": doctor_id,
                "originalFileName": original_file_name,
                "reviewedAt": now_z(),
            },
        )
    except Exception as exc:
        logger.error("S3 upload (reviewed) failed: key=%s error=%s", key, exc)
        return _error(500, "Failed to upload reviewed report")

    logger.info("reviewed report stored: doctor=%s key=%s size=%d", doctor_id, key, pdf.size)
    return _response(200, {
        "success": True,
        "data": {
            "key": result["key"],
            "etag": result["etag"],
        },
    })


def lambda_handler(event: Dict, context: Any) -> Dict:
    method, path = _path_method(event)
    logger.info("request: method=%s path=%s", method, path)

    if method == "OPTIONS":
        return _preflight()
    if method != "POST":
        return _error(405, "Method not allowed")
    return _handle_upload(event)
