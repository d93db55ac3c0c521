"""doctor_upload/lambda_function.py

Upload endpoint for the partner reporting application. The application posts
a generated ECG report as multipart/form-data (`pdfFile` part, `doctorId` and
optional `patientName` text fields); the report is filed under the doctor's
assigned-reports prefix with a generated, timestamped file name.

Routes (via API Gateway proxy):
    POST    /api/doctor/upload   - upload a generated report
    OPTIONS /api/doctor/upload   - CORS preflight

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
    now_z,
    sanitize_doctor_id,
    teammate_report_file_name,
    teammate_report_key,
)
from cardmia_shared.storage import ObjectStorage

FILE_FIELD = "pdfFile"
PDF_CONTENT_TYPE = "application/pdf"
UPLOADED_BY = "teammate-app"

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

    raw_doctor_id = fields.get_text("doctorId")
    if not raw_doctor_id:
        return _error(400, "doctorId is required")
    doctor_id = sanitize_doctor_id(raw_doctor_id)
    if not doctor_id:
        return _error(400, "Invalid doctorId")
    pdf = fields.get_file(FILE_FIELD)
    if pdf is None or not pdf.data:
        return _error(400, "PDF file is required")

    patient_name = fields.get_text("patientName") or ""
    now = dt.datetime.now(dt.timezone.utc)
    file_name = teammate_report_file_name(patient_name, now)
    s3_key = teammate_report_key(doctor_id, file_name)
    uploaded_at = now_z(now)

    try:
        _get_storage().put(
            s3_key,
            pdf.data,
            PDF_CONTENT_TYPE,
            metadata={
                "doctorId": doctor_id,
                "patientName": patient_name,
                "uploadedBy": UPLOADED_BY,
                "uploadedAt": uploaded_at,
            },
        )
    except Exception as exc:
        logger.error("S3 upload failed: key=%s error=%s", s3_key, exc)
        return _error(500, "Failed to upload report")

    logger.info("partner report uploaded: doctor=%s key=%s", doctor_id, s3_key)
    return _response(200, {
        "success": True,
        "message": "Report uploaded successfully",
        "fileName": file_name,
        "s3Key": s3_key,
        "uploadedAt": uploaded_at,
    })


def lambda_handler(event: Dict, context: Any) -> Dict:
    method, path = _path_method(event)
    logger.info("request: method=%s path=%s", method, path)

    if method == "OPTIONS":
        return _preflight()
    if method != "POST":
        return _error(405, "Method not allowed")
    return _handle_upload(event)
