"""create_doctor/lambda_function.py

Registers (invites) a doctor and stores the profile as JSON in the bucket.

Routes (via API Gateway proxy):
    POST    /api/doctors   - create a doctor profile
    OPTIONS /api/doctors   - CORS preflight

Request body (JSON):
    name, email, specialization   required
    hospital, licenseNumber       optional

Storage key:
    doctors/{doctorId}.json   where doctorId is DR-XXXXXXXX
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict

from cardmia_shared.http_utils import _failure, _parse_body, _path_method, _preflight, _response
from cardmia_shared.report_keys import doctor_profile_key, new_doctor_id, now_z
from cardmia_shared.storage import ObjectStorage

REQUIRED_FIELDS = ("name", "email", "specialization")
MAX_FIELD_LENGTH = 200

logger = logging.getLogger()
logger.setLevel(logging.INFO)

_storage = None


def _get_storage() -> ObjectStorage:
    global _storage
    if _storage is None:
        _storage = ObjectStorage()
    return _storage


def _clean(value: Any) -> str:
    return str(value or "").strip()


def _handle_create(event: Dict) -> Dict:
    body = _parse_body(event)
    if not isinstance(body, dict) or not body:
        return _failure(400, "Invalid JSON body")

    missing = [f for f in REQUIRED_FIELDS if not _clean(body.get(f))]
    if missing:
        return _failure(400, f"Missing required fields: {', '.join(missing)}")
    too_long = [
        f for f in REQUIRED_FIELDS + ("hospital", "licenseNumber")
        if len(_clean(body.get(f))) > MAX_FIELD_LENGTH
    ]
    if too_long:
        return _failure(400, f"Fields exceed {MAX_FIELD_LENGTH} characters: {', '.join(too_long)}")

    doctor_id = new_doctor_id()
    now = now_z()
    doctor = {
        "doctorId": doctor_id,
        "name": _clean(body.get("name")),
        "email": _clean(body.get("email")),
        "specialization": _clean(body.get("specialization")),
        "hospital": _clean(body.get("hospital")),
        "licenseNumber": _clean(body.get("licenseNumber")),
        "status": "ACTIVE",
        "createdAt": now,
        "updatedAt": now,
    }

    key = doctor_profile_key(doctor_id)
    try:
        _get_storage().put(
            key,
            json.dumps(doctor, indent=2).encode("utf-8"),
            "application/json",
            metadata={"doctor-id": doctor_id, "email": doctor["email"]},
        )
    except Exception as exc:
        logger.error("S3 put (doctor profile) failed: key=%s error=%s", key, exc)
        return _failure(500, "Failed to save doctor profile")

    logger.info("doctor created: %s", doctor_id)
    return _response(201, {
        "success": True,
        "doctorId": doctor_id,
        "message": "Doctor invited successfully",
        "doctor": doctor,
    })


def lambda_handler(event: Dict, context: Any) -> Dict:
    method, path = _path_method(event)
    logger.info("request: method=%s path=%s", method, path)

    if method == "OPTIONS":
        return _preflight()
    if method != "POST":
        return _failure(405, "Method not allowed")
    return _handle_create(event)
