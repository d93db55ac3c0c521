"""cardmia_shared.report_keys - S3 key derivation for reports and doctors.

Bucket layout:
    doctor-assigned-reports/{doctorId}/{YYYY}/{MM}/{DD}/{file}.pdf
    doctor-assigned-reports/{doctorId}/ECG_Report_{patient_}{timestamp}.pdf
    doctor-reviewed-reports/{doctorId}/{file}.pdf
    doctors/{doctorId}.json
"""

from __future__ import annotations

import datetime as dt
import os
import re
import uuid
from typing import Optional

ASSIGNED_REPORTS_PREFIX = os.environ.get("ASSIGNED_REPORTS_PREFIX", "doctor-assigned-reports")
REVIEWED_REPORTS_PREFIX = os.environ.get("REVIEWED_REPORTS_PREFIX", "doctor-reviewed-reports")
DOCTORS_PREFIX = os.environ.get("DOCTORS_PREFIX", "doctors")
MAX_DOCTOR_ID_LENGTH = 50
DEFAULT_REPORT_FILE_NAME = "uploaded-report.pdf"

_UNSAFE_FILE_CHARS = re.compile(r"[^a-zA-Z0-9.-]")
_UNSAFE_ID_CHARS = re.compile(r"[^a-zA-Z0-9_-]")
_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]")


def now_z(now: Optional[dt.datetime] = None) -> str:
    """UTC timestamp in ISO 8601 format with Z suffix."""
    now = now or dt.datetime.now(dt.timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%SZ")


def sanitize_file_name(name: str) -> str:
    return _UNSAFE_FILE_CHARS.sub("_", name)


def sanitize_doctor_id(raw: Optional[str]) -> Optional[str]:
    """Return the trimmed doctorId, or None when it is empty, too long or
    holds anything besides alphanumerics, dash and underscore.

    Bad ids are rejected rather than rewritten so a mangled id can never land
    under another doctor's prefix.
    """
    if not raw:
        return None
    stripped = raw.strip()
    if not stripped or len(stripped) > MAX_DOCTOR_ID_LENGTH:
        return None
    if _UNSAFE_ID_CHARS.search(stripped):
        return None
    return stripped


def assigned_report_key(doctor_id: str, file_name: str, now: dt.datetime) -> str:
    safe = sanitize_file_name(file_name or DEFAULT_REPORT_FILE_NAME)
    return (
        f"{ASSIGNED_REPORTS_PREFIX}/{doctor_id}/"
        f"{now:%Y}/{now:%m}/{now:%d}/{safe}"
    )


def reviewed_report_key(doctor_id: str, original_file_name: str) -> str:
    # Keys are stable per original report: a second review replaces the first.
    base = os.path.basename(original_file_name.replace("\\", "/")) or DEFAULT_REPORT_FILE_NAME
    safe = sanitize_file_name(base)
    if not safe.lower().endswith(".pdf"):
        safe += ".pdf"
    return f"{REVIEWED_REPORTS_PREFIX}/{doctor_id}/{safe}"


def teammate_report_file_name(patient_name: Optional[str], now: dt.datetime) -> str:
    stamp = now.strftime("%Y-%m-%dT%H-%M-%S")
    prefix = f"{_NON_ALNUM.sub('_', patient_name)}_" if patient_name else ""
    return f"ECG_Report_{prefix}{stamp}.pdf"


def teammate_report_key(doctor_id: str, file_name: str) -> str:
    return f"{ASSIGNED_REPORTS_PREFIX}/{doctor_id}/{file_name}"


def doctor_reports_prefix(doctor_id: str, reviewed: bool = False) -> str:
    root = REVIEWED_REPORTS_PREFIX if reviewed else ASSIGNED_REPORTS_PREFIX
    return f"{root}/{doctor_id}/"


def doctor_profile_key(doctor_id: str) -> str:
    return f"{DOCTORS_PREFIX}/{doctor_id}.json"


def new_doctor_id() -> str:
    return f"DR-{uuid.uuid4().hex[:8].upper()}"
