"""cardmia_shared.multipart - multipart/form-data decoding for upload Lambdas.

The body is scanned for boundary markers as raw bytes. Only the header block
of each part is ever decoded as text, so binary file payloads (PDFs) come back
byte-for-byte identical to what the client sent.

Usage:
    fields = parse_multipart(raw_body_from_event(event), content_type,
                             file_field="reviewedPdf")
    pdf = fields.get_file("reviewedPdf")
    doctor_id = fields.get_text("doctorId")

Structural problems raise MalformedBodyError (answer 400). Missing business
fields are never an error here; the key is simply absent from the result.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Optional, Tuple, Union

logger = logging.getLogger(__name__)

CRLF = b"\r\n"
HEADER_SEPARATOR = b"\r\n\r\n"
DEFAULT_FILE_CONTENT_TYPE = "application/octet-stream"

_BOUNDARY_RE = re.compile(r"boundary=([^;]+)", re.IGNORECASE)
_NAME_RE = re.compile(r'(?:^|[;\s])name="([^"]*)"', re.IGNORECASE)
_FILENAME_RE = re.compile(r'(?:^|[;\s])filename="([^"]*)"', re.IGNORECASE)


class MalformedBodyError(ValueError):
    """The request body is not a well-formed multipart envelope."""


@dataclass(frozen=True)
class FieldDescriptor:
    name: str
    filename: Optional[str] = None

    @property
    def has_filename(self) -> bool:
        return self.filename is not None


@dataclass(frozen=True)
class FilePart:
    filename: str
    data: bytes
    content_type: str = DEFAULT_FILE_CONTENT_TYPE

    @property
    def size(self) -> int:
        return len(self.data)


FieldValue = Union[str, FilePart]


@dataclass
class DecodedFields:
    """Result of one parse_multipart call.

    ``fields`` maps field name to a text value or a FilePart.
    ``original_filename`` is the filename of the first designated file part.
    ``skipped_parts`` counts parts dropped as malformed or unrecognised and
    ``ignored_files`` counts later parts (file or text) under the designated
    file field that lost to the first accepted file.
    """

    fields: Dict[str, FieldValue] = field(default_factory=dict)
    original_filename: Optional[str] = None
    skipped_parts: int = 0
    ignored_files: int = 0

    def __contains__(self, name: object) -> bool:
        return name in self.fields

    def __getitem__(self, name: str) -> FieldValue:
        return self.fields[name]

    def __len__(self) -> int:
        return len(self.fields)

    def keys(self):
        return self.fields.keys()

    def get_text(self, name: str) -> Optional[str]:
        value = self.fields.get(name)
        return value if isinstance(value, str) else None

    def get_file(self, name: str) -> Optional[FilePart]:
        value = self.fields.get(name)
        return value if isinstance(value, FilePart) else None


# ---------------------------------------------------------------------------
# Boundary scanning
# ---------------------------------------------------------------------------


def extract_boundary(content_type: Optional[str]) -> bytes:
    """Return the boundary marker (``--`` + declared value) as bytes."""
    match = _BOUNDARY_RE.search(content_type or "")
    if not match:
        raise MalformedBodyError("invalid boundary")
    value = match.group(1).strip().strip('"')
    if not value:
        raise MalformedBodyError("invalid boundary")
    try:
        return b"--" + value.encode("ascii")
    except UnicodeEncodeError as exc:
        raise MalformedBodyError("invalid boundary") from exc


def iter_part_spans(body: bytes, marker: bytes) -> Iterator[Tuple[int, int]]:
    """Yield ``(start, end)`` offsets of each part between consecutive markers.

    The preamble before the first marker and anything after the last marker
    (the ``--`` terminator, trailing CRLF, epilogue) never produce a part.
    """
    if not marker:
        raise MalformedBodyError("invalid boundary")
    pos = body.find(marker)
    if pos == -1:
        return
    pos += len(marker)
    while True:
        nxt = body.find(marker, pos)
        if nxt == -1:
            return
        yield pos, nxt
        pos = nxt + len(marker)


# ---------------------------------------------------------------------------
# Part decoding
# ---------------------------------------------------------------------------


def _trim_crlf_once(chunk: bytes) -> bytes:
    if chunk.startswith(CRLF):
        chunk = chunk[2:]
    if chunk.endswith(CRLF):
        chunk = chunk[:-2]
    return chunk


def _parse_headers(header_block: bytes) -> Dict[str, str]:
    headers: Dict[str, str] = {}
    text = header_block.decode("utf-8", errors="replace")
    for line in text.split("\r\n"):
        if not line.strip() or ":" not in line:
            continue
        name, _, value = line.partition(":")
        headers[name.strip().lower()] = value.strip()
    return headers


def parse_content_disposition(value: str) -> Optional[FieldDescriptor]:
    """Extract name/filename from a Content-Disposition value.

    Returns None when there is no usable ``name`` attribute.
    """
    name_match = _NAME_RE.search(value)
    if not name_match or not name_match.group(1):
        return None
    filename_match = _FILENAME_RE.search(value)
    return FieldDescriptor(
        name=name_match.group(1),
        filename=filename_match.group(1) if filename_match else None,
    )


def decode_part(
    chunk: bytes,
) -> Optional[Tuple[FieldDescriptor, bytes, Dict[str, str]]]:
    """Split one part into (descriptor, raw body, lower-cased headers).

    Returns None for a part without a header/body separator or without a
    usable Content-Disposition header.
    """
    chunk = _trim_crlf_once(chunk)
    sep = chunk.find(HEADER_SEPARATOR)
    if sep == -1:
        return None
    headers = _parse_headers(chunk[:sep])
    disposition = headers.get("content-disposition")
    if not disposition:
        return None
    descriptor = parse_content_disposition(disposition)
    if descriptor is None:
        return None
    return descriptor, chunk[sep + len(HEADER_SEPARATOR):], headers


def parse_multipart(
    body: bytes,
    content_type: Optional[str],
    file_field: str = "file",
) -> DecodedFields:
    """Decode a multipart/form-data body.

    Args:
        body: Raw request bytes, already base64-decoded.
        content_type: The request Content-Type header.
        file_field: Name of the field that carries this endpoint's upload.

    Raises:
        MalformedBodyError: invalid boundary or no parts at all.
    """
    marker = extract_boundary(content_type)
    result = DecodedFields()
    found = 0
    file_taken = False

    for start, end in iter_part_spans(body, marker):
        found += 1
        decoded = decode_part(body[start:end])
        if decoded is None:
            result.skipped_parts += 1
            continue
        descriptor, payload, headers = decoded

        # Once the upload is accepted nothing else may claim its field name.
        if file_taken and descriptor.name == file_field:
            result.ignored_files += 1
            logger.warning(
                "multipart: ignoring extra part for field=%s filename=%s",
                file_field,
                descriptor.filename,
            )
            continue

        if not descriptor.has_filename:
            result.fields[descriptor.name] = payload.decode(
                "utf-8", errors="replace"
            ).strip()
            continue

        file_part = FilePart(
            filename=descriptor.filename or "",
            data=payload,
            content_type=headers.get("content-type") or DEFAULT_FILE_CONTENT_TYPE,
        )
        result.fields[descriptor.name] = file_part
        if descriptor.name == file_field:
            file_taken = True
            result.original_filename = file_part.filename

    if found == 0:
        raise MalformedBodyError("no multipart parts found")
    if result.skipped_parts:
        logger.warning("multipart: skipped %d malformed part(s)", result.skipped_parts)
    return result


def raw_body_from_event(event: Dict[str, Any]) -> bytes:
    """Return the API Gateway request body as bytes (handles base64)."""
    raw = event.get("body") or ""
    if isinstance(raw, bytes):
        return raw
    if event.get("isBase64Encoded"):
        try:
            return base64.b64decode(raw, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise MalformedBodyError("invalid base64 body") from exc
    return raw.encode("utf-8")
