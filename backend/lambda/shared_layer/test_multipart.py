"""test_multipart.py - Unit tests for cardmia_shared.multipart.

Run from shared_layer directory:
    PYTHONPATH=python python3 -m pytest test_multipart.py -v
"""

from __future__ import annotations

import base64
import itertools
import os
import sys
import unittest

sys.path.insert(0, os.path.join(os.path.dirname(os.path.abspath(__file__)), "python"))

from cardmia_shared.multipart import (
    FilePart,
    MalformedBodyError,
    decode_part,
    extract_boundary,
    iter_part_spans,
    parse_content_disposition,
    parse_multipart,
    raw_body_from_event,
)

BOUNDARY = "----CardmiaFormBoundary7MA4YWxkTrZu0gW"
CONTENT_TYPE = f"multipart/form-data; boundary={BOUNDARY}"


def _text_part(name: str, value: str) -> bytes:
    return (
        f'Content-Disposition: form-data; name="{name}"\r\n\r\n'.encode()
        + value.encode("utf-8")
    )


def _file_part(name: str, filename: str, data: bytes, content_type="application/pdf") -> bytes:
    return (
        f'Content-Disposition: form-data; name="{name}"; filename="{filename}"\r\n'
        f"Content-Type: {content_type}\r\n\r\n"
    ).encode() + data


def _encode(parts, boundary: str = BOUNDARY) -> bytes:
    marker = f"--{boundary}".encode()
    body = b""
    for part in parts:
        body += marker + b"\r\n" + part + b"\r\n"
    return body + marker + b"--\r\n"


class BoundaryTests(unittest.TestCase):
    def test_extracts_marker_with_dash_prefix(self):
        self.assertEqual(extract_boundary(CONTENT_TYPE), f"--{BOUNDARY}".encode())

    def test_quoted_boundary_and_trailing_params(self):
        marker = extract_boundary('multipart/form-data; boundary="abc123"; charset=utf-8')
        self.assertEqual(marker, b"--abc123")

    def test_boundary_param_is_case_insensitive(self):
        self.assertEqual(extract_boundary("multipart/form-data; Boundary=xyz"), b"--xyz")

    def test_missing_boundary_raises(self):
        with self.assertRaises(MalformedBodyError) as ctx:
            extract_boundary("multipart/form-data")
        self.assertEqual(str(ctx.exception), "invalid boundary")

    def test_empty_boundary_raises(self):
        with self.assertRaises(MalformedBodyError):
            extract_boundary('multipart/form-data; boundary=""')

    def test_none_content_type_raises(self):
        with self.assertRaises(MalformedBodyError):
            extract_boundary(None)


class ScannerTests(unittest.TestCase):
    def test_spans_cover_each_part_in_order(self):
        body = b"--B\r\nfirst\r\n--B\r\nsecond\r\n--B--\r\n"
        spans = list(iter_part_spans(body, b"--B"))
        self.assertEqual([body[s:e] for s, e in spans], [b"\r\nfirst\r\n", b"\r\nsecond\r\n"])

    def test_scanner_is_lazy(self):
        gen = iter_part_spans(b"--B\r\nx\r\n--B--", b"--B")
        self.assertEqual(next(gen), (3, 8))
        with self.assertRaises(StopIteration):
            next(gen)

    def test_no_marker_yields_nothing(self):
        self.assertEqual(list(iter_part_spans(b"plain text body", b"--B")), [])

    def test_terminator_does_not_produce_trailing_part(self):
        body = _encode([_text_part("a", "1")]) + b"epilogue\r\n"
        self.assertEqual(len(list(iter_part_spans(body, f"--{BOUNDARY}".encode()))), 1)

    def test_preamble_is_ignored(self):
        body = b"preamble junk\r\n" + _encode([_text_part("a", "1")])
        fields = parse_multipart(body, CONTENT_TYPE)
        self.assertEqual(fields.get_text("a"), "1")


class DecodePartTests(unittest.TestCase):
    def test_trims_exactly_one_crlf_each_side(self):
        chunk = b'\r\nContent-Disposition: form-data; name="f"; filename="x.bin"\r\n\r\n\r\nDATA\r\n\r\n'
        descriptor, payload, _headers = decode_part(chunk)
        self.assertEqual(descriptor.name, "f")
        self.assertEqual(payload, b"\r\nDATA\r\n")

    def test_missing_separator_returns_none(self):
        self.assertIsNone(decode_part(b'\r\nContent-Disposition: form-data; name="a"\r\n'))

    def test_missing_disposition_returns_none(self):
        self.assertIsNone(decode_part(b"\r\nContent-Type: text/plain\r\n\r\nvalue\r\n"))

    def test_headers_are_case_insensitive(self):
        descriptor, payload, headers = decode_part(
            b'\r\ncontent-disposition: form-data; NAME="doctorId"\r\nCONTENT-TYPE: text/plain\r\n\r\nDR-1\r\n'
        )
        self.assertEqual(descriptor.name, "doctorId")
        self.assertEqual(headers["content-type"], "text/plain")
        self.assertEqual(payload, b"DR-1")

    def test_disposition_filename_is_not_mistaken_for_name(self):
        self.assertIsNone(parse_content_disposition('form-data; filename="a.pdf"'))

    def test_empty_filename_attribute_is_present(self):
        descriptor = parse_content_disposition('form-data; name="file"; filename=""')
        self.assertEqual(descriptor.filename, "")
        self.assertTrue(descriptor.has_filename)


class ParseMultipartTests(unittest.TestCase):
    def test_binary_file_is_byte_exact(self):
        payload = bytes(range(256)) * 4
        body = _encode([_file_part("file", "a.pdf", payload)])
        fields = parse_multipart(body, CONTENT_TYPE, file_field="file")
        pdf = fields.get_file("file")
        self.assertIsInstance(pdf, FilePart)
        self.assertEqual(pdf.data, payload)
        self.assertEqual(pdf.filename, "a.pdf")
        self.assertEqual(pdf.content_type, "application/pdf")
        self.assertEqual(fields.original_filename, "a.pdf")

    def test_non_utf8_file_bytes_survive(self):
        payload = b"%PDF-1.7\n\xff\xfe\x80\x81\xc3\x28\x00binary"
        body = _encode([_file_part("reviewedPdf", "r.pdf", payload)])
        fields = parse_multipart(body, CONTENT_TYPE, file_field="reviewedPdf")
        self.assertEqual(fields.get_file("reviewedPdf").data, payload)

    def test_text_field_is_whitespace_trimmed(self):
        body = _encode([_text_part("doctorId", "  DR-AB12  \r\n")])
        fields = parse_multipart(body, CONTENT_TYPE)
        self.assertEqual(fields.get_text("doctorId"), "DR-AB12")

    def test_text_field_keeps_inner_line_breaks(self):
        body = _encode([_text_part("notes", "line one\r\nline two")])
        fields = parse_multipart(body, CONTENT_TYPE)
        self.assertEqual(fields.get_text("notes"), "line one\r\nline two")

    def test_embedded_crlf_in_file_payload_is_preserved(self):
        payload = b"\r\n%PDF body\r\n"
        body = _encode([_file_part("file", "x.pdf", payload)])
        fields = parse_multipart(body, CONTENT_TYPE)
        self.assertEqual(fields.get_file("file").data, payload)

    def test_n_text_fields_plus_file_in_any_order(self):
        texts = [("doctorId", "DR-1"), ("patientName", "Jane Roe"), ("originalFileName", "r.pdf")]
        file_bytes = b"%PDF\x00\x01\x02"
        parts = [_text_part(n, v) for n, v in texts] + [_file_part("file", "r.pdf", file_bytes)]
        for order in itertools.permutations(parts):
            fields = parse_multipart(_encode(order), CONTENT_TYPE, file_field="file")
            self.assertEqual(len(fields), len(texts) + 1)
            for name, value in texts:
                self.assertEqual(fields.get_text(name), value)
            self.assertEqual(fields.get_file("file").data, file_bytes)

    def test_utf8_text_values(self):
        body = _encode([_text_part("patientName", "José Müller")])
        self.assertEqual(parse_multipart(body, CONTENT_TYPE).get_text("patientName"), "José Müller")

    def test_last_text_value_wins(self):
        body = _encode([_text_part("doctorId", "DR-1"), _text_part("doctorId", "DR-2")])
        self.assertEqual(parse_multipart(body, CONTENT_TYPE).get_text("doctorId"), "DR-2")

    def test_second_designated_file_is_ignored(self):
        body = _encode([
            _file_part("file", "first.pdf", b"one"),
            _file_part("file", "second.pdf", b"two"),
        ])
        with self.assertLogs("cardmia_shared.multipart", level="WARNING"):
            fields = parse_multipart(body, CONTENT_TYPE, file_field="file")
        self.assertEqual(fields.get_file("file").data, b"one")
        self.assertEqual(fields.original_filename, "first.pdf")
        self.assertEqual(fields.ignored_files, 1)

    def test_text_part_cannot_displace_accepted_file(self):
        body = _encode([
            _file_part("file", "first.pdf", b"AAA"),
            _text_part("file", "hello"),
            _file_part("file", "second.pdf", b"BBB"),
        ])
        with self.assertLogs("cardmia_shared.multipart", level="WARNING"):
            fields = parse_multipart(body, CONTENT_TYPE, file_field="file")
        self.assertEqual(fields.original_filename, "first.pdf")
        self.assertEqual(fields.get_file("file").data, b"AAA")
        self.assertEqual(fields.ignored_files, 2)

    def test_text_part_before_file_is_replaced_by_the_file(self):
        body = _encode([_text_part("file", "hello"), _file_part("file", "a.pdf", b"PDF")])
        fields = parse_multipart(body, CONTENT_TYPE, file_field="file")
        self.assertEqual(fields.get_file("file").data, b"PDF")
        self.assertEqual(fields.original_filename, "a.pdf")
        self.assertEqual(fields.ignored_files, 0)

    def test_expected_file_field_is_configurable(self):
        body = _encode([_file_part("reviewedPdf", "r.pdf", b"R"), _file_part("file", "f.pdf", b"F")])
        fields = parse_multipart(body, CONTENT_TYPE, file_field="reviewedPdf")
        self.assertEqual(fields.original_filename, "r.pdf")
        # Other file parts stay available under their own name.
        self.assertEqual(fields.get_file("file").data, b"F")

    def test_part_without_name_or_filename_is_skipped(self):
        body = _encode([
            b"Content-Disposition: form-data\r\n\r\norphan",
            _text_part("doctorId", "DR-9"),
        ])
        fields = parse_multipart(body, CONTENT_TYPE)
        self.assertEqual(list(fields.keys()), ["doctorId"])
        self.assertEqual(fields.skipped_parts, 1)

    def test_part_without_separator_is_skipped(self):
        body = _encode([b"garbage without headers", _text_part("doctorId", "DR-9")])
        fields = parse_multipart(body, CONTENT_TYPE)
        self.assertEqual(fields.get_text("doctorId"), "DR-9")
        self.assertEqual(fields.skipped_parts, 1)

    def test_empty_file_payload(self):
        body = _encode([_file_part("file", "empty.pdf", b"")])
        self.assertEqual(parse_multipart(body, CONTENT_TYPE).get_file("file").data, b"")

    def test_missing_fields_are_absent_not_errors(self):
        body = _encode([_text_part("doctorId", "DR-1")])
        fields = parse_multipart(body, CONTENT_TYPE)
        self.assertNotIn("file", fields)
        self.assertIsNone(fields.get_file("file"))
        self.assertIsNone(fields.original_filename)

    def test_missing_boundary_is_structural_error(self):
        with self.assertRaises(MalformedBodyError) as ctx:
            parse_multipart(_encode([_text_part("a", "1")]), "multipart/form-data")
        self.assertEqual(str(ctx.exception), "invalid boundary")

    def test_no_marker_occurrence_is_structural_error(self):
        with self.assertRaises(MalformedBodyError) as ctx:
            parse_multipart(b"doctorId=DR-1", CONTENT_TYPE)
        self.assertEqual(str(ctx.exception), "no multipart parts found")

    def test_terminator_only_body_is_structural_error(self):
        with self.assertRaises(MalformedBodyError):
            parse_multipart(f"--{BOUNDARY}--\r\n".encode(), CONTENT_TYPE)

    def test_get_text_does_not_return_files(self):
        body = _encode([_file_part("file", "a.pdf", b"x")])
        fields = parse_multipart(body, CONTENT_TYPE)
        self.assertIsNone(fields.get_text("file"))


class RawBodyTests(unittest.TestCase):
    def test_base64_body_is_decoded(self):
        raw = bytes(range(256))
        event = {"body": base64.b64encode(raw).decode(), "isBase64Encoded": True}
        self.assertEqual(raw_body_from_event(event), raw)

    def test_plain_body_is_utf8_encoded(self):
        event = {"body": "héllo", "isBase64Encoded": False}
        self.assertEqual(raw_body_from_event(event), "héllo".encode("utf-8"))

    def test_invalid_base64_raises(self):
        with self.assertRaises(MalformedBodyError):
            raw_body_from_event({"body": "not base64!!", "isBase64Encoded": True})

    def test_missing_body_is_empty(self):
        self.assertEqual(raw_body_from_event({}), b"")


if __name__ == "__main__":
    unittest.main()
