"""Tests for mbox_archive.mime."""

from __future__ import annotations

import base64

import pytest

from mbox_archive.mime import MimeDecoder, decode_base64, decode_header_value, decode_text

from tests.conftest import PNG_BYTES, _build_image_email, _build_multipart_email, _build_plain_email


@pytest.fixture
def decoder() -> MimeDecoder:
    return MimeDecoder()


def _raw(headers: str, body: bytes) -> bytes:
    return headers.replace("\n", "\r\n").encode("ascii") + b"\r\n" + body


class TestTreeStructure:
    def test_plain_message_is_single_leaf(self, decoder: MimeDecoder):
        root = decoder.decode(_build_plain_email(body="Hello there"))
        assert root.content_type == "text/plain"
        assert not root.children
        assert root.text.strip() == "Hello there"

    def test_nested_multipart(self, decoder: MimeDecoder):
        raw = _build_multipart_email(attachments=[("data.csv", "text/csv", b"a,b\n1,2\n")])
        root = decoder.decode(raw)

        assert root.content_type == "multipart/mixed"
        assert [c.content_type for c in root.children] == ["multipart/alternative", "text/csv"]
        alternative = root.children[0]
        assert [c.content_type for c in alternative.children] == ["text/plain", "text/html"]
        assert [n.content_type for n in root.leaves()] == ["text/plain", "text/html", "text/csv"]

        csv_part = root.children[1]
        assert csv_part.filename == "data.csv"
        assert csv_part.disposition == "attachment"
        assert csv_part.payload == b"a,b\n1,2\n"

    def test_walk_is_document_order(self, decoder: MimeDecoder):
        root = decoder.decode(_build_multipart_email())
        assert [n.content_type for n in root.walk()] == [
            "multipart/mixed",
            "multipart/alternative",
            "text/plain",
            "text/html",
        ]

    def test_image_attachment_decoded(self, decoder: MimeDecoder):
        root = decoder.decode(_build_image_email())
        image = root.children[1]
        assert image.content_type == "image/png"
        assert image.filename == "photo.png"
        assert image.payload == PNG_BYTES
        assert image.decode_failed is False

    def test_embedded_message_is_leaf(self, decoder: MimeDecoder):
        inner = _build_plain_email(subject="Inner", body="inner body")
        boundary = "OUTER"
        body = (
            f"--{boundary}\r\nContent-Type: text/plain\r\n\r\nOuter text\r\n"
            f"--{boundary}\r\nContent-Type: message/rfc822\r\n\r\n"
        ).encode("ascii") + inner + f"\r\n--{boundary}--\r\n".encode("ascii")
        raw = _raw(f'Subject: Fwd\nContent-Type: multipart/mixed; boundary="{boundary}"\n', body)

        root = decoder.decode(raw)

        forwarded = root.children[1]
        assert forwarded.content_type == "message/rfc822"
        assert not forwarded.children
        assert b"Subject: Inner" in forwarded.payload

    def test_multipart_without_boundary_falls_back_to_text(self, decoder: MimeDecoder):
        raw = _raw("Subject: Broken\nContent-Type: multipart/mixed\n", b"just some text\r\n")
        root = decoder.decode(raw)
        assert root.content_type == "text/plain"
        assert "just some text" in root.text


class TestTransferDecoding:
    def test_base64_with_line_breaks(self, decoder: MimeDecoder):
        encoded = base64.encodebytes(PNG_BYTES)
        assert b"\n" in encoded
        raw = _raw("Content-Type: image/png\nContent-Transfer-Encoding: base64\n", encoded)
        root = decoder.decode(raw)
        assert root.payload == PNG_BYTES
        assert root.decode_failed is False

    def test_malformed_base64_flags_only_that_part(self, decoder: MimeDecoder):
        boundary = "B"
        body = (
            f"--{boundary}\r\nContent-Type: text/plain\r\n\r\nStill readable\r\n"
            f"--{boundary}\r\nContent-Type: application/pdf\r\n"
            "Content-Transfer-Encoding: base64\r\n\r\n!!!not base64***\r\n"
            f"--{boundary}--\r\n"
        ).encode("ascii")
        raw = _raw(f'Content-Type: multipart/mixed; boundary="{boundary}"\n', body)

        root = decoder.decode(raw)

        text, pdf = root.children
        assert text.decode_failed is False
        assert text.text.strip() == "Still readable"
        assert pdf.decode_failed is True
        assert pdf.payload == b""

    def test_quoted_printable(self, decoder: MimeDecoder):
        raw = _raw(
            "Content-Type: text/plain; charset=utf-8\nContent-Transfer-Encoding: quoted-printable\n",
            b"caf=C3=A9 au lait=\r\n and more\r\n",
        )
        root = decoder.decode(raw)
        assert root.text.startswith("café au lait and more")

    def test_declared_charset(self, decoder: MimeDecoder):
        raw = _raw("Content-Type: text/plain; charset=iso-8859-1\n", b"caf\xe9\r\n")
        root = decoder.decode(raw)
        assert root.text.strip() == "café"

    def test_unknown_charset_falls_back_to_utf8(self, decoder: MimeDecoder):
        raw = _raw("Content-Type: text/plain; charset=x-made-up\n", "naïve".encode("utf-8"))
        root = decoder.decode(raw)
        assert root.text == "naïve"

    def test_content_id_brackets_stripped(self, decoder: MimeDecoder):
        raw = _raw(
            "Content-Type: image/png\nContent-ID: <logo@example.com>\nContent-Transfer-Encoding: base64\n",
            base64.b64encode(b"png"),
        )
        assert decoder.decode(raw).content_id == "logo@example.com"


class TestHelpers:
    def test_decode_base64_ignores_whitespace_and_padding(self):
        assert decode_base64(b"aGVs\n bG8") == b"hello"

    def test_decode_base64_rejects_garbage(self):
        with pytest.raises(ValueError):
            decode_base64(b"@@@@")

    def test_decode_text_replaces_invalid(self):
        assert decode_text(b"ok\xff", "utf-8") == "ok\ufffd"

    def test_decode_header_value(self):
        assert decode_header_value("=?utf-8?q?Caf=C3=A9?=") == "Café"
        assert decode_header_value(None) == ""
        assert decode_header_value("plain") == "plain"
