"""Shared test fixtures for the mbox_archive test suite."""

from __future__ import annotations

import re
from email import encoders
from email.mime.base import MIMEBase
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from pathlib import Path

import pytest

from mbox_archive.config import ImportConfig, RetryConfig, ScannerConfig

FROM_LINE = b"From sender@example.com Mon Jun  2 12:00:00 2025\n"

# 1x1 PNG plus padding so the base64 body spans several lines.
PNG_BYTES = (
    b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\x00\x00\x00\x01\x00\x00\x00\x01"
    b"\x08\x06\x00\x00\x00\x1f\x15\xc4\x89\x00\x00\x00\rIDATx\x9cc\xf8\x0f"
    b"\x00\x00\x01\x01\x00\x05\x18\xd8N\x00\x00\x00\x00IEND\xaeB`\x82" + bytes(range(256))
)


# ------------------------------------------------------------------
# Sample message builders
# ------------------------------------------------------------------


def _build_plain_email(
    *,
    subject: str = "Test Subject",
    from_addr: str = "Alice Example <alice@example.com>",
    to_addr: str = "bob@example.com",
    body: str = "Hello, World!",
    message_id: str = "<test-001@example.com>",
    date: str = "Mon, 02 Jun 2025 12:00:00 +0000",
) -> bytes:
    """Build a simple plain-text email as raw bytes."""
    msg = MIMEText(body, "plain")
    msg["Subject"] = subject
    msg["From"] = from_addr
    msg["To"] = to_addr
    msg["Message-ID"] = message_id
    msg["Date"] = date
    return msg.as_bytes()


def _build_html_email(*, body_html: str = "<p>Hello</p>", message_id: str = "<html-001@example.com>") -> bytes:
    msg = MIMEText(body_html, "html")
    msg["Subject"] = "HTML Email"
    msg["From"] = "sender@example.com"
    msg["To"] = "recipient@example.com"
    msg["Message-ID"] = message_id
    msg["Date"] = "Mon, 02 Jun 2025 12:00:00 +0000"
    return msg.as_bytes()


def _attachment_part(content_type: str, payload: bytes, filename: str) -> MIMEBase:
    """A base64 body part with an ``attachment`` disposition."""
    part = MIMEBase(*content_type.split("/", 1))
    part.set_payload(payload)
    encoders.encode_base64(part)
    part.add_header("Content-Disposition", "attachment", filename=filename)
    return part


def _build_image_email(
    *,
    image: bytes = PNG_BYTES,
    filename: str = "photo.png",
    message_id: str = "<image-001@example.com>",
) -> bytes:
    """multipart/mixed: a short note plus a base64 PNG attachment."""
    msg = MIMEMultipart("mixed")
    msg["Subject"] = "Holiday photo"
    msg["From"] = "Carol <carol@example.com>"
    msg["To"] = "bob@example.com"
    msg["Message-ID"] = message_id
    msg["Date"] = "Tue, 03 Jun 2025 09:30:00 +0200"
    msg.attach(MIMEText("See the attached photo.", "plain"))
    msg.attach(_attachment_part("image/png", image, filename))
    return msg.as_bytes()


def _build_multipart_email(
    *,
    subject: str = "Multipart Email",
    message_id: str = "<multi-001@example.com>",
    body_text: str = "Plain body",
    body_html: str = "<p>HTML body</p>",
    attachments: list[tuple[str, str, bytes]] | None = None,
) -> bytes:
    """mixed( alternative(text, html), *attachments ) as raw bytes."""
    alternative = MIMEMultipart("alternative")
    alternative.attach(MIMEText(body_text, "plain"))
    alternative.attach(MIMEText(body_html, "html"))

    msg = MIMEMultipart("mixed", _subparts=[alternative])
    msg["Subject"] = subject
    msg["From"] = "sender@example.com"
    msg["To"] = "recipient@example.com"
    msg["Message-ID"] = message_id
    msg["Date"] = "Mon, 02 Jun 2025 12:00:00 +0000"
    for filename, content_type, payload in attachments or []:
        msg.attach(_attachment_part(content_type, payload, filename))
    return msg.as_bytes()


# ------------------------------------------------------------------
# Archive builders
# ------------------------------------------------------------------


def _escape_from_lines(raw: bytes) -> bytes:
    """Escape body lines that would read as a boundary, as an mbox writer does."""
    return re.sub(rb"(?m)^(>*)From ", rb">\1From ", raw)


def _build_mbox(messages: list[bytes], *, newline: bytes = b"\n") -> bytes:
    """Join messages into an mbox archive, one ``From `` line per message."""
    out = bytearray()
    for raw in messages:
        body = _escape_from_lines(raw)
        if not body.endswith(b"\n"):
            body += b"\n"
        out += FROM_LINE + body + b"\n"
    if newline != b"\n":
        return bytes(out).replace(b"\n", newline)
    return bytes(out)


def _write_archive(tmp_path: Path, messages: list[bytes], name: str = "archive.mbox", **kwargs) -> Path:
    path = tmp_path / name
    path.write_bytes(_build_mbox(messages, **kwargs))
    return path


@pytest.fixture
def three_message_archive(tmp_path: Path) -> Path:
    """Plain message, message with a PNG attachment, plain message with a From-line in its body."""
    return _write_archive(
        tmp_path,
        [
            _build_plain_email(subject="First", message_id="<m1@example.com>"),
            _build_image_email(message_id="<m2@example.com>"),
            _build_plain_email(
                subject="Third",
                message_id="<m3@example.com>",
                body="Thanks for coming.\nFrom the team,\nThe organisers",
            ),
        ],
    )


@pytest.fixture
def scanner_config() -> ScannerConfig:
    return ScannerConfig(
        chunk_size=65_536,
        preview_length=200,
        progress_interval_seconds=0.0,
        progress_min_step=0.0,
    )


@pytest.fixture
def retry_config() -> RetryConfig:
    return RetryConfig(
        max_attempts=3,
        initial_wait_seconds=0.01,
        max_wait_seconds=0.05,
        multiplier=2.0,
    )


@pytest.fixture
def import_config(scanner_config: ScannerConfig, retry_config: RetryConfig) -> ImportConfig:
    return ImportConfig(batch_size=50, scanner=scanner_config, retry=retry_config)
