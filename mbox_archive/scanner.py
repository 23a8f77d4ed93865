"""Streaming mbox scanner — one pass over the archive, one summary per message.

The archive is read in fixed-size chunks with a carry-over buffer for
lines that span chunk boundaries, so memory stays bounded no matter how
large the file is.  A message starts at every line beginning with the
literal ``From `` at column zero; body lines that merely look like a
boundary must already be escaped (``>From ``) by the producer, and the
scanner never rewrites that escaping.

Each summary records the byte range of the message (everything after its
``From `` line up to the next boundary or end of file) so that the body
can later be loaded with a single seek-and-read.
"""

from __future__ import annotations

import email.message
import email.parser
import email.policy
import email.utils
import html
import os
import quopri
import re
import uuid
from collections.abc import AsyncIterator
from contextlib import aclosing
from datetime import UTC, datetime

import structlog

from .attachments import is_attachment_part
from .config import ScannerConfig
from .errors import ArchiveReadError
from .mime import decode_header_value, part_filename
from .models import EPOCH, MessageSummary
from .progress import CancellationToken, ProgressCallback, ProgressTracker
from .reader import ChunkedReader

logger = structlog.get_logger()

BOUNDARY_MARKER = b"From "

_FIELD_NAME_RE = re.compile(r"^[!-9;-~]+$")
_TAG_RE = re.compile(r"<[^>]*>")
_WHITESPACE_RE = re.compile(r"\s+")
# Part headers beyond this many lines are evaluated early.
_MAX_PART_HEADER_LINES = 64
# A top-level header block longer than this is treated as ending there.
_MAX_HEADER_LINES = 1000
_MAX_HEADER_VALUE = 8192
# Upper bound on quoted-printable text held back across soft line breaks.
_MAX_QP_PENDING = 4096


class MalformedHeadersError(ValueError):
    """A message header block contained no parseable field."""


class MessageScanner:
    """Single-pass producer of :class:`MessageSummary` records.

    All positional and buffer state lives inside :meth:`scan`; callers only
    see the emitted sequence and interact through the cancellation token.
    The sequence cannot be rewound: construct a new scanner to restart.
    """

    def __init__(
        self,
        path: str | os.PathLike[str],
        config: ScannerConfig | None = None,
        *,
        on_progress: ProgressCallback | None = None,
        token: CancellationToken | None = None,
    ) -> None:
        self._path = os.fspath(path)
        self._config = config or ScannerConfig()
        self._token = token or CancellationToken()
        self._progress = ProgressTracker(
            on_progress,
            min_interval=self._config.progress_interval_seconds,
            min_step=self._config.progress_min_step,
        )
        self._started = False
        self._emitted = 0

    @property
    def path(self) -> str:
        return self._path

    @property
    def token(self) -> CancellationToken:
        return self._token

    @property
    def emitted(self) -> int:
        return self._emitted

    @property
    def completed(self) -> bool:
        return self._progress.completed

    async def scan(self) -> AsyncIterator[MessageSummary]:
        """Yield one summary per message in file order.

        Raises :class:`ArchiveReadError` if the archive cannot be read; the
        failure is logged once and ends the run.
        """
        if self._started:
            raise RuntimeError("MessageScanner.scan() can only be consumed once")
        self._started = True

        reader = ChunkedReader(self._path, self._config.chunk_size)
        preview_length = self._config.preview_length
        carry = b""
        position = 0  # absolute offset of carry[0]
        current: _MessageBuilder | None = None
        started = False

        logger.info("scan_started", path=self._path)
        try:
            async with aclosing(reader.chunks()) as chunks:
                async for chunk in chunks:
                    if not started:
                        self._progress.start(reader.size)
                        started = True
                    if self._token.cancelled:
                        self._log_cancelled(reader.bytes_read)
                        return

                    buffer = carry + chunk
                    start = 0
                    while True:
                        newline = buffer.find(b"\n", start)
                        if newline < 0:
                            break
                        line = buffer[start : newline + 1]
                        line_offset = position + start
                        start = newline + 1

                        if line.startswith(BOUNDARY_MARKER):
                            if current is not None:
                                summary = self._finish(current, line_offset)
                                if summary is not None:
                                    yield summary
                                    if self._token.cancelled:
                                        self._log_cancelled(reader.bytes_read)
                                        return
                            current = _MessageBuilder(line_offset + len(line), preview_length)
                            continue

                        if current is None:
                            if not line.strip():
                                continue
                            # Content before the first boundary is a message of its own.
                            logger.debug("scan_preamble_message", path=self._path)
                            current = _MessageBuilder(line_offset, preview_length)
                        current.feed(line)

                    carry = buffer[start:]
                    position += start
                    self._progress.update(reader.bytes_read, self._emitted)
        except ArchiveReadError as exc:
            logger.error("archive_read_failed", path=self._path, error=exc.reason)
            raise

        # A cancel that landed while the last chunk was consumed.
        if self._token.cancelled:
            self._log_cancelled(reader.bytes_read)
            return

        if not started:
            self._progress.start(reader.size)

        end = position + len(carry)
        if carry:
            # Final line without a trailing newline.
            if carry.startswith(BOUNDARY_MARKER):
                if current is not None:
                    summary = self._finish(current, position)
                    if summary is not None:
                        yield summary
                        if self._token.cancelled:
                            self._log_cancelled(end)
                            return
                current = _MessageBuilder(end, preview_length)
            elif current is not None or carry.strip():
                if current is None:
                    current = _MessageBuilder(position, preview_length)
                current.feed(carry)

        if current is not None:
            summary = self._finish(current, end)
            if summary is not None:
                yield summary
                if self._token.cancelled:
                    self._log_cancelled(end)
                    return

        self._progress.complete(self._emitted)
        logger.info("scan_completed", path=self._path, emitted=self._emitted, size_bytes=end)

    def _finish(self, builder: _MessageBuilder, end: int) -> MessageSummary | None:
        if end <= builder.offset:
            logger.debug("scan_empty_message_skipped", path=self._path, offset=builder.offset)
            return None
        summary = builder.build(end)
        if summary.corrupt:
            logger.warning(
                "scan_message_corrupt",
                path=self._path,
                offset=summary.offset,
                length=summary.length,
                error=builder.error,
            )
        self._emitted += 1
        return summary

    def _log_cancelled(self, bytes_read: int) -> None:
        logger.info(
            "scan_cancelled",
            path=self._path,
            emitted=self._emitted,
            bytes_read=bytes_read,
        )


class _MessageBuilder:
    """Accumulates the header fields, preview and attachment evidence of one message."""

    def __init__(self, offset: int, preview_length: int) -> None:
        self.offset = offset
        self.error: str | None = None
        self._preview_length = preview_length
        self._headers: dict[str, str] = {}
        self._header_lines = 0
        self._current_key: str | None = None
        self._skipping_duplicate = False
        self._in_headers = True

        self._content_type = "text/plain"
        self._boundaries: set[bytes] = set()
        self._has_attachments = False

        self._in_part_headers = False
        self._part_header_lines: list[bytes] = []
        self._preview_enabled = True
        self._preview_qp = False
        self._qp_pending = b""
        self._preview_parts: list[str] = []
        self._preview_chars = 0

    # ------------------------------------------------------------------
    # Line intake
    # ------------------------------------------------------------------

    def feed(self, line: bytes) -> None:
        if self._in_headers:
            self._feed_header(line)
        else:
            self._feed_body(line)

    def _feed_header(self, line: bytes) -> None:
        stripped = line.rstrip(b"\r\n")
        if not stripped:
            self._end_headers()
            return
        self._header_lines += 1
        if self._header_lines > _MAX_HEADER_LINES:
            self._end_headers()
            self._feed_body(line)
            return

        text = stripped.decode("utf-8", errors="replace")
        if text[:1] in (" ", "\t"):
            # Folded continuation of the previous field.
            if self._current_key is not None and not self._skipping_duplicate:
                value = self._headers[self._current_key] + " " + text.strip()
                self._headers[self._current_key] = value[:_MAX_HEADER_VALUE]
            return

        name, sep, value = text.partition(":")
        name = name.strip()
        if not sep or not _FIELD_NAME_RE.match(name):
            self._current_key = None
            return

        key = name.lower()
        self._current_key = key
        if key in self._headers:
            # First occurrence wins.
            self._skipping_duplicate = True
            return
        self._skipping_duplicate = False
        self._headers[key] = value.strip()[:_MAX_HEADER_VALUE]

    def _end_headers(self) -> None:
        self._in_headers = False
        msg = email.message.Message()
        for name in ("content-type", "content-disposition", "content-transfer-encoding"):
            if name in self._headers:
                msg[name] = self._headers[name]
        self._content_type = msg.get_content_type()

        if self._content_type.startswith("multipart/"):
            boundary = msg.get_param("boundary")
            if isinstance(boundary, str) and boundary:
                self._boundaries.add(boundary.encode("utf-8", errors="replace"))
            # Preview is taken from text parts only.
            self._preview_enabled = False
            return

        if is_attachment_part(self._content_type, msg.get_content_disposition(), part_filename(msg)):
            self._has_attachments = True
        self._configure_preview(msg)

    def _feed_body(self, line: bytes) -> None:
        if self._boundaries:
            if self._in_part_headers:
                if not line.rstrip(b"\r\n"):
                    self._end_part_headers()
                else:
                    self._part_header_lines.append(line)
                    if len(self._part_header_lines) > _MAX_PART_HEADER_LINES:
                        self._end_part_headers()
                return
            if line.startswith(b"--"):
                marker = line[2:].rstrip()
                if marker in self._boundaries:
                    self._flush_qp()
                    self._in_part_headers = True
                    self._part_header_lines = []
                    self._preview_enabled = False
                    return
                if marker.endswith(b"--") and marker[:-2] in self._boundaries:
                    self._flush_qp()
                    self._preview_enabled = False
                    return
        self._collect_preview(line)

    def _end_part_headers(self) -> None:
        self._in_part_headers = False
        parser = email.parser.BytesHeaderParser(policy=email.policy.compat32)
        msg = parser.parsebytes(b"".join(self._part_header_lines))
        self._part_header_lines = []
        content_type = msg.get_content_type()

        if content_type.startswith("multipart/"):
            boundary = msg.get_param("boundary")
            if isinstance(boundary, str) and boundary:
                self._boundaries.add(boundary.encode("utf-8", errors="replace"))
            return

        if is_attachment_part(content_type, msg.get_content_disposition(), part_filename(msg)):
            self._has_attachments = True
            return
        self._configure_preview(msg)

    # ------------------------------------------------------------------
    # Preview
    # ------------------------------------------------------------------

    def _configure_preview(self, msg: email.message.Message) -> None:
        encoding = str(msg.get("Content-Transfer-Encoding", "")).strip().lower()
        self._preview_enabled = (
            msg.get_content_maintype() == "text"
            and encoding != "base64"
            and self._preview_chars == 0
        )
        self._preview_qp = encoding == "quoted-printable"

    def _collect_preview(self, line: bytes) -> None:
        if not self._preview_enabled or self._preview_chars >= self._preview_length:
            return
        if self._preview_qp:
            content = line.rstrip(b"\r\n")
            if content.endswith(b"=") and len(self._qp_pending) < _MAX_QP_PENDING:
                # Soft line break: the next line continues this one.
                self._qp_pending += content[:-1]
                return
            line = quopri.decodestring(self._qp_pending + line)
            self._qp_pending = b""
        self._append_preview(line)

    def _flush_qp(self) -> None:
        if self._qp_pending:
            pending, self._qp_pending = self._qp_pending, b""
            self._append_preview(quopri.decodestring(pending))

    def _append_preview(self, line: bytes) -> None:
        text = line.decode("utf-8", errors="replace")
        text = html.unescape(_TAG_RE.sub("", text)).strip()
        if text:
            self._preview_parts.append(text)
            self._preview_chars += len(text) + 1

    def _preview(self) -> str:
        text = _WHITESPACE_RE.sub(" ", " ".join(self._preview_parts)).strip()
        return text[: self._preview_length]

    # ------------------------------------------------------------------
    # Summary
    # ------------------------------------------------------------------

    def build(self, end: int) -> MessageSummary:
        length = end - self.offset
        if self._in_headers:
            self._end_headers()
        if self._in_part_headers:
            self._end_part_headers()
        self._flush_qp()

        try:
            if not self._headers:
                raise MalformedHeadersError("no header fields")
            return MessageSummary(
                message_id=self._headers.get("message-id", "").strip() or uuid.uuid4().hex,
                sender=display_address(self._headers.get("from")),
                recipient=display_address(self._headers.get("to")),
                subject=decode_header_value(self._headers.get("subject")),
                timestamp=parse_date(self._headers.get("date")),
                preview=self._preview(),
                offset=self.offset,
                length=length,
                has_attachments=self._has_attachments,
            )
        except Exception as exc:
            self.error = f"{type(exc).__name__}: {exc}"
            return MessageSummary(
                message_id=uuid.uuid4().hex,
                offset=self.offset,
                length=length,
                has_attachments=self._has_attachments,
                corrupt=True,
            )


def display_address(value: str | None) -> str:
    """Return the display name of the first address, or the bare address."""
    if not value:
        return ""
    decoded = decode_header_value(value)
    addresses = email.utils.getaddresses([decoded])
    for name, addr in addresses:
        name = name.strip().strip('"').strip()
        if name:
            return name
        if addr:
            return addr
    return decoded.strip().strip('"').strip()


def parse_date(value: str | None) -> datetime:
    """Parse an RFC 2822 (or ISO 8601) date to UTC; unknown dates map to the epoch."""
    if not value:
        return EPOCH
    value = value.strip()
    try:
        parsed = email.utils.parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            return EPOCH
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)
