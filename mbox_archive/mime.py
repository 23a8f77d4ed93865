"""MIME decoder — raw message bytes → tree of :class:`MimeNode`.

Structure comes from the stdlib ``email`` parser (boundaries are taken
from the ``Content-Type`` parameter).  Transfer decoding is done here per
leaf so that a malformed part is flagged instead of silently patched, and
so that one bad part never affects its siblings.
"""

from __future__ import annotations

import base64
import binascii
import email
import email.errors
import email.header
import email.message
import email.policy
import quopri
from collections.abc import Iterator
from dataclasses import dataclass, field

import structlog

logger = structlog.get_logger()

_IDENTITY_ENCODINGS = frozenset({"", "7bit", "8bit", "binary"})


@dataclass
class MimeNode:
    """One part of a decoded message.

    Container nodes (``multipart/*``) hold only ``children``; leaf nodes
    hold ``payload`` (and ``text`` for ``text/*`` leaves).
    """

    content_type: str
    transfer_encoding: str = ""
    filename: str | None = None
    disposition: str | None = None
    charset: str | None = None
    content_id: str | None = None
    text: str | None = None
    payload: bytes | None = None
    children: list[MimeNode] = field(default_factory=list)
    decode_failed: bool = False

    @property
    def is_container(self) -> bool:
        return self.content_type.startswith("multipart/")

    @property
    def maintype(self) -> str:
        return self.content_type.partition("/")[0]

    def walk(self) -> Iterator[MimeNode]:
        """Depth-first, document-order iteration over this node and its descendants."""
        yield self
        for child in self.children:
            yield from child.walk()

    def leaves(self) -> Iterator[MimeNode]:
        for node in self.walk():
            if not node.is_container:
                yield node


class MimeDecoder:
    """Stateless decoder: raw RFC 822 bytes → :class:`MimeNode` root."""

    def decode(self, raw_bytes: bytes) -> MimeNode:
        msg = email.message_from_bytes(raw_bytes, policy=email.policy.compat32)
        try:
            return self._decode_part(msg, path="0")
        except Exception:
            logger.exception("mime_message_decode_failed", size=len(raw_bytes))
            return MimeNode(
                content_type="text/plain",
                payload=raw_bytes,
                text=raw_bytes.decode("utf-8", errors="replace"),
                decode_failed=True,
            )

    # ------------------------------------------------------------------
    # Structure
    # ------------------------------------------------------------------

    def _decode_part(self, part: email.message.Message, path: str) -> MimeNode:
        content_type = part.get_content_type()
        node = MimeNode(
            content_type=content_type,
            transfer_encoding=str(part.get("Content-Transfer-Encoding", "")).strip().lower(),
            filename=part_filename(part),
            disposition=part.get_content_disposition(),
            charset=part.get_content_charset(),
            content_id=_clean_content_id(part.get("Content-ID")),
        )

        if content_type.startswith("multipart/"):
            children = part.get_payload()
            if isinstance(children, list):
                for index, child in enumerate(children):
                    node.children.append(self._decode_child(child, f"{path}.{index}"))
                return node
            # Boundary missing: the body cannot be split, keep it as plain text.
            logger.warning("mime_multipart_without_parts", part=path, content_type=content_type)
            node.content_type = "text/plain"

        if content_type == "message/rfc822":
            node.payload = _embedded_message_bytes(part)
            return node

        self._decode_leaf(part, node, path)
        return node

    def _decode_child(self, child: email.message.Message, path: str) -> MimeNode:
        try:
            return self._decode_part(child, path)
        except Exception:
            logger.exception("mime_part_decode_failed", part=path)
            return MimeNode(content_type="application/octet-stream", payload=b"", decode_failed=True)

    # ------------------------------------------------------------------
    # Leaf payloads
    # ------------------------------------------------------------------

    def _decode_leaf(self, part: email.message.Message, node: MimeNode, path: str) -> None:
        raw = _raw_payload(part)
        encoding = node.transfer_encoding

        if encoding == "base64":
            try:
                payload = decode_base64(raw)
            except (binascii.Error, ValueError):
                logger.warning("mime_base64_malformed", part=path, size=len(raw))
                node.payload = b""
                node.decode_failed = True
                if node.maintype == "text":
                    node.text = ""
                return
        elif encoding == "quoted-printable":
            payload = quopri.decodestring(raw)
        else:
            if encoding not in _IDENTITY_ENCODINGS:
                logger.debug("mime_unknown_transfer_encoding", part=path, encoding=encoding)
            payload = raw

        node.payload = payload
        if node.maintype == "text":
            node.text = decode_text(payload, node.charset)


def decode_base64(raw: bytes) -> bytes:
    """Strictly decode base64, ignoring embedded whitespace and missing padding."""
    cleaned = b"".join(raw.split())
    cleaned = cleaned.rstrip(b"=")
    if len(cleaned) % 4 == 1:
        raise ValueError("truncated base64 quantum")
    cleaned += b"=" * (-len(cleaned) % 4)
    return base64.b64decode(cleaned, validate=True)


def decode_text(payload: bytes, charset: str | None) -> str:
    """Decode text bytes with the declared charset, replacing invalid sequences."""
    try:
        return payload.decode(charset or "utf-8", errors="replace")
    except LookupError:
        return payload.decode("utf-8", errors="replace")


def decode_header_value(value: str | None) -> str:
    """Decode RFC 2047 encoded-words; undecodable input is returned as-is."""
    if not value:
        return ""
    try:
        return str(email.header.make_header(email.header.decode_header(value)))
    except (LookupError, UnicodeError, ValueError, email.errors.HeaderParseError):
        return value


def _raw_payload(part: email.message.Message) -> bytes:
    payload = part.get_payload()
    if isinstance(payload, bytes):
        return payload
    if not isinstance(payload, str):
        return b""
    # Non-ASCII bytes from a byte-parsed message are surrogate-escaped.
    return payload.encode("utf-8", errors="surrogateescape")


def _embedded_message_bytes(part: email.message.Message) -> bytes:
    payload = part.get_payload()
    if isinstance(payload, list) and payload:
        return payload[0].as_bytes()
    return _raw_payload(part)


def part_filename(part: email.message.Message) -> str | None:
    try:
        filename = part.get_filename()
    except (LookupError, UnicodeError, ValueError):
        return None
    if filename is None:
        return None
    filename = decode_header_value(str(filename)).strip()
    return filename or None


def _clean_content_id(value: object) -> str | None:
    if value is None:
        return None
    cid = str(value).strip().strip("<>").strip()
    return cid or None
