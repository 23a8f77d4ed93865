"""Attachment extraction — a view over a decoded :class:`MimeNode` tree."""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from .mime import MimeNode
from .models import MessageSummary

logger = structlog.get_logger()


def is_attachment_part(content_type: str, disposition: str | None, filename: str | None) -> bool:
    """Return True if a leaf part should be presented as an attachment.

    A part is non-inline when it carries an explicit ``attachment``
    disposition, has a filename, or is of a non-text (binary) type.  The
    scanner applies the same rule to part headers while streaming.
    """
    content_type = content_type.lower()
    if content_type.startswith("multipart/"):
        return False
    if (disposition or "").lower() == "attachment":
        return True
    if filename:
        return True
    return not content_type.startswith("text/")


@dataclass
class Attachment:
    """A single attachment extracted from a decoded message."""

    filename: str | None
    content_type: str
    size: int
    payload: bytes

    @property
    def display_size(self) -> str:
        size = float(self.size)
        if size < 1000:
            return f"{self.size} bytes"
        for unit in ("KB", "MB", "GB"):
            size /= 1000
            if size < 1000 or unit == "GB":
                return f"{size:.1f} {unit}"
        raise AssertionError("unreachable")

    @property
    def kind(self) -> str:
        content_type = self.content_type.lower()
        if "image" in content_type:
            return "image"
        if "pdf" in content_type:
            return "pdf"
        if "zip" in content_type:
            return "archive"
        if "text" in content_type:
            return "text"
        return "other"


class AttachmentExtractor:
    """Select non-inline leaves of a decoded message as attachments."""

    def extract(self, root: MimeNode) -> list[Attachment]:
        attachments: list[Attachment] = []
        for node in root.leaves():
            if not is_attachment_part(node.content_type, node.disposition, node.filename):
                continue
            payload = node.payload or b""
            attachments.append(
                Attachment(
                    filename=node.filename,
                    content_type=node.content_type,
                    size=len(payload),
                    payload=payload,
                )
            )
        return attachments

    def verify(self, summary: MessageSummary, attachments: list[Attachment]) -> bool:
        """Check the scan-time attachment flag against the decoded result.

        A mismatch means the scanner and the decoder disagree about this
        message; it is logged and otherwise ignored.
        """
        found = bool(attachments)
        if found != summary.has_attachments:
            logger.warning(
                "attachment_flag_mismatch",
                message_id=summary.message_id,
                offset=summary.offset,
                summary_flag=summary.has_attachments,
                extracted=len(attachments),
            )
            return False
        return True
