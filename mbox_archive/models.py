"""Data models shared by the scanner, the importer and the persistence sink."""

from __future__ import annotations

import re
from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)

_REPLY_PREFIX_RE = re.compile(r"^\s*(?:re|fwd|fw)\s*:\s*", re.IGNORECASE)


class MessageSummary(BaseModel):
    """Lightweight per-message record produced by one scan pass.

    Only summary data is kept; the full message is loaded on demand from
    ``offset``/``length`` in the source archive.
    """

    model_config = ConfigDict(frozen=True)

    message_id: str = Field(description="Message-ID header, or a generated identifier")
    sender: str = Field(default="", description="Sender display name or address")
    recipient: str = Field(default="", description="First recipient display name or address")
    subject: str = Field(default="", description="Decoded Subject header")
    timestamp: datetime = Field(default=EPOCH, description="Date header in UTC (epoch if unknown)")
    preview: str = Field(default="", description="Short plain-text excerpt of the body")
    offset: int = Field(ge=0, lt=2**63, description="Byte offset of the message in the archive")
    length: int = Field(ge=0, description="Byte length of the message in the archive")
    has_attachments: bool = Field(default=False, description="Whether any part is non-inline")
    corrupt: bool = Field(
        default=False,
        description="Placeholder for a message whose headers could not be parsed",
    )

    @property
    def end(self) -> int:
        return self.offset + self.length

    @property
    def normalized_subject(self) -> str:
        """Subject without any number of leading ``Re:`` / ``Fwd:`` / ``Fw:`` prefixes."""
        subject = self.subject
        while True:
            stripped = _REPLY_PREFIX_RE.sub("", subject, count=1)
            if stripped == subject:
                return subject.strip()
            subject = stripped

    @property
    def sender_initials(self) -> str:
        parts = self.sender.split()
        if len(parts) >= 2:
            return (parts[0][:1] + parts[1][:1]).upper()
        return self.sender[:2].upper()


class ScanProgress(BaseModel):
    """One progress notification for an ongoing scan."""

    fraction: float = Field(ge=0.0, le=1.0, description="Bytes consumed / total bytes")
    bytes_read: int = Field(ge=0, description="Bytes consumed so far")
    total_bytes: int = Field(ge=0, description="Archive size when the scan started")
    emitted: int = Field(ge=0, description="Summaries emitted so far")


class ArchiveInfo(BaseModel):
    """Description of an imported archive file."""

    name: str = Field(description="File name without extension")
    path: str = Field(description="Absolute path of the archive")
    size_bytes: int = Field(ge=0, description="File size when the import started")
    imported_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="Timestamp when the import started (UTC)",
    )


class ImportResult(BaseModel):
    """Outcome of one import run."""

    archive: ArchiveInfo
    total: int = Field(default=0, description="Summaries handed to the sink")
    batches: int = Field(default=0, description="Batches handed to the sink")
    corrupt: int = Field(default=0, description="Corrupt-flagged placeholders among them")
    cancelled: bool = Field(default=False, description="Whether the run was cancelled")
