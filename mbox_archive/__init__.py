"""Streaming mbox archive scanner with on-demand message access.

Public API re-exported here for convenience::

    from mbox_archive import ArchiveImporter, MessageScanner, MessageViewer
"""

from .attachments import Attachment, AttachmentExtractor, is_attachment_part
from .config import ImportConfig, LogConfig, RetryConfig, ScannerConfig
from .errors import (
    ArchiveReadError,
    MboxArchiveError,
    ScanInProgressError,
    SinkError,
    StaleReferenceError,
)
from .importer import ArchiveImporter, InMemorySink, JsonLinesSink, SummarySink
from .loader import BodyLoader
from .logging import setup_logging
from .mime import MimeDecoder, MimeNode
from .models import ArchiveInfo, ImportResult, MessageSummary, ScanProgress
from .progress import CancellationToken, ProgressTracker
from .reader import ChunkedReader
from .renderer import BodyRenderer, RenderedBody
from .scanner import MessageScanner
from .viewer import MessageViewer, RenderedMessage

__all__ = [
    "ArchiveImporter",
    "ArchiveInfo",
    "ArchiveReadError",
    "Attachment",
    "AttachmentExtractor",
    "BodyLoader",
    "BodyRenderer",
    "CancellationToken",
    "ChunkedReader",
    "ImportConfig",
    "ImportResult",
    "InMemorySink",
    "JsonLinesSink",
    "LogConfig",
    "MboxArchiveError",
    "MessageScanner",
    "MessageSummary",
    "MessageViewer",
    "MimeDecoder",
    "MimeNode",
    "ProgressTracker",
    "RenderedBody",
    "RenderedMessage",
    "RetryConfig",
    "ScanInProgressError",
    "ScanProgress",
    "ScannerConfig",
    "SinkError",
    "StaleReferenceError",
    "SummarySink",
    "is_attachment_part",
    "setup_logging",
]
