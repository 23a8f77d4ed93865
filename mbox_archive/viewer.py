"""Per-request message viewing: load → decode → render + extract attachments."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

import structlog

from .attachments import Attachment, AttachmentExtractor
from .loader import BodyLoader
from .mime import MimeDecoder
from .models import MessageSummary
from .renderer import BodyRenderer, RenderedBody

logger = structlog.get_logger()


@dataclass
class RenderedMessage:
    """Everything needed to display one message."""

    body: RenderedBody
    attachments: list[Attachment] = field(default_factory=list)


class MessageViewer:
    """Stateless facade over the loader, decoder, renderer and extractor.

    Holds no per-message state, so any number of requests may run
    concurrently against the same archive.  The raw bytes are dropped as
    soon as the request completes.
    """

    def __init__(self) -> None:
        self._loader = BodyLoader()
        self._decoder = MimeDecoder()
        self._renderer = BodyRenderer()
        self._extractor = AttachmentExtractor()

    async def open(self, path: str | os.PathLike[str], summary: MessageSummary) -> RenderedMessage:
        """Render the message described by *summary* and check its attachment flag."""
        message = await self.open_range(path, summary.offset, summary.length)
        self._extractor.verify(summary, message.attachments)
        return message

    async def open_range(self, path: str | os.PathLike[str], offset: int, length: int) -> RenderedMessage:
        raw = await self._loader.load(path, offset, length)
        root = self._decoder.decode(raw)
        body = self._renderer.render(root)
        attachments = self._extractor.extract(root)
        logger.debug(
            "message_rendered",
            offset=offset,
            length=length,
            source=body.source,
            attachments=len(attachments),
        )
        return RenderedMessage(body=body, attachments=attachments)
