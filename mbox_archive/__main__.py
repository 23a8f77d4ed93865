"""Entry point for the archive tools.

Usage::

    python -m mbox_archive scan <path>                          # summaries as JSON lines
    python -m mbox_archive show <path> <offset> <length>        # sanitized HTML
    python -m mbox_archive attachments <path> <offset> <length> # attachment listing
"""

from __future__ import annotations

import asyncio
import json
import sys

import structlog

from .config import ImportConfig, LogConfig
from .errors import MboxArchiveError
from .logging import setup_logging

logger = structlog.get_logger()

_USAGE = (
    "Usage: python -m mbox_archive scan <path>\n"
    "       python -m mbox_archive show <path> <offset> <length>\n"
    "       python -m mbox_archive attachments <path> <offset> <length>"
)


async def _scan(path: str) -> None:
    from .importer import ArchiveImporter, JsonLinesSink
    from .models import ScanProgress
    from .progress import CancellationToken
    from .shutdown import install_signal_handlers

    token = CancellationToken()
    uninstall = install_signal_handlers(token)

    def on_progress(progress: ScanProgress) -> None:
        logger.info(
            "scan_progress",
            fraction=round(progress.fraction, 4),
            emitted=progress.emitted,
        )

    importer = ArchiveImporter(JsonLinesSink(sys.stdout), ImportConfig())
    try:
        await importer.run(path, on_progress=on_progress, token=token)
    finally:
        uninstall()


async def _show(path: str, offset: int, length: int) -> None:
    from .viewer import MessageViewer

    message = await MessageViewer().open_range(path, offset, length)
    sys.stdout.write(message.body.html)


async def _attachments(path: str, offset: int, length: int) -> None:
    from .viewer import MessageViewer

    message = await MessageViewer().open_range(path, offset, length)
    for attachment in message.attachments:
        line = {
            "filename": attachment.filename,
            "content_type": attachment.content_type,
            "size": attachment.size,
            "display_size": attachment.display_size,
        }
        sys.stdout.write(json.dumps(line) + "\n")


def main() -> None:
    args = sys.argv[1:]
    if not args or args[0] not in ("scan", "show", "attachments"):
        print(_USAGE, file=sys.stderr)
        sys.exit(1)

    log_config = LogConfig()
    setup_logging(json=log_config.json_output, level=log_config.level)

    mode = args[0]
    if mode == "scan" and len(args) == 2:
        command = _scan(args[1])
    elif mode in ("show", "attachments") and len(args) == 4:
        try:
            offset, length = int(args[2]), int(args[3])
        except ValueError:
            print(_USAGE, file=sys.stderr)
            sys.exit(1)
        handler = _show if mode == "show" else _attachments
        command = handler(args[1], offset, length)
    else:
        print(_USAGE, file=sys.stderr)
        sys.exit(1)

    try:
        asyncio.run(command)
    except MboxArchiveError as exc:
        logger.error("command_failed", command=mode, error=str(exc))
        sys.exit(2)


if __name__ == "__main__":
    main()
