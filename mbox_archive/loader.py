"""Random-access retrieval of one message's raw bytes.

Independent of any scan state: every call opens its own handle, seeks to
the recorded offset and reads exactly the recorded length.
"""

from __future__ import annotations

import asyncio
import os

import structlog

from .errors import ArchiveReadError, StaleReferenceError

logger = structlog.get_logger()


class BodyLoader:
    """Load the byte range recorded in a :class:`MessageSummary`.

    Results are never cached; the caller owns the returned bytes.
    """

    async def load(self, path: str | os.PathLike[str], offset: int, length: int) -> bytes:
        """Return exactly ``length`` bytes starting at ``offset``.

        Raises :class:`StaleReferenceError` if the range no longer fits the
        file (it shrank or was rewritten since the scan) and
        :class:`ArchiveReadError` if the file cannot be read at all.
        """
        path = os.fspath(path)
        data = await asyncio.to_thread(self._read_range, path, offset, length)
        logger.debug("message_loaded", path=path, offset=offset, length=length)
        return data

    def _read_range(self, path: str, offset: int, length: int) -> bytes:
        try:
            with open(path, "rb") as handle:
                size = os.fstat(handle.fileno()).st_size
                if offset < 0 or length < 0 or offset + length > size:
                    logger.warning(
                        "stale_reference",
                        path=path,
                        offset=offset,
                        length=length,
                        file_size=size,
                    )
                    raise StaleReferenceError(path, offset, length, size)
                handle.seek(offset)
                data = handle.read(length)
        except OSError as exc:
            logger.error("archive_read_failed", path=path, error=str(exc))
            raise ArchiveReadError(path, str(exc)) from exc

        if len(data) != length:
            # File truncated between the size check and the read.
            raise StaleReferenceError(path, offset, length, offset + len(data))
        return data
