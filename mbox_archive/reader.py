"""Sequential, bounded-memory chunk source over an archive file.

All blocking file operations are wrapped with ``asyncio.to_thread()`` to
avoid blocking the event loop.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import AsyncIterator
from typing import BinaryIO

import structlog

from .errors import ArchiveReadError

logger = structlog.get_logger()

DEFAULT_CHUNK_SIZE = 65_536


class ChunkedReader:
    """Read a file front to back in fixed-size chunks.

    Single pass: ``chunks()`` may be iterated once.  Memory use is bounded
    by ``chunk_size`` regardless of the file size.
    """

    def __init__(self, path: str | os.PathLike[str], chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self._path = os.fspath(path)
        self._chunk_size = chunk_size
        self._size: int | None = None
        self._bytes_read = 0
        self._consumed = False

    @property
    def path(self) -> str:
        return self._path

    @property
    def size(self) -> int:
        """File size captured when the file was opened (0 before opening)."""
        return self._size or 0

    @property
    def bytes_read(self) -> int:
        return self._bytes_read

    async def chunks(self) -> AsyncIterator[bytes]:
        """Yield successive chunks until end of file.

        Raises :class:`ArchiveReadError` if the file cannot be opened or a
        read fails part-way.
        """
        if self._consumed:
            raise RuntimeError("ChunkedReader can only be iterated once")
        self._consumed = True

        handle = await asyncio.to_thread(self._open)
        try:
            while True:
                try:
                    chunk = await asyncio.to_thread(handle.read, self._chunk_size)
                except OSError as exc:
                    raise ArchiveReadError(self._path, str(exc)) from exc
                if not chunk:
                    break
                self._bytes_read += len(chunk)
                yield chunk
        finally:
            await asyncio.to_thread(handle.close)

    def _open(self) -> BinaryIO:
        try:
            handle = open(self._path, "rb")
        except OSError as exc:
            raise ArchiveReadError(self._path, str(exc)) from exc
        self._size = os.fstat(handle.fileno()).st_size
        logger.debug("archive_opened", path=self._path, size_bytes=self._size)
        return handle
