"""Import orchestration — scan an archive and hand summaries to a sink in batches.

Batches are delivered in scan order.  There is no rollback: on
cancellation or failure, batches already handed off stay committed
(at-least-once, not atomic).
"""

from __future__ import annotations

import abc
import asyncio
import json
import os
import sys
from contextlib import aclosing
from pathlib import Path
from typing import ClassVar, TextIO

import structlog

from .config import ImportConfig
from .errors import ArchiveReadError, ScanInProgressError, SinkError
from .models import ArchiveInfo, ImportResult, MessageSummary
from .progress import CancellationToken, ProgressCallback
from .retry import sink_retry
from .scanner import MessageScanner

logger = structlog.get_logger()


class SummarySink(abc.ABC):
    """Persistence collaborator that receives summary batches.

    The sink assigns storage identifiers, is the sole writer of durable
    state and serializes its own writes.
    """

    @abc.abstractmethod
    async def insert_batch(self, batch: list[MessageSummary]) -> None:
        """Persist one batch of summaries."""
        ...

    async def finalize(self, result: ImportResult) -> None:
        """Record the final count of a run.  The default does nothing."""
        return None


class InMemorySink(SummarySink):
    """Keeps every batch in memory."""

    def __init__(self) -> None:
        self.batches: list[list[MessageSummary]] = []
        self.result: ImportResult | None = None

    @property
    def summaries(self) -> list[MessageSummary]:
        return [summary for batch in self.batches for summary in batch]

    async def insert_batch(self, batch: list[MessageSummary]) -> None:
        self.batches.append(list(batch))

    async def finalize(self, result: ImportResult) -> None:
        self.result = result


class JsonLinesSink(SummarySink):
    """Writes each summary as one JSON object per line."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream or sys.stdout

    async def insert_batch(self, batch: list[MessageSummary]) -> None:
        for summary in batch:
            self._stream.write(summary.model_dump_json() + "\n")
        self._stream.flush()

    async def finalize(self, result: ImportResult) -> None:
        self._stream.write(json.dumps({"result": result.model_dump(mode="json")}) + "\n")
        self._stream.flush()


class ArchiveImporter:
    """Drive one :class:`MessageScanner` per import and batch its output.

    Only one import per archive path may be active at a time; a second
    concurrent request for the same path is rejected, not queued.
    """

    _active_paths: ClassVar[set[str]] = set()

    def __init__(self, sink: SummarySink, config: ImportConfig | None = None) -> None:
        self._sink = sink
        self._config = config or ImportConfig()

    @classmethod
    def is_active(cls, path: str | os.PathLike[str]) -> bool:
        return os.path.realpath(path) in cls._active_paths

    async def run(
        self,
        path: str | os.PathLike[str],
        *,
        on_progress: ProgressCallback | None = None,
        token: CancellationToken | None = None,
    ) -> ImportResult:
        """Scan *path* to completion (or cancellation) and return the totals."""
        key = os.path.realpath(path)
        if key in self._active_paths:
            logger.warning("import_rejected_already_running", path=key)
            raise ScanInProgressError(key)

        self._active_paths.add(key)
        try:
            return await self._run(key, on_progress=on_progress, token=token)
        finally:
            self._active_paths.discard(key)

    async def _run(
        self,
        path: str,
        *,
        on_progress: ProgressCallback | None,
        token: CancellationToken | None,
    ) -> ImportResult:
        try:
            size = (await asyncio.to_thread(os.stat, path)).st_size
        except OSError as exc:
            logger.error("archive_read_failed", path=path, error=str(exc))
            raise ArchiveReadError(path, str(exc)) from exc

        archive = ArchiveInfo(name=Path(path).stem, path=path, size_bytes=size)
        scanner = MessageScanner(path, self._config.scanner, on_progress=on_progress, token=token)
        batch_size = self._config.batch_size
        logger.info("import_started", path=path, size_bytes=size, batch_size=batch_size)

        batch: list[MessageSummary] = []
        total = 0
        batches = 0
        corrupt = 0

        async with aclosing(scanner.scan()) as summaries:
            async for summary in summaries:
                batch.append(summary)
                if len(batch) >= batch_size:
                    await self._hand_off(batch)
                    total += len(batch)
                    corrupt += sum(1 for s in batch if s.corrupt)
                    batches += 1
                    batch = []

        if batch:
            await self._hand_off(batch)
            total += len(batch)
            corrupt += sum(1 for s in batch if s.corrupt)
            batches += 1

        result = ImportResult(
            archive=archive,
            total=total,
            batches=batches,
            corrupt=corrupt,
            cancelled=not scanner.completed,
        )
        await self._sink.finalize(result)
        logger.info(
            "import_finished",
            path=path,
            total=total,
            batches=batches,
            corrupt=corrupt,
            cancelled=result.cancelled,
        )
        return result

    async def _hand_off(self, batch: list[MessageSummary]) -> None:
        """Deliver one batch to the sink, retrying transient failures."""

        @sink_retry(self._config.retry)
        async def _insert() -> None:
            await self._sink.insert_batch(list(batch))

        try:
            await _insert()
        except Exception as exc:
            logger.error(
                "sink_handoff_failed",
                size=len(batch),
                first_offset=batch[0].offset,
                error=str(exc),
            )
            raise SinkError(f"sink rejected batch of {len(batch)} summaries: {exc}") from exc
