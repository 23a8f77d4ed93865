"""Progress reporting and cooperative cancellation for a scan run."""

from __future__ import annotations

import asyncio
import math
import time
from collections.abc import Callable

import structlog

from .models import ScanProgress

logger = structlog.get_logger()

ProgressCallback = Callable[[ScanProgress], None]

# Largest float below 1.0; 1.0 itself is reserved for a completed scan.
_BELOW_ONE = math.nextafter(1.0, 0.0)


class CancellationToken:
    """Cooperative cancellation flag.

    The scanner checks it only between chunks and at message boundaries,
    so worst-case latency after :meth:`cancel` is one chunk.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


class ProgressTracker:
    """Turn byte counts into throttled, monotonic progress notifications.

    A notification is delivered when at least ``min_interval`` seconds have
    passed since the previous one or the fraction advanced by at least
    ``min_step``.  Reported fractions never decrease and stay below 1.0
    until :meth:`complete` is called.
    """

    def __init__(
        self,
        callback: ProgressCallback | None = None,
        *,
        min_interval: float = 0.25,
        min_step: float = 0.01,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._callback = callback
        self._min_interval = min_interval
        self._min_step = min_step
        self._clock = clock
        self._total_bytes = 0
        self._bytes_read = 0
        self._emitted = 0
        self._last_fraction = 0.0
        self._last_report: float | None = None
        self._completed = False

    @property
    def total_bytes(self) -> int:
        return self._total_bytes

    @property
    def fraction(self) -> float:
        return self._last_fraction

    @property
    def completed(self) -> bool:
        return self._completed

    def start(self, total_bytes: int) -> None:
        self._total_bytes = max(total_bytes, 0)

    def update(self, bytes_read: int, emitted: int) -> None:
        """Record consumption and notify the observer if the throttle allows."""
        if self._completed:
            return
        self._bytes_read = max(self._bytes_read, bytes_read)
        self._emitted = max(self._emitted, emitted)

        if self._total_bytes > 0:
            fraction = min(self._bytes_read / self._total_bytes, _BELOW_ONE)
        else:
            fraction = 0.0
        fraction = max(fraction, self._last_fraction)

        now = self._clock()
        due = (
            self._last_report is None
            or now - self._last_report >= self._min_interval
            or fraction - self._last_fraction >= self._min_step
        )
        self._last_fraction = fraction
        if due:
            self._last_report = now
            self._notify(fraction)

    def complete(self, emitted: int) -> None:
        """Report 1.0; only called after a full, uncancelled scan."""
        if self._completed:
            return
        self._completed = True
        self._emitted = max(self._emitted, emitted)
        self._bytes_read = max(self._bytes_read, self._total_bytes)
        self._last_fraction = 1.0
        self._notify(1.0)

    def _notify(self, fraction: float) -> None:
        if self._callback is None:
            return
        progress = ScanProgress(
            fraction=fraction,
            bytes_read=self._bytes_read,
            total_bytes=self._total_bytes,
            emitted=self._emitted,
        )
        try:
            self._callback(progress)
        except Exception:
            # An observer failure must not abort the scan.
            logger.exception("progress_callback_failed", fraction=fraction)
