"""Translate SIGTERM / SIGINT into cooperative scan cancellation."""

from __future__ import annotations

import asyncio
import signal
from collections.abc import Callable, Iterable

import structlog

from .progress import CancellationToken

logger = structlog.get_logger()

DEFAULT_SIGNALS = (signal.SIGTERM, signal.SIGINT)


def install_signal_handlers(
    token: CancellationToken,
    signals: Iterable[signal.Signals] = DEFAULT_SIGNALS,
) -> Callable[[], None]:
    """Make each of *signals* cancel *token*; return a function that undoes it.

    Must be called from the running event loop.  The scan stops at its
    next chunk or message boundary and summaries already handed off stay
    committed.  Repeated signals are logged and otherwise ignored.
    """
    loop = asyncio.get_running_loop()
    installed = list(signals)

    def _handle(sig: signal.Signals) -> None:
        if token.cancelled:
            logger.info("cancel_signal_repeated", signal=sig.name)
            return
        logger.info("cancel_signal_received", signal=sig.name)
        token.cancel()

    for sig in installed:
        loop.add_signal_handler(sig, _handle, sig)

    def uninstall() -> None:
        for sig in installed:
            loop.remove_signal_handler(sig)

    return uninstall
