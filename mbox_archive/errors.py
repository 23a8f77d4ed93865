"""Exception hierarchy for archive scanning and message access."""

from __future__ import annotations


class MboxArchiveError(Exception):
    """Base class for all errors raised by this package."""


class ArchiveReadError(MboxArchiveError):
    """The archive could not be opened or read (missing, moved, permission lost).

    Fatal to the current scan run; surfaced once to the caller.
    """

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"cannot read archive {path!r}: {reason}")
        self.path = path
        self.reason = reason


class StaleReferenceError(MboxArchiveError):
    """A recorded offset/length no longer fits the archive on disk.

    The file shrank or was rewritten after the scan; a re-import is required.
    """

    def __init__(self, path: str, offset: int, length: int, file_size: int) -> None:
        super().__init__(
            f"stale reference into {path!r}: range [{offset}, {offset + length}) "
            f"does not fit file of {file_size} bytes"
        )
        self.path = path
        self.offset = offset
        self.length = length
        self.file_size = file_size


class ScanInProgressError(MboxArchiveError):
    """Another import of the same archive path is already running."""

    def __init__(self, path: str) -> None:
        super().__init__(f"an import of {path!r} is already in progress")
        self.path = path


class SinkError(MboxArchiveError):
    """The persistence sink rejected a batch after all retries."""
