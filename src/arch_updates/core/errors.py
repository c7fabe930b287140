"""
Error types raised by the update-detection engine.

Every error carries an ``ErrorKind`` so the aggregator can turn it into a
per-source failure value without inspecting exception classes.
"""

from src.arch_updates.core.models import ErrorKind


class UpdateCheckError(Exception):
    """Base class for all engine errors."""

    kind = ErrorKind.INTERNAL

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class TransportError(UpdateCheckError):
    """Network or external-process I/O failure."""

    kind = ErrorKind.TRANSPORT


class ParseError(UpdateCheckError):
    """Malformed response, command output or build-recipe metadata."""

    kind = ErrorKind.PARSE


class CacheContentionError(UpdateCheckError):
    """The sync-database cache could not be refreshed due to a lock conflict.

    Retryable: another refresh (ours or the system's) held the lock.
    """

    kind = ErrorKind.CACHE_CONTENTION


class NotFoundError(UpdateCheckError):
    """Expected package metadata is absent."""

    kind = ErrorKind.NOT_FOUND


class CheckTimeoutError(UpdateCheckError):
    """A deadline expired or the caller cancelled the check."""

    kind = ErrorKind.TIMEOUT
