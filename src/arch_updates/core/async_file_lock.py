"""
Advisory file locking for asyncio code.

Locks are taken with ``flock(2)``. They are advisory: every arch-updates
process (and every task within one process, since each acquisition opens its
own file description) must go through this module to coordinate access to the
shared cache directory. Nothing stops an unrelated program from touching the
files.

Acquisition is non-blocking with exponential backoff and jitter so waiting on
another process never blocks the event loop.
"""

import asyncio
import errno
import fcntl
import logging
import random
import time
from pathlib import Path
from typing import Optional, Union

from src.arch_updates.core.errors import CacheContentionError
from src.i18n import _

logger = logging.getLogger(__name__)

INITIAL_BACKOFF_SECS = 0.02
MAX_BACKOFF_SECS = 0.5


class AsyncFileLock:
    """
    Exclusive or shared advisory lock on a file, usable with ``async with``.

    Raises CacheContentionError if the lock cannot be obtained within
    ``timeout`` seconds.
    """

    def __init__(
        self,
        path: Union[str, Path],
        shared: bool = False,
        timeout: Optional[float] = 60.0,
    ):
        self.path = Path(path)
        self.shared = shared
        self.timeout = timeout
        self._handle = None

    @property
    def locked(self) -> bool:
        return self._handle is not None

    async def acquire(self) -> None:
        """Wait for the lock, polling with backoff."""
        if self._handle is not None:
            raise RuntimeError("AsyncFileLock is not re-entrant")

        mode = fcntl.LOCK_SH if self.shared else fcntl.LOCK_EX
        handle = self.path.open("a+")
        start = time.monotonic()
        delay = INITIAL_BACKOFF_SECS
        try:
            while True:
                try:
                    fcntl.flock(handle.fileno(), mode | fcntl.LOCK_NB)
                    break
                except OSError as error:
                    if error.errno not in (errno.EAGAIN, errno.EACCES):
                        raise
                waited = time.monotonic() - start
                if self.timeout is not None and waited >= self.timeout:
                    raise CacheContentionError(
                        _("Timed out after %.1fs waiting for lock %s")
                        % (waited, self.path)
                    )
                jitter = random.uniform(0, 0.01)  # nosec B311
                await asyncio.sleep(min(delay, MAX_BACKOFF_SECS) + jitter)
                delay = min(delay * 2.0, MAX_BACKOFF_SECS)
        except BaseException:
            handle.close()
            raise

        self._handle = handle
        logger.debug(
            "Acquired %s lock on %s",
            "shared" if self.shared else "exclusive",
            self.path,
        )

    def release(self) -> None:
        if self._handle is None:
            return
        try:
            fcntl.flock(self._handle.fileno(), fcntl.LOCK_UN)
        finally:
            self._handle.close()
            self._handle = None
        logger.debug("Released lock on %s", self.path)

    async def __aenter__(self) -> "AsyncFileLock":
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc, traceback) -> None:
        self.release()
