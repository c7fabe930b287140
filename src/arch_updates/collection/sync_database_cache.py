"""
Private copy of the pacman sync databases.

Checking official repositories for updates requires fresh sync databases, but
refreshing the system databases needs root and races with the user's own
``pacman -Syu``. Like ``checkupdates``, we keep a private database directory
whose ``local`` entry links to the system local database and refresh only the
private ``sync`` directory, under fakeroot.

Several processes (one applet per screen, a bar widget and a CLI, ...) may
share the directory, so refreshes are serialised with an exclusive advisory
lock and coalesced: a refresh that finds the databases refreshed less than
``min_refresh_interval`` seconds ago returns without touching the network.
"""

import logging
import os
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional, Union

from src.arch_updates.core.async_file_lock import AsyncFileLock
from src.arch_updates.core.async_utils import (
    read_file_async,
    run_tool,
    write_file_atomic,
)
from src.arch_updates.core.errors import (
    CacheContentionError,
    ParseError,
    TransportError,
)
from src.arch_updates.core.models import CandidatePackage
from src.i18n import _

logger = logging.getLogger(__name__)

LOCK_FILE_NAME = ".refresh.lock"
STAMP_FILE_NAME = ".last-refresh"

# pacman prints this when another pacman holds db.lck in the dbpath
PACMAN_LOCKED_MARKERS = ("unable to lock database", "could not lock database")


def default_cache_directory() -> Path:
    """$XDG_CACHE_HOME/arch-updates/syncdb, falling back to ~/.cache."""
    base = os.environ.get("XDG_CACHE_HOME") or os.path.join(
        os.path.expanduser("~"), ".cache"
    )
    return Path(base) / "arch-updates" / "syncdb"


def parse_sync_listing(output: str) -> Dict[str, CandidatePackage]:
    """
    Parse ``pacman -Sl`` output into name -> candidate.

    Lines look like ``core linux 6.12.1.arch1-1 [installed: 6.12.0.arch1-1]``.
    pacman lists repositories in pacman.conf order, so the first entry for a
    name is the one pacman would install.
    """
    candidates: Dict[str, CandidatePackage] = {}
    for line in output.splitlines():
        if not line.strip():
            continue
        parts = line.split()
        if len(parts) < 3:
            raise ParseError(_("Unexpected pacman -Sl line: %s") % line)
        repository, name, version = parts[0], parts[1], parts[2]
        if name not in candidates:
            candidates[name] = CandidatePackage(
                name=name, version=version, repository=repository
            )
    return candidates


class SyncDatabaseCache:
    """Shared, lock-guarded private sync database directory."""

    # pylint: disable=too-many-arguments,too-many-instance-attributes
    def __init__(
        self,
        directory: Optional[Union[str, Path]] = None,
        system_dbpath: Union[str, Path] = "/var/lib/pacman",
        min_refresh_interval: float = 60.0,
        lock_timeout: float = 60.0,
        refresh_timeout: float = 300.0,
        use_fakeroot: bool = True,
    ):
        self.directory = Path(directory) if directory else default_cache_directory()
        self.system_dbpath = Path(system_dbpath)
        self.min_refresh_interval = min_refresh_interval
        self.lock_timeout = lock_timeout
        self.refresh_timeout = refresh_timeout
        self.use_fakeroot = use_fakeroot
        self.last_refreshed: Optional[datetime] = None

    @property
    def lock_path(self) -> Path:
        return self.directory / LOCK_FILE_NAME

    @property
    def stamp_path(self) -> Path:
        return self.directory / STAMP_FILE_NAME

    @property
    def sync_path(self) -> Path:
        return self.directory / "sync"

    def _ensure_directory(self) -> None:
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as error:
            raise TransportError(
                _("Unable to create sync database cache %s: %s")
                % (self.directory, error)
            ) from error

    def _ensure_local_link(self) -> None:
        """Point <cache>/local at the system local database (under the lock)."""
        link = self.directory / "local"
        target = self.system_dbpath / "local"
        if link.is_symlink() and os.readlink(link) == str(target):
            return
        if link.is_symlink() or link.exists():
            link.unlink()
        link.symlink_to(target)

    def _remove_stale_pacman_lock(self) -> None:
        """
        Drop a db.lck left behind by a crashed refresh.

        Only callers holding our exclusive lock run pacman against this
        directory, so any db.lck seen here belongs to a dead process.
        """
        pacman_lock = self.directory / "db.lck"
        if pacman_lock.exists():
            logger.warning(_("Removing stale pacman lock %s"), pacman_lock)
            pacman_lock.unlink()

    async def _read_stamp(self) -> Optional[float]:
        try:
            content = await read_file_async(str(self.stamp_path))
        except FileNotFoundError:
            return None
        try:
            return float(content.strip())
        except ValueError:
            logger.warning(_("Ignoring corrupt refresh stamp in %s"), self.stamp_path)
            return None

    def _refresh_command(self):
        command = [
            "pacman",
            "-Sy",
            "--dbpath",
            str(self.directory),
            "--logfile",
            "/dev/null",
        ]
        if self.use_fakeroot:
            command = ["fakeroot", "--"] + command
        return command

    async def refresh(self, force: bool = False) -> bool:
        """
        Bring the private sync databases up to date.

        Safe to call from any number of tasks or processes at once: callers
        queue on the lock, and all but the first find a fresh stamp and return
        without refreshing again.

        Returns:
            True if this call ran pacman, False if it was coalesced

        Raises:
            CacheContentionError: lock wait timed out, or pacman found its own
                database lock held (retryable)
            TransportError: pacman failed, e.g. no network
        """
        self._ensure_directory()

        async with AsyncFileLock(self.lock_path, timeout=self.lock_timeout):
            last = await self._read_stamp()
            now = time.time()
            fresh = last is not None and 0 <= now - last < self.min_refresh_interval
            if fresh and not force:
                logger.debug(
                    "Sync databases refreshed %.1fs ago, skipping refresh", now - last
                )
                self.last_refreshed = datetime.fromtimestamp(last, tz=timezone.utc)
                return False

            try:
                self._ensure_local_link()
                self._remove_stale_pacman_lock()
            except OSError as error:
                raise TransportError(
                    _("Unable to link local database into %s: %s")
                    % (self.directory, error)
                ) from error

            logger.info(_("Refreshing sync databases in %s"), self.directory)
            result = await run_tool(
                self._refresh_command(), timeout=self.refresh_timeout
            )
            if result.returncode != 0:
                message = (result.stderr or result.stdout).strip()
                if any(marker in message for marker in PACMAN_LOCKED_MARKERS):
                    raise CacheContentionError(
                        _("Sync database is locked: %s") % message
                    )
                raise TransportError(
                    _("Failed to refresh sync databases: %s") % message
                )

            finished = time.time()
            await write_file_atomic(str(self.stamp_path), f"{finished}\n")
            self.last_refreshed = datetime.fromtimestamp(finished, tz=timezone.utc)
            logger.info(_("Sync databases refreshed"))
            return True

    async def snapshot(self) -> Dict[str, CandidatePackage]:
        """
        Candidates currently known from the cached databases.

        Never touches the network. Holds a shared lock so it never reads a
        half-refreshed directory; a cache that was never refreshed yields an
        empty mapping.
        """
        if not self.sync_path.is_dir():
            logger.debug("Sync database cache %s is empty", self.directory)
            return {}

        async with AsyncFileLock(
            self.lock_path, shared=True, timeout=self.lock_timeout
        ):
            result = await run_tool(
                ["pacman", "-Sl", "--dbpath", str(self.directory)],
                timeout=self.refresh_timeout,
            )
        if result.returncode != 0:
            raise TransportError(
                _("Failed to list cached sync databases: %s") % result.stderr.strip()
            )
        return parse_sync_listing(result.stdout)
