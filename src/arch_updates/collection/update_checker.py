"""
Aggregates the four update sources into one snapshot.

Every source runs concurrently and independently: one source failing, timing
out or being cancelled never costs the others their results. Installed
packages are read once per cycle and shared between the package sources.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, List, Optional

import aiohttp

from src.arch_updates.collection.aur_client import AurClient
from src.arch_updates.collection.aur_updates import AurSourceChecker
from src.arch_updates.collection.devel_updates import DevelSourceChecker
from src.arch_updates.collection.local_packages import LocalPackageDatabase
from src.arch_updates.collection.news import NewsChecker
from src.arch_updates.collection.pacman_updates import PacmanSourceChecker
from src.arch_updates.collection.sync_database_cache import SyncDatabaseCache
from src.arch_updates.collection.vcs_references import RemoteReferenceResolver
from src.arch_updates.core.config import ConfigManager
from src.arch_updates.core.errors import UpdateCheckError
from src.arch_updates.core.models import (
    CheckResult,
    ErrorKind,
    InstalledPackage,
    UpdateSnapshot,
)
from src.i18n import _

logger = logging.getLogger(__name__)

USER_AGENT = "arch-updates"


def default_session_factory() -> aiohttp.ClientSession:
    return aiohttp.ClientSession(headers={"User-Agent": USER_AGENT})


async def _discard(task: "asyncio.Future[Any]") -> None:
    """Cancel task and wait for it to unwind."""
    task.cancel()
    await asyncio.gather(task, return_exceptions=True)


class UpdateChecker:  # pylint: disable=too-many-instance-attributes
    """Runs all update sources and publishes an immutable snapshot."""

    # pylint: disable-next=too-many-arguments
    def __init__(
        self,
        local_packages: LocalPackageDatabase,
        pacman: PacmanSourceChecker,
        aur: AurSourceChecker,
        devel: DevelSourceChecker,
        news: NewsChecker,
        timeout: Optional[float] = None,
        session_factory: Callable[[], aiohttp.ClientSession] = default_session_factory,
    ):
        self.local_packages = local_packages
        self.pacman = pacman
        self.aur = aur
        self.devel = devel
        self.news = news
        self.timeout = timeout
        self.session_factory = session_factory
        self.last_snapshot: Optional[UpdateSnapshot] = None

    @classmethod
    def from_config(cls, config: ConfigManager) -> "UpdateChecker":
        """Build the engine and all its sources from configuration."""
        cache = SyncDatabaseCache(
            directory=config.get_cache_directory(),
            system_dbpath=config.get_pacman_dbpath(),
            min_refresh_interval=config.get_min_refresh_interval(),
            lock_timeout=config.get_lock_timeout(),
            refresh_timeout=config.get_refresh_timeout(),
            use_fakeroot=config.should_use_fakeroot(),
        )
        client = AurClient(
            rpc_url=config.get_aur_rpc_url(),
            srcinfo_url=config.get_aur_srcinfo_url(),
            batch_size=config.get_aur_batch_size(),
            request_timeout=config.get_aur_request_timeout(),
            max_retries=config.get_aur_max_retries(),
            retry_backoff=config.get_aur_retry_backoff(),
        )
        return cls(
            local_packages=LocalPackageDatabase(
                dbpath=config.get_pacman_dbpath(),
                command_timeout=config.get_pacman_command_timeout(),
            ),
            pacman=PacmanSourceChecker(cache),
            aur=AurSourceChecker(client),
            devel=DevelSourceChecker(
                client,
                RemoteReferenceResolver(command_timeout=config.get_vcs_timeout()),
                architecture=config.get_architecture(),
                max_concurrency=config.get_max_concurrent_devel_lookups(),
            ),
            news=NewsChecker(
                feed_url=config.get_news_feed_url(),
                request_timeout=config.get_news_request_timeout(),
            ),
            timeout=config.get_check_timeout(),
        )

    async def _guarded(
        self,
        source: str,
        work: Awaitable[List[Any]],
        timeout: Optional[float],
        cancel_event: Optional[asyncio.Event],
    ) -> CheckResult:
        """
        Run one source and turn its outcome into a CheckResult.

        The deadline and the cancel event only ever fail this source.
        """
        task = asyncio.ensure_future(work)
        waiters = {task}
        cancel_waiter = None
        if cancel_event is not None:
            cancel_waiter = asyncio.ensure_future(cancel_event.wait())
            waiters.add(cancel_waiter)

        try:
            done, _pending = await asyncio.wait(
                waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            if cancel_waiter is not None:
                cancel_waiter.cancel()

        if task not in done:
            await _discard(task)
            if cancel_event is not None and cancel_event.is_set():
                message = _("%s check cancelled") % source
            else:
                message = _("%s check timed out after %s seconds") % (source, timeout)
            logger.warning(message)
            return CheckResult.failure(ErrorKind.TIMEOUT, message)

        try:
            items = task.result()
        except UpdateCheckError as error:
            logger.warning(
                _("%s check failed (%s): %s"), source, error.kind.value, error.message
            )
            return CheckResult.failure(error.kind, error.message)
        except Exception as error:  # pylint: disable=broad-exception-caught
            logger.exception(_("Unexpected error in %s check"), source)
            return CheckResult.failure(ErrorKind.INTERNAL, str(error))
        return CheckResult.success(items)

    async def check_all(
        self,
        since: Optional[datetime] = None,
        online: bool = True,
        timeout: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> UpdateSnapshot:
        """
        Check every source and return the combined snapshot.

        Args:
            since: Only news published after this moment; None for all
            online: Fetch remote data; offline re-uses what the last online
                check fetched and the existing sync database cache
            timeout: Per-source deadline in seconds, defaults to the
                configured one
            cancel_event: Setting it fails every still-running source with
                a timeout error

        Never raises for source failures; they are reported per source.
        """
        if timeout is None:
            timeout = self.timeout

        async with self.session_factory() as session:
            installed = asyncio.ensure_future(self.local_packages.installed_packages())

            async def installed_packages() -> List[InstalledPackage]:
                # Shielded so one source timing out does not cancel the
                # shared query for the others
                return await asyncio.shield(installed)

            async def pacman_updates():
                return await self.pacman.check(await installed_packages(), online)

            async def aur_updates():
                return await self.aur.check(session, await installed_packages(), online)

            async def devel_updates():
                return await self.devel.check(
                    session, await installed_packages(), online
                )

            try:
                pacman, aur, devel, news = await asyncio.gather(
                    self._guarded("pacman", pacman_updates(), timeout, cancel_event),
                    self._guarded("aur", aur_updates(), timeout, cancel_event),
                    self._guarded("devel", devel_updates(), timeout, cancel_event),
                    self._guarded(
                        "news",
                        self.news.check(session, since, online),
                        timeout,
                        cancel_event,
                    ),
                )
            finally:
                if not installed.done():
                    await _discard(installed)

        snapshot = UpdateSnapshot(
            checked_at=datetime.now(timezone.utc),
            pacman=pacman,
            aur=aur,
            devel=devel,
            news=news,
            online=online,
        )
        self.last_snapshot = snapshot
        failed = snapshot.failed_sources()
        logger.info(
            _("Update check finished: %d pending update(s), failed sources: %s"),
            snapshot.pending_count(),
            ", ".join(failed) if failed else _("none"),
        )
        return snapshot

    async def refresh(
        self,
        since: Optional[datetime] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> UpdateSnapshot:
        """Online check of every source with the configured deadline."""
        return await self.check_all(
            since=since, online=True, timeout=self.timeout, cancel_event=cancel_event
        )
