"""
Official repository update detection.

Compares the installed native packages against the private sync database
cache. Foreign packages are never reported here even if a repository happens
to carry a package of the same name.
"""

import logging
from typing import Dict, List, Sequence

from src.arch_updates.collection.sync_database_cache import SyncDatabaseCache
from src.arch_updates.collection.version_comparison import is_newer
from src.arch_updates.core.models import (
    CandidatePackage,
    InstalledPackage,
    PacmanUpdate,
)
from src.i18n import _

logger = logging.getLogger(__name__)


def find_pacman_updates(
    installed: Sequence[InstalledPackage],
    candidates: Dict[str, CandidatePackage],
) -> List[PacmanUpdate]:
    """
    Pending official updates, sorted by package name.

    Installed packages with no candidate are skipped. The reported repository
    is the one the installed package came from when known, otherwise the
    repository currently offering the candidate.
    """
    updates = []
    for package in installed:
        if package.is_foreign:
            continue
        candidate = candidates.get(package.name)
        if candidate is None:
            continue
        if not is_newer(candidate.version, package.version):
            continue
        updates.append(
            PacmanUpdate(
                name=package.name,
                installed_version=package.version,
                candidate_version=candidate.version,
                repository=package.origin or candidate.repository,
            )
        )
    updates.sort(key=lambda update: update.name)
    return updates


class PacmanSourceChecker:
    """Update source backed by the shared sync database cache."""

    def __init__(self, cache: SyncDatabaseCache):
        self.cache = cache

    async def check(
        self, installed: Sequence[InstalledPackage], online: bool = True
    ) -> List[PacmanUpdate]:
        """
        Refresh the cache (when online) and diff it against installed.

        A failed refresh fails the whole source; offline checks only read
        whatever the cache already holds.
        """
        if online:
            await self.cache.refresh()
        candidates = await self.cache.snapshot()
        updates = find_pacman_updates(installed, candidates)
        logger.info(_("Found %d official repository update(s)"), len(updates))
        return updates
