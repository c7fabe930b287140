"""
AUR update detection for versioned foreign packages.

Development packages (``-git`` and friends) are left to the devel checker,
since their AUR version only records when the recipe was last touched.
"""

import logging
from typing import Dict, List, Sequence

import aiohttp

from src.arch_updates.collection.aur_client import AurClient
from src.arch_updates.collection.version_comparison import is_newer
from src.arch_updates.core.models import AurUpdate, InstalledPackage
from src.i18n import _

logger = logging.getLogger(__name__)


def aur_candidates(installed: Sequence[InstalledPackage]) -> List[InstalledPackage]:
    return [pkg for pkg in installed if pkg.is_foreign and not pkg.is_devel]


def find_aur_updates(
    installed: Sequence[InstalledPackage], remote_versions: Dict[str, str]
) -> List[AurUpdate]:
    """Foreign non-devel packages whose AUR version is strictly newer."""
    updates = []
    for package in aur_candidates(installed):
        remote = remote_versions.get(package.name)
        if remote is None or not is_newer(remote, package.version):
            continue
        updates.append(
            AurUpdate(
                name=package.name,
                installed_version=package.version,
                candidate_version=remote,
            )
        )
    updates.sort(key=lambda update: update.name)
    return updates


class AurSourceChecker:
    """
    Update source for AUR packages.

    Remote versions from the last successful online check are kept in memory
    so offline checks can re-compare after a local upgrade.
    """

    def __init__(self, client: AurClient):
        self.client = client
        self.remote_versions: Dict[str, str] = {}

    async def check(
        self,
        session: aiohttp.ClientSession,
        installed: Sequence[InstalledPackage],
        online: bool = True,
    ) -> List[AurUpdate]:
        if online:
            names = [pkg.name for pkg in aur_candidates(installed)]
            info = await self.client.info(session, names)
            self.remote_versions = {name: entry.version for name, entry in info.items()}
            missing = len(set(names) - set(info))
            if missing:
                logger.debug("%d foreign package(s) not found in the AUR", missing)

        updates = find_aur_updates(installed, self.remote_versions)
        logger.info(_("Found %d AUR update(s)"), len(updates))
        return updates
