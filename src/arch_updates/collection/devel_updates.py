"""
Update detection for development (VCS) packages.

A ``-git`` package's version says nothing about upstream, so instead we find
the package's VCS source in its AUR .SRCINFO, ask the VCS for the current
upstream reference and compare it against the reference baked into the
installed pkgver.

Per-package misses (no AUR entry, unparseable recipe, pinned or unsupported
source, unrecognisable pkgver, failing VCS tool) simply produce no entry.
Only when the AUR itself is unreachable, meaning the bulk info query fails
or every .SRCINFO fetch fails on the network, is the whole source reported
failed.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import aiohttp

from src.arch_updates.collection.aur_client import AurClient, AurPackageInfo
from src.arch_updates.collection.srcinfo import (
    current_architecture,
    parse_srcinfo,
    select_vcs_source,
)
from src.arch_updates.collection.vcs_references import (
    RemoteReferenceResolver,
    extract_local_reference,
    references_differ,
)
from src.arch_updates.collection.version_comparison import split_version
from src.arch_updates.core.errors import (
    CheckTimeoutError,
    TransportError,
    UpdateCheckError,
)
from src.arch_updates.core.models import DevelUpdate, InstalledPackage, VcsKind
from src.i18n import _

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Lookup:
    """Outcome of one package's remote lookup."""

    package: InstalledPackage
    remote_reference: Optional[str] = None
    error: Optional[UpdateCheckError] = None
    # set when the .SRCINFO could not be fetched from the AUR
    network_failure: bool = False


def _failed_lookup(
    package: InstalledPackage, error: UpdateCheckError, network_failure: bool = False
) -> _Lookup:
    logger.debug(
        "Devel lookup for %s failed (%s): %s",
        package.name,
        error.kind.value,
        error.message,
    )
    return _Lookup(package=package, error=error, network_failure=network_failure)


def devel_candidates(installed: Sequence[InstalledPackage]) -> List[InstalledPackage]:
    return [pkg for pkg in installed if pkg.is_foreign and pkg.is_devel]


def compare_references(
    package: InstalledPackage, remote_reference: str
) -> Optional[DevelUpdate]:
    """DevelUpdate if the installed reference differs from remote_reference."""
    kind = package.vcs_kind
    if kind is None:
        return None
    _epoch, pkgver, _pkgrel = split_version(package.version)
    local_reference = extract_local_reference(kind, pkgver)
    if local_reference is None:
        logger.debug(
            "No %s reference in %s version %s", kind.value, package.name, pkgver
        )
        return None
    if not references_differ(kind, local_reference, remote_reference):
        return None
    return DevelUpdate(
        name=package.name,
        vcs_kind=kind,
        installed_reference=local_reference,
        update_available=True,
        remote_reference=remote_reference,
    )


class DevelSourceChecker:
    """Update source for VCS packages built from the AUR."""

    def __init__(
        self,
        client: AurClient,
        resolver: RemoteReferenceResolver,
        architecture: Optional[str] = None,
        max_concurrency: int = 8,
    ):
        self.client = client
        self.resolver = resolver
        self.architecture = architecture or current_architecture()
        self.max_concurrency = max(1, max_concurrency)
        # name -> upstream reference from the last online check
        self.remote_references: Dict[str, str] = {}

    async def _remote_reference(
        self, package: InstalledPackage, kind: VcsKind, srcinfo_text: str
    ) -> Optional[str]:
        srcinfo = parse_srcinfo(srcinfo_text)
        source = select_vcs_source(srcinfo, kind, self.architecture)
        if source is None:
            logger.debug(
                "%s has no unpinned %s source for %s",
                package.name,
                kind.value,
                self.architecture,
            )
            return None
        return await self.resolver.resolve(source)

    async def _lookup(
        self,
        semaphore: asyncio.Semaphore,
        session: aiohttp.ClientSession,
        package: InstalledPackage,
        info: AurPackageInfo,
    ) -> _Lookup:
        async with semaphore:
            try:
                text = await self.client.fetch_srcinfo(session, info.package_base)
            except (TransportError, CheckTimeoutError) as error:
                return _failed_lookup(package, error, network_failure=True)
            except UpdateCheckError as error:
                return _failed_lookup(package, error)

            try:
                remote = await self._remote_reference(
                    package, package.vcs_kind, text
                )
            except UpdateCheckError as error:
                return _failed_lookup(package, error)
        return _Lookup(package=package, remote_reference=remote)

    async def check(
        self,
        session: aiohttp.ClientSession,
        installed: Sequence[InstalledPackage],
        online: bool = True,
    ) -> List[DevelUpdate]:
        """
        Pending devel updates, sorted by name.

        Offline checks re-compare the installed packages against the upstream
        references remembered from the last online check.

        Raises:
            TransportError: the AUR info query failed, or every .SRCINFO
                fetch failed on the network
        """
        candidates = devel_candidates(installed)
        if online:
            await self._refresh_references(session, candidates)

        updates = []
        for package in candidates:
            remote = self.remote_references.get(package.name)
            if remote is None:
                continue
            update = compare_references(package, remote)
            if update is not None:
                updates.append(update)
        updates.sort(key=lambda update: update.name)
        logger.info(_("Found %d devel update(s)"), len(updates))
        return updates

    async def _refresh_references(
        self,
        session: aiohttp.ClientSession,
        candidates: Sequence[InstalledPackage],
    ) -> None:
        if not candidates:
            self.remote_references = {}
            return

        info = await self.client.info(session, [pkg.name for pkg in candidates])
        semaphore = asyncio.Semaphore(self.max_concurrency)
        lookups = await asyncio.gather(
            *(
                self._lookup(semaphore, session, package, info[package.name])
                for package in candidates
                if package.name in info
            )
        )

        if lookups and all(lookup.network_failure for lookup in lookups):
            raise TransportError(
                _("All %d .SRCINFO fetches failed: %s")
                % (len(lookups), lookups[0].error.message)
            )

        self.remote_references = {
            lookup.package.name: lookup.remote_reference
            for lookup in lookups
            if lookup.remote_reference is not None
        }
        failed = sum(1 for lookup in lookups if lookup.error is not None)
        if failed:
            logger.warning(
                _("%d of %d devel lookup(s) failed"), failed, len(lookups)
            )
