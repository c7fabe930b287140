"""
Read-only view of the local pacman package database.

Produces one immutable list of InstalledPackage per check cycle. Native
packages get the repository they are listed under in the system sync
databases (the databases the package was installed from); packages not found
in any sync database are foreign.
"""

import asyncio
import fnmatch
import logging
from typing import Dict, FrozenSet, Iterable, List, Tuple, Union

from src.arch_updates.core.async_utils import AsyncProcessResult, run_tool
from src.arch_updates.core.errors import ParseError, TransportError
from src.arch_updates.core.models import FOREIGN_ORIGIN, InstalledPackage
from src.arch_updates.collection.sync_database_cache import parse_sync_listing
from src.i18n import _

logger = logging.getLogger(__name__)

UNKNOWN_REPOSITORY = ""


def parse_package_list(output: str) -> List[Tuple[str, str]]:
    """
    Parse ``pacman -Q`` style output.

    Example line: "watchman-bin 2024.04.15.00-1"
    """
    packages = []
    for line in output.splitlines():
        line = line.strip()
        if not line:
            continue
        name, separator, version = line.partition(" ")
        if not separator or not version.strip():
            raise ParseError(_("Failed to parse package from pacman line: %s") % line)
        packages.append((name, version.strip()))
    return packages


def is_ignored(name: str, patterns: Iterable[str]) -> bool:
    """IgnorePkg entries are exact names or shell globs."""
    return any(fnmatch.fnmatchcase(name, pattern) for pattern in patterns)


def _query_output(result: AsyncProcessResult, description: str) -> str:
    """
    Output of a pacman query, treating "nothing matched" as empty.

    pacman exits with 1 and prints nothing when a filtered query (-Qm, -Qe)
    has no results.
    """
    if result.returncode == 0:
        return result.stdout
    nothing_matched = not result.stdout.strip() and not result.stderr.strip()
    if result.returncode == 1 and nothing_matched:
        return ""
    raise TransportError(
        _("pacman query %s failed: %s") % (description, result.stderr.strip())
    )


class LocalPackageDatabase:
    """Runs the pacman queries that enumerate installed packages."""

    def __init__(
        self,
        dbpath: Union[str, None] = "/var/lib/pacman",
        command_timeout: float = 30.0,
    ):
        self.dbpath = dbpath
        self.command_timeout = command_timeout

    def _pacman(self, *args: str) -> List[str]:
        command = ["pacman", *args]
        if self.dbpath:
            command += ["--dbpath", str(self.dbpath)]
        return command

    async def ignored_packages(self) -> FrozenSet[str]:
        """IgnorePkg patterns from pacman.conf."""
        result = await run_tool(
            ["pacman-conf", "IgnorePkg"], timeout=self.command_timeout
        )
        output = _query_output(result, "IgnorePkg")
        return frozenset(line.strip() for line in output.splitlines() if line.strip())

    async def _repositories(self) -> Dict[str, str]:
        result = await run_tool(self._pacman("-Sl"), timeout=self.command_timeout)
        output = _query_output(result, "-Sl")
        return {
            name: candidate.repository
            for name, candidate in parse_sync_listing(output).items()
        }

    async def installed_packages(
        self, honour_ignore: bool = True
    ) -> List[InstalledPackage]:
        """
        Every installed package with its origin classification.

        Packages matching IgnorePkg are left out when honour_ignore is set.
        """
        native, foreign, explicit, repositories, ignored = await asyncio.gather(
            run_tool(self._pacman("-Qn"), timeout=self.command_timeout),
            run_tool(self._pacman("-Qm"), timeout=self.command_timeout),
            run_tool(self._pacman("-Qeq"), timeout=self.command_timeout),
            self._repositories(),
            self.ignored_packages() if honour_ignore else _no_patterns(),
        )

        explicit_names = {
            line.strip()
            for line in _query_output(explicit, "-Qeq").splitlines()
            if line.strip()
        }

        packages = []
        for name, version in parse_package_list(_query_output(native, "-Qn")):
            packages.append(
                InstalledPackage(
                    name=name,
                    version=version,
                    origin=repositories.get(name, UNKNOWN_REPOSITORY),
                    explicit=name in explicit_names,
                )
            )
        for name, version in parse_package_list(_query_output(foreign, "-Qm")):
            packages.append(
                InstalledPackage(
                    name=name,
                    version=version,
                    origin=FOREIGN_ORIGIN,
                    explicit=name in explicit_names,
                )
            )

        if ignored:
            kept = [pkg for pkg in packages if not is_ignored(pkg.name, ignored)]
            logger.debug(
                "Ignoring %d package(s) from IgnorePkg", len(packages) - len(kept)
            )
            packages = kept

        packages.sort(key=lambda pkg: pkg.name)
        logger.debug(
            "Found %d installed packages (%d foreign)",
            len(packages),
            sum(1 for pkg in packages if pkg.is_foreign),
        )
        return packages


async def _no_patterns() -> FrozenSet[str]:
    return frozenset()
