"""
Upstream and installed references for development packages.

The remote side asks the VCS tool for the current head of the tracked branch;
the local side digs the same kind of reference out of the installed pkgver,
which VCS PKGBUILDs conventionally build from it
(``20240105.r47.g72b934e1`` for git, ``r1234`` for svn).
"""

import logging
import re
from typing import List, Optional

from src.arch_updates.collection.srcinfo import VcsSource
from src.arch_updates.core.async_utils import run_tool
from src.arch_updates.core.errors import NotFoundError, ParseError
from src.arch_updates.core.models import VcsKind
from src.i18n import _

logger = logging.getLogger(__name__)

HASH_KINDS = frozenset({VcsKind.GIT, VcsKind.HG})
REVISION_KINDS = frozenset({VcsKind.SVN, VcsKind.BZR})

_TOKEN_SEPARATORS = re.compile(r"[._+~-]")
_HEX = re.compile(r"^[0-9a-f]{6,40}$")

# No prompts for credentials; a private upstream is just a failed lookup
_NON_INTERACTIVE_ENV = {"GIT_TERMINAL_PROMPT": "0", "GIT_ASKPASS": "/bin/true"}


def _tokens(pkgver: str) -> List[str]:
    return [token for token in _TOKEN_SEPARATORS.split(pkgver.lower()) if token]


def extract_local_reference(kind: VcsKind, pkgver: str) -> Optional[str]:
    """
    The upstream reference encoded in an installed pkgver, or None.

    git/hg: a ``g``-prefixed abbreviated hash wins, otherwise the last
    hex-looking token containing a letter (plain dates are not hashes).
    svn/bzr: the last ``rNNN`` token, otherwise the last all-digit token.
    """
    tokens = _tokens(pkgver)
    if kind in HASH_KINDS:
        for token in tokens:
            if token.startswith("g") and _HEX.match(token[1:]):
                return token[1:]
        hashes = [
            token
            for token in tokens
            if _HEX.match(token) and any(char.isalpha() for char in token)
        ]
        return hashes[-1] if hashes else None

    if kind in REVISION_KINDS:
        tagged = [token[1:] for token in tokens if token.startswith("r")]
        tagged = [token for token in tagged if token.isdigit()]
        if tagged:
            return tagged[-1]
        plain = [token for token in tokens if token.isdigit()]
        return plain[-1] if plain else None

    return None


def references_differ(kind: VcsKind, local: str, remote: str) -> bool:
    """
    True if the installed reference is not the upstream one.

    Hashes match when one is a prefix of the other, since pkgvers carry
    abbreviated hashes. Revision numbers are compared numerically.
    """
    local = local.strip().lower()
    remote = remote.strip().lower()
    if kind in HASH_KINDS:
        return not (remote.startswith(local) or local.startswith(remote))
    if local.isdigit() and remote.isdigit():
        return int(local) != int(remote)
    return local != remote


def parse_git_ls_remote(output: str) -> str:
    """Hash of the first ref listed by ``git ls-remote``."""
    for line in output.splitlines():
        fields = line.split()
        if fields:
            if not _HEX.match(fields[0].lower()):
                raise ParseError(_("Unexpected git ls-remote line: %s") % line)
            return fields[0].lower()
    raise NotFoundError(_("git ls-remote listed no matching ref"))


def _single_token(output: str, tool: str) -> str:
    value = output.strip().split()
    if not value:
        raise ParseError(_("%s printed no reference") % tool)
    # hg marks a dirty working copy with '+'; irrelevant for remotes
    return value[0].rstrip("+")


class RemoteReferenceResolver:
    """Asks the VCS tools for the current upstream reference of a source."""

    def __init__(self, command_timeout: float = 30.0):
        self.command_timeout = command_timeout

    def command_for(self, source: VcsSource) -> Optional[List[str]]:
        """Command printing the upstream reference, or None if undecidable."""
        if source.kind == VcsKind.GIT:
            return ["git", "ls-remote", source.url, source.branch or "HEAD"]
        if source.kind == VcsKind.HG:
            command = ["hg", "identify", "--id"]
            if source.branch:
                command += ["-r", source.branch]
            return command + [source.url]
        if source.kind == VcsKind.SVN:
            return [
                "svn",
                "info",
                "--non-interactive",
                "--show-item",
                "revision",
                source.url,
            ]
        if source.kind == VcsKind.BZR:
            return ["bzr", "revno", source.url]
        return None

    async def resolve(self, source: VcsSource) -> Optional[str]:
        """
        Current upstream reference for source.

        Returns None for VCS kinds whose head cannot be queried cheaply
        (cvs, darcs).

        Raises:
            TransportError: the tool could not be started
            NotFoundError: the tool failed, e.g. a deleted or private
                repository, or the branch does not exist upstream
            ParseError: the tool printed something unexpected
        """
        command = self.command_for(source)
        if command is None:
            logger.debug("No remote lookup for %s sources", source.kind.value)
            return None

        result = await run_tool(
            command, timeout=self.command_timeout, extra_env=_NON_INTERACTIVE_ENV
        )
        if result.returncode != 0:
            raise NotFoundError(
                _("%s failed for %s: %s")
                % (command[0], source.url, result.stderr.strip())
            )

        if source.kind == VcsKind.GIT:
            return parse_git_ls_remote(result.stdout)
        return _single_token(result.stdout, command[0])
