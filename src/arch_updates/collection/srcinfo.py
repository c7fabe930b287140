"""
.SRCINFO parsing.

A .SRCINFO is the machine-readable summary makepkg generates from a PKGBUILD:
a ``pkgbase`` section followed by one section per ``pkgname``, each made of
``key = value`` lines. Source arrays may be declared per architecture
(``source_x86_64 = ...``) next to the architecture-independent ``source``.
"""

import logging
import platform
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from src.arch_updates.core.errors import ParseError
from src.arch_updates.core.models import VcsKind
from src.i18n import _

logger = logging.getLogger(__name__)

# Fragments that pin a source to a fixed revision
PINNED_FRAGMENTS = frozenset({"commit", "tag", "revision"})

# platform.machine() spellings that differ from pacman's CARCH
MACHINE_ALIASES = {
    "amd64": "x86_64",
    "arm64": "aarch64",
    "armv7l": "armv7h",
    "armv6l": "armv6h",
    "i386": "i686",
}


def current_architecture() -> str:
    machine = platform.machine().lower()
    return MACHINE_ALIASES.get(machine, machine)


@dataclass(frozen=True)
class SourceDeclarations:
    """
    Source entries keyed by architecture.

    The ``None`` key holds entries that apply to every architecture.
    """

    by_arch: Dict[Optional[str], Tuple[str, ...]] = field(default_factory=dict)

    def resolve(self, arch: str) -> Tuple[str, ...]:
        """Entries for arch: architecture-specific first, then the shared ones."""
        return self.by_arch.get(arch, ()) + self.by_arch.get(None, ())

    def architectures(self) -> Tuple[str, ...]:
        return tuple(sorted(key for key in self.by_arch if key is not None))


@dataclass(frozen=True)
class SrcInfo:
    pkgbase: str
    pkgver: str
    pkgrel: str
    epoch: Optional[str]
    pkgnames: Tuple[str, ...]
    arch: Tuple[str, ...]
    sources: SourceDeclarations

    @property
    def full_version(self) -> str:
        version = f"{self.pkgver}-{self.pkgrel}"
        if self.epoch:
            version = f"{self.epoch}:{version}"
        return version


def parse_srcinfo(text: str) -> SrcInfo:
    """
    Parse .SRCINFO text.

    Only the pkgbase section contributes sources and version fields; makepkg
    does not allow packages to override them.

    Raises:
        ParseError: no pkgbase section, or a line without ``=``
    """
    pkgbase = None
    in_base = False
    values: Dict[str, str] = {}
    arch: List[str] = []
    pkgnames: List[str] = []
    sources: Dict[Optional[str], List[str]] = {}

    for number, raw_line in enumerate(text.splitlines(), start=1):
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, separator, value = line.partition("=")
        if not separator:
            raise ParseError(
                _("Malformed .SRCINFO line %d: %s") % (number, raw_line)
            )
        key = key.strip()
        value = value.strip()

        if key == "pkgbase":
            pkgbase = value
            in_base = True
            continue
        if key == "pkgname":
            pkgnames.append(value)
            in_base = False
            continue
        if not in_base:
            continue

        if key == "source":
            sources.setdefault(None, []).append(value)
        elif key.startswith("source_"):
            sources.setdefault(key[len("source_") :], []).append(value)
        elif key == "arch":
            arch.append(value)
        elif key in ("pkgver", "pkgrel", "epoch"):
            values[key] = value

    if not pkgbase:
        raise ParseError(_(".SRCINFO has no pkgbase"))

    return SrcInfo(
        pkgbase=pkgbase,
        pkgver=values.get("pkgver", ""),
        pkgrel=values.get("pkgrel", ""),
        epoch=values.get("epoch"),
        pkgnames=tuple(pkgnames),
        arch=tuple(arch),
        sources=SourceDeclarations(
            {key: tuple(entries) for key, entries in sources.items()}
        ),
    )


@dataclass(frozen=True)
class VcsSource:
    """A VCS source entry with its remote URL and optional fragment."""

    kind: VcsKind
    url: str
    fragment_type: Optional[str] = None
    fragment_value: Optional[str] = None

    @property
    def pinned(self) -> bool:
        return self.fragment_type in PINNED_FRAGMENTS

    @property
    def branch(self) -> Optional[str]:
        return self.fragment_value if self.fragment_type == "branch" else None


def parse_vcs_source(entry: str) -> Optional[VcsSource]:
    """
    Parse a makepkg source entry, returning None unless it is a VCS source.

    Handles ``name::`` prefixes, ``kind+transport://`` URLs, a trailing
    ``?query`` and ``#type=value`` fragments, e.g.
    ``paper::git+https://github.com/snwh/paper-icon-theme.git#branch=main``.
    """
    url = entry.split("::", 1)[-1]
    if "://" not in url:
        return None

    scheme, rest = url.split("://", 1)
    kind_name, plus, transport = scheme.partition("+")
    try:
        kind = VcsKind(kind_name.lower())
    except ValueError:
        return None
    if not plus:
        transport = kind_name

    remote, _hash, fragment = rest.partition("#")
    remote = remote.split("?", 1)[0]
    if not remote:
        return None

    fragment_type = fragment_value = None
    if fragment:
        fragment = fragment.split("?", 1)[0]
        fragment_type, _equals, fragment_value = fragment.partition("=")
        fragment_value = fragment_value or None

    return VcsSource(
        kind=kind,
        url=f"{transport}://{remote}",
        fragment_type=fragment_type or None,
        fragment_value=fragment_value,
    )


def select_vcs_source(
    srcinfo: SrcInfo, kind: VcsKind, arch: str
) -> Optional[VcsSource]:
    """First unpinned source of the given kind for arch, if any."""
    for entry in srcinfo.sources.resolve(arch):
        source = parse_vcs_source(entry)
        if source is None or source.kind != kind:
            continue
        if source.pinned:
            logger.debug("Skipping pinned source %s", entry)
            continue
        return source
    return None
