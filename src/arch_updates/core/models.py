"""
Data model for the arch-updates engine.

All records are immutable snapshots of a single check cycle. The only
artifact consumers observe is ``UpdateSnapshot``; it is rebuilt wholesale on
every refresh.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import (
    Any,
    ClassVar,
    Dict,
    Generic,
    Optional,
    Sequence,
    Tuple,
    TypeVar,
)

FOREIGN_ORIGIN = "foreign"

T = TypeVar("T")


class ErrorKind(str, Enum):
    """Category of a per-source failure."""

    TRANSPORT = "transport"
    PARSE = "parse"
    CACHE_CONTENTION = "cache_contention"
    NOT_FOUND = "not_found"
    TIMEOUT = "timeout"
    INTERNAL = "internal"


class VcsKind(str, Enum):
    """Version control systems recognised by package-name suffix."""

    GIT = "git"
    SVN = "svn"
    HG = "hg"
    BZR = "bzr"
    CVS = "cvs"
    DARCS = "darcs"

    @property
    def suffix(self) -> str:
        return f"-{self.value}"

    @classmethod
    def from_package_name(cls, name: str) -> Optional["VcsKind"]:
        """Return the VCS kind for a devel package name, or None."""
        lowered = name.lower()
        for kind in cls:
            if lowered.endswith(kind.suffix):
                return kind
        return None


@dataclass(frozen=True)
class InstalledPackage:
    """A package from the local package database."""

    name: str
    version: str
    origin: str = FOREIGN_ORIGIN
    explicit: bool = False

    @property
    def is_foreign(self) -> bool:
        return self.origin == FOREIGN_ORIGIN

    @property
    def vcs_kind(self) -> Optional[VcsKind]:
        return VcsKind.from_package_name(self.name)

    @property
    def is_devel(self) -> bool:
        return self.vcs_kind is not None


@dataclass(frozen=True)
class CandidatePackage:
    """A package version available from a sync database."""

    name: str
    version: str
    repository: str


@dataclass(frozen=True)
class PacmanUpdate:
    name: str
    installed_version: str
    candidate_version: str
    repository: str


@dataclass(frozen=True)
class AurUpdate:
    name: str
    installed_version: str
    candidate_version: str


@dataclass(frozen=True)
class DevelUpdate:
    """
    A development package whose upstream source moved on.

    The new version number is unknown until the package is rebuilt, so only
    the references are reported.
    """

    name: str
    vcs_kind: VcsKind
    installed_reference: str
    update_available: bool
    remote_reference: Optional[str] = None


@dataclass(frozen=True)
class NewsItem:
    title: str
    link: str
    published: datetime


@dataclass(frozen=True)
class CheckResult(Generic[T]):
    """
    Outcome of one update source: either the full item list or a failure.

    Use ``CheckResult.success()`` and ``CheckResult.failure()`` rather than
    the constructor so the two states never mix.
    """

    items: Optional[Tuple[T, ...]] = None
    error_kind: Optional[ErrorKind] = None
    error_message: str = ""

    def __post_init__(self):
        if (self.items is None) == (self.error_kind is None):
            raise ValueError("CheckResult must hold either items or an error kind")

    @classmethod
    def success(cls, items: Sequence[T]) -> "CheckResult[T]":
        return cls(items=tuple(items))

    @classmethod
    def failure(cls, kind: ErrorKind, message: str = "") -> "CheckResult[T]":
        return cls(error_kind=kind, error_message=message)

    @property
    def succeeded(self) -> bool:
        return self.items is not None

    def __len__(self) -> int:
        return len(self.items) if self.items is not None else 0

    def to_dict(self) -> Dict[str, Any]:
        if self.items is None:
            return {
                "ok": False,
                "error": {
                    "kind": self.error_kind.value,
                    "message": self.error_message,
                },
            }
        return {"ok": True, "items": [_record_to_dict(item) for item in self.items]}


@dataclass(frozen=True)
class UpdateSnapshot:
    """Everything one refresh found, one independent result per source."""

    checked_at: datetime
    pacman: CheckResult[PacmanUpdate]
    aur: CheckResult[AurUpdate]
    devel: CheckResult[DevelUpdate]
    news: CheckResult[NewsItem]
    online: bool = True

    SOURCES: ClassVar[Tuple[str, ...]] = ("pacman", "aur", "devel", "news")

    def pending_count(self) -> int:
        """Number of pending package updates across successful sources."""
        return len(self.pacman) + len(self.aur) + len(self.devel)

    def failed_sources(self) -> Tuple[str, ...]:
        return tuple(
            name for name in self.SOURCES if not getattr(self, name).succeeded
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "checked_at": self.checked_at.isoformat(),
            "online": self.online,
        }
        for name in self.SOURCES:
            data[name] = getattr(self, name).to_dict()
        return data


def _record_to_dict(record: Any) -> Dict[str, Any]:
    result = {}
    for key, value in vars(record).items():
        if isinstance(value, Enum):
            value = value.value
        elif isinstance(value, datetime):
            value = value.isoformat()
        result[key] = value
    return result
