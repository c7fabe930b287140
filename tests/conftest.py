"""
Pytest configuration and shared fixtures for arch-updates tests.
"""

from unittest.mock import AsyncMock, Mock

import pytest

from src.arch_updates.core.models import VcsKind
from src.arch_updates.collection.srcinfo import VcsSource


@pytest.fixture
def mock_aur_client():
    """AurClient double with async info() and fetch_srcinfo()."""
    client = Mock()
    client.info = AsyncMock(return_value={})
    client.fetch_srcinfo = AsyncMock(return_value="")
    return client


@pytest.fixture
def mock_resolver():
    """RemoteReferenceResolver double."""
    resolver = Mock()
    resolver.resolve = AsyncMock(return_value=None)
    return resolver


@pytest.fixture
def git_source():
    """An unpinned git source tracking main."""
    return VcsSource(
        kind=VcsKind.GIT,
        url="https://github.com/example/tool.git",
        fragment_type="branch",
        fragment_value="main",
    )


@pytest.fixture
def sample_srcinfo():
    """A .SRCINFO for a split git package with arch-specific sources."""
    return """pkgbase = tool-git
\tpkgdesc = An example tool
\tpkgver = 1.2.r15.g3f2a1bc
\tpkgrel = 1
\tarch = x86_64
\tarch = aarch64
\tmakedepends = git
\tsource = tool::git+https://github.com/example/tool.git#branch=main
\tsource = extra.patch
\tsource_aarch64 = https://example.com/arm-helper.tar.gz
\tsha256sums = SKIP

pkgname = tool-git
\tdepends = glibc

pkgname = tool-git-docs
\tarch = any
"""
