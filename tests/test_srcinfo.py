"""
Unit tests for src.arch_updates.collection.srcinfo module.
"""

from unittest.mock import patch

import pytest

from src.arch_updates.collection.srcinfo import (
    SourceDeclarations,
    current_architecture,
    parse_srcinfo,
    parse_vcs_source,
    select_vcs_source,
)
from src.arch_updates.core.errors import ParseError
from src.arch_updates.core.models import VcsKind


class TestParseSrcinfo:
    """Test cases for parse_srcinfo."""

    def test_base_fields(self, sample_srcinfo):
        """Test pkgbase, version fields and package names are read."""
        srcinfo = parse_srcinfo(sample_srcinfo)

        assert srcinfo.pkgbase == "tool-git"
        assert srcinfo.pkgver == "1.2.r15.g3f2a1bc"
        assert srcinfo.pkgrel == "1"
        assert srcinfo.epoch is None
        assert srcinfo.full_version == "1.2.r15.g3f2a1bc-1"
        assert srcinfo.pkgnames == ("tool-git", "tool-git-docs")
        assert srcinfo.arch == ("x86_64", "aarch64")

    def test_sources_keyed_by_architecture(self, sample_srcinfo):
        """Test source and source_<arch> go to separate keys."""
        sources = parse_srcinfo(sample_srcinfo).sources

        assert sources.by_arch[None] == (
            "tool::git+https://github.com/example/tool.git#branch=main",
            "extra.patch",
        )
        assert sources.by_arch["aarch64"] == (
            "https://example.com/arm-helper.tar.gz",
        )
        assert sources.architectures() == ("aarch64",)

    def test_epoch(self):
        """Test epoch is included in the full version."""
        srcinfo = parse_srcinfo(
            "pkgbase = x\n\tpkgver = 1.0\n\tpkgrel = 2\n\tepoch = 3\n"
        )
        assert srcinfo.full_version == "3:1.0-2"

    def test_package_section_cannot_add_sources(self):
        """Test source lines after a pkgname are ignored."""
        text = "pkgbase = x\n\tsource = a.tar.gz\n\npkgname = x\n\tsource = b.tar.gz\n"
        assert parse_srcinfo(text).sources.by_arch[None] == ("a.tar.gz",)

    def test_missing_pkgbase(self):
        """Test a .SRCINFO without pkgbase is a parse error."""
        with pytest.raises(ParseError):
            parse_srcinfo("pkgname = orphan\n\tpkgver = 1\n")

    def test_malformed_line(self):
        """Test a line without '=' is a parse error."""
        with pytest.raises(ParseError):
            parse_srcinfo("pkgbase = x\n<html>not found</html>\n")


class TestSourceDeclarations:
    """Test cases for SourceDeclarations.resolve."""

    def test_arch_specific_first(self):
        """Test arch-specific entries precede architecture-independent ones."""
        declarations = SourceDeclarations(
            {None: ("common.tar.gz",), "x86_64": ("x86.bin",), "aarch64": ("arm.bin",)}
        )
        assert declarations.resolve("x86_64") == ("x86.bin", "common.tar.gz")
        assert declarations.resolve("riscv64") == ("common.tar.gz",)

    def test_empty(self):
        """Test no declarations resolve to nothing."""
        assert SourceDeclarations().resolve("x86_64") == ()


class TestParseVcsSource:
    """Test cases for parse_vcs_source."""

    def test_named_git_source_with_branch(self):
        """Test the name:: prefix, git+https and branch fragment."""
        source = parse_vcs_source(
            "paper-icon-theme::git+https://github.com/snwh/paper-icon-theme.git"
            "#branch=main"
        )
        assert source.kind is VcsKind.GIT
        assert source.url == "https://github.com/snwh/paper-icon-theme.git"
        assert source.branch == "main"
        assert not source.pinned

    def test_plain_git_protocol(self):
        """Test git:// URLs keep the git transport."""
        source = parse_vcs_source("git://anongit.example.org/repo.git")
        assert source.kind is VcsKind.GIT
        assert source.url == "git://anongit.example.org/repo.git"
        assert source.branch is None

    def test_query_is_stripped(self):
        """Test ?signed and similar query strings are removed."""
        source = parse_vcs_source("git+https://example.org/repo.git?signed#tag=v1.0")
        assert source.url == "https://example.org/repo.git"
        assert source.fragment_type == "tag"
        assert source.pinned

    @pytest.mark.parametrize("fragment", ["commit=abc1234", "tag=v2", "revision=42"])
    def test_pinned_fragments(self, fragment):
        """Test commit, tag and revision fragments pin the source."""
        assert parse_vcs_source(f"git+https://example.org/r.git#{fragment}").pinned

    def test_other_vcs_kinds(self):
        """Test svn, hg and bzr sources are recognised."""
        assert parse_vcs_source("svn+https://svn.example.org/trunk").kind is VcsKind.SVN
        assert parse_vcs_source("hg+https://hg.example.org/repo").kind is VcsKind.HG
        assert parse_vcs_source("bzr+lp:project") is None
        assert parse_vcs_source("bzr+http://bzr.example.org/t").kind is VcsKind.BZR

    @pytest.mark.parametrize(
        "entry",
        [
            "https://example.org/release-1.0.tar.gz",
            "local.patch",
            "paper-icon-themegit:gopher://github.com/snwh/paper-icon-theme.git",
            "ftp://example.org/file.tar.xz",
        ],
    )
    def test_non_vcs_sources(self, entry):
        """Test plain downloads and local files are not VCS sources."""
        assert parse_vcs_source(entry) is None


class TestSelectVcsSource:
    """Test cases for select_vcs_source."""

    def test_first_unpinned_matching_kind(self, sample_srcinfo):
        """Test the package's git source is selected."""
        source = select_vcs_source(parse_srcinfo(sample_srcinfo), VcsKind.GIT, "x86_64")
        assert source.url == "https://github.com/example/tool.git"

    def test_pinned_sources_skipped(self):
        """Test a pinned source is passed over for an unpinned one."""
        srcinfo = parse_srcinfo(
            "pkgbase = x-git\n"
            "\tsource = dep::git+https://example.org/dep.git#commit=abc1234\n"
            "\tsource = x::git+https://example.org/x.git\n"
        )
        source = select_vcs_source(srcinfo, VcsKind.GIT, "x86_64")
        assert source.url == "https://example.org/x.git"

    def test_arch_specific_source_preferred(self):
        """Test an arch-specific VCS source wins over the shared one."""
        srcinfo = parse_srcinfo(
            "pkgbase = x-git\n"
            "\tsource = git+https://example.org/generic.git\n"
            "\tsource_aarch64 = git+https://example.org/arm.git\n"
        )
        assert select_vcs_source(srcinfo, VcsKind.GIT, "aarch64").url.endswith(
            "arm.git"
        )
        assert select_vcs_source(srcinfo, VcsKind.GIT, "x86_64").url.endswith(
            "generic.git"
        )

    def test_no_matching_kind(self, sample_srcinfo):
        """Test a kind without sources yields None."""
        srcinfo = parse_srcinfo(sample_srcinfo)
        assert select_vcs_source(srcinfo, VcsKind.HG, "x86_64") is None


class TestCurrentArchitecture:
    """Test cases for current_architecture."""

    @pytest.mark.parametrize(
        "machine,expected",
        [("x86_64", "x86_64"), ("arm64", "aarch64"), ("armv7l", "armv7h")],
    )
    def test_machine_aliases(self, machine, expected):
        """Test platform names are mapped to pacman architectures."""
        with patch("platform.machine", return_value=machine):
            assert current_architecture() == expected
