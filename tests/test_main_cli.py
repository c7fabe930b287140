"""
Tests for the arch-updates command line interface in main.py.
"""

# pylint: disable=redefined-outer-name,unused-argument

import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock, Mock, patch

import pytest
from typer.testing import CliRunner

from main import app, format_text
from src.arch_updates.core.errors import NotFoundError
from src.arch_updates.core.models import (
    CheckResult,
    ErrorKind,
    NewsItem,
    PacmanUpdate,
    UpdateSnapshot,
)

SNAPSHOT = UpdateSnapshot(
    checked_at=datetime(2024, 9, 15, 8, 0, tzinfo=timezone.utc),
    pacman=CheckResult.success([PacmanUpdate("linux", "6.12.0-1", "6.12.0-2", "core")]),
    aur=CheckResult.failure(ErrorKind.TRANSPORT, "AUR unreachable"),
    devel=CheckResult.success([]),
    news=CheckResult.success(
        [
            NewsItem(
                title="Manual intervention required",
                link="https://archlinux.org/news/manual-intervention/",
                published=datetime(2024, 9, 14, 12, 0, tzinfo=timezone.utc),
            )
        ]
    ),
)


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def config_file(tmp_path):
    """An empty configuration file."""
    path = tmp_path / "arch-updates.yaml"
    path.write_text("{}\n")
    return str(path)


@pytest.fixture
def mock_checker():
    """Patch the engine so no real check runs."""
    checker = Mock()
    checker.check_all = AsyncMock(return_value=SNAPSHOT)
    with patch("main.setup_logging"), patch(
        "main.news_cutoff", new=AsyncMock(side_effect=NotFoundError("no log"))
    ), patch("main.UpdateChecker.from_config", return_value=checker):
        yield checker


class TestFormatText:
    """Tests for format_text."""

    def test_sections(self):
        """Test every source gets a section and failures are shown."""
        text = format_text(SNAPSHOT)

        assert "Official repositories: 1" in text
        assert "  linux 6.12.0-1 -> 6.12.0-2 [core]" in text
        assert "AUR: failed (transport) AUR unreachable" in text
        assert "Devel: 0" in text
        assert "2024-09-14 Manual intervention required" in text


class TestCheckCommand:
    """Tests for the check command."""

    def test_text_output(self, runner, config_file, mock_checker):
        """Test the default output is the text rendering."""
        result = runner.invoke(app, ["check", "--config", config_file])

        assert result.exit_code == 0
        assert "Official repositories: 1" in result.output
        mock_checker.check_all.assert_awaited_once_with(since=None, online=True)

    def test_json_output(self, runner, config_file, mock_checker):
        """Test --format json prints the snapshot as JSON."""
        result = runner.invoke(app, ["check", "-c", config_file, "--format", "json"])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["pacman"]["ok"] is True
        assert data["pacman"]["items"][0]["candidate_version"] == "6.12.0-2"
        assert data["aur"] == {
            "ok": False,
            "error": {"kind": "transport", "message": "AUR unreachable"},
        }

    def test_offline(self, runner, config_file, mock_checker):
        """Test --offline disables network access."""
        result = runner.invoke(app, ["check", "-c", config_file, "--offline"])

        assert result.exit_code == 0
        mock_checker.check_all.assert_awaited_once_with(since=None, online=False)

    def test_news_cutoff_passed(self, runner, config_file, mock_checker):
        """Test the last upgrade time becomes the news cutoff."""
        cutoff = datetime(2024, 9, 10, tzinfo=timezone.utc)
        with patch("main.news_cutoff", new=AsyncMock(return_value=cutoff)):
            result = runner.invoke(app, ["check", "-c", config_file])

        assert result.exit_code == 0
        mock_checker.check_all.assert_awaited_once_with(since=cutoff, online=True)

    def test_unknown_format(self, runner, config_file, mock_checker):
        """Test an unknown output format is a usage error."""
        result = runner.invoke(app, ["check", "-c", config_file, "-f", "xml"])

        assert result.exit_code == 2
        mock_checker.check_all.assert_not_awaited()

    def test_missing_config(self, runner, tmp_path, mock_checker):
        """Test a missing configuration file exits with status 2."""
        result = runner.invoke(app, ["check", "-c", str(tmp_path / "none.yaml")])
        assert result.exit_code == 2

    def test_no_subcommand_runs_check(self, runner, mock_checker, monkeypatch):
        """Test running without a subcommand performs a check."""
        monkeypatch.setattr("main.ConfigManager", Mock(return_value=Mock()))
        result = runner.invoke(app, [])

        assert result.exit_code == 0
        mock_checker.check_all.assert_awaited_once()


class TestMarkNewsReadCommand:
    """Tests for the mark-news-read command."""

    def test_records_mark(self, runner, tmp_path, mock_checker):
        """Test the last-read file is written."""
        read_path = tmp_path / "last_read"
        config_path = tmp_path / "arch-updates.yaml"
        config_path.write_text(f"news:\n  last_read_file: {read_path}\n")

        result = runner.invoke(app, ["mark-news-read", "-c", str(config_path)])

        assert result.exit_code == 0
        assert "News marked as read" in result.output
        assert read_path.read_text().strip()


class TestVercmpCommand:
    """Tests for the vercmp command."""

    @pytest.mark.parametrize(
        "version_a,version_b,expected",
        [
            ("1.0-1", "1.0-2", "-1"),
            ("1:1.0", "2.0", "1"),
            ("1.0a", "1.0alpha", "-1"),
            ("2.0", "2.0", "0"),
        ],
    )
    def test_vercmp(self, runner, version_a, version_b, expected):
        """Test the comparison result is printed."""
        result = runner.invoke(app, ["vercmp", version_a, version_b])

        assert result.exit_code == 0
        assert result.output.strip() == expected
