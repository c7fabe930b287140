"""
Command line entry point for arch-updates.

Runs one update check and prints the snapshot, records that the news has been
read, or compares two versions the way pacman's ``vercmp`` does.
"""

import asyncio
import json
import logging
from datetime import datetime
from typing import Annotated, Optional

import typer

from src.arch_updates.collection.last_upgrade import mark_news_read, news_cutoff
from src.arch_updates.collection.update_checker import UpdateChecker
from src.arch_updates.collection.version_comparison import vercmp
from src.arch_updates.core.config import ConfigManager
from src.arch_updates.core.errors import UpdateCheckError
from src.arch_updates.core.models import UpdateSnapshot
from src.arch_updates.utils.logging_formatter import setup_logging
from src.i18n import _

logger = logging.getLogger("arch_updates.cli")

app = typer.Typer(help="Check an Arch Linux system for pending updates.")

ConfigOption = Annotated[
    Optional[str],
    typer.Option("--config", "-c", help="Path to an arch-updates.yaml file."),
]


def load_config(config_file: Optional[str]) -> ConfigManager:
    """Load configuration and set up logging, exiting with 2 on bad config."""
    try:
        config = ConfigManager(config_file)
    except (FileNotFoundError, ValueError, RuntimeError) as error:
        typer.echo(_("Error: %s") % error, err=True)
        raise typer.Exit(code=2) from error

    setup_logging(
        level=config.get_log_level(),
        log_file=config.get_log_file(),
        console=config.is_console_logging_enabled(),
    )
    return config


async def _news_since(config: ConfigManager) -> Optional[datetime]:
    try:
        return await news_cutoff(
            config.get_pacman_log_file(), config.get_news_last_read_file()
        )
    except UpdateCheckError as error:
        logger.warning(_("Showing all news: %s"), error.message)
        return None


async def _run_check(config: ConfigManager, online: bool) -> UpdateSnapshot:
    checker = UpdateChecker.from_config(config)
    since = await _news_since(config)
    return await checker.check_all(since=since, online=online)


def format_text(snapshot: UpdateSnapshot) -> str:
    """Human readable rendering of a snapshot."""
    lines = [
        _("Checked at %s (%s)")
        % (
            snapshot.checked_at.isoformat(timespec="seconds"),
            _("online") if snapshot.online else _("offline"),
        )
    ]

    def section(title, result, render):
        if not result.succeeded:
            lines.append(
                _("%s: failed (%s) %s")
                % (title, result.error_kind.value, result.error_message)
            )
            return
        lines.append(_("%s: %d") % (title, len(result)))
        lines.extend(f"  {render(item)}" for item in result.items)

    section(
        _("Official repositories"),
        snapshot.pacman,
        lambda u: f"{u.name} {u.installed_version} -> {u.candidate_version} "
        f"[{u.repository}]",
    )
    section(
        _("AUR"),
        snapshot.aur,
        lambda u: f"{u.name} {u.installed_version} -> {u.candidate_version}",
    )
    section(
        _("Devel"),
        snapshot.devel,
        lambda u: f"{u.name} {u.installed_reference} -> {u.remote_reference}",
    )
    section(
        _("News"),
        snapshot.news,
        lambda n: f"{n.published.date().isoformat()} {n.title} <{n.link}>",
    )
    return "\n".join(lines)


@app.callback(invoke_without_command=True)
def _root_callback(ctx: typer.Context) -> None:
    if ctx.invoked_subcommand is None:
        check()


@app.command("check")
def check(
    offline: Annotated[
        bool,
        typer.Option("--offline", help="Use cached data only, no network access."),
    ] = False,
    output_format: Annotated[
        str,
        typer.Option("--format", "-f", help="Output format (text or json)."),
    ] = "text",
    config_file: ConfigOption = None,
) -> None:
    """Check all update sources and print the result."""
    selected_format = output_format.lower()
    if selected_format not in ("text", "json"):
        typer.echo(_("Unknown format: %s") % output_format, err=True)
        raise typer.Exit(code=2)

    config = load_config(config_file)
    snapshot = asyncio.run(_run_check(config, online=not offline))

    if selected_format == "json":
        typer.echo(json.dumps(snapshot.to_dict(), indent=2))
    else:
        typer.echo(format_text(snapshot))


@app.command("mark-news-read")
def mark_read(config_file: ConfigOption = None) -> None:
    """Record the current time as the last time the news was read."""
    config = load_config(config_file)
    moment = asyncio.run(mark_news_read(config.get_news_last_read_file()))
    typer.echo(_("News marked as read at %s") % moment.isoformat(timespec="seconds"))


@app.command("vercmp")
def compare(version_a: str, version_b: str) -> None:
    """Print -1, 0 or 1 as VERSION_A is older, equal or newer than VERSION_B."""
    typer.echo(str(vercmp(version_a, version_b)))


def main() -> None:
    app()


if __name__ == "__main__":
    main()
