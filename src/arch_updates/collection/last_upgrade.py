"""
When did the user last catch up with the news?

Two signals are combined: the last "starting full system upgrade" line in
pacman.log, and a small file recording when the user last marked the news as
read. The later of the two is the cutoff for news items.
"""

import asyncio
import logging
import os
import re
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

from src.arch_updates.core.async_utils import read_file_async, write_file_atomic
from src.arch_updates.core.errors import NotFoundError, ParseError, UpdateCheckError
from src.i18n import _

logger = logging.getLogger(__name__)

PACMAN_LOG_PATH = "/var/log/pacman.log"
FULL_UPGRADE_MARKER = "starting full system upgrade"

_TIMESTAMP = re.compile(r"^\[([^\]]+)\]")

# pacman >= 5.2 logs ISO 8601 with offset, older versions local minutes
_LOG_FORMATS = ("%Y-%m-%dT%H:%M:%S%z", "%Y-%m-%d %H:%M")


def default_last_read_path() -> Path:
    base = os.environ.get("XDG_DATA_HOME") or os.path.join(
        os.path.expanduser("~"), ".local", "share"
    )
    return Path(base) / "arch-updates" / "last_read"


def parse_log_timestamp(text: str) -> datetime:
    """Timezone-aware datetime from a pacman.log timestamp."""
    for fmt in _LOG_FORMATS:
        try:
            moment = datetime.strptime(text, fmt)
        except ValueError:
            continue
        return moment if moment.tzinfo else moment.astimezone()
    raise ParseError(_("Unrecognised pacman log timestamp: %s") % text)


def find_last_full_upgrade(log_text: str) -> datetime:
    last_line = None
    for line in log_text.splitlines():
        if FULL_UPGRADE_MARKER in line:
            last_line = line
    if last_line is None:
        raise NotFoundError(_("No full system upgrade recorded in pacman log"))
    match = _TIMESTAMP.match(last_line)
    if not match:
        raise ParseError(_("Pacman log line has no timestamp: %s") % last_line)
    return parse_log_timestamp(match.group(1))


async def latest_full_upgrade(log_path: Union[str, Path] = PACMAN_LOG_PATH) -> datetime:
    try:
        log_text = await read_file_async(str(log_path))
    except OSError as error:
        raise NotFoundError(
            _("Unable to read pacman log %s: %s") % (log_path, error)
        ) from error
    return find_last_full_upgrade(log_text)


async def read_last_read(path: Optional[Union[str, Path]] = None) -> datetime:
    path = Path(path) if path else default_last_read_path()
    try:
        content = await read_file_async(str(path))
    except OSError as error:
        raise NotFoundError(
            _("Unable to read news last-read file %s: %s") % (path, error)
        ) from error
    try:
        moment = datetime.fromisoformat(content.strip())
    except ValueError as error:
        raise ParseError(
            _("Corrupt news last-read file %s: %s") % (path, error)
        ) from error
    return moment if moment.tzinfo else moment.astimezone()


async def write_last_read(
    moment: datetime, path: Optional[Union[str, Path]] = None
) -> Path:
    path = Path(path) if path else default_last_read_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    await write_file_atomic(str(path), moment.isoformat() + "\n")
    logger.debug("Recorded news last read at %s in %s", moment.isoformat(), path)
    return path


async def mark_news_read(
    path: Optional[Union[str, Path]] = None, now: Optional[datetime] = None
) -> datetime:
    """Record that the user has read all news up to now."""
    moment = now or datetime.now().astimezone()
    await write_last_read(moment, path)
    return moment


async def news_cutoff(
    log_path: Union[str, Path] = PACMAN_LOG_PATH,
    last_read_path: Optional[Union[str, Path]] = None,
) -> datetime:
    """
    The later of the last full upgrade and the last-read mark.

    Either signal may be missing; only when both are unavailable does this
    raise.
    """
    results = await asyncio.gather(
        latest_full_upgrade(log_path),
        read_last_read(last_read_path),
        return_exceptions=True,
    )
    moments = []
    errors = []
    for result in results:
        if isinstance(result, UpdateCheckError):
            errors.append(result)
        elif isinstance(result, BaseException):
            raise result
        else:
            moments.append(result)

    if not moments:
        raise NotFoundError(
            _("Unable to determine last update: %s")
            % "; ".join(error.message for error in errors)
        )
    for error in errors:
        logger.debug("Falling back after: %s", error.message)
    return max(moments)
