"""
Logging setup for arch-updates.

Provides a formatter that prefixes every entry with a UTC timestamp in square
brackets, and ``setup_logging()`` which wires the root logger from the
``logging`` configuration section.
"""

import datetime
import logging
import os
from typing import Optional


class UTCTimestampFormatter(logging.Formatter):
    """
    Logging formatter that adds UTC timestamps in square brackets.

    Format: [YYYY-MM-DD HH:MM:SS.sss UTC] LEVEL: message
    """

    def format(self, record):
        utc_now = datetime.datetime.fromtimestamp(
            record.created, tz=datetime.timezone.utc
        )
        timestamp = utc_now.strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
        original_message = super().format(record)
        return f"[{timestamp} UTC] {original_message}"


def parse_log_level(level_name: Optional[str]) -> int:
    """
    Convert a configured level name into a logging constant.

    Pipe-separated values ("INFO|ERROR") use the first entry; unknown names
    fall back to INFO.
    """
    if not level_name:
        return logging.INFO
    if "|" in level_name:
        level_name = level_name.split("|")[0]
    return getattr(logging, level_name.strip().upper(), logging.INFO)


def setup_logging(
    level: Optional[str] = "INFO",
    log_file: Optional[str] = None,
    console: bool = True,
) -> None:
    """
    Configure the root logger.

    Existing root handlers are removed so repeated calls (tests, CLI
    subcommands) do not double log.
    """
    log_level = parse_log_level(level)
    formatter = UTCTimestampFormatter("%(levelname)s: %(name)s: %(message)s")

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    if console or not log_file:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(log_level)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    root_logger.setLevel(log_level)
