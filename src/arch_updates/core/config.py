"""
Configuration management for arch-updates.
Reads an optional YAML configuration file and provides configuration data.
"""

import logging
import os
from typing import Any, Dict, Optional

import yaml

from src.i18n import _

CONFIG_FILENAME = "arch-updates.yaml"
CONFIG_ENV_VAR = "ARCH_UPDATES_CONFIG"
SYSTEM_CONFIG = "/etc/arch-updates.yaml"


def _user_config_path() -> str:
    base = os.environ.get("XDG_CONFIG_HOME") or os.path.join(
        os.path.expanduser("~"), ".config"
    )
    return os.path.join(base, "arch-updates", CONFIG_FILENAME)


class ConfigManager:
    """Manages configuration for the update checker."""

    def __init__(self, config_file: Optional[str] = None):
        self.logger = logging.getLogger(__name__)
        self.config_file = self._determine_config_path(config_file)
        self.config_data: Dict[str, Any] = {}
        self.load_config()

    def _determine_config_path(self, config_file: Optional[str]) -> Optional[str]:
        """
        Determine configuration file path.

        Priority order:
        1. Explicit path (CLI --config, tests)
        2. $ARCH_UPDATES_CONFIG
        3. $XDG_CONFIG_HOME/arch-updates/arch-updates.yaml
        4. /etc/arch-updates.yaml
        5. ./arch-updates.yaml

        Returns None when no file exists; the defaults then apply.
        """
        if config_file:
            return config_file

        env_config = os.environ.get(CONFIG_ENV_VAR)
        if env_config:
            return env_config

        for candidate in (_user_config_path(), SYSTEM_CONFIG, f"./{CONFIG_FILENAME}"):
            if os.path.exists(candidate):
                return candidate
        return None

    def load_config(self) -> None:
        """Load configuration from YAML file."""
        if self.config_file is None:
            self.logger.debug("No configuration file found, using defaults")
            self.config_data = {}
            return

        if not os.path.exists(self.config_file):
            raise FileNotFoundError(
                _("Configuration file '%s' not found") % self.config_file
            )

        try:
            with open(self.config_file, "r", encoding="utf-8") as file:
                data = yaml.safe_load(file) or {}
        except yaml.YAMLError as e:
            raise ValueError(_("Invalid YAML in configuration file: %s") % e) from e
        except OSError as e:
            raise RuntimeError(_("Failed to load configuration file: %s") % e) from e

        if not isinstance(data, dict):
            raise ValueError(
                _("Configuration file '%s' must contain a mapping") % self.config_file
            )
        self.config_data = data

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation.

        Args:
            key_path: Dot-separated path to the key (e.g., 'aur.batch_size')
            default: Default value if key is not found

        Returns:
            Configuration value or default
        """
        keys = key_path.split(".")
        value = self.config_data

        try:
            for key in keys:
                value = value[key]
            return value
        except (KeyError, TypeError):
            return default

    def get_logging_config(self) -> Dict[str, Any]:
        """Get logging configuration section."""
        return self.get("logging", {})

    def get_log_level(self) -> str:
        return self.get("logging.level", "INFO")

    def get_log_file(self) -> Optional[str]:
        return self.get("logging.file")

    def is_console_logging_enabled(self) -> bool:
        return self.get("logging.console", True)

    def get_check_timeout(self) -> Optional[float]:
        """Per-source deadline in seconds; None disables it."""
        return self.get("checks.timeout_secs", 120)

    def get_cache_directory(self) -> Optional[str]:
        return self.get("cache.directory")

    def get_min_refresh_interval(self) -> float:
        return self.get("cache.min_refresh_interval_secs", 60)

    def get_lock_timeout(self) -> float:
        return self.get("cache.lock_timeout_secs", 60)

    def get_refresh_timeout(self) -> float:
        return self.get("cache.refresh_timeout_secs", 300)

    def should_use_fakeroot(self) -> bool:
        return self.get("cache.use_fakeroot", True)

    def get_pacman_dbpath(self) -> str:
        return self.get("pacman.dbpath", "/var/lib/pacman")

    def get_pacman_log_file(self) -> str:
        return self.get("pacman.log_file", "/var/log/pacman.log")

    def get_pacman_command_timeout(self) -> float:
        return self.get("pacman.command_timeout_secs", 30)

    def get_aur_config(self) -> Dict[str, Any]:
        """Get AUR configuration section."""
        return self.get("aur", {})

    def get_aur_rpc_url(self) -> str:
        return self.get("aur.rpc_url", "https://aur.archlinux.org/rpc/v5/info")

    def get_aur_srcinfo_url(self) -> str:
        return self.get(
            "aur.srcinfo_url", "https://aur.archlinux.org/cgit/aur.git/plain/.SRCINFO"
        )

    def get_aur_batch_size(self) -> int:
        return self.get("aur.batch_size", 100)

    def get_aur_request_timeout(self) -> float:
        return self.get("aur.request_timeout_secs", 30)

    def get_aur_max_retries(self) -> int:
        return self.get("aur.max_retries", 2)

    def get_aur_retry_backoff(self) -> float:
        return self.get("aur.retry_backoff_secs", 1.0)

    def get_max_concurrent_devel_lookups(self) -> int:
        return self.get("devel.max_concurrent_lookups", 8)

    def get_vcs_timeout(self) -> float:
        return self.get("devel.vcs_timeout_secs", 30)

    def get_architecture(self) -> Optional[str]:
        """Override for the running architecture (pacman CARCH)."""
        return self.get("devel.architecture")

    def get_news_feed_url(self) -> str:
        return self.get("news.feed_url", "https://archlinux.org/feeds/news/")

    def get_news_request_timeout(self) -> float:
        return self.get("news.request_timeout_secs", 30)

    def get_news_last_read_file(self) -> Optional[str]:
        return self.get("news.last_read_file")
