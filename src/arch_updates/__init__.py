"""
Update detection for Arch Linux systems.

The engine entry points are ``UpdateChecker.refresh()`` in
``src.arch_updates.collection.update_checker`` and ``compare_versions()``.
"""

from src.arch_updates.collection.version_comparison import (
    Ordering,
    compare_versions,
    vercmp,
)

__all__ = ["Ordering", "compare_versions", "vercmp"]
