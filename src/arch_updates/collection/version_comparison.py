"""
Package version comparison following pacman's ordering rules.

Versions have the form ``[epoch:]pkgver[-pkgrel]``. The epoch is compared
numerically first (missing means 0), then pkgver, then pkgrel when both sides
have one. pkgver and pkgrel are compared segment by segment: runs of ASCII
digits or ASCII letters separated by anything else.

This must match ``vercmp(8)`` exactly, otherwise real upgrades are misreported
or silently dropped.
"""

from enum import IntEnum
from typing import Optional, Tuple


class Ordering(IntEnum):
    LESS = -1
    EQUAL = 0
    GREATER = 1


def _is_digit(char: str) -> bool:
    return "0" <= char <= "9"


def _is_alpha(char: str) -> bool:
    return "a" <= char <= "z" or "A" <= char <= "Z"


def _is_alnum(char: str) -> bool:
    return _is_digit(char) or _is_alpha(char)


def split_version(version: str) -> Tuple[str, str, Optional[str]]:
    """
    Split a full version into (epoch, pkgver, pkgrel).

    The epoch is the run of leading digits before a ':' and defaults to "0".
    pkgrel is whatever follows the last '-', or None.
    """
    index = 0
    while index < len(version) and _is_digit(version[index]):
        index += 1

    if index < len(version) and version[index] == ":":
        epoch = version[:index] or "0"
        rest = version[index + 1 :]
    else:
        epoch = "0"
        rest = version

    pkgver, separator, pkgrel = rest.rpartition("-")
    if not separator:
        return epoch, rest, None
    return epoch, pkgver, pkgrel


def _compare_segments(one: str, two: str) -> int:
    """Compare two pkgver (or pkgrel) strings segment by segment."""
    # pylint: disable=too-many-branches
    if one == two:
        return 0

    pos1 = pos2 = 0
    len1, len2 = len(one), len(two)

    while pos1 < len1 and pos2 < len2:
        start1, start2 = pos1, pos2
        while pos1 < len1 and not _is_alnum(one[pos1]):
            pos1 += 1
        while pos2 < len2 and not _is_alnum(two[pos2]):
            pos2 += 1

        if pos1 >= len1 or pos2 >= len2:
            break

        # Different separator lengths decide on their own
        if (pos1 - start1) != (pos2 - start2):
            return -1 if (pos1 - start1) < (pos2 - start2) else 1

        seg_start1, seg_start2 = pos1, pos2
        if _is_digit(one[pos1]):
            is_numeric = True
            while pos1 < len1 and _is_digit(one[pos1]):
                pos1 += 1
            while pos2 < len2 and _is_digit(two[pos2]):
                pos2 += 1
        else:
            is_numeric = False
            while pos1 < len1 and _is_alpha(one[pos1]):
                pos1 += 1
            while pos2 < len2 and _is_alpha(two[pos2]):
                pos2 += 1

        segment1 = one[seg_start1:pos1]
        segment2 = two[seg_start2:pos2]

        # Segment types differ: numeric is always newer than alpha
        if not segment2:
            return 1 if is_numeric else -1

        if is_numeric:
            segment1 = segment1.lstrip("0")
            segment2 = segment2.lstrip("0")
            if len(segment1) != len(segment2):
                return 1 if len(segment1) > len(segment2) else -1

        if segment1 != segment2:
            return -1 if segment1 < segment2 else 1

    if pos1 >= len1 and pos2 >= len2:
        return 0

    # A trailing alpha segment never beats an empty string, so 1.0a < 1.0
    # while 1.0.1 > 1.0.
    rest1 = one[pos1:]
    rest2 = two[pos2:]
    if (not rest1 and not _is_alpha(rest2[0])) or (rest1 and _is_alpha(rest1[0])):
        return -1
    return 1


def vercmp(version_a: Optional[str], version_b: Optional[str]) -> int:
    """
    Compare two package versions the way ``vercmp(8)`` does.

    Returns:
        -1 if version_a is older, 0 if equal, 1 if version_a is newer
    """
    if version_a is None and version_b is None:
        return 0
    if version_a is None:
        return -1
    if version_b is None:
        return 1
    if version_a == version_b:
        return 0

    epoch_a, pkgver_a, pkgrel_a = split_version(version_a)
    epoch_b, pkgver_b, pkgrel_b = split_version(version_b)

    result = _compare_segments(epoch_a, epoch_b)
    if result == 0:
        result = _compare_segments(pkgver_a, pkgver_b)
        if result == 0 and pkgrel_a is not None and pkgrel_b is not None:
            result = _compare_segments(pkgrel_a, pkgrel_b)
    return result


def compare_versions(version_a: str, version_b: str) -> Ordering:
    """Ordering of version_a relative to version_b."""
    return Ordering(vercmp(version_a, version_b))


def is_newer(candidate: str, installed: str) -> bool:
    """True if candidate is strictly newer than installed."""
    return vercmp(candidate, installed) > 0
