"""
PVP-style version comparison.

Versions are dot-separated sequences of non-negative integers. Comparison walks
both sequences segment by segment; when one side runs out of segments while
the other still has a number, the longer one wins (``1.2.0 > 1.2``). A segment
that is not a plain run of digits counts as absent.

Example:
    >>> compare_pvp("1.2.0", "1.2")
    1
    >>> latest_version(["1.8.0.0", "1.9.0.0", "1.10.0.0"])
    '1.10.0.0'
"""

import functools
import re
from typing import Iterable, List, Optional

_DIGITS = re.compile(r"[0-9]+")


def _segment(parts: List[str], index: int) -> Optional[int]:
    """Integer value of ``parts[index]``, or None unless it is all digits."""
    if index >= len(parts) or not _DIGITS.fullmatch(parts[index]):
        return None
    return int(parts[index])


def compare_pvp(left: str, right: str) -> int:
    """
    Compare two PVP version strings.

    Args:
        left: First version
        right: Second version

    Returns:
        ``1`` if left is newer, ``-1`` if right is newer, ``0`` if equal
    """
    al = left.split(".")
    ar = right.split(".")

    for i in range(max(len(al), len(ar))):
        el = _segment(al, i)
        er = _segment(ar, i)

        if el is None and er is None:
            break
        if er is None:
            return 1
        if el is None:
            return -1
        if el > er:
            return 1
        if el < er:
            return -1

    return 0


pvp_key = functools.cmp_to_key(compare_pvp)
"""Sort key for ``sorted(versions, key=pvp_key)``."""


def sort_versions(versions: Iterable[str]) -> List[str]:
    """Return versions sorted ascending by :func:`compare_pvp`."""
    return sorted(versions, key=pvp_key)


def latest_version(versions: Iterable[str]) -> Optional[str]:
    """Return the newest version, or None for an empty input."""
    ordered = sort_versions(versions)
    return ordered[-1] if ordered else None
