"""
Classification of failed tool invocations.

The HLS wrapper and the build tools it drives report a missing dependency
only as free text on stderr. :func:`classify_failure` recognises the known
phrasings and turns them into a :class:`MissingToolError`; anything else is
left for the caller to report as a generic process failure.
"""

import re
from typing import Optional

from hlskit.core.exceptions import MissingToolError, ProcessExecutionError

_MISSING_TOOL_PATTERNS = (
    # hie-bios cradle errors
    re.compile(r"Cradle requires (.+) but couldn't find it"),
    # cabal
    re.compile(
        r"The program '([^']+)'(?: version [^ ]+)? is required "
        r"but it could not be found"
    ),
    # stack
    re.compile(r"Executable named (\w+)(?:-[\d.]+)? not found on path"),
)


def classify_failure(stderr: str) -> Optional[MissingToolError]:
    """
    Map stderr of a failed invocation onto a structured error.

    Args:
        stderr: Captured standard error

    Returns:
        MissingToolError naming the tool, or None if stderr is not recognised

    Example:
        >>> classify_failure("Cradle requires cabal but couldn't find it").tool
        'Cabal'
    """
    for pattern in _MISSING_TOOL_PATTERNS:
        match = pattern.search(stderr)
        if match:
            return MissingToolError(match.group(1).strip())
    return None


def reclassify(error: ProcessExecutionError) -> Exception:
    """Return the structured error hidden in ``error``, or ``error`` itself."""
    return classify_failure(error.stderr) or error


__all__ = ["classify_failure", "reclassify"]
