"""
Cross-process download locking for hlskit.

The in-memory in-flight registry in :mod:`hlskit.core.download` coalesces
downloads within one process. This module adds a file lock per destination
so that two hlskit processes (e.g. two editor windows) never write the same
file concurrently.

Usage:
    from hlskit.core.locking import download_lock

    with download_lock(destination, timeout=300):
        if not destination.exists():
            transfer(url, destination)
"""

import logging
from contextlib import contextmanager
from pathlib import Path

from filelock import FileLock, Timeout as LockTimeout

logger = logging.getLogger(__name__)


def lock_path_for(destination: Path) -> Path:
    """Lock file guarding ``destination``."""
    return destination.with_name(destination.name + ".lock")


@contextmanager
def download_lock(destination: Path, timeout: int = 300):
    """
    Acquire the lock for a download destination.

    Args:
        destination: Final path of the downloaded file
        timeout: Maximum wait time in seconds (default: 300 for long downloads)

    Yields:
        None

    Raises:
        LockTimeout: If lock can't be acquired within timeout
    """
    lock_path = lock_path_for(Path(destination))
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    lock = FileLock(lock_path, timeout=timeout)

    try:
        with lock:
            logger.debug(f"Acquired download lock: {lock_path}")
            yield
            logger.debug(f"Released download lock: {lock_path}")
    except LockTimeout:
        logger.error(
            f"Could not acquire download lock for {destination} after {timeout}s. "
            "Another process may be downloading this file."
        )
        raise


__all__ = ["download_lock", "lock_path_for", "LockTimeout"]
