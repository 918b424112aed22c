"""
Storage directory management for hlskit.

Directory Structure:
    Storage (~/.hlskit/ or %USERPROFILE%\\.hlskit\\, or the configured
    ``releases_download_storage_path``):
        - ghcupReleases.cache.json : Last successfully fetched release metadata
        - ghcup[.exe]              : Self-installed ghcup binary
        - .ghcup/ (ghcup/ on Windows) : ghcup's own prefix for a self-installed ghcup
        - hls/<toolchain-id>/      : Isolated per-version toolchain directories
        - *.lock                   : Cross-process download locks beside their targets
"""

import os
from pathlib import Path
from typing import Optional

from hlskit.core.exceptions import HlsKitError


class DirectoryError(HlsKitError):
    """Base exception for directory-related errors."""

    pass


def get_global_storage_dir() -> Path:
    """
    Get the platform-specific default storage directory path.

    Returns:
        Path: The storage directory path.
            - Windows: %USERPROFILE%\\.hlskit
            - Linux/macOS: ~/.hlskit/

    Raises:
        DirectoryError: If USERPROFILE is not set on Windows
    """
    if os.name == "nt":
        user_profile = os.environ.get("USERPROFILE")
        if not user_profile:
            raise DirectoryError(
                "USERPROFILE environment variable is not set. "
                "Cannot determine storage directory."
            )
        return Path(user_profile) / ".hlskit"
    else:
        return Path.home() / ".hlskit"


def resolve_storage_path(configured: Optional[Path] = None) -> Path:
    """
    Return the storage directory, creating it if needed.

    Args:
        configured: Explicit storage directory (placeholders already expanded)

    Returns:
        Existing storage directory
    """
    storage = Path(configured) if configured else get_global_storage_dir()
    try:
        storage.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise DirectoryError(f"Cannot create storage directory {storage}: {e}") from e
    return storage


def get_toolchains_dir(storage_path: Path) -> Path:
    """Directory holding isolated per-version toolchains."""
    return storage_path / "hls"

