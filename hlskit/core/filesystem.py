"""
Filesystem helpers shared by the download, metadata and configuration layers.
"""

import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Mapping, Optional, Union

from hlskit.core.platform import is_windows

logger = logging.getLogger(__name__)


def executable_suffix() -> str:
    """``.exe`` on Windows, empty elsewhere."""
    return ".exe" if is_windows() else ""


def atomic_write(
    file_path: Union[str, Path], content: Union[str, bytes], encoding: str = "utf-8"
) -> None:
    """
    Write file atomically using temp file + rename.

    This ensures the file is never in a partially-written state.
    If the write fails, the original file (if any) remains unchanged.

    Args:
        file_path: Path to write to
        content: Content to write (string or bytes)
        encoding: Text encoding (used only for string content)
    """
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)

    # Create temp file in same directory (ensures same filesystem)
    temp_fd, temp_path_str = tempfile.mkstemp(
        dir=file_path.parent, prefix=f".{file_path.name}.", suffix=".tmp"
    )
    temp_path = Path(temp_path_str)

    try:
        if isinstance(content, str):
            with open(temp_fd, "w", encoding=encoding) as f:
                f.write(content)
        else:
            with open(temp_fd, "wb") as f:
                f.write(content)

        temp_path.replace(file_path)

    except Exception:
        temp_path.unlink(missing_ok=True)
        raise


def find_executable(
    name: str, env: Optional[Mapping[str, str]] = None
) -> Optional[Path]:
    """
    Find an executable on the PATH of ``env`` (or the process environment).

    Args:
        name: Executable name or path
        env: Environment whose PATH is searched

    Returns:
        Path to the executable, or None if not found
    """
    search_path = (env if env is not None else os.environ).get("PATH")
    found = shutil.which(name, path=search_path)
    if found:
        return Path(found)

    logger.debug(f"Executable not found on PATH: {name}")
    return None


def executable_exists(path: Union[str, Path]) -> bool:
    """Whether ``path`` names an existing file that can be executed."""
    path = Path(path)
    return path.is_file() and os.access(path, os.X_OK)
