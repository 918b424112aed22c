"""YAML configuration for hlskit.

This module loads ``hlskit.yaml`` into an :class:`HlsConfig`, expands the
path placeholders users may write in it, and persists the first-run choice of
management mode back into the file.

Example ``hlskit.yaml``::

    manage_hls: GHCup
    upgrade_ghcup: false
    server_environment:
      PATH: ${HOME}/.local/bin:$PATH
    releases_download_storage_path: ${workspaceFolder}/.hls
"""

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml

from hlskit.config.validation import (
    boolean,
    dict_of,
    obj,
    one_of,
    optional,
    string,
    validate,
)
from hlskit.core.exceptions import ConfigError
from hlskit.core.filesystem import atomic_write
from hlskit.core.platform import is_windows

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "hlskit.yaml"


class ManagementMode(Enum):
    """How the language server is obtained."""

    PATH = "PATH"  # Use whatever is already on PATH
    GHCUP = "GHCup"  # Let ghcup install everything


# Level names accepted by ``log_level``; "off" silences everything
LOG_LEVELS = {
    "off": logging.CRITICAL + 10,
    "error": logging.ERROR,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}


@dataclass
class HlsConfig:
    """Complete hlskit configuration."""

    manage_hls: Optional[ManagementMode] = None  # None: ask on first run
    ghcup_executable_path: Optional[str] = None
    server_executable_path: Optional[str] = None
    server_environment: Dict[str, str] = field(default_factory=dict)
    metadata_url: Optional[str] = None  # Passed to ghcup as -s
    releases_url: Optional[str] = None  # HLS release manifest override
    releases_download_storage_path: Optional[str] = None
    upgrade_ghcup: bool = True
    prompt_before_downloads: bool = True
    log_level: str = "info"
    log_file: Optional[str] = None


CONFIG_SCHEMA = obj(
    {
        "manage_hls": optional(one_of(*(m.value for m in ManagementMode))),
        "ghcup_executable_path": optional(string()),
        "server_executable_path": optional(string()),
        "server_environment": optional(dict_of(string())),
        "metadata_url": optional(string()),
        "releases_url": optional(string()),
        "releases_download_storage_path": optional(string()),
        "upgrade_ghcup": optional(boolean()),
        "prompt_before_downloads": optional(boolean()),
        "log_level": optional(one_of(*LOG_LEVELS)),
        "log_file": optional(string()),
    },
    strict=True,
)


def config_from_dict(data: Mapping[str, Any]) -> HlsConfig:
    """
    Build a configuration from parsed YAML.

    Args:
        data: Mapping as returned by ``yaml.safe_load``

    Returns:
        Validated configuration with defaults filled in

    Raises:
        ValidationError: Listing every invalid key
    """
    validate(data, CONFIG_SCHEMA, subject="configuration")
    defaults = HlsConfig()
    mode = data.get("manage_hls")

    def pick(key: str, default: Any) -> Any:
        value = data.get(key)
        return default if value is None else value

    return HlsConfig(
        manage_hls=ManagementMode(mode) if mode is not None else None,
        ghcup_executable_path=data.get("ghcup_executable_path") or None,
        server_executable_path=data.get("server_executable_path") or None,
        server_environment=dict(data.get("server_environment") or {}),
        metadata_url=data.get("metadata_url") or None,
        releases_url=data.get("releases_url") or None,
        releases_download_storage_path=(
            data.get("releases_download_storage_path") or None
        ),
        upgrade_ghcup=pick("upgrade_ghcup", defaults.upgrade_ghcup),
        prompt_before_downloads=pick(
            "prompt_before_downloads", defaults.prompt_before_downloads
        ),
        log_level=pick("log_level", defaults.log_level),
        log_file=data.get("log_file") or None,
    )


def _read_yaml(config_path: Path) -> Dict[str, Any]:
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML syntax in {config_path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read configuration file {config_path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration file {config_path} must contain a mapping")
    return data


def load_config(config_path: Path) -> HlsConfig:
    """
    Parse an hlskit.yaml configuration file.

    Args:
        config_path: Path to the YAML file

    Returns:
        Parsed and validated configuration

    Raises:
        ConfigError: If the file is missing or is not valid YAML
        ValidationError: If any value has the wrong type or shape
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise ConfigError(f"Configuration file not found: {config_path}")

    logger.debug(f"Loading configuration from {config_path}")
    return config_from_dict(_read_yaml(config_path))


def load_project_config(working_dir: Path) -> HlsConfig:
    """Load ``hlskit.yaml`` from ``working_dir``, or defaults if there is none."""
    config_path = Path(working_dir) / CONFIG_FILENAME
    if not config_path.exists():
        logger.debug(f"No {CONFIG_FILENAME} in {working_dir}, using defaults")
        return HlsConfig()
    return load_config(config_path)


class ConfigStore:
    """
    Writes user choices back into a configuration file.

    Only the keys being saved are touched; everything else in the file is kept.
    """

    def __init__(self, config_path: Path):
        self.config_path = Path(config_path)

    def save_management_mode(self, mode: ManagementMode) -> None:
        """Persist the management mode chosen on first run."""
        data = _read_yaml(self.config_path) if self.config_path.exists() else {}
        data["manage_hls"] = mode.value
        content = yaml.safe_dump(data, sort_keys=False, default_flow_style=False)
        atomic_write(self.config_path, content)
        logger.info(f"Saved manage_hls={mode.value} to {self.config_path}")


# ============================================================================
# Placeholder resolution
# ============================================================================


def path_separator() -> str:
    """Separator between PATH entries on this host."""
    return ";" if is_windows() else ":"


def resolve_path_placeholders(
    path: str, workspace_folder: Optional[Union[str, Path]] = None
) -> str:
    """
    Expand home and workspace placeholders in a configured path.

    Supports ``${HOME}``, ``${home}``, a leading ``~`` and, when a workspace
    folder is given, ``${workspaceFolder}`` and ``${workspaceRoot}``.
    """
    home = str(Path.home())
    path = path.replace("${HOME}", home).replace("${home}", home)
    if path.startswith("~"):
        path = home + path[1:]
    if workspace_folder is not None:
        folder = str(workspace_folder)
        path = path.replace("${workspaceFolder}", folder).replace(
            "${workspaceRoot}", folder
        )
    return path


def resolve_path_entry(entry: str) -> str:
    """Expand ``${HOME}``, ``$PATH`` and ``${PATH}`` in one PATH entry."""
    home = str(Path.home())
    inherited = os.environ.get("PATH")
    entry = entry.replace("${HOME}", home).replace("${home}", home)
    if inherited is not None:
        entry = entry.replace("${PATH}", inherited).replace("$PATH", inherited)
    return entry


def resolve_server_environment(server_environment: Mapping[str, str]) -> Dict[str, str]:
    """Return ``server_environment`` with placeholders in its PATH expanded."""
    resolved = dict(server_environment)
    if resolved.get("PATH"):
        sep = path_separator()
        resolved["PATH"] = sep.join(
            resolve_path_entry(p) for p in resolved["PATH"].split(sep)
        )
    return resolved


def prepend_path(extra: Union[str, Path], server_environment: Mapping[str, str]) -> str:
    """
    Build a PATH value with ``extra`` in front.

    The configured ``server_environment`` PATH is used when present, the
    inherited PATH otherwise.
    """
    sep = path_separator()
    configured = server_environment.get("PATH")
    if configured:
        entries = [resolve_path_entry(p) for p in configured.split(sep)]
    else:
        inherited = os.environ.get("PATH")
        entries = inherited.split(sep) if inherited else []
    return sep.join([str(extra), *entries])


__all__ = [
    "CONFIG_FILENAME",
    "CONFIG_SCHEMA",
    "ConfigStore",
    "HlsConfig",
    "LOG_LEVELS",
    "ManagementMode",
    "config_from_dict",
    "load_config",
    "load_project_config",
    "path_separator",
    "prepend_path",
    "resolve_path_entry",
    "resolve_path_placeholders",
    "resolve_server_environment",
]
