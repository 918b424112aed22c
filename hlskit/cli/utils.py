"""
Shared utilities for CLI commands.

Provides configuration loading, the console implementation of the
:class:`~hlskit.core.interfaces.UserInterface` and consistent output helpers.
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Tuple

from hlskit.config.settings import (
    CONFIG_FILENAME,
    LOG_LEVELS,
    ConfigStore,
    HlsConfig,
    ManagementMode,
    load_config,
    load_project_config,
    resolve_path_placeholders,
)
from hlskit.core.directory import resolve_storage_path
from hlskit.core.interfaces import UserInterface

logger = logging.getLogger(__name__)


# ============================================================================
# Configuration Management
# ============================================================================


def resolve_project_root(path: Optional[Path] = None) -> Path:
    """Absolute project root, defaulting to the current directory."""
    return Path(path).resolve() if path else Path.cwd()


def config_path_for(args) -> Path:
    """Configuration file named by ``--config``, else ``<project>/hlskit.yaml``."""
    if getattr(args, "config", None):
        return Path(args.config)
    return resolve_project_root(getattr(args, "project_root", None)) / CONFIG_FILENAME


def load_cli_config(args) -> HlsConfig:
    """
    Load the configuration for a CLI invocation.

    An explicit ``--config`` must exist; the project's ``hlskit.yaml`` is optional.
    The configured log level and log file are applied unless ``--verbose`` or
    ``--quiet`` was given.

    Raises:
        ConfigError: If the file cannot be read
        ValidationError: If any value is invalid
    """
    if getattr(args, "config", None):
        config = load_config(Path(args.config))
    else:
        config = load_project_config(
            resolve_project_root(getattr(args, "project_root", None))
        )
    apply_logging_config(config, args)
    return config


def apply_logging_config(config: HlsConfig, args) -> None:
    """Apply ``log_level`` and ``log_file`` from the configuration."""
    root = logging.getLogger()
    if not (getattr(args, "verbose", False) or getattr(args, "quiet", False)):
        root.setLevel(LOG_LEVELS.get(config.log_level, logging.INFO))

    if config.log_file:
        log_path = Path(
            resolve_path_placeholders(
                config.log_file, resolve_project_root(getattr(args, "project_root", None))
            )
        )
        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            handler = logging.FileHandler(log_path, encoding="utf-8")
        except OSError as e:
            # Failing to log is never fatal
            logger.warning(f"Cannot write log file {log_path}: {e}")
            return
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s")
        )
        root.addHandler(handler)
        logger.info(f"Writing client log to file {log_path}")


def storage_path_for(config: HlsConfig, args) -> Path:
    """Storage directory from ``--storage-path``, the configuration or the default."""
    configured = getattr(args, "storage_path", None)
    if configured is None and config.releases_download_storage_path:
        configured = Path(
            resolve_path_placeholders(
                config.releases_download_storage_path,
                resolve_project_root(getattr(args, "project_root", None)),
            )
        )
    return resolve_storage_path(configured)


def config_store_for(args) -> ConfigStore:
    """Store writing first-run choices into the active configuration file."""
    return ConfigStore(config_path_for(args))


# ============================================================================
# Output
# ============================================================================


def print_error(message: str, details: Optional[str] = None):
    """
    Print error message to stderr in consistent format.

    Args:
        message: Main error message
        details: Optional additional details
    """
    print(f"ERROR: {message}", file=sys.stderr)
    if details:
        print(f"  {details}", file=sys.stderr)


def print_warning(message: str):
    """Print warning message to stderr."""
    print(f"WARNING: {message}", file=sys.stderr)


def safe_print(message: str, file=None):
    """
    Print message with safe encoding handling for Windows console.

    Falls back to ASCII-safe characters if the console cannot encode them.

    Args:
        message: Message to print
        file: Output file (default: stdout)
    """
    try:
        print(message, file=file)
    except UnicodeEncodeError:
        safe_message = message.replace("✓", "[OK]").replace("✗", "[X]")
        print(safe_message.encode("ascii", "replace").decode("ascii"), file=file)


# ============================================================================
# Console user interface
# ============================================================================


_MODE_CHOICES: Tuple[Tuple[str, ManagementMode], ...] = (
    ("Automatically via GHCup", ManagementMode.GHCUP),
    ("Manually via PATH", ManagementMode.PATH),
)


class ConsoleInterface(UserInterface):
    """
    UserInterface prompting on stdin.

    Args:
        assume_yes: Answer every confirmation with yes without asking
    """

    def __init__(self, assume_yes: bool = False, input_func=input):
        self.assume_yes = assume_yes
        self._input = input_func

    def choose_management_mode(self) -> Optional[ManagementMode]:
        print("How do you want hlskit to manage/discover HLS and the relevant toolchain?")
        for index, (label, _) in enumerate(_MODE_CHOICES, start=1):
            print(f"  {index}) {label}")
        try:
            answer = self._input("Choice [1]: ").strip() or "1"
        except EOFError:
            return None
        if answer.isdigit() and 1 <= int(answer) <= len(_MODE_CHOICES):
            return _MODE_CHOICES[int(answer) - 1][1]
        return None

    def confirm(
        self, message: str, accept_label: str = "Yes", decline_label: str = "No"
    ) -> bool:
        if self.assume_yes:
            logger.info(f"{message} -> {accept_label}")
            return True
        try:
            answer = self._input(f"{message} [{accept_label}/{decline_label}]: ")
        except EOFError:
            return False
        return answer.strip().lower() in ("y", "yes", accept_label.lower())

    def show_warning(self, message: str) -> None:
        logger.debug(f"Warning shown: {message}")
        print_warning(message)

    def show_error(self, message: str, link: Optional[str] = None) -> None:
        print_error(message, f"See {link}" if link else None)

    def report_progress(self, title: str, percentage: Optional[float]) -> None:
        if percentage is None:
            safe_print(f"{title}...", file=sys.stderr)
        else:
            logger.debug(f"{title}: {percentage:.0f}%")
