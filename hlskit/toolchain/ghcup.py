"""
ghcup integration.

:class:`GHCup` wraps the ghcup command line. Every call runs through
:class:`~hlskit.core.process.ProcessRunner` with ``--no-verbose``, the
configured metadata URL (``-s``) and ``NO_COLOR=1``, and the text output of
``ghcup list -r`` is parsed into :class:`ToolInfo` records.

ghcup prints list output sorted ascending, so the last line is taken as the
latest version. The order is not re-checked with :func:`compare_pvp`.

Usage:
    from hlskit.toolchain.ghcup import GHCup, ToolKind, find_ghcup

    ghcup = GHCup(find_ghcup(config), ProcessRunner())
    hls = ghcup.find_latest_user_installed_tool(ToolKind.HLS)
"""

import logging
import os
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, FrozenSet, List, Mapping, Optional, Sequence

from hlskit.config.settings import HlsConfig, resolve_path_placeholders
from hlskit.core.exceptions import (
    ConfigError,
    MissingToolError,
    PackageManagerInternalError,
)
from hlskit.core.filesystem import executable_exists, executable_suffix, find_executable
from hlskit.core.platform import Arch, Platform, is_windows
from hlskit.core.process import CancellationToken, ProcessResult, ProcessRunner

logger = logging.getLogger(__name__)

GHCUP_DOWNLOAD_URL = "https://downloads.haskell.org/~ghcup/{arch}-{platform}-ghcup{exe}"

# haskell-language-server-<ghc>~<hls>[.exe] in ghcup's bin directory
_HLS_BINARY_PATTERN = re.compile(
    r"^haskell-language-server-([^~]+)~([0-9]+(?:\.[0-9]+)*)(?:\.exe)?$"
)


class ToolKind(Enum):
    """Tools ghcup manages for us."""

    GHC = "ghc"
    CABAL = "cabal"
    STACK = "stack"
    HLS = "hls"


class ListCategory(Enum):
    """Filters accepted by ``ghcup list -c``."""

    INSTALLED = "installed"
    AVAILABLE = "available"
    SET = "set"


# Order of the tool flags passed to ``ghcup run``
RUN_ORDER = (ToolKind.HLS, ToolKind.GHC, ToolKind.CABAL, ToolKind.STACK)


@dataclass(frozen=True)
class ToolInfo:
    """One line of ``ghcup list`` output."""

    kind: ToolKind
    version: str
    tags: FrozenSet[str] = field(default_factory=frozenset)

    def has_tag(self, tag: str) -> bool:
        return tag in self.tags


def parse_list_output(kind: ToolKind, output: str) -> List[ToolInfo]:
    """
    Parse ``ghcup list -t <kind> -c <category> -r`` output.

    Columns are whitespace separated: a status marker, the version, and
    comma-separated tags. Lines without a version column are skipped.

    Args:
        kind: Tool the listing was requested for
        output: Raw standard output

    Returns:
        ToolInfo per line, in output order
    """
    tools = []
    for line in output.splitlines():
        columns = line.split()
        if len(columns) < 2:
            continue
        tags = frozenset()
        if len(columns) > 2:
            tags = frozenset(t for t in columns[2].split(",") if t)
        tools.append(ToolInfo(kind=kind, version=columns[1], tags=tags))
    return tools


def hls_wrapper_path(bindir: Path) -> Path:
    """HLS wrapper inside a directory created by :meth:`GHCup.run`."""
    return Path(bindir) / f"haskell-language-server-wrapper{executable_suffix()}"


def ghcup_download_url(platform: Platform, arch: Arch) -> str:
    """URL of the pre-built ghcup binary for a host."""
    return GHCUP_DOWNLOAD_URL.format(
        arch=arch.ghcup_label(),
        platform=platform.ghcup_label(),
        exe=".exe" if platform is Platform.WINDOWS else "",
    )


def well_known_ghcup_location(env: Optional[Mapping[str, str]] = None) -> Path:
    """
    Where the ghcup installer puts ghcup on this host.

    Args:
        env: Environment to read ``GHCUP_*``/``XDG_BIN_HOME`` from

    Returns:
        Expected ghcup path (which may not exist)
    """
    env = env if env is not None else os.environ
    prefix = env.get("GHCUP_INSTALL_BASE_PREFIX")

    if is_windows():
        if prefix:
            return Path(prefix) / "ghcup" / "bin" / "ghcup.exe"
        return Path("C:\\") / "ghcup" / "bin" / "ghcup.exe"

    if env.get("GHCUP_USE_XDG_DIRS"):
        xdg_bin = env.get("XDG_BIN_HOME")
        if xdg_bin:
            return Path(xdg_bin) / "ghcup"
        return Path.home() / ".local" / "bin" / "ghcup"

    if prefix:
        return Path(prefix) / ".ghcup" / "bin" / "ghcup"
    return Path.home() / ".ghcup" / "bin" / "ghcup"


def find_ghcup(
    config: HlsConfig,
    workspace_folder: Optional[Path] = None,
    env: Optional[Mapping[str, str]] = None,
) -> Path:
    """
    Locate the ghcup executable.

    Search order:
    1. ``ghcup_executable_path`` from the configuration (placeholders expanded)
    2. ``ghcup`` on PATH
    3. The installer's well-known location for this host

    Args:
        config: Configuration
        workspace_folder: Folder substituted for ``${workspaceFolder}``
        env: Environment whose PATH is searched

    Returns:
        Path to ghcup

    Raises:
        ConfigError: If the configured path does not point at an executable
        MissingToolError: If ghcup is not found anywhere
    """
    logger.info("Checking for ghcup installation")

    if config.ghcup_executable_path:
        logger.info(
            f"Trying to find the ghcup executable in: {config.ghcup_executable_path}"
        )
        exe_path = resolve_path_placeholders(
            config.ghcup_executable_path, workspace_folder
        )
        logger.debug(f"Location after path variables substitution: {exe_path}")
        if executable_exists(exe_path):
            return Path(exe_path)
        found = find_executable(exe_path, env)
        if found:
            return found
        raise ConfigError(f"Could not find a ghcup binary at {exe_path}!")

    on_path = find_executable("ghcup", env)
    if on_path:
        logger.info(f"Found ghcup at {on_path}")
        return on_path

    logger.info("Probing for GHCup binary")
    well_known = well_known_ghcup_location(env)
    if executable_exists(well_known):
        logger.info(f"Found ghcup at {well_known}")
        return well_known

    logger.warning(f"ghcup at {well_known} does not exist")
    raise MissingToolError("ghcup")


class GHCup:
    """
    Typed access to a ghcup executable.

    Args:
        executable: Path to ghcup
        runner: Process runner used for every invocation
        metadata_url: Alternative ghcup metadata passed as ``-s``
        upgrade_enabled: Whether :meth:`upgrade` actually upgrades
        base_prefix: ``GHCUP_INSTALL_BASE_PREFIX`` for a self-installed ghcup
    """

    def __init__(
        self,
        executable: Path,
        runner: ProcessRunner,
        metadata_url: Optional[str] = None,
        upgrade_enabled: bool = True,
        base_prefix: Optional[Path] = None,
    ):
        self.executable = Path(executable)
        self.runner = runner
        self.metadata_url = metadata_url
        self.upgrade_enabled = upgrade_enabled
        self.base_prefix = base_prefix

    def _arguments(self, args: Sequence[str]) -> List[str]:
        prefix = ["--no-verbose"]
        if self.metadata_url:
            prefix += ["-s", self.metadata_url]
        return prefix + list(args)

    def _environment(self) -> Dict[str, str]:
        # Colour codes make the logs unreadable
        env = {"NO_COLOR": "1"}
        if self.base_prefix is not None:
            env["GHCUP_INSTALL_BASE_PREFIX"] = str(self.base_prefix)
        return env

    def execute(
        self,
        args: Sequence[str],
        title: Optional[str] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> ProcessResult:
        """Run ghcup and return the result whatever the exit status."""
        return self.runner.execute(
            self.executable,
            self._arguments(args),
            env=self._environment(),
            title=title,
            cancellation=cancellation,
        )

    def call(
        self,
        args: Sequence[str],
        title: Optional[str] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> str:
        """
        Run ghcup and return its trimmed standard output.

        Raises:
            ProcessExecutionError: If ghcup fails
        """
        return self.runner.run(
            self.executable,
            self._arguments(args),
            env=self._environment(),
            title=title,
            cancellation=cancellation,
        )

    def upgrade(self, cancellation: Optional[CancellationToken] = None) -> bool:
        """
        Upgrade ghcup itself if upgrades are enabled.

        Returns:
            True if an upgrade was run
        """
        if not self.upgrade_enabled:
            logger.debug("ghcup upgrade disabled by configuration")
            return False
        self.call(["upgrade"], title="Upgrading ghcup", cancellation=cancellation)
        return True

    def list_tool(self, kind: ToolKind, category: ListCategory) -> List[ToolInfo]:
        """List versions of ``kind`` in ``category``, in ghcup's order."""
        output = self.call(["list", "-t", kind.value, "-c", category.value, "-r"])
        return parse_list_output(kind, output)

    def get_set_version(self, kind: ToolKind) -> Optional[str]:
        """Version currently set as default, or None."""
        tools = self.list_tool(kind, ListCategory.SET)
        return tools[-1].version if tools else None

    def get_latest_available_version(
        self,
        kind: ToolKind,
        tag: str = "latest",
        category: ListCategory = ListCategory.AVAILABLE,
    ) -> str:
        """
        Last listed version carrying ``tag``.

        Raises:
            PackageManagerInternalError: If no version carries the tag
        """
        latest = None
        for tool in self.list_tool(kind, category):
            if tool.has_tag(tag):
                latest = tool.version
        if latest is None:
            raise PackageManagerInternalError(f"Unable to find {tag} tool {kind.value}")
        return latest

    def get_any_latest_version(self, kind: ToolKind) -> str:
        """
        Latest installed version, else the available version tagged ``latest``.

        Installed versions are tried first since they may be custom or
        locally compiled builds.
        """
        installed = self.list_tool(kind, ListCategory.INSTALLED)
        if installed:
            return installed[-1].version
        return self.get_latest_available_version(kind, "latest")

    def find_latest_user_installed_tool(self, kind: ToolKind) -> str:
        """
        The version of ``kind`` the user most likely wants.

        Tries the set version, then :meth:`get_any_latest_version`.

        Raises:
            PackageManagerInternalError: If ghcup knows no usable version
        """
        set_version = self.get_set_version(kind)
        if set_version is not None:
            logger.info(f"Using set {kind.value} version {set_version}")
            return set_version
        try:
            version = self.get_any_latest_version(kind)
        except PackageManagerInternalError as e:
            raise PackageManagerInternalError(
                f"ghcup reports no set, installed or available version "
                f"of {kind.value}: {e}"
            ) from e
        logger.info(f"Using latest {kind.value} version {version}")
        return version

    def is_installed(self, kind: ToolKind, version: str) -> bool:
        """Whether ghcup has ``kind`` ``version`` installed."""
        return self.execute(["whereis", kind.value, version]).ok

    def whereis_bindir(self) -> Path:
        """ghcup's binary directory."""
        return Path(self.call(["whereis", "bindir"]))

    def installed_hls_ghc_support(self) -> Dict[str, List[str]]:
        """
        GHC versions supported by every installed HLS.

        Read from the ``haskell-language-server-<ghc>~<hls>`` binaries in
        ghcup's bin directory, so locally compiled servers are included.

        Returns:
            HLS version -> GHC versions
        """
        installed = {
            t.version for t in self.list_tool(ToolKind.HLS, ListCategory.INSTALLED)
        }
        if not installed:
            return {}

        bindir = self.whereis_bindir()
        support: Dict[str, List[str]] = {}
        try:
            entries = sorted(os.listdir(bindir))
        except OSError as e:
            logger.warning(f"Cannot list ghcup bindir {bindir}: {e}")
            return {}

        for name in entries:
            match = _HLS_BINARY_PATTERN.match(name)
            if not match:
                continue
            ghc, hls = match.group(1), match.group(2)
            if hls in installed:
                support.setdefault(hls, []).append(ghc)

        logger.debug(f"Installed HLS versions and their GHC support: {support}")
        return support

    def run(
        self,
        tools: Mapping[ToolKind, Optional[str]],
        bindir: Path,
        title: Optional[str] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> Path:
        """
        Install tools (if needed) into an isolated directory.

        Runs ``ghcup run --hls H --ghc G ... -b <bindir> -i``. Tools mapped to
        None are left out, so the caller's environment provides them.

        Args:
            tools: Version per tool
            bindir: Directory receiving the tool links
            title: Progress title
            cancellation: Token that makes the installation cancellable

        Returns:
            ``bindir``
        """
        args = ["run"]
        for kind in RUN_ORDER:
            version = tools.get(kind)
            if version:
                args += [f"--{kind.value}", version]
        args += ["-b", str(bindir), "-i"]
        self.call(args, title=title, cancellation=cancellation)
        return Path(bindir)


__all__ = [
    "GHCup",
    "ListCategory",
    "RUN_ORDER",
    "ToolInfo",
    "ToolKind",
    "find_ghcup",
    "ghcup_download_url",
    "hls_wrapper_path",
    "parse_list_output",
    "well_known_ghcup_location",
]
