"""
Resolution of a working language server for a project.

:class:`ToolchainResolver` runs these states strictly in order::

    INIT -> DISCOVER_MANAGER -> BOOTSTRAP_TOOLCHAIN -> DETERMINE_PROJECT_GHC
         -> CHOOSE_SERVER_VERSION -> INSTALL_PROJECT_TOOLCHAIN -> READY

Any state may end in FAILED, in which case the error is shown through the
:class:`~hlskit.core.interfaces.UserInterface` and re-raised. Nothing is
retried automatically.

1. DISCOVER_MANAGER: pick the management mode (asking on first run and
   persisting the answer). In PATH mode the server wrapper on PATH is used
   and resolution ends here. Otherwise ghcup is located, or downloaded into
   the storage directory, and upgraded.
2. BOOTSTRAP_TOOLCHAIN: install the newest toolchain the user already has
   (or ghcup recommends) just to be able to ask the project for its GHC.
3. DETERMINE_PROJECT_GHC: run ``haskell-language-server-wrapper
   --project-ghc-version`` in the project. A missing build tool fails the run;
   any other failure falls back to ``ghc --numeric-version``.
4. CHOOSE_SERVER_VERSION: merge the release metadata with the HLS versions
   ghcup has locally (local entries win) and pick the newest HLS supporting
   the project's GHC.
5. INSTALL_PROJECT_TOOLCHAIN: install that HLS with the project's GHC into an
   isolated directory and check that the wrapper is there.

Only one resolution per workspace should run at a time; callers enforce that.

Example:
    >>> context = ResolutionContext(
    ...     config=load_project_config(project),
    ...     working_dir=project,
    ...     storage_path=resolve_storage_path(),
    ...     ui=NonInteractiveInterface(ManagementMode.GHCUP, assume_yes=True),
    ... )
    >>> server = ToolchainResolver(context).resolve()
    >>> print(server.launcher)
"""

import dataclasses
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional

from hlskit.config.settings import (
    ConfigStore,
    HlsConfig,
    ManagementMode,
    prepend_path,
    resolve_path_placeholders,
    resolve_server_environment,
)
from hlskit.core.directory import get_toolchains_dir
from hlskit.core.download import DownloadProgress, download_file, format_progress
from hlskit.core.exceptions import (
    ConfigError,
    MetadataError,
    MissingToolError,
    NetworkError,
    ProcessExecutionError,
    ProcessSpawnError,
    UnsupportedCompilerVersionError,
)
from hlskit.core.filesystem import executable_exists, executable_suffix, find_executable
from hlskit.core.interfaces import UserInterface
from hlskit.core.platform import detect_host_arch, detect_host_platform
from hlskit.core.process import CancellationToken, ProcessRunner, build_environment
from hlskit.core.version import latest_version
from hlskit.toolchain.diagnostics import reclassify
from hlskit.toolchain.ghcup import (
    RUN_ORDER,
    GHCup,
    ToolKind,
    find_ghcup,
    ghcup_download_url,
    hls_wrapper_path,
)
from hlskit.toolchain.metadata import ReleaseMetadataClient, get_hls_metadata

logger = logging.getLogger(__name__)

WRAPPER_NAME = "haskell-language-server-wrapper"

GHCupFactory = Callable[[Path, Optional[Path]], GHCup]


class ResolutionState(Enum):
    """States of a resolution run."""

    INIT = "init"
    DISCOVER_MANAGER = "discover-manager"
    BOOTSTRAP_TOOLCHAIN = "bootstrap-toolchain"
    DETERMINE_PROJECT_GHC = "determine-project-ghc"
    CHOOSE_SERVER_VERSION = "choose-server-version"
    INSTALL_PROJECT_TOOLCHAIN = "install-project-toolchain"
    READY = "ready"
    FAILED = "failed"


@dataclass
class ResolutionContext:
    """Everything a resolution run depends on."""

    config: HlsConfig
    working_dir: Path  # Project root the wrapper is run in
    storage_path: Path  # Cache, self-installed ghcup and isolated toolchains
    ui: UserInterface
    workspace_folder: Optional[Path] = None  # Substituted for ${workspaceFolder}
    config_store: Optional[ConfigStore] = None  # Persists the first-run choice


@dataclass(frozen=True)
class ResolvedServer:
    """A language server ready to be spawned."""

    launcher: Path
    install_dir: Optional[Path] = None  # None when found on PATH
    hls_version: Optional[str] = None
    ghc_version: Optional[str] = None


def toolchain_id(tools: Dict[ToolKind, Optional[str]]) -> str:
    """Directory name for a set of tool versions, e.g. ``hls-1.8.0-ghc-9.2.5``."""
    parts = []
    for kind in RUN_ORDER:
        version = tools.get(kind)
        if version:
            parts.append(f"{kind.value}-{version}")
    return "-".join(parts) or "default"


class ToolchainResolver:
    """
    Drives one resolution run.

    Args:
        context: Configuration, directories and user interface
        runner: Process runner; built from the configured server environment by default
        metadata_client: Release metadata source
        ghcup_factory: Builds the GHCup wrapper from ``(executable, base_prefix)``
    """

    def __init__(
        self,
        context: ResolutionContext,
        runner: Optional[ProcessRunner] = None,
        metadata_client: Optional[ReleaseMetadataClient] = None,
        ghcup_factory: Optional[GHCupFactory] = None,
    ):
        self.context = context
        self.server_environment = resolve_server_environment(
            context.config.server_environment
        )
        self.runner = runner or ProcessRunner(
            base_environment=self.server_environment,
            progress_callback=context.ui.report_progress,
        )
        self.metadata_client = metadata_client or ReleaseMetadataClient(
            context.storage_path, context.config.releases_url, context.ui
        )
        self.ghcup_factory = ghcup_factory or self._create_ghcup

        self.state = ResolutionState.INIT
        self.history: List[ResolutionState] = [ResolutionState.INIT]
        self.ghcup: Optional[GHCup] = None
        self.bootstrap_tools: Dict[ToolKind, Optional[str]] = {}
        self.bootstrap_dir: Optional[Path] = None

    @property
    def config(self) -> HlsConfig:
        return self.context.config

    @property
    def ui(self) -> UserInterface:
        return self.context.ui

    def resolve(self, cancellation: Optional[CancellationToken] = None) -> ResolvedServer:
        """
        Run all states and return the server to launch.

        Args:
            cancellation: Token that cancels long ghcup invocations

        Returns:
            Resolved server

        Raises:
            HlsKitError: The error that moved the run to FAILED
        """
        try:
            self._enter(ResolutionState.DISCOVER_MANAGER)
            explicit = self._explicit_server()
            if explicit is not None:
                return self._ready(explicit)

            mode = self._management_mode()
            if mode is ManagementMode.PATH:
                return self._ready(self._find_server_on_path())
            self.ghcup = self._discover_ghcup(cancellation)

            self._enter(ResolutionState.BOOTSTRAP_TOOLCHAIN)
            wrapper = self._bootstrap_toolchain(cancellation)

            self._enter(ResolutionState.DETERMINE_PROJECT_GHC)
            ghc_version = self._determine_project_ghc(wrapper)

            self._enter(ResolutionState.CHOOSE_SERVER_VERSION)
            hls_version = self._choose_server_version(ghc_version)

            self._enter(ResolutionState.INSTALL_PROJECT_TOOLCHAIN)
            server = self._install_project_toolchain(
                hls_version, ghc_version, cancellation
            )
            return self._ready(server)
        except Exception as e:
            self._enter(ResolutionState.FAILED)
            logger.error(f"Resolution failed: {e}")
            self.ui.show_error(str(e), getattr(e, "link", None))
            raise

    # ------------------------------------------------------------------
    # State bookkeeping
    # ------------------------------------------------------------------

    def _enter(self, state: ResolutionState) -> None:
        logger.debug(f"Resolution state: {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    def _ready(self, server: ResolvedServer) -> ResolvedServer:
        self._enter(ResolutionState.READY)
        logger.info(f"Using language server {server.launcher}")
        return server

    def _environment(self) -> Dict[str, str]:
        return build_environment(self.server_environment)

    def _report_download(self, progress: DownloadProgress) -> None:
        logger.debug(format_progress(progress))
        self.ui.report_progress(progress.title, progress.percentage)

    # ------------------------------------------------------------------
    # DISCOVER_MANAGER
    # ------------------------------------------------------------------

    def _explicit_server(self) -> Optional[ResolvedServer]:
        configured = self.config.server_executable_path
        if not configured:
            return None
        exe_path = resolve_path_placeholders(configured, self.context.workspace_folder)
        logger.info(f"Using the configured server executable {exe_path}")
        if executable_exists(exe_path):
            return ResolvedServer(launcher=Path(exe_path))
        found = find_executable(exe_path, self._environment())
        if found is None:
            raise ConfigError(f"Could not find a HLS binary at {exe_path}!")
        return ResolvedServer(launcher=found)

    def _management_mode(self) -> ManagementMode:
        mode = self.config.manage_hls
        if mode is not None:
            return mode

        mode = self.ui.choose_management_mode()
        if mode is None:
            mode = ManagementMode.PATH
            self.ui.show_warning(
                "Choosing default PATH method for HLS discovery. "
                "You can change this via 'manage_hls' in the configuration."
            )
        self.context.config = dataclasses.replace(self.config, manage_hls=mode)
        if self.context.config_store is not None:
            self.context.config_store.save_management_mode(mode)
        return mode

    def _find_server_on_path(self) -> ResolvedServer:
        found = find_executable(WRAPPER_NAME, self._environment())
        if found is None:
            raise MissingToolError("hls")
        return ResolvedServer(launcher=found)

    def _discover_ghcup(self, cancellation: Optional[CancellationToken]) -> GHCup:
        try:
            executable = find_ghcup(
                self.config, self.context.workspace_folder, self._environment()
            )
            base_prefix = None
        except MissingToolError:
            executable = self._install_ghcup()
            base_prefix = self.context.storage_path

        ghcup = self.ghcup_factory(executable, base_prefix)
        ghcup.upgrade(cancellation)
        return ghcup

    def _install_ghcup(self) -> Path:
        """Download ghcup into the storage directory."""
        target = self.context.storage_path / f"ghcup{executable_suffix()}"
        if target.exists():
            logger.info(f"Using ghcup installed by hlskit at {target}")
            return target

        if self.config.prompt_before_downloads and not self.ui.confirm(
            "Need to download ghcup, continue?", "Yes", "No"
        ):
            raise MissingToolError("ghcup")

        url = ghcup_download_url(detect_host_platform(), detect_host_arch())
        download_file(
            f"Downloading {url}",
            url,
            target,
            progress_callback=self._report_download,
        )
        return target

    def _create_ghcup(self, executable: Path, base_prefix: Optional[Path]) -> GHCup:
        return GHCup(
            executable,
            self.runner,
            metadata_url=self.config.metadata_url,
            upgrade_enabled=self.config.upgrade_ghcup,
            base_prefix=base_prefix,
        )

    # ------------------------------------------------------------------
    # BOOTSTRAP_TOOLCHAIN
    # ------------------------------------------------------------------

    def _bootstrap_toolchain(self, cancellation: Optional[CancellationToken]) -> Path:
        ghcup = self.ghcup
        tools: Dict[ToolKind, Optional[str]] = {
            ToolKind.HLS: ghcup.find_latest_user_installed_tool(ToolKind.HLS),
            ToolKind.CABAL: ghcup.find_latest_user_installed_tool(ToolKind.CABAL),
            ToolKind.STACK: ghcup.find_latest_user_installed_tool(ToolKind.STACK),
        }
        # A ghc on PATH is good enough to ask the project for its version
        if find_executable("ghc", self._environment()) is None:
            tools[ToolKind.GHC] = ghcup.get_latest_available_version(
                ToolKind.GHC, "recommended"
            )
        else:
            tools[ToolKind.GHC] = None
        self.bootstrap_tools = tools

        self._confirm_downloads(tools)
        bindir = get_toolchains_dir(self.context.storage_path) / toolchain_id(tools)
        ghcup.run(
            tools,
            bindir,
            title="Installing latest toolchain for bootstrap",
            cancellation=cancellation,
        )
        self.bootstrap_dir = bindir
        return hls_wrapper_path(bindir)

    def _confirm_downloads(self, tools: Dict[ToolKind, Optional[str]]) -> bool:
        """
        Ask before ghcup installs anything missing.

        Returns:
            True if something needs installing

        Raises:
            MissingToolError: For the first missing tool if the user declines
        """
        missing = [
            kind
            for kind in RUN_ORDER
            if tools.get(kind) and not self.ghcup.is_installed(kind, tools[kind])
        ]
        if not missing:
            return False
        if self.config.prompt_before_downloads:
            listing = ", ".join(f"{kind.value} {tools[kind]}" for kind in missing)
            if not self.ui.confirm(f"Need to download {listing}, continue?", "Yes", "No"):
                raise MissingToolError(missing[0].value)
        return True

    # ------------------------------------------------------------------
    # DETERMINE_PROJECT_GHC
    # ------------------------------------------------------------------

    def _determine_project_ghc(self, wrapper: Path) -> str:
        env = None
        if self.bootstrap_dir is not None:
            env = {"PATH": prepend_path(self.bootstrap_dir, self.server_environment)}
        working_dir = self.context.working_dir
        title = "Working out the project GHC version. This might take a while..."
        logger.info(title)

        try:
            result = self.runner.execute(
                wrapper,
                ["--project-ghc-version"],
                cwd=working_dir,
                env=env,
                title=title,
            )
        except ProcessSpawnError as e:
            failure: ProcessExecutionError = e
        else:
            if result.ok:
                ghc_version = result.stdout.strip()
                logger.info(f"The GHC version for the project or file: {ghc_version}")
                return ghc_version
            failure = ProcessExecutionError(
                result.command, result.returncode, result.stdout, result.stderr
            )
            error = reclassify(failure)
            if error is not failure:
                raise error

        self.ui.show_warning(
            f"Couldn't work out the project GHC version with {wrapper} "
            f"(exit code {failure.returncode}), using 'ghc --numeric-version' instead"
        )
        return self.runner.run(
            f"ghc{executable_suffix()}",
            ["--numeric-version"],
            cwd=working_dir,
            env=env,
        )

    # ------------------------------------------------------------------
    # CHOOSE_SERVER_VERSION
    # ------------------------------------------------------------------

    def _choose_server_version(self, ghc_version: str) -> str:
        try:
            remote = get_hls_metadata(self.metadata_client)
        except (NetworkError, MetadataError) as e:
            self.ui.show_warning(f"Could not get release metadata: {e}")
            remote = {}
        local = self.ghcup.installed_hls_ghc_support()

        # Locally compiled servers may support other GHCs than the bindists
        candidates = {**remote, **local}
        supporting = [
            hls for hls, ghcs in candidates.items() if ghc_version in ghcs
        ]
        if not supporting:
            raise UnsupportedCompilerVersionError(ghc_version)

        hls_version = latest_version(supporting)
        logger.info(f"Selected HLS {hls_version} for GHC {ghc_version}")
        return hls_version

    # ------------------------------------------------------------------
    # INSTALL_PROJECT_TOOLCHAIN
    # ------------------------------------------------------------------

    def _install_project_toolchain(
        self,
        hls_version: str,
        ghc_version: str,
        cancellation: Optional[CancellationToken],
    ) -> ResolvedServer:
        tools: Dict[ToolKind, Optional[str]] = {
            ToolKind.HLS: hls_version,
            ToolKind.GHC: ghc_version,
            ToolKind.CABAL: self.bootstrap_tools.get(ToolKind.CABAL),
            ToolKind.STACK: self.bootstrap_tools.get(ToolKind.STACK),
        }
        needs_install = self._confirm_downloads(tools)
        bindir = get_toolchains_dir(self.context.storage_path) / toolchain_id(tools)
        self.ghcup.run(
            tools,
            bindir,
            title=f"Installing HLS {hls_version} for GHC {ghc_version}"
            if needs_install
            else None,
            cancellation=cancellation,
        )

        wrapper = hls_wrapper_path(bindir)
        if not wrapper.exists():
            logger.error(f"Expected {wrapper} after installing HLS {hls_version}")
            raise MissingToolError("hls")
        return ResolvedServer(
            launcher=wrapper,
            install_dir=bindir,
            hls_version=hls_version,
            ghc_version=ghc_version,
        )


__all__ = [
    "ResolutionContext",
    "ResolutionState",
    "ResolvedServer",
    "ToolchainResolver",
    "toolchain_id",
]
