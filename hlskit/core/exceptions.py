"""
Centralized exception hierarchy for hlskit.

Every error that reaches the user carries one human-readable message and,
where a remediation page exists, a documentation link exposed through the
``link`` property.
"""

from typing import Any, Optional, Sequence


# ============================================================================
# Base Exceptions
# ============================================================================


class HlsKitError(Exception):
    """Base exception for all hlskit errors."""

    @property
    def link(self) -> Optional[str]:
        """Documentation URI that helps the user fix the problem, if any."""
        return None


# ============================================================================
# Missing tools and unsupported versions
# ============================================================================

GHCUP_INSTALL_URL = "https://www.haskell.org/ghcup/"
STACK_INSTALL_URL = "https://docs.haskellstack.org/en/stable/install_and_upgrade/"
GHC_SUPPORT_URL = (
    "https://haskell-language-server.readthedocs.io/en/latest/"
    "support/ghc-version-support.html"
)

_PRETTY_TOOL_NAMES = {
    "stack": "Stack",
    "cabal": "Cabal",
    "ghc": "GHC",
    "ghcup": "GHCup",
    "hls": "HLS",
    "haskell-language-server": "HLS",
}

_INSTALL_LINKS = {
    "Stack": STACK_INSTALL_URL,
    "GHCup": GHCUP_INSTALL_URL,
    "Cabal": GHCUP_INSTALL_URL,
    "HLS": GHCUP_INSTALL_URL,
    "GHC": GHCUP_INSTALL_URL,
}


class MissingToolError(HlsKitError):
    """An external tool could not be found or installed."""

    def __init__(self, tool: str):
        self.tool = _PRETTY_TOOL_NAMES.get(tool.lower(), tool)
        super().__init__(f"Project requires {self.tool} but it isn't installed")

    @property
    def link(self) -> Optional[str]:
        return _INSTALL_LINKS.get(self.tool)


class UnsupportedCompilerVersionError(HlsKitError):
    """No known HLS release supports the project's GHC version."""

    def __init__(self, ghc_version: str):
        self.ghc_version = ghc_version
        super().__init__(f"HLS does not support GHC {ghc_version} yet.")

    @property
    def link(self) -> Optional[str]:
        return GHC_SUPPORT_URL


class UnsupportedPlatformError(HlsKitError):
    """Host platform or CPU architecture is outside the supported label set."""

    pass


# ============================================================================
# Network Exceptions
# ============================================================================


class NetworkError(HlsKitError):
    """Metadata fetch or HTTP request failed."""

    pass


class DownloadError(NetworkError):
    """Binary download failed."""

    def __init__(self, url: str, reason: str):
        self.url = url
        super().__init__(f"Failed to download {url}: {reason}")


class MetadataError(HlsKitError):
    """Release metadata does not match the expected schema."""

    pass


# ============================================================================
# Process Exceptions
# ============================================================================


class ProcessExecutionError(HlsKitError):
    """A spawned tool exited non-zero."""

    def __init__(
        self,
        command: str,
        returncode: Optional[int],
        stdout: str = "",
        stderr: str = "",
        message: Optional[str] = None,
    ):
        self.command = command
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        if message is None:
            message = f"{command} exited with exit code {returncode}:\n{stdout}\n{stderr}"
        super().__init__(message)


class ProcessSpawnError(ProcessExecutionError):
    """The binary could not be started at all."""

    def __init__(self, command: str, reason: str):
        super().__init__(
            command, None, message=f"Error executing '{command}': {reason}"
        )


class ProcessCancelledError(ProcessExecutionError):
    """The user cancelled a running invocation."""

    def __init__(self, command: str, returncode: Optional[int], stdout="", stderr=""):
        super().__init__(
            command,
            returncode,
            stdout,
            stderr,
            message=f"User cancelled the execution of '{command}'",
        )


# ============================================================================
# Package Manager Exceptions
# ============================================================================


class PackageManagerError(HlsKitError):
    """Base exception for ghcup errors."""

    pass


class PackageManagerInternalError(PackageManagerError):
    """ghcup ran but gave no usable answer."""

    pass


# ============================================================================
# Configuration Exceptions
# ============================================================================


class ConfigError(HlsKitError):
    """Configuration file could not be read or parsed."""

    pass


class ValidationError(ConfigError):
    """One or more values failed schema validation."""

    def __init__(self, issues: Sequence[Any], subject: str = "value"):
        self.issues = list(issues)
        details = "\n".join(f"  - {issue}" for issue in self.issues)
        super().__init__(
            f"validation failure for {subject}: {len(self.issues)} errors\n{details}"
        )
