"""
Core functionality for hlskit.

This package contains the foundational modules that other components depend on.
"""

from .directory import (
    get_global_storage_dir,
    resolve_storage_path,
    get_toolchains_dir,
    DirectoryError,
)

from .download import (
    DownloadProgress,
    InFlightDownloads,
    download_file,
    format_progress,
    get_text,
)

from .locking import (
    download_lock,
    LockTimeout,
)

from .platform import (
    Arch,
    Platform,
    detect_host_arch,
    detect_host_platform,
    clear_platform_cache,
)

from .process import (
    CancellationToken,
    ProcessResult,
    ProcessRunner,
    build_environment,
)

from .version import (
    compare_pvp,
    latest_version,
    pvp_key,
)

from .exceptions import (
    HlsKitError,
    MissingToolError,
    UnsupportedCompilerVersionError,
    UnsupportedPlatformError,
    NetworkError,
    DownloadError,
    MetadataError,
    ProcessExecutionError,
    ProcessSpawnError,
    ProcessCancelledError,
    PackageManagerError,
    PackageManagerInternalError,
    ConfigError,
    ValidationError,
)

__all__ = [
    # Directory
    "get_global_storage_dir",
    "resolve_storage_path",
    "get_toolchains_dir",
    "DirectoryError",
    # Download
    "DownloadProgress",
    "InFlightDownloads",
    "download_file",
    "format_progress",
    "get_text",
    # Locking
    "download_lock",
    "LockTimeout",
    # Platform
    "Arch",
    "Platform",
    "detect_host_arch",
    "detect_host_platform",
    "clear_platform_cache",
    # Process
    "CancellationToken",
    "ProcessResult",
    "ProcessRunner",
    "build_environment",
    # Version
    "compare_pvp",
    "latest_version",
    "pvp_key",
    # Exceptions
    "HlsKitError",
    "MissingToolError",
    "UnsupportedCompilerVersionError",
    "UnsupportedPlatformError",
    "NetworkError",
    "DownloadError",
    "MetadataError",
    "ProcessExecutionError",
    "ProcessSpawnError",
    "ProcessCancelledError",
    "PackageManagerError",
    "PackageManagerInternalError",
    "ConfigError",
    "ValidationError",
]
