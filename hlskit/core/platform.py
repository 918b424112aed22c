"""
Host platform detection for hlskit.

Maps the running host onto the closed label sets used by the GHCup release
metadata (``Darwin``, ``Linux_UnknownLinux``, ``Windows``, ``FreeBSD`` and
``A_ARM``, ``A_ARM64``, ``A_32``, ``A_64``) and onto the names used for
pre-built ghcup binaries on downloads.haskell.org.

An unrecognized host is an error, never a silent default.

Usage:
    from hlskit.core.platform import detect_host_platform, detect_host_arch

    plat = detect_host_platform()
    arch = detect_host_arch()
    print(f"{plat.value} / {arch.value}")
"""

import functools
import platform
from enum import Enum

from hlskit.core.exceptions import UnsupportedPlatformError


class Platform(Enum):
    """Operating systems known to the release metadata."""

    DARWIN = "Darwin"
    LINUX = "Linux_UnknownLinux"
    WINDOWS = "Windows"
    FREEBSD = "FreeBSD"

    def ghcup_label(self) -> str:
        """Platform part of a pre-built ghcup binary name."""
        return _GHCUP_PLATFORM_LABELS[self]


class Arch(Enum):
    """CPU architectures known to the release metadata."""

    ARM = "A_ARM"
    ARM64 = "A_ARM64"
    X86 = "A_32"
    X64 = "A_64"

    def ghcup_label(self) -> str:
        """Architecture part of a pre-built ghcup binary name."""
        return _GHCUP_ARCH_LABELS[self]


_GHCUP_PLATFORM_LABELS = {
    Platform.DARWIN: "apple-darwin",
    Platform.LINUX: "linux",
    Platform.WINDOWS: "mingw64",
    Platform.FREEBSD: "freebsd12",
}

_GHCUP_ARCH_LABELS = {
    Arch.ARM: "armv7",
    Arch.ARM64: "aarch64",
    Arch.X86: "i386",
    Arch.X64: "x86_64",
}

_SYSTEMS = {
    "darwin": Platform.DARWIN,
    "linux": Platform.LINUX,
    "windows": Platform.WINDOWS,
    "freebsd": Platform.FREEBSD,
}

_MACHINES = {
    "x86_64": Arch.X64,
    "amd64": Arch.X64,
    "x64": Arch.X64,
    "aarch64": Arch.ARM64,
    "arm64": Arch.ARM64,
    "i386": Arch.X86,
    "i686": Arch.X86,
    "x86": Arch.X86,
}


@functools.lru_cache(maxsize=1)
def detect_host_platform() -> Platform:
    """
    Detect the host operating system.

    Returns:
        Platform label for the host

    Raises:
        UnsupportedPlatformError: If the OS is not one of the four known ones
    """
    return platform_from_system(platform.system())


@functools.lru_cache(maxsize=1)
def detect_host_arch() -> Arch:
    """
    Detect the host CPU architecture.

    Returns:
        Arch label for the host

    Raises:
        UnsupportedPlatformError: If the architecture is not one of the four known ones
    """
    return arch_from_machine(platform.machine())


def platform_from_system(system: str) -> Platform:
    """Map a ``platform.system()`` value onto a Platform."""
    try:
        return _SYSTEMS[system.lower()]
    except KeyError:
        raise UnsupportedPlatformError(f"Unknown platform {system}") from None


def arch_from_machine(machine: str) -> Arch:
    """Map a ``platform.machine()`` value onto an Arch."""
    normalized = machine.lower()
    if normalized in _MACHINES:
        return _MACHINES[normalized]
    # armv6l, armv7l, ...
    if normalized.startswith("arm"):
        return Arch.ARM
    raise UnsupportedPlatformError(f"Unknown architecture {machine}")


def is_windows() -> bool:
    """Whether the host runs Windows."""
    return platform.system().lower() == "windows"


def clear_platform_cache():
    """
    Clear the platform detection cache.

    Useful for testing.
    """
    detect_host_platform.cache_clear()
    detect_host_arch.cache_clear()


__all__ = [
    "Platform",
    "Arch",
    "detect_host_platform",
    "detect_host_arch",
    "platform_from_system",
    "arch_from_machine",
    "is_windows",
    "clear_platform_cache",
]
