"""
HLS release metadata.

The GHCup metadata repository publishes a manifest mapping every HLS release
to the GHC versions it supports, per CPU architecture and operating system::

    {
      "1.9.0.0": {
        "A_64": {
          "Darwin": ["9.4.4", "9.2.5"],
          "Linux_UnknownLinux": ["9.4.4", "9.2.5", "8.10.7"]
        },
        "A_ARM64": {"Darwin": ["9.4.4"]}
      }
    }

:class:`ReleaseMetadataClient` fetches it, keeps the last good copy in
``<storage>/ghcupReleases.cache.json`` and falls back to that copy when the
network is unavailable. The parsed document is held in explicit records
(:class:`ReleaseMetadata` > :class:`HlsRelease` > :class:`ArchSupport`);
a document that does not have this shape is rejected with ``MetadataError``.

Architecture and platform labels are kept as strings because the manifest
contains labels (e.g. ``Linux_Alpine``) beyond the host labels we detect.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from hlskit.config.validation import array, check, dict_of, string
from hlskit.core.download import get_text
from hlskit.core.exceptions import MetadataError, NetworkError
from hlskit.core.filesystem import atomic_write
from hlskit.core.interfaces import UserInterface
from hlskit.core.platform import Arch, Platform, detect_host_arch, detect_host_platform

logger = logging.getLogger(__name__)

DEFAULT_RELEASES_URL = (
    "https://raw.githubusercontent.com/haskell/ghcup-metadata/master/"
    "hls-metadata-0.0.1.json"
)
CACHE_FILENAME = "ghcupReleases.cache.json"

METADATA_SCHEMA = dict_of(dict_of(dict_of(array(string()))))


@dataclass
class ArchSupport:
    """GHC versions supported per platform label, for one architecture."""

    arch: str
    platforms: Dict[str, List[str]] = field(default_factory=dict)


@dataclass
class HlsRelease:
    """One HLS release and what it supports."""

    version: str
    architectures: Dict[str, ArchSupport] = field(default_factory=dict)

    def supported_ghc_versions(self, platform: str, arch: str) -> Optional[List[str]]:
        """GHC versions supported on ``platform``/``arch``, or None if unsupported."""
        support = self.architectures.get(arch)
        if support is None:
            return None
        return support.platforms.get(platform)


@dataclass
class ReleaseMetadata:
    """All HLS releases, in manifest order."""

    releases: Dict[str, HlsRelease] = field(default_factory=dict)

    @classmethod
    def from_json(cls, data: Any) -> "ReleaseMetadata":
        """
        Build records from a decoded manifest.

        Args:
            data: Value returned by ``json.loads``

        Returns:
            Parsed metadata

        Raises:
            MetadataError: If the document does not have the manifest shape
        """
        issues = check(data, METADATA_SCHEMA)
        if issues:
            details = "; ".join(str(issue) for issue in issues[:5])
            raise MetadataError(
                f"Release metadata has an unexpected shape "
                f"({len(issues)} errors): {details}"
            )

        releases = {}
        for hls_version, arch_map in data.items():
            releases[hls_version] = HlsRelease(
                version=hls_version,
                architectures={
                    arch: ArchSupport(
                        arch=arch,
                        platforms={plat: list(ghcs) for plat, ghcs in plat_map.items()},
                    )
                    for arch, plat_map in arch_map.items()
                },
            )
        return cls(releases=releases)

    @classmethod
    def from_text(cls, text: str) -> "ReleaseMetadata":
        """Parse a manifest from its JSON text."""
        try:
            data = json.loads(text)
        except ValueError as e:
            raise MetadataError(f"Release metadata is not valid JSON: {e}") from e
        return cls.from_json(data)

    def __iter__(self) -> Iterator[HlsRelease]:
        return iter(self.releases.values())

    def __len__(self) -> int:
        return len(self.releases)


class ReleaseMetadataClient:
    """
    Fetches HLS release metadata with a local cache fallback.

    Args:
        storage_path: Directory holding the cache file
        releases_url: Manifest URL; defaults to the public GHCup metadata repository
        ui: Receives the warning shown when the cache is used instead
        timeout: Request timeout in seconds

    Example:
        >>> client = ReleaseMetadataClient(Path("~/.hlskit").expanduser())
        >>> metadata = client.fetch()
        >>> len(metadata) > 0
        True
    """

    def __init__(
        self,
        storage_path: Path,
        releases_url: Optional[str] = None,
        ui: Optional[UserInterface] = None,
        timeout: int = 30,
    ):
        self.storage_path = Path(storage_path)
        self.releases_url = releases_url or DEFAULT_RELEASES_URL
        self.ui = ui
        self.timeout = timeout

    @property
    def cache_path(self) -> Path:
        return self.storage_path / CACHE_FILENAME

    def fetch(self) -> ReleaseMetadata:
        """
        Fetch the manifest, refreshing the cache on success.

        Returns:
            Fresh metadata, or the cached copy if the fetch failed

        Raises:
            NetworkError: If the fetch failed and no usable cache exists
        """
        try:
            text = get_text(self.releases_url, timeout=self.timeout)
            metadata = ReleaseMetadata.from_text(text)
        except (NetworkError, MetadataError) as fetch_error:
            return self._fallback(fetch_error)

        atomic_write(self.cache_path, text)
        logger.debug(f"Cached release metadata at {self.cache_path}")
        return metadata

    def read_cache(self) -> ReleaseMetadata:
        """
        Read the cached manifest.

        Raises:
            OSError: If the cache file cannot be read
            MetadataError: If the cached document is not UTF-8 or is invalid
        """
        logger.info(f"Reading cached release data at {self.cache_path}")
        try:
            text = self.cache_path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise MetadataError(f"Cached release metadata is not UTF-8: {e}") from e
        return ReleaseMetadata.from_text(text)

    def _fallback(self, fetch_error: Exception) -> ReleaseMetadata:
        try:
            metadata = self.read_cache()
        except (OSError, MetadataError) as cache_error:
            raise NetworkError(
                "Couldn't get the latest haskell-language-server releases from "
                f"{self.releases_url}: {fetch_error}. Reading the cache at "
                f"{self.cache_path} failed as well: {cache_error}"
            ) from fetch_error

        message = (
            "Couldn't get the latest haskell-language-server releases, "
            f"used local cache instead: {fetch_error}"
        )
        if self.ui is not None:
            self.ui.show_warning(message)
        else:
            logger.warning(message)
        return metadata


def find_supported_hls_per_ghc(
    platform: Platform, arch: Arch, metadata: ReleaseMetadata
) -> Dict[str, List[str]]:
    """
    Project the metadata onto one host.

    Args:
        platform: Host platform
        arch: Host architecture
        metadata: Parsed manifest

    Returns:
        HLS version -> GHC versions it supports on this host, in manifest
        order. Releases without support for this host are left out.
    """
    logger.info(f"Platform constants: {platform.value}, {arch.value}")
    supported: Dict[str, List[str]] = {}
    for release in metadata:
        ghcs = release.supported_ghc_versions(platform.value, arch.value)
        if ghcs is not None:
            logger.debug(
                f"HLS {release.version} compatible with GHC Versions: {','.join(ghcs)}"
            )
            supported[release.version] = list(ghcs)
    return supported


def get_hls_metadata(
    client: ReleaseMetadataClient,
    platform: Optional[Platform] = None,
    arch: Optional[Arch] = None,
) -> Dict[str, List[str]]:
    """
    Fetch the manifest and project it onto the host.

    Args:
        client: Metadata client
        platform: Host platform; detected when omitted
        arch: Host architecture; detected when omitted

    Raises:
        NetworkError: If neither the network nor the cache yields metadata
        UnsupportedPlatformError: If the host is not a known platform/arch
    """
    metadata = client.fetch()
    platform = platform or detect_host_platform()
    arch = arch or detect_host_arch()
    return find_supported_hls_per_ghc(platform, arch, metadata)


__all__ = [
    "ArchSupport",
    "CACHE_FILENAME",
    "DEFAULT_RELEASES_URL",
    "HlsRelease",
    "ReleaseMetadata",
    "ReleaseMetadataClient",
    "find_supported_hls_per_ghc",
    "get_hls_metadata",
]
