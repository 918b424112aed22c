"""
HTTP access for hlskit: silent text fetches and progress-reporting downloads.

This module provides:
- ``get_text``: GET a small document (release metadata) following one redirect hop
- ``download_file``: stream a binary to disk with progress reporting,
  inline gzip decompression, single-entry zip extraction and atomic rename
- ``InFlightDownloads``: a registry that coalesces concurrent downloads of the
  same (url, destination) pair onto one transfer

Downloads are not cancellable and are never retried; a failure surfaces as
``DownloadError`` carrying the source URL.
"""

import logging
import shutil
import threading
import time
import zipfile
import zlib
from concurrent.futures import Future
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterable, Iterator, Mapping, Optional, Tuple
from urllib.parse import urljoin

import requests
from requests.exceptions import RequestException

from hlskit.core.exceptions import DownloadError, NetworkError
from hlskit.core.locking import LockTimeout, download_lock

logger = logging.getLogger(__name__)

USER_AGENT = "hlskit"
CHUNK_SIZE = 8192
_REDIRECT_CODES = (301, 302)
_GZIP_TYPES = ("application/gzip", "application/x-gzip")
_ZIP_TYPES = ("application/zip", "application/x-zip-compressed")


@dataclass
class DownloadProgress:
    """Progress information for a download."""

    bytes_downloaded: int
    total_bytes: int
    percentage: float
    speed_bps: float  # bytes per second
    eta_seconds: float  # estimated time remaining
    title: str = ""


ProgressCallback = Callable[[DownloadProgress], None]


# ============================================================================
# Text fetches
# ============================================================================


def get_text(
    url: str, headers: Optional[Mapping[str, str]] = None, timeout: int = 30
) -> str:
    """
    GET ``url`` and return the body as text.

    At most one 301/302 hop is followed.

    Args:
        url: Document URL
        headers: Extra request headers
        timeout: Request timeout in seconds

    Returns:
        Response body

    Raises:
        NetworkError: On connection failure, a status code of 400 or more,
            a redirect without ``Location``, or a second redirect

    Example:
        >>> text = get_text("https://example.com/releases.json")
    """
    request_headers = {"User-Agent": USER_AGENT}
    if headers:
        request_headers.update(headers)

    response = _get(url, request_headers, timeout)
    if response.status_code in _REDIRECT_CODES:
        location = response.headers.get("Location")
        if not location:
            raise NetworkError(
                f"Response from {url} is a redirect without a Location header"
            )
        location = urljoin(url, location)
        logger.debug(f"Following redirect from {url} to {location}")
        url = location
        response = _get(url, request_headers, timeout)
        if response.status_code in _REDIRECT_CODES:
            raise NetworkError(f"Too many redirects while fetching {url}")

    if response.status_code is None or response.status_code >= 400:
        raise NetworkError(
            f"Request to {url} failed with status code {response.status_code}"
        )
    return response.text


def _get(url: str, headers: Mapping[str, str], timeout: int) -> requests.Response:
    try:
        return requests.get(
            url, headers=headers, timeout=timeout, allow_redirects=False
        )
    except RequestException as e:
        raise NetworkError(f"Request to {url} failed: {e}") from e


# ============================================================================
# In-flight de-duplication
# ============================================================================


@dataclass
class _InFlight:
    future: Future
    joiners: int = 0


class InFlightDownloads:
    """
    Registry of running downloads keyed by (url, destination).

    The first caller for a key runs the transfer; callers arriving while it
    runs wait for and share its outcome, including its exception. The entry
    is removed once the transfer finishes, successfully or not.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: Dict[Tuple[str, str], _InFlight] = {}

    @staticmethod
    def _key(url: str, destination: Path) -> Tuple[str, str]:
        return (url, str(Path(destination)))

    def run(self, url: str, destination: Path, transfer: Callable[[], bool]) -> bool:
        """
        Run ``transfer`` unless the same download is already running.

        Args:
            url: Source URL
            destination: Final file path
            transfer: Performs the download; called at most once per concurrent group

        Returns:
            The transfer's result, shared by every caller in the group
        """
        key = self._key(url, destination)
        with self._lock:
            entry = self._entries.get(key)
            leader = entry is None
            if leader:
                entry = _InFlight(Future())
                self._entries[key] = entry
            else:
                entry.joiners += 1

        if not leader:
            logger.debug(f"Joining in-flight download of {url} to {destination}")
            return entry.future.result()

        try:
            result = transfer()
        except BaseException as e:
            entry.future.set_exception(e)
            raise
        else:
            entry.future.set_result(result)
            return result
        finally:
            with self._lock:
                self._entries.pop(key, None)

    def is_active(self, url: str, destination: Path) -> bool:
        """Whether a download of ``url`` to ``destination`` is running."""
        with self._lock:
            return self._key(url, destination) in self._entries

    def joiners(self, url: str, destination: Path) -> int:
        """Number of callers waiting on the running download, 0 if none."""
        with self._lock:
            entry = self._entries.get(self._key(url, destination))
            return entry.joiners if entry else 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


_in_flight = InFlightDownloads()


# ============================================================================
# File downloads
# ============================================================================


def download_file(
    title: str,
    url: str,
    destination: Path,
    progress_callback: Optional[ProgressCallback] = None,
    registry: Optional[InFlightDownloads] = None,
    timeout: int = 30,
    lock_timeout: int = 300,
) -> bool:
    """
    Download ``url`` to ``destination`` unless the file is already there.

    Args:
        title: Human-readable name shown with progress
        url: Source URL
        destination: Final file path
        progress_callback: Optional callback for progress updates
        registry: In-flight registry; defaults to the process-wide one
        timeout: Request timeout in seconds
        lock_timeout: Seconds to wait for another process downloading the same file

    Returns:
        False if the file already existed, True if it was downloaded

    Raises:
        DownloadError: If the transfer fails; no partial file is left behind

    Example:
        >>> def on_progress(progress):
        ...     print(f"{progress.title}: {progress.percentage:.1f}%")
        >>> download_file("Downloading ghcup", url, Path("storage/ghcup"), on_progress)
        True
    """
    destination = Path(destination)
    if destination.exists():
        logger.info(f"File {destination} already exists, skipping download")
        return False

    registry = registry if registry is not None else _in_flight

    def transfer() -> bool:
        destination.parent.mkdir(parents=True, exist_ok=True)
        try:
            with download_lock(destination, timeout=lock_timeout):
                if destination.exists():
                    logger.info(f"{destination} was downloaded by another process")
                    return False
                _transfer(title, url, destination, progress_callback, timeout)
                return True
        except LockTimeout as e:
            raise DownloadError(url, f"timed out waiting for {e.lock_file}") from e

    return registry.run(url, destination, transfer)


def detect_compression(content_type: Optional[str], url: str) -> Optional[str]:
    """
    Pick the decompression stage for a response.

    Returns:
        ``"gzip"``, ``"zip"`` or None for a plain stream
    """
    content_type = (content_type or "").split(";")[0].strip().lower()
    path = url.split("?")[0].lower()
    if content_type in _GZIP_TYPES or path.endswith(".gz"):
        return "gzip"
    if content_type in _ZIP_TYPES or path.endswith(".zip"):
        return "zip"
    return None


def _transfer(
    title: str,
    url: str,
    destination: Path,
    progress_callback: Optional[ProgressCallback],
    timeout: int,
) -> None:
    """Stream ``url`` into ``destination.download`` and rename it into place."""
    temp_path = destination.with_name(destination.name + ".download")
    temp_path.unlink(missing_ok=True)

    logger.info(f"Downloading {url} to {destination}")
    try:
        with requests.get(
            url, headers={"User-Agent": USER_AGENT}, stream=True, timeout=timeout
        ) as response:
            if response.status_code >= 400:
                raise DownloadError(url, f"status code {response.status_code}")

            total_size = _content_length(response.headers.get("content-length"))
            chunks = _track_progress(
                response.iter_content(chunk_size=CHUNK_SIZE),
                total_size,
                title,
                progress_callback,
            )
            compression = detect_compression(response.headers.get("content-type"), url)
            if compression == "gzip":
                _write_gunzipped(chunks, temp_path)
            elif compression == "zip":
                _write_unzipped(chunks, temp_path)
            else:
                _write_plain(chunks, temp_path)

        temp_path.replace(destination)
        destination.chmod(0o744)
    except DownloadError as e:
        temp_path.unlink(missing_ok=True)
        logger.error(str(e))
        raise
    except (RequestException, OSError, zlib.error, zipfile.BadZipFile) as e:
        temp_path.unlink(missing_ok=True)
        logger.error(f"Error during download of {url}: {e}")
        raise DownloadError(url, str(e)) from e

    logger.info(f"Download complete: {destination}")


def _content_length(value: Optional[str]) -> int:
    # Unknown sizes count as 1 byte so percentages stay defined
    try:
        size = int(value) if value else 0
    except ValueError:
        size = 0
    return size if size > 0 else 1


def _track_progress(
    chunks: Iterable[bytes],
    total_size: int,
    title: str,
    progress_callback: Optional[ProgressCallback],
) -> Iterator[bytes]:
    downloaded = 0
    start_time = time.time()
    last_progress_time = start_time

    for chunk in chunks:
        if not chunk:
            continue
        downloaded += len(chunk)
        yield chunk

        # Report progress (max once per 0.5 seconds to avoid spam)
        current_time = time.time()
        if progress_callback and (
            current_time - last_progress_time >= 0.5 or downloaded >= total_size
        ):
            elapsed = current_time - start_time
            speed = downloaded / elapsed if elapsed > 0 else 0
            remaining = max(total_size - downloaded, 0)
            progress_callback(
                DownloadProgress(
                    bytes_downloaded=downloaded,
                    total_bytes=total_size,
                    percentage=downloaded / total_size * 100,
                    speed_bps=speed,
                    eta_seconds=remaining / speed if speed > 0 else 0,
                    title=title,
                )
            )
            last_progress_time = current_time


def _write_plain(chunks: Iterable[bytes], target: Path) -> None:
    with open(target, "wb") as f:
        for chunk in chunks:
            f.write(chunk)


def _write_gunzipped(chunks: Iterable[bytes], target: Path) -> None:
    decompressor = zlib.decompressobj(16 + zlib.MAX_WBITS)
    with open(target, "wb") as f:
        for chunk in chunks:
            f.write(decompressor.decompress(chunk))
        f.write(decompressor.flush())


def _write_unzipped(chunks: Iterable[bytes], target: Path) -> None:
    archive_path = target.with_name(target.name + ".zip")
    try:
        _write_plain(chunks, archive_path)
        with zipfile.ZipFile(archive_path) as archive:
            entries = [info for info in archive.infolist() if not info.is_dir()]
            if len(entries) != 1:
                raise zipfile.BadZipFile(
                    f"expected a single entry in the archive, found {len(entries)}"
                )
            with archive.open(entries[0]) as src, open(target, "wb") as dst:
                shutil.copyfileobj(src, dst)
    finally:
        archive_path.unlink(missing_ok=True)


def format_progress(progress: DownloadProgress) -> str:
    """
    Format progress for display.

    Args:
        progress: Download progress information

    Returns:
        Formatted progress string

    Example:
        >>> progress = DownloadProgress(52428800, 104857600, 50.0, 1048576, 50)
        >>> print(format_progress(progress))
        50.0/100.0 MB (50.0%) at 1.0 MB/s ETA: 50s
    """
    mb_downloaded = progress.bytes_downloaded / 1024 / 1024
    mb_total = progress.total_bytes / 1024 / 1024
    speed_mbps = progress.speed_bps / 1024 / 1024
    prefix = f"{progress.title}: " if progress.title else ""

    if progress.total_bytes > 1:
        return (
            f"{prefix}{mb_downloaded:.1f}/{mb_total:.1f} MB "
            f"({progress.percentage:.1f}%) "
            f"at {speed_mbps:.1f} MB/s "
            f"ETA: {progress.eta_seconds:.0f}s"
        )
    else:
        # Unknown total size
        return f"{prefix}{mb_downloaded:.1f} MB " f"at {speed_mbps:.1f} MB/s"


__all__ = [
    "DownloadProgress",
    "InFlightDownloads",
    "USER_AGENT",
    "detect_compression",
    "download_file",
    "format_progress",
    "get_text",
]
