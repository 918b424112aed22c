"""
Unit tests for download module.

Tests text fetches and file downloads with mocked network requests.
"""

import gzip
import io
import threading
import time
import zipfile

import pytest
import requests
import responses

from hlskit.core.download import (
    DownloadProgress,
    InFlightDownloads,
    detect_compression,
    download_file,
    format_progress,
    get_text,
)
from hlskit.core.exceptions import DownloadError, NetworkError


URL = "https://downloads.example.com/ghcup"


def wait_until(predicate, timeout=5.0):
    """Poll ``predicate`` until it holds or ``timeout`` elapses."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


class TestGetText:
    """Test get_text()."""

    @responses.activate
    def test_simple_fetch(self):
        responses.add(responses.GET, URL, body='{"a": 1}', status=200)

        assert get_text(URL) == '{"a": 1}'
        assert responses.calls[0].request.headers["User-Agent"] == "hlskit"

    @responses.activate
    def test_follows_one_redirect(self):
        """Test a single 302 hop is followed."""
        target = "https://mirror.example.com/releases.json"
        responses.add(
            responses.GET, URL, status=302, headers={"Location": target}
        )
        responses.add(responses.GET, target, body="moved", status=200)

        assert get_text(URL) == "moved"
        assert len(responses.calls) == 2

    @responses.activate
    def test_relative_redirect(self):
        """Test a relative Location is resolved against the request URL."""
        responses.add(responses.GET, URL, status=302, headers={"Location": "/b"})
        responses.add(
            responses.GET, "https://downloads.example.com/b", body="moved", status=200
        )

        assert get_text(URL) == "moved"
        assert responses.calls[1].request.url == "https://downloads.example.com/b"

    @responses.activate
    def test_second_redirect_is_error(self):
        """Test redirect chains longer than one hop fail."""
        first = "https://mirror.example.com/a"
        second = "https://mirror.example.com/b"
        responses.add(responses.GET, URL, status=301, headers={"Location": first})
        responses.add(responses.GET, first, status=302, headers={"Location": second})

        with pytest.raises(NetworkError, match="Too many redirects"):
            get_text(URL)

    @responses.activate
    def test_redirect_without_location(self):
        responses.add(responses.GET, URL, status=301)

        with pytest.raises(NetworkError, match="without a Location"):
            get_text(URL)

    @responses.activate
    def test_error_status(self):
        """Test a status code of 400 or more fails."""
        responses.add(responses.GET, URL, status=404)

        with pytest.raises(NetworkError, match="404"):
            get_text(URL)

    @responses.activate
    def test_connection_error(self):
        responses.add(
            responses.GET, URL, body=requests.exceptions.ConnectionError("refused")
        )

        with pytest.raises(NetworkError, match="refused"):
            get_text(URL)


class TestDownloadFile:
    """Test download_file()."""

    @responses.activate
    def test_simple_download(self, tmp_path):
        """Test a plain body lands at the destination."""
        destination = tmp_path / "ghcup"
        responses.add(responses.GET, URL, body=b"binary", status=200)

        assert download_file("Downloading ghcup", URL, destination) is True

        assert destination.read_bytes() == b"binary"
        assert not (tmp_path / "ghcup.download").exists()

    @responses.activate
    def test_existing_destination_is_not_downloaded(self, tmp_path):
        """Test an existing file is left alone and no request is made."""
        destination = tmp_path / "ghcup"
        destination.write_bytes(b"old")

        assert download_file("Downloading ghcup", URL, destination) is False

        assert destination.read_bytes() == b"old"
        assert len(responses.calls) == 0

    @responses.activate
    def test_second_download_is_noop(self, tmp_path):
        """Test downloading twice only transfers once."""
        destination = tmp_path / "ghcup"
        responses.add(responses.GET, URL, body=b"binary", status=200)

        assert download_file("Downloading ghcup", URL, destination) is True
        assert download_file("Downloading ghcup", URL, destination) is False

        assert len(responses.calls) == 1

    @responses.activate
    def test_gzip_body_is_decompressed(self, tmp_path):
        destination = tmp_path / "ghcup"
        responses.add(
            responses.GET,
            URL,
            body=gzip.compress(b"unpacked"),
            status=200,
            content_type="application/gzip",
        )

        download_file("Downloading ghcup", URL, destination)

        assert destination.read_bytes() == b"unpacked"

    @responses.activate
    def test_zip_single_entry_is_extracted(self, tmp_path):
        destination = tmp_path / "ghcup.exe"
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as archive:
            archive.writestr("bin/ghcup.exe", b"windows binary")
        responses.add(
            responses.GET,
            URL + ".zip",
            body=buffer.getvalue(),
            status=200,
            content_type="application/zip",
        )

        download_file("Downloading ghcup", URL + ".zip", destination)

        assert destination.read_bytes() == b"windows binary"
        assert not (tmp_path / "ghcup.exe.zip").exists()

    @responses.activate
    def test_zip_with_several_entries_fails(self, tmp_path):
        destination = tmp_path / "ghcup.exe"
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as archive:
            archive.writestr("a", b"1")
            archive.writestr("b", b"2")
        responses.add(
            responses.GET,
            URL,
            body=buffer.getvalue(),
            status=200,
            content_type="application/zip",
        )

        with pytest.raises(DownloadError, match="single entry"):
            download_file("Downloading ghcup", URL, destination)

        assert not destination.exists()

    @responses.activate
    def test_error_status_leaves_no_file(self, tmp_path):
        """Test a failed download raises and leaves nothing behind."""
        destination = tmp_path / "ghcup"
        responses.add(responses.GET, URL, status=500)

        with pytest.raises(DownloadError) as exc_info:
            download_file("Downloading ghcup", URL, destination)

        assert exc_info.value.url == URL
        assert "500" in str(exc_info.value)
        assert not destination.exists()
        assert not (tmp_path / "ghcup.download").exists()

    @responses.activate
    def test_connection_error_leaves_no_file(self, tmp_path):
        destination = tmp_path / "ghcup"
        responses.add(
            responses.GET, URL, body=requests.exceptions.ConnectionError("reset")
        )

        with pytest.raises(DownloadError, match="reset"):
            download_file("Downloading ghcup", URL, destination)

        assert not destination.exists()
        assert not (tmp_path / "ghcup.download").exists()

    @responses.activate
    def test_stale_temp_file_is_replaced(self, tmp_path):
        """Test leftovers from an interrupted run do not leak into the result."""
        destination = tmp_path / "ghcup"
        (tmp_path / "ghcup.download").write_bytes(b"partial garbage")
        responses.add(responses.GET, URL, body=b"fresh", status=200)

        download_file("Downloading ghcup", URL, destination)

        assert destination.read_bytes() == b"fresh"

    @responses.activate
    def test_progress_callback(self, tmp_path):
        """Test progress is reported with the title."""
        destination = tmp_path / "ghcup"
        responses.add(
            responses.GET,
            URL,
            body=b"x" * 20000,
            status=200,
            headers={"content-length": "20000"},
        )
        updates = []

        download_file("Downloading ghcup", URL, destination, updates.append)

        assert updates
        assert updates[-1].title == "Downloading ghcup"
        assert updates[-1].bytes_downloaded == 20000
        assert updates[-1].percentage == pytest.approx(100.0)


class TestInFlightDownloads:
    """Test de-duplication of concurrent downloads."""

    def test_sequential_calls_run_transfer_each_time(self, tmp_path):
        registry = InFlightDownloads()
        calls = []

        def transfer():
            calls.append(1)
            return True

        registry.run(URL, tmp_path / "a", transfer)
        registry.run(URL, tmp_path / "a", transfer)

        assert len(calls) == 2
        assert len(registry) == 0

    def test_concurrent_callers_share_one_transfer(self, tmp_path):
        """Test a caller arriving mid-transfer joins instead of starting another."""
        registry = InFlightDownloads()
        destination = tmp_path / "ghcup"
        release = threading.Event()
        calls = []
        results = []

        def transfer():
            calls.append(1)
            release.wait(5)
            return True

        def worker():
            results.append(registry.run(URL, destination, transfer))

        leader = threading.Thread(target=worker)
        leader.start()
        assert wait_until(lambda: registry.is_active(URL, destination))

        joiner = threading.Thread(target=worker)
        joiner.start()
        assert wait_until(lambda: registry.joiners(URL, destination) == 1)

        release.set()
        leader.join(5)
        joiner.join(5)

        assert calls == [1]
        assert results == [True, True]
        assert not registry.is_active(URL, destination)

    def test_joiners_share_failure(self, tmp_path):
        """Test the leader's exception reaches every waiting caller."""
        registry = InFlightDownloads()
        destination = tmp_path / "ghcup"
        release = threading.Event()
        errors = []

        def transfer():
            release.wait(5)
            raise DownloadError(URL, "status code 503")

        def worker():
            try:
                registry.run(URL, destination, transfer)
            except DownloadError as e:
                errors.append(e)

        threads = [threading.Thread(target=worker)]
        threads[0].start()
        assert wait_until(lambda: registry.is_active(URL, destination))
        threads.append(threading.Thread(target=worker))
        threads[1].start()
        assert wait_until(lambda: registry.joiners(URL, destination) == 1)

        release.set()
        for thread in threads:
            thread.join(5)

        assert len(errors) == 2
        assert errors[0] is errors[1]
        assert len(registry) == 0

    def test_different_destinations_do_not_coalesce(self, tmp_path):
        registry = InFlightDownloads()
        release = threading.Event()
        calls = []

        def transfer():
            calls.append(1)
            release.wait(5)
            return True

        threads = [
            threading.Thread(target=registry.run, args=(URL, tmp_path / name, transfer))
            for name in ("a", "b")
        ]
        for thread in threads:
            thread.start()
        assert wait_until(lambda: len(registry) == 2)
        release.set()
        for thread in threads:
            thread.join(5)

        assert len(calls) == 2

    @responses.activate
    def test_download_file_issues_one_request(self, tmp_path):
        """Test concurrent download_file calls result in a single HTTP request."""
        registry = InFlightDownloads()
        destination = tmp_path / "ghcup"
        release = threading.Event()

        def slow_body(request):
            release.wait(5)
            return (200, {}, b"binary")

        responses.add_callback(responses.GET, URL, callback=slow_body)
        results = []

        def worker():
            results.append(
                download_file("Downloading ghcup", URL, destination, registry=registry)
            )

        leader = threading.Thread(target=worker)
        leader.start()
        assert wait_until(lambda: registry.is_active(URL, destination))
        joiner = threading.Thread(target=worker)
        joiner.start()
        assert wait_until(lambda: registry.joiners(URL, destination) == 1)

        release.set()
        leader.join(5)
        joiner.join(5)

        assert results == [True, True]
        assert len(responses.calls) == 1
        assert destination.read_bytes() == b"binary"


class TestDetectCompression:
    """Test detect_compression()."""

    @pytest.mark.parametrize(
        "content_type,url,expected",
        [
            ("application/gzip", URL, "gzip"),
            ("application/x-gzip; charset=binary", URL, "gzip"),
            (None, URL + ".gz", "gzip"),
            ("application/zip", URL, "zip"),
            (None, URL + ".zip?raw=1", "zip"),
            ("application/octet-stream", URL, None),
        ],
    )
    def test_detect(self, content_type, url, expected):
        assert detect_compression(content_type, url) == expected


class TestFormatProgress:
    """Test format_progress function."""

    def test_format_with_known_size(self):
        progress = DownloadProgress(
            bytes_downloaded=52428800,
            total_bytes=104857600,
            percentage=50.0,
            speed_bps=1048576,
            eta_seconds=50,
            title="Downloading ghcup",
        )

        result = format_progress(progress)

        assert result.startswith("Downloading ghcup: ")
        assert "50.0/100.0 MB" in result
        assert "50.0%" in result
        assert "ETA: 50s" in result

    def test_format_with_unknown_size(self):
        progress = DownloadProgress(
            bytes_downloaded=1048576,
            total_bytes=1,
            percentage=100.0,
            speed_bps=1048576,
            eta_seconds=0,
        )

        result = format_progress(progress)

        assert "1.0 MB" in result
        assert "ETA" not in result
