"""Tests for the whole-archive cache."""

import os
from datetime import datetime, timedelta, timezone

import pytest
from ota_partfetch.common import NetworkError
from ota_partfetch.extractor import ArchiveCache
from ota_partfetch.remote import RemoteFileHandle, RetryPolicy

URL = "https://bigota.example.com/miui/fastboot_rom.zip?sign=abc"


class TestCacheKeys:
    """Test cache file naming."""

    @pytest.mark.parametrize("url, key", [
        (URL, "fastboot_rom.zip"),
        ("https://host/dir/some%20rom.zip", "some rom.zip"),
        ("https://host/", "remote.zip"),
        ("https://host", "remote.zip"),
    ])
    def test_key_for(self, url, key):
        """Test the key is the decoded last path segment."""
        assert ArchiveCache.key_for(url) == key

    def test_path_for(self, tmp_path):
        """Test the path lies in the cache directory."""
        assert ArchiveCache(tmp_path).path_for(URL) == tmp_path / "fastboot_rom.zip"


class TestCacheValidity:
    """Test size and mtime checks."""

    def test_missing_file(self, tmp_path):
        """Test nothing cached is invalid."""
        assert not ArchiveCache(tmp_path).is_valid(tmp_path / "x.zip", 10, None)

    def test_size_mismatch(self, tmp_path):
        """Test a different length is invalid."""
        path = tmp_path / "x.zip"
        path.write_bytes(b"12345")
        assert not ArchiveCache(tmp_path).is_valid(path, 6, None)

    def test_older_than_remote(self, tmp_path):
        """Test a file older than Last-Modified is invalid."""
        path = tmp_path / "x.zip"
        path.write_bytes(b"12345")
        old = datetime(2020, 1, 1, tzinfo=timezone.utc).timestamp()
        os.utime(path, (old, old))

        remote_mtime = datetime(2021, 1, 1, tzinfo=timezone.utc)
        assert not ArchiveCache(tmp_path).is_valid(path, 5, remote_mtime)

    def test_valid(self, tmp_path):
        """Test a same-size newer file is reused."""
        path = tmp_path / "x.zip"
        path.write_bytes(b"12345")
        remote_mtime = datetime.now(timezone.utc) - timedelta(days=1)

        assert ArchiveCache(tmp_path).is_valid(path, 5, remote_mtime)


class TestCacheFetch:
    """Test downloads into the cache."""

    @pytest.fixture
    def handle(self, http):
        http.serve(URL, b"Z" * 5000)
        handle = RemoteFileHandle(URL, retry_policy=RetryPolicy(base_delay=0.0),
                                  session=http, chunk_size=1000)
        handle.initialize()
        return handle

    def test_downloads_once(self, handle, http, tmp_path):
        """Test a second fetch is served from disk."""
        cache = ArchiveCache(tmp_path / "cache")

        first = cache.fetch(handle)
        second = cache.fetch(handle)

        assert first == second == tmp_path / "cache" / "fastboot_rom.zip"
        assert first.read_bytes() == b"Z" * 5000
        assert http.count("GET") == 1

    def test_failed_download_leaves_nothing(self, handle, http, tmp_path):
        """Test an interrupted download removes its interim file."""
        cache = ArchiveCache(tmp_path / "cache")
        http.break_download_after = 2000

        with pytest.raises(NetworkError):
            cache.fetch(handle)

        assert list((tmp_path / "cache").iterdir()) == []

    def test_remove(self, handle, tmp_path):
        """Test removing a cached archive."""
        cache = ArchiveCache(tmp_path)
        cache.fetch(handle)

        assert cache.remove(URL) is True
        assert cache.remove(URL) is False
