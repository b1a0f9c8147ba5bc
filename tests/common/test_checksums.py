"""Tests for checksum utilities."""

import hashlib
import zlib

import pytest
from ota_partfetch.common.checksums import compute_crc32, compute_sha256


class TestComputeCRC32:
    """Tests for compute_crc32 function."""

    def test_matches_zlib(self, tmp_path):
        """Test the file CRC equals zlib.crc32 over the same bytes."""
        data = b"partition" * 1000
        path = tmp_path / "boot.img"
        path.write_bytes(data)

        assert compute_crc32(path) == zlib.crc32(data) & 0xFFFFFFFF

    def test_large_file(self, tmp_path):
        """Test CRC32 across more than one read chunk."""
        data = b"X" * (3 * 1024 * 1024 + 17)
        path = tmp_path / "large.bin"
        path.write_bytes(data)

        assert compute_crc32(path) == zlib.crc32(data) & 0xFFFFFFFF

    def test_empty_file(self, tmp_path):
        """Test CRC32 of an empty file is 0."""
        path = tmp_path / "empty.img"
        path.write_bytes(b"")

        assert compute_crc32(path) == 0

    def test_missing_file_raises(self, tmp_path):
        """Test that a missing file raises OSError."""
        with pytest.raises(OSError):
            compute_crc32(tmp_path / "missing.img")


class TestComputeSHA256:
    """Tests for compute_sha256 function."""

    def test_matches_hashlib(self, tmp_path):
        """Test the digest equals hashlib's."""
        data = bytes(range(256)) * 5000
        path = tmp_path / "system.img"
        path.write_bytes(data)

        assert compute_sha256(path) == hashlib.sha256(data).digest()
