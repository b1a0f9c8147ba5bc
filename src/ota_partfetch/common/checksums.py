"""Checksum utilities for verifying extracted files."""

import hashlib
import zlib
from pathlib import Path

CHECKSUM_CHUNK_SIZE = 1024 * 1024  # 1 MB chunks


def compute_crc32(file_path: Path) -> int:
    """
    Compute CRC32 checksum of an entire file.

    Compared against the CRC32 recorded in a ZIP central directory entry.

    Args:
        file_path: Path to the file

    Returns:
        CRC32 checksum as unsigned 32-bit integer

    Raises:
        OSError: If file cannot be read
    """
    crc = 0

    with open(file_path, 'rb') as f:
        while chunk := f.read(CHECKSUM_CHUNK_SIZE):
            crc = zlib.crc32(chunk, crc)

    return crc & 0xFFFFFFFF


def compute_sha256(file_path: Path) -> bytes:
    """
    Compute the SHA-256 digest of an entire file.

    Compared against ``new_partition_info.hash`` of an update payload.

    Args:
        file_path: Path to the file

    Returns:
        Raw 32-byte digest

    Raises:
        OSError: If file cannot be read
    """
    digest = hashlib.sha256()

    with open(file_path, 'rb') as f:
        while chunk := f.read(CHECKSUM_CHUNK_SIZE):
            digest.update(chunk)

    return digest.digest()
