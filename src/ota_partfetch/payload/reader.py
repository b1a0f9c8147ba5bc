"""Partition extraction from Android A/B update payloads (``payload.bin``).

A payload is a ``CrAU`` header, a protobuf ``DeltaArchiveManifest``, a
metadata signature, and a data blob addressed by each install operation's
``data_offset``. Only full-image payloads can be reconstructed here:
operations that read from a source partition are rejected.
"""

import bz2
import hashlib
import logging
import lzma
import struct
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Callable, List, Optional, Protocol, Tuple

import zstandard
from google.protobuf.message import DecodeError

from ..common.cancellation import CancellationToken
from ..common.checksums import compute_sha256
from ..common.errors import (
    IntegrityError,
    MemberNotFoundError,
    PayloadError,
    UnsupportedOperationError,
    WriteError,
)
from . import update_metadata_pb2

logger = logging.getLogger(__name__)

PAYLOAD_MAGIC = b"CrAU"
PAYLOAD_VERSION = 2
# magic, file format version, manifest size, metadata signature size
PAYLOAD_HEADER = struct.Struct(">4sQQI")

_ZERO_CHUNK = 1024 * 1024

InstallOperation = update_metadata_pb2.InstallOperation

# Operations that need no source partition
FULL_OPERATIONS = frozenset({
    InstallOperation.REPLACE,
    InstallOperation.REPLACE_BZ,
    InstallOperation.REPLACE_XZ,
    InstallOperation.ZSTD,
    InstallOperation.ZERO,
    InstallOperation.DISCARD,
})


class PayloadSource(Protocol):
    @property
    def size(self) -> int: ...

    def read_range(self, start: int, end: int) -> bytes: ...


@dataclass(frozen=True)
class PayloadHeader:
    version: int
    manifest_size: int
    metadata_signature_size: int

    @property
    def data_offset(self) -> int:
        """Offset of the data blob relative to the payload start."""
        return PAYLOAD_HEADER.size + self.manifest_size + self.metadata_signature_size


def is_payload(prefix: bytes) -> bool:
    """True if ``prefix`` starts with the payload magic."""
    return prefix[:len(PAYLOAD_MAGIC)] == PAYLOAD_MAGIC


def parse_header(data: bytes) -> PayloadHeader:
    """Parse the fixed payload header.

    Raises:
        PayloadError: Bad magic, truncated header, or unsupported version
    """
    if len(data) < PAYLOAD_HEADER.size:
        raise PayloadError("Truncated payload header")
    magic, version, manifest_size, signature_size = PAYLOAD_HEADER.unpack_from(data)
    if magic != PAYLOAD_MAGIC:
        raise PayloadError(f"Bad payload magic {magic!r}", magic=magic.hex())
    if version != PAYLOAD_VERSION:
        raise PayloadError(f"Unsupported payload version {version}", version=version)
    return PayloadHeader(version, manifest_size, signature_size)


class PayloadReader:
    """Reads the manifest of a payload and reconstructs full partitions.

    The payload may start anywhere inside ``source`` (``base_offset``), which
    lets a payload stored uncompressed inside a ZIP be read in place.

    Args:
        source: Stream with ``size`` and ``read_range(start, end)``
        header: Parsed payload header
        manifest: Parsed DeltaArchiveManifest
        base_offset: Absolute offset of the payload in ``source``
        limit: Absolute end (exclusive) of the payload in ``source``
        cancel_token: Optional token checked between operations
    """

    def __init__(
        self,
        source: PayloadSource,
        header: PayloadHeader,
        manifest: "update_metadata_pb2.DeltaArchiveManifest",
        base_offset: int = 0,
        limit: Optional[int] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> None:
        self.source = source
        self.header = header
        self.manifest = manifest
        self.base_offset = base_offset
        self.limit = source.size if limit is None else limit
        self.cancel_token = cancel_token

    @classmethod
    def open(
        cls,
        source: PayloadSource,
        base_offset: int = 0,
        limit: Optional[int] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> "PayloadReader":
        """Read header and manifest with two range reads."""
        end = source.size if limit is None else limit
        if base_offset + PAYLOAD_HEADER.size > end:
            raise PayloadError("Payload is smaller than its header", size=end - base_offset)

        header = parse_header(source.read_range(base_offset, base_offset + PAYLOAD_HEADER.size - 1))

        manifest_start = base_offset + PAYLOAD_HEADER.size
        manifest_end = manifest_start + header.manifest_size
        if manifest_end > end:
            raise PayloadError(
                f"Manifest of {header.manifest_size} bytes runs past the payload end",
                manifest_size=header.manifest_size,
            )

        manifest = update_metadata_pb2.DeltaArchiveManifest()
        if header.manifest_size:
            try:
                manifest.ParseFromString(source.read_range(manifest_start, manifest_end - 1))
            except DecodeError as e:
                raise PayloadError(f"Cannot decode payload manifest: {e}") from e

        logger.info(
            f"Payload v{header.version}: {len(manifest.partitions)} partitions, "
            f"block size {manifest.block_size}"
        )
        return cls(source, header, manifest, base_offset, end, cancel_token)

    @property
    def block_size(self) -> int:
        return self.manifest.block_size

    def partition_names(self) -> List[str]:
        return [p.partition_name for p in self.manifest.partitions]

    def list_partitions(self) -> List[Tuple[str, int]]:
        """(name, size) of every partition; size is 0 when not recorded."""
        return [
            (p.partition_name, p.new_partition_info.size if p.HasField("new_partition_info") else 0)
            for p in self.manifest.partitions
        ]

    def find_partition(self, name: str) -> "update_metadata_pb2.PartitionUpdate":
        """Look a partition up by name, ignoring case and an ``.img`` suffix."""
        wanted = name[:-4] if name.lower().endswith(".img") else name
        for partition in self.manifest.partitions:
            if partition.partition_name == wanted:
                return partition
        for partition in self.manifest.partitions:
            if partition.partition_name.lower() == wanted.lower():
                return partition
        raise MemberNotFoundError(
            f"Partition {name} not in payload (available: {', '.join(self.partition_names())})",
            member=name,
        )

    def extract_partition(
        self,
        name: str,
        destination: Path,
        verify: bool = False,
        on_progress: Optional[Callable[[int, Optional[int]], None]] = None,
    ) -> int:
        """Reconstruct partition ``name`` into ``destination``.

        Returns:
            Size of the written image in bytes

        Raises:
            MemberNotFoundError: Partition not in the manifest
            UnsupportedOperationError: Partition needs a source image
            PayloadError: Corrupt operation data
            IntegrityError: Partition hash mismatch when ``verify`` is set
            WriteError: Destination cannot be written
        """
        partition = self.find_partition(name)
        operations = list(partition.operations)

        for op in operations:
            if op.type not in FULL_OPERATIONS:
                raise UnsupportedOperationError(
                    f"Partition {partition.partition_name} uses "
                    f"{InstallOperation.Type.Name(op.type)}; only full payloads are supported",
                    member=partition.partition_name,
                )

        block_size = self.block_size
        total = sum(e.num_blocks for op in operations for e in op.dst_extents) * block_size
        target_size = partition.new_partition_info.size if partition.HasField("new_partition_info") else None

        logger.info(
            f"Extracting partition {partition.partition_name}: {len(operations)} operations, "
            f"{target_size if target_size is not None else total} bytes"
        )

        done = 0
        try:
            with open(destination, "wb") as out:
                if target_size:
                    out.truncate(target_size)
                for index, op in enumerate(operations):
                    if self.cancel_token is not None:
                        self.cancel_token.raise_if_cancelled("Payload extraction")
                    self._apply(out, op, block_size, index)
                    done += sum(e.num_blocks for e in op.dst_extents) * block_size
                    if on_progress:
                        on_progress(done, total)
                written = out.seek(0, 2)
        except OSError as e:
            raise WriteError(f"Cannot write {destination}: {e}", path=str(destination)) from e

        if verify and partition.HasField("new_partition_info") and partition.new_partition_info.hash:
            actual = compute_sha256(destination)
            if actual != partition.new_partition_info.hash:
                raise IntegrityError(
                    f"SHA-256 mismatch for partition {partition.partition_name}",
                    member=partition.partition_name,
                    expected=partition.new_partition_info.hash.hex(),
                    actual=actual.hex(),
                )
            logger.info(f"Verified SHA-256 of partition {partition.partition_name}")

        return written

    def _apply(self, out: BinaryIO, op, block_size: int, index: int) -> None:
        if op.type in (InstallOperation.ZERO, InstallOperation.DISCARD):
            for extent in op.dst_extents:
                out.seek(extent.start_block * block_size)
                remaining = extent.num_blocks * block_size
                while remaining > 0:
                    step = min(remaining, _ZERO_CHUNK)
                    out.write(b"\x00" * step)
                    remaining -= step
            return

        data = self._read_data(op, index)
        try:
            if op.type == InstallOperation.REPLACE:
                content = data
            elif op.type == InstallOperation.REPLACE_BZ:
                content = bz2.decompress(data)
            elif op.type == InstallOperation.REPLACE_XZ:
                content = lzma.decompress(data)
            else:
                content = zstandard.ZstdDecompressor().decompressobj().decompress(data)
        except (OSError, ValueError, EOFError, lzma.LZMAError, zstandard.ZstdError) as e:
            raise PayloadError(
                f"Cannot decompress {InstallOperation.Type.Name(op.type)} operation {index}: {e}",
                operation=index,
            ) from e

        self._write_extents(out, op, content, block_size, index)

    def _read_data(self, op, index: int) -> bytes:
        if op.data_length == 0:
            return b""
        start = self.base_offset + self.header.data_offset + op.data_offset
        end = start + op.data_length - 1
        if end >= self.limit:
            raise PayloadError(
                f"Operation {index} data runs past the payload end",
                operation=index, start=start, length=op.data_length,
            )
        data = self.source.read_range(start, end)
        if op.HasField("data_sha256_hash"):
            if hashlib.sha256(data).digest() != op.data_sha256_hash:
                raise PayloadError(f"SHA-256 mismatch in operation {index} data", operation=index)
        return data

    @staticmethod
    def _write_extents(out: BinaryIO, op, content: bytes, block_size: int, index: int) -> None:
        capacity = sum(e.num_blocks for e in op.dst_extents) * block_size
        if len(content) > capacity:
            raise PayloadError(
                f"Operation {index} produced {len(content)} bytes for {capacity} bytes of extents",
                operation=index,
            )
        cursor = 0
        for extent in op.dst_extents:
            if cursor >= len(content):
                break
            length = extent.num_blocks * block_size
            out.seek(extent.start_block * block_size)
            out.write(content[cursor:cursor + length])
            cursor += length
