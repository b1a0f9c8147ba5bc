"""Shared fixtures: an in-memory HTTP server, ZIP archive and payload builders."""

import bz2
import hashlib
import io
import lzma
import re
import struct
import zipfile
from collections import defaultdict, deque
from email.utils import format_datetime
from typing import Deque, Dict, List, Optional, Tuple, Union

import pytest
import requests
import zstandard
from requests.structures import CaseInsensitiveDict

_RANGE_RE = re.compile(r"bytes=(\d+)-(\d+)")


class FakeResponse:
    """Minimal stand-in for ``requests.Response``."""

    def __init__(
        self,
        status_code: int,
        body: bytes = b"",
        headers: Optional[Dict[str, str]] = None,
        url: str = "",
        break_after: Optional[int] = None,
    ) -> None:
        self.status_code = status_code
        self._body = body
        self.headers = CaseInsensitiveDict(headers or {})
        self.url = url
        self.break_after = break_after
        self.closed = False

    @property
    def content(self) -> bytes:
        return self._body

    def iter_content(self, chunk_size: int = 1):
        sent = 0
        for pos in range(0, len(self._body), chunk_size):
            if self.break_after is not None and sent >= self.break_after:
                raise requests.exceptions.ChunkedEncodingError("connection reset mid-stream")
            chunk = self._body[pos:pos + chunk_size]
            sent += len(chunk)
            yield chunk

    def close(self) -> None:
        self.closed = True

    def __enter__(self) -> "FakeResponse":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


FailureSpec = Union[int, Exception, FakeResponse]


class FakeHttpSession:
    """Serves in-memory objects with HEAD and byte-range semantics.

    Every request is recorded in ``calls`` as ``(method, url, range)``.
    Failures queued with ``fail_next`` are consumed before real responses:
    an int becomes a response with that status, an exception is raised.
    """

    def __init__(self) -> None:
        self.objects: Dict[str, bytes] = {}
        self.last_modified: Dict[str, str] = {}
        self.calls: List[Tuple[str, str, Optional[str]]] = []
        self.failures: Dict[str, Deque[FailureSpec]] = defaultdict(deque)
        self.ignore_range = False
        self.advertise_ranges = True
        self.head_content_length = True
        self.break_download_after: Optional[int] = None
        self.closed = False

    def serve(self, url: str, data: bytes, last_modified=None) -> str:
        self.objects[url] = data
        if last_modified is not None:
            self.last_modified[url] = format_datetime(last_modified, usegmt=True)
        return url

    def fail_next(self, method: str, *failures: FailureSpec) -> None:
        self.failures[method.upper()].extend(failures)

    def count(self, method: str) -> int:
        return sum(1 for m, _, _ in self.calls if m == method.upper())

    def ranges(self) -> List[Optional[str]]:
        return [r for m, _, r in self.calls if m == "GET"]

    def _injected(self, method: str, url: str) -> Optional[FakeResponse]:
        queue = self.failures[method]
        if not queue:
            return None
        failure = queue.popleft()
        if isinstance(failure, Exception):
            raise failure
        if isinstance(failure, FakeResponse):
            return failure
        return FakeResponse(failure, url=url)

    def _base_headers(self, url: str) -> Dict[str, str]:
        headers = {"Content-Type": "application/zip"}
        if self.advertise_ranges:
            headers["Accept-Ranges"] = "bytes"
        if url in self.last_modified:
            headers["Last-Modified"] = self.last_modified[url]
        return headers

    def head(self, url, headers=None, timeout=None, allow_redirects=True):
        self.calls.append(("HEAD", url, None))
        injected = self._injected("HEAD", url)
        if injected is not None:
            return injected
        if url not in self.objects:
            return FakeResponse(404, url=url)
        response_headers = self._base_headers(url)
        if self.head_content_length:
            response_headers["Content-Length"] = str(len(self.objects[url]))
        return FakeResponse(200, headers=response_headers, url=url)

    def get(self, url=None, headers=None, timeout=None, stream=False, **kwargs):
        requested = (headers or {}).get("Range")
        self.calls.append(("GET", url, requested))
        injected = self._injected("GET", url)
        if injected is not None:
            return injected
        if url not in self.objects:
            return FakeResponse(404, url=url)

        data = self.objects[url]
        response_headers = self._base_headers(url)

        if requested and not self.ignore_range:
            match = _RANGE_RE.match(requested)
            start, end = int(match.group(1)), int(match.group(2))
            if start >= len(data):
                return FakeResponse(416, url=url)
            end = min(end, len(data) - 1)
            body = data[start:end + 1]
            response_headers["Content-Range"] = f"bytes {start}-{end}/{len(data)}"
            response_headers["Content-Length"] = str(len(body))
            return FakeResponse(206, body, response_headers, url=url)

        response_headers["Content-Length"] = str(len(data))
        return FakeResponse(200, data, response_headers, url=url, break_after=self.break_download_after)

    def close(self) -> None:
        self.closed = True


def build_zip(
    members: Dict[str, bytes],
    compression: int = zipfile.ZIP_DEFLATED,
    comment: bytes = b"",
) -> bytes:
    """ZIP archive bytes with ``members`` in insertion order."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression) as zf:
        for name, data in members.items():
            zf.writestr(name, data)
        zf.comment = comment
    return buffer.getvalue()


def convert_to_zip64(data: bytes) -> bytes:
    """Rewrite a plain archive's end records into ZIP64 form.

    The plain EOCD keeps only saturated values and points, through a
    locator, at a ZIP64 end record holding the real directory fields.
    """
    eocd_pos = data.rfind(b"PK\x05\x06")
    (_, _, _, disk_entries, total_entries, dir_size, dir_offset,
     comment_len) = struct.unpack_from("<IHHHHIIH", data, eocd_pos)
    comment = data[eocd_pos + 22:eocd_pos + 22 + comment_len]
    body = data[:eocd_pos]

    zip64_offset = len(body)
    zip64_eocd = struct.pack(
        "<IQHHIIQQQQ", 0x06064B50, 44, 45, 45, 0, 0,
        disk_entries, total_entries, dir_size, dir_offset,
    )
    locator = struct.pack("<IIQI", 0x07064B50, 0, zip64_offset, 1)
    eocd = struct.pack(
        "<IHHHHIIH", 0x06054B50, 0, 0, 0xFFFF, 0xFFFF,
        0xFFFFFFFF, 0xFFFFFFFF, len(comment),
    )
    return body + zip64_eocd + locator + eocd + comment


@pytest.fixture
def http():
    """In-memory HTTP server session."""
    return FakeHttpSession()


@pytest.fixture
def zip_builder():
    """Factory building ZIP archive bytes."""
    return build_zip


@pytest.fixture
def zip64_converter():
    """Function turning plain ZIP bytes into a ZIP64 archive."""
    return convert_to_zip64


@pytest.fixture
def firmware_members():
    """Typical members of a fastboot firmware package."""
    return {
        "boot.img": bytes(range(256)) * 64,
        "system.img": b"SYSTEM" * 5000,
        "META-INF/com/android/metadata": b"ota-type=BLOCK\n",
    }


def assemble_payload(manifest, blob: bytes, signature: bytes = b"") -> bytes:
    """Payload bytes from a DeltaArchiveManifest and its data blob."""
    manifest_bytes = manifest.SerializeToString()
    header = struct.pack(">4sQQI", b"CrAU", 2, len(manifest_bytes), len(signature))
    return header + manifest_bytes + signature + blob


def build_payload(images: Dict[str, bytes], op_type: Optional[int] = None, block_size: int = 4096) -> bytes:
    """Full payload with one data operation per partition.

    Each image must be a multiple of ``block_size``; ``op_type`` defaults
    to REPLACE_XZ.
    """
    from ota_partfetch.payload import update_metadata_pb2 as pb

    if op_type is None:
        op_type = pb.InstallOperation.REPLACE_XZ

    manifest = pb.DeltaArchiveManifest()
    manifest.block_size = block_size
    manifest.minor_version = 0
    blob = b""

    for name, image in images.items():
        if op_type == pb.InstallOperation.REPLACE_XZ:
            data = lzma.compress(image)
        elif op_type == pb.InstallOperation.REPLACE_BZ:
            data = bz2.compress(image)
        elif op_type == pb.InstallOperation.ZSTD:
            data = zstandard.ZstdCompressor().compress(image)
        else:
            data = image

        partition = manifest.partitions.add()
        partition.partition_name = name
        partition.new_partition_info.size = len(image)
        partition.new_partition_info.hash = hashlib.sha256(image).digest()

        op = partition.operations.add()
        op.type = op_type
        op.data_offset = len(blob)
        op.data_length = len(data)
        op.data_sha256_hash = hashlib.sha256(data).digest()
        extent = op.dst_extents.add()
        extent.start_block = 0
        extent.num_blocks = len(image) // block_size
        blob += data

    return assemble_payload(manifest, blob)


@pytest.fixture
def payload_builder():
    """Factory building full-image payload bytes."""
    return build_payload


@pytest.fixture
def payload_images():
    """Partition images for payload tests, block-aligned."""
    return {
        "boot": bytes(range(256)) * 32,
        "vendor_boot": b"VENDOR" * 2048 + b"\x00" * 4096,
    }


@pytest.fixture
def partfetch_config(tmp_path):
    """Configuration without retry waits and with a private cache directory."""
    from ota_partfetch.extractor.config import PartFetchConfig

    return PartFetchConfig(
        http={"backoff_base": 0.0},
        cache={"directory": str(tmp_path / "cache")},
    )
