"""Decompression of member data as it streams in."""

import logging
import zlib
from typing import BinaryIO, Optional

from ..common.errors import FormatError, UnsupportedCompressionError, WriteError
from .records import METHOD_DEFLATED, METHOD_STORED, CentralDirectoryEntry

logger = logging.getLogger(__name__)

SUPPORTED_METHODS = {
    METHOD_STORED: "stored",
    METHOD_DEFLATED: "deflate",
}


def check_supported(entry: CentralDirectoryEntry) -> None:
    """Fail fast on members this package cannot decode.

    Raises:
        UnsupportedCompressionError: Encrypted member or a method other than
            stored or deflate
    """
    if entry.is_encrypted:
        raise UnsupportedCompressionError(
            f"Member {entry.filename} is encrypted",
            member=entry.filename,
        )
    if entry.compression_method not in SUPPORTED_METHODS:
        raise UnsupportedCompressionError(
            f"Unsupported compression method {entry.compression_method} for {entry.filename}",
            member=entry.filename, method=entry.compression_method,
        )


class MemberWriter:
    """Range sink that decompresses member data into a binary file.

    ``reset`` truncates the output and restarts decompression, so a range
    fetch that is retried from its first byte produces the same file.
    """

    def __init__(self, fileobj: BinaryIO, compression_method: int, name: Optional[str] = None) -> None:
        if compression_method not in SUPPORTED_METHODS:
            raise UnsupportedCompressionError(
                f"Unsupported compression method {compression_method}",
                method=compression_method,
            )
        self._file = fileobj
        self.compression_method = compression_method
        self.name = name or getattr(fileobj, "name", "<stream>")
        self.bytes_written = 0
        self._inflater = self._new_inflater()

    def _new_inflater(self):
        if self.compression_method == METHOD_DEFLATED:
            return zlib.decompressobj(-zlib.MAX_WBITS)
        return None

    def reset(self) -> None:
        try:
            self._file.seek(0)
            self._file.truncate()
        except OSError as e:
            raise WriteError(f"Cannot rewind output {self.name}: {e}", path=str(self.name)) from e
        self._inflater = self._new_inflater()
        self.bytes_written = 0

    def write(self, chunk: bytes) -> None:
        if self._inflater is None:
            self._emit(chunk)
            return
        try:
            data = self._inflater.decompress(chunk)
        except zlib.error as e:
            raise FormatError(f"Corrupt deflate data in {self.name}: {e}", member=str(self.name)) from e
        self._emit(data)

    def finish(self) -> int:
        """Flush pending output and check the deflate stream ended.

        Returns:
            Total decompressed bytes written
        """
        if self._inflater is not None:
            try:
                self._emit(self._inflater.flush())
            except zlib.error as e:
                raise FormatError(f"Corrupt deflate data in {self.name}: {e}", member=str(self.name)) from e
            if not self._inflater.eof:
                raise FormatError(f"Deflate stream of {self.name} is incomplete", member=str(self.name))
        try:
            self._file.flush()
        except OSError as e:
            raise WriteError(f"Cannot write {self.name}: {e}", path=str(self.name)) from e
        return self.bytes_written

    def _emit(self, data: bytes) -> None:
        if not data:
            return
        try:
            self._file.write(data)
        except OSError as e:
            raise WriteError(f"Cannot write {self.name}: {e}", path=str(self.name)) from e
        self.bytes_written += len(data)
