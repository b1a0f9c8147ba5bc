"""File-like cursors over remote and local byte sources.

Both stream classes expose the same surface so that the archive index and
the payload reader work unchanged for URLs and local paths.
"""

import io
import logging
import os
from pathlib import Path
from typing import Optional, Union

from ..common.cancellation import CancellationToken
from ..common.errors import ByteRangeError, SourceNotFoundError
from .http_file import DEFAULT_CHUNK_SIZE, ProgressCallback, RangeSink, RemoteFileHandle

logger = logging.getLogger(__name__)


class _CursorMixin:
    """Position bookkeeping shared by both stream types."""

    _position: int = 0

    @property
    def size(self) -> int:
        raise NotImplementedError

    @property
    def total_bytes(self) -> int:
        return self.size

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> int:
        """Move the cursor; the result must lie within ``[0, size]``."""
        if whence == os.SEEK_SET:
            new_position = offset
        elif whence == os.SEEK_CUR:
            new_position = self._position + offset
        elif whence == os.SEEK_END:
            new_position = self.size + offset
        else:
            raise ValueError(f"Invalid whence: {whence}")

        if new_position < 0 or new_position > self.size:
            raise ByteRangeError(
                f"Seek position {new_position} outside [0, {self.size}]",
                offset=offset, whence=whence, size=self.size,
            )

        self._position = new_position
        return self._position

    def tell(self) -> int:
        return self._position

    def read(self, size: Optional[int] = -1) -> bytes:
        """Read up to ``size`` bytes; short at end of data, empty past it."""
        if size is None or size < 0:
            size = self.size - self._position
        if size == 0 or self._position >= self.size:
            return b""

        end = min(self._position + size, self.size) - 1
        data = self.read_range(self._position, end)
        self._position += len(data)
        return data

    def readinto(self, buffer: Union[bytearray, memoryview]) -> int:
        data = self.read(len(buffer))
        buffer[:len(data)] = data
        return len(data)

    def read_all(self) -> bytes:
        """Read from the cursor to the end of the object."""
        return self.read(-1)

    def read_range(self, start: int, end: int) -> bytes:
        raise NotImplementedError

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return True

    def writable(self) -> bool:
        return False


class RemoteStream(_CursorMixin):
    """Seekable read-only stream over an initialized RemoteFileHandle.

    Each ``read`` issues exactly one range request for the bytes asked for.
    """

    def __init__(self, handle: RemoteFileHandle) -> None:
        if not handle.initialized:
            raise ByteRangeError("Remote file not initialized", url=handle.url)
        self.handle = handle
        self._position = 0

    @property
    def size(self) -> int:
        return self.handle.get_size()

    @property
    def name(self) -> str:
        return self.handle.url

    def read_range(self, start: int, end: int) -> bytes:
        return self.handle.read(start, end)

    def fetch_range(
        self,
        start: int,
        end: int,
        sink: RangeSink,
        on_progress: Optional[ProgressCallback] = None,
    ) -> int:
        """Deliver an inclusive byte range to ``sink`` in a single request."""
        return self.handle.fetch_range(start, end, sink, on_progress)

    def close(self) -> None:
        # The handle belongs to the caller
        pass

    def __repr__(self) -> str:
        return f"RemoteStream(url={self.handle.url!r}, size={self.handle.size})"


class LocalFileStream(_CursorMixin):
    """Seekable read-only stream over a local file."""

    def __init__(
        self,
        path: Path,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        cancel_token: Optional[CancellationToken] = None,
    ) -> None:
        self.path = Path(path)
        self.chunk_size = chunk_size
        self.cancel_token = cancel_token
        try:
            self._file: io.BufferedReader = open(self.path, "rb")
        except FileNotFoundError as e:
            raise SourceNotFoundError(f"Source not found: {self.path}", path=str(self.path)) from e
        self._size = os.fstat(self._file.fileno()).st_size
        self._position = 0

    def __enter__(self) -> "LocalFileStream":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @property
    def size(self) -> int:
        return self._size

    @property
    def name(self) -> str:
        return str(self.path)

    def read_range(self, start: int, end: int) -> bytes:
        if start < 0 or end >= self._size or start > end:
            raise ByteRangeError(
                f"Invalid byte range {start}-{end} for file of {self._size} bytes",
                path=str(self.path), start=start, end=end,
            )
        self._file.seek(start)
        return self._file.read(end - start + 1)

    def fetch_range(
        self,
        start: int,
        end: int,
        sink: RangeSink,
        on_progress: Optional[ProgressCallback] = None,
    ) -> int:
        """Copy an inclusive byte range to ``sink`` in chunks."""
        if start < 0 or end >= self._size or start > end:
            raise ByteRangeError(
                f"Invalid byte range {start}-{end} for file of {self._size} bytes",
                path=str(self.path), start=start, end=end,
            )
        expected = end - start + 1
        sink.reset()
        self._file.seek(start)
        received = 0
        while received < expected:
            if self.cancel_token is not None:
                self.cancel_token.raise_if_cancelled("Local range copy")
            chunk = self._file.read(min(self.chunk_size, expected - received))
            if not chunk:
                raise ByteRangeError(
                    f"File ended after {received} of {expected} bytes",
                    path=str(self.path), start=start, end=end,
                )
            sink.write(chunk)
            received += len(chunk)
            if on_progress:
                on_progress(received, expected)
        return received

    def close(self) -> None:
        self._file.close()

    def __repr__(self) -> str:
        return f"LocalFileStream(path={str(self.path)!r}, size={self._size})"
