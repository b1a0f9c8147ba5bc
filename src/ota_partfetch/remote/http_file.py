"""Byte-addressable view of a remote object over HTTP range requests."""

import logging
import re
from datetime import datetime
from email.utils import parsedate_to_datetime
from pathlib import Path
from typing import Callable, Dict, Iterator, Mapping, Optional, Protocol

import requests

from ..common.cancellation import CancellationToken
from ..common.errors import ByteRangeError, NetworkError, WriteError
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
DEFAULT_CHUNK_SIZE = 1024 * 1024

_CONTENT_RANGE_RE = re.compile(r"bytes\s+(\d+)-(\d+)/(\d+|\*)")

ProgressCallback = Callable[[int, Optional[int]], None]


class TransientHTTPError(Exception):
    """Response status or body indicates a failure worth retrying."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


# Exceptions a single HTTP operation is retried on
TRANSIENT_ERRORS = (
    requests.exceptions.Timeout,
    requests.exceptions.ConnectionError,
    requests.exceptions.ChunkedEncodingError,
    TransientHTTPError,
)


class RangeSink(Protocol):
    """Receiver for a streamed range; ``reset`` discards a failed attempt."""

    def reset(self) -> None: ...

    def write(self, chunk: bytes) -> None: ...


def parse_http_date(value: Optional[str]) -> Optional[datetime]:
    """Parse an HTTP-date header value, returning None when absent or invalid."""
    if not value:
        return None
    try:
        return parsedate_to_datetime(value)
    except (TypeError, ValueError):
        logger.debug(f"Ignoring unparseable HTTP date: {value!r}")
        return None


def _parse_length(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        length = int(value)
    except ValueError:
        return None
    return length if length >= 0 else None


class RemoteFileHandle:
    """Random access to a URL through stateless ranged GET requests.

    The handle is unusable until ``initialize()`` has probed the object
    size. Every HTTP operation is wrapped individually by the retry policy;
    nothing above a single request is ever retried here.

    Args:
        url: Remote object URL
        headers: Extra request headers (User-Agent, Referer, ...)
        timeout: Per-request timeout in seconds
        retry_policy: Backoff policy for each HTTP operation
        chunk_size: Streaming chunk size for downloads and range fetches
        session: Optional ``requests.Session``; one is created and owned otherwise
        cancel_token: Optional token checked before requests and between chunks
    """

    def __init__(
        self,
        url: str,
        headers: Optional[Mapping[str, str]] = None,
        timeout: float = DEFAULT_TIMEOUT,
        retry_policy: Optional[RetryPolicy] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        session: Optional[requests.Session] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> None:
        self.url = url
        self.headers: Dict[str, str] = dict(headers or {})
        self.timeout = timeout
        self.retry_policy = retry_policy or RetryPolicy()
        self.chunk_size = chunk_size
        self.cancel_token = cancel_token
        self._owns_session = session is None
        self._session = session if session is not None else requests.Session()

        self.size: Optional[int] = None
        self.final_url: str = url
        self.last_modified: Optional[datetime] = None
        self.content_type: Optional[str] = None
        self.accepts_ranges: bool = False

    def __enter__(self) -> "RemoteFileHandle":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        """Close the HTTP session if this handle created it."""
        if self._owns_session:
            self._session.close()

    @property
    def initialized(self) -> bool:
        return self.size is not None

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    def initialize(self) -> int:
        """Probe the object with a HEAD request and record its size.

        Falls back to a one-byte range probe when the HEAD response carries
        no Content-Length.

        Returns:
            Total object size in bytes

        Raises:
            NetworkError: Probe failed after all retries
            ByteRangeError: The server reports no usable size
        """
        response = self._call("Metadata probe", self._head)

        self.final_url = response.url or self.url
        self.last_modified = parse_http_date(response.headers.get("Last-Modified"))
        self.content_type = response.headers.get("Content-Type")
        self.accepts_ranges = response.headers.get("Accept-Ranges", "").lower() == "bytes"

        size = _parse_length(response.headers.get("Content-Length"))
        if size is None:
            logger.debug(f"No Content-Length from HEAD {self.url}, probing with a range request")
            size = self._call("Size probe", self._probe_size)

        if not self.accepts_ranges:
            logger.warning(
                f"Server does not advertise byte-range support for {self.url}; "
                f"range reads may fail"
            )

        self.size = size
        logger.debug(f"Remote object {self.final_url}: {size} bytes")
        return size

    def get_size(self) -> int:
        """Total object size; requires ``initialize()``."""
        if self.size is None:
            raise ByteRangeError("Remote file not initialized", url=self.url)
        return self.size

    def get_content_type(self) -> Optional[str]:
        return self.content_type

    def get_last_modified(self) -> Optional[datetime]:
        return self.last_modified

    def is_accessible(self) -> bool:
        """Single HEAD request without retries; never raises."""
        try:
            response = self._session.head(
                self.url, headers=self.headers, timeout=self.timeout, allow_redirects=True
            )
        except requests.RequestException as e:
            logger.debug(f"{self.url} not accessible: {e}")
            return False
        return response.status_code < 400

    # ------------------------------------------------------------------
    # Range reads
    # ------------------------------------------------------------------

    def read(self, start: int, end: int) -> bytes:
        """Fetch bytes ``start`` to ``end`` inclusive with one range request.

        Raises:
            ByteRangeError: Bounds invalid, handle not initialized, or the
                server ignored the Range header
            NetworkError: All attempts failed
        """
        self._check_range(start, end)
        expected = end - start + 1

        def attempt() -> bytes:
            response = self._get_range(start, end, stream=False)
            data = response.content
            if len(data) < expected:
                raise TransientHTTPError(
                    f"short read: got {len(data)} of {expected} bytes", response.status_code
                )
            if len(data) > expected:
                raise ByteRangeError(
                    f"Server returned {len(data)} bytes for a {expected}-byte range",
                    url=self.url, start=start, end=end,
                )
            return data

        return self._call(f"Range read {start}-{end}", attempt)

    def fetch_range(
        self,
        start: int,
        end: int,
        sink: RangeSink,
        on_progress: Optional[ProgressCallback] = None,
    ) -> int:
        """Stream bytes ``start`` to ``end`` inclusive into ``sink``.

        The whole range is requested in one request. A retry resets the sink
        and re-issues the full range.

        Returns:
            Number of bytes delivered to the sink
        """
        self._check_range(start, end)
        expected = end - start + 1

        def attempt() -> int:
            sink.reset()
            received = 0
            with self._get_range(start, end, stream=True) as response:
                for chunk in response.iter_content(chunk_size=self.chunk_size):
                    self._check_cancelled("Range fetch")
                    if not chunk:
                        continue
                    if received + len(chunk) > expected:
                        raise ByteRangeError(
                            f"Server sent more than the requested {expected} bytes",
                            url=self.url, start=start, end=end,
                        )
                    sink.write(chunk)
                    received += len(chunk)
                    if on_progress:
                        on_progress(received, expected)
            if received < expected:
                raise TransientHTTPError(f"range ended early: {received} of {expected} bytes")
            return received

        return self._call(f"Range fetch {start}-{end}", attempt)

    def iter_range(self, start: int, end: int) -> Iterator[bytes]:
        """Yield the bytes ``start`` to ``end`` inclusive chunk by chunk.

        Opening each request goes through the retry policy. A stream that
        breaks after data was yielded is re-requested from the first missing
        byte, at most ``max_attempts - 1`` times in total.

        Raises:
            ByteRangeError: Bounds invalid or the server ignored the Range header
            NetworkError: Opening failed after all retries, or resumes ran out
        """
        self._check_range(start, end)
        position = start
        resumes = 0

        while position <= end:
            first = position
            response = self._call(
                f"Range stream {first}-{end}",
                lambda: self._get_range(first, end, stream=True),
            )
            try:
                with response:
                    for chunk in response.iter_content(chunk_size=self.chunk_size):
                        self._check_cancelled("Range stream")
                        if not chunk:
                            continue
                        if position + len(chunk) > end + 1:
                            raise ByteRangeError(
                                f"Server sent more than the requested {end - start + 1} bytes",
                                url=self.url, start=start, end=end,
                            )
                        position += len(chunk)
                        yield chunk
                if position <= end:
                    raise TransientHTTPError(f"range ended early at byte {position} of {start}-{end}")
            except TRANSIENT_ERRORS as e:
                resumes += 1
                if resumes >= self.retry_policy.max_attempts:
                    raise NetworkError(
                        f"Range stream {start}-{end} failed after {resumes} attempts: {e}",
                        url=self.url, start=start, end=end, received=position - start,
                    ) from e
                logger.warning(
                    f"Range stream {start}-{end} interrupted at byte {position} "
                    f"(attempt {resumes}/{self.retry_policy.max_attempts}): {e}. Resuming..."
                )

    # ------------------------------------------------------------------
    # Whole-object download
    # ------------------------------------------------------------------

    def download(
        self,
        destination: Path,
        on_progress: Optional[ProgressCallback] = None,
    ) -> int:
        """Stream the whole object to ``destination``.

        Opening the response is retried; a failure after data started to
        flow is not, and leaves the partial file in place.

        Returns:
            Number of bytes written

        Raises:
            NetworkError: Request failed or the body was truncated
            WriteError: Destination could not be written
        """
        response = self._call("Download", self._open_download)
        total = _parse_length(response.headers.get("Content-Length"))
        if total is None:
            total = self.size
        received = 0

        logger.info(f"Downloading {self.url} -> {destination}")
        try:
            with response, open(destination, "wb") as f:
                for chunk in response.iter_content(chunk_size=self.chunk_size):
                    self._check_cancelled("Download")
                    if not chunk:
                        continue
                    f.write(chunk)
                    received += len(chunk)
                    if on_progress:
                        on_progress(received, total)
        except requests.RequestException as e:
            raise NetworkError(
                f"Download interrupted after {received} bytes: {e}",
                url=self.url, received=received,
            ) from e
        except OSError as e:
            raise WriteError(f"Cannot write {destination}: {e}", path=str(destination)) from e

        if total is not None and received != total:
            raise NetworkError(
                f"Download truncated: {received} of {total} bytes",
                url=self.url, received=received, total=total,
            )

        logger.info(f"Downloaded {received} bytes to {destination}")
        return received

    # ------------------------------------------------------------------
    # Single attempts
    # ------------------------------------------------------------------

    def _head(self) -> requests.Response:
        response = self._session.head(
            self.url, headers=self.headers, timeout=self.timeout, allow_redirects=True
        )
        if response.status_code >= 400:
            raise TransientHTTPError(f"HTTP {response.status_code}", response.status_code)
        return response

    def _probe_size(self) -> int:
        headers = dict(self.headers, Range="bytes=0-0")
        with self._session.get(url=self.url, headers=headers, timeout=self.timeout, stream=True) as response:
            if response.status_code == 206:
                match = _CONTENT_RANGE_RE.match(response.headers.get("Content-Range", ""))
                if match and match.group(3) != "*":
                    self.accepts_ranges = True
                    return int(match.group(3))
            elif response.status_code == 200:
                length = _parse_length(response.headers.get("Content-Length"))
                if length is not None:
                    return length
            else:
                raise TransientHTTPError(f"HTTP {response.status_code}", response.status_code)

        raise ByteRangeError("Server reports no object size", url=self.url)

    def _get_range(self, start: int, end: int, stream: bool) -> requests.Response:
        self._check_cancelled("Range request")
        headers = dict(self.headers, Range=f"bytes={start}-{end}")
        response = self._session.get(url=self.url, headers=headers, timeout=self.timeout, stream=stream)

        if response.status_code == 206:
            match = _CONTENT_RANGE_RE.match(response.headers.get("Content-Range", ""))
            if match and int(match.group(1)) != start:
                response.close()
                raise ByteRangeError(
                    f"Server answered range {match.group(0)} for bytes={start}-{end}",
                    url=self.url, start=start, end=end,
                )
            return response

        response.close()
        if response.status_code == 200:
            raise ByteRangeError(
                "Server ignored the Range header (HTTP 200)",
                url=self.url, start=start, end=end, status=200,
            )
        raise TransientHTTPError(f"HTTP {response.status_code}", response.status_code)

    def _open_download(self) -> requests.Response:
        self._check_cancelled("Download")
        response = self._session.get(url=self.url, headers=self.headers, timeout=self.timeout, stream=True)
        if response.status_code != 200:
            response.close()
            raise TransientHTTPError(f"HTTP {response.status_code}", response.status_code)
        return response

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _call(self, operation_name: str, operation: Callable):
        try:
            return self.retry_policy.call(
                operation,
                operation_name,
                retry_on=TRANSIENT_ERRORS,
                cancel_token=self.cancel_token,
            )
        except requests.RequestException as e:
            raise NetworkError(f"{operation_name} failed: {e}", url=self.url) from e

    def _check_range(self, start: int, end: int) -> None:
        if self.size is None:
            raise ByteRangeError("Remote file not initialized", url=self.url)
        if start < 0 or end >= self.size or start > end:
            raise ByteRangeError(
                f"Invalid byte range {start}-{end} for object of {self.size} bytes",
                url=self.url, start=start, end=end, size=self.size,
            )

    def _check_cancelled(self, operation: str) -> None:
        if self.cancel_token is not None:
            self.cancel_token.raise_if_cancelled(operation)
