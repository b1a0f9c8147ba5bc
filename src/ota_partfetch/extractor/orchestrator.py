"""Partition extraction from remote or local archives, payloads and raw images.

The orchestrator classifies a source, builds the archive index over a
remote or local stream, resolves the requested member and writes it to
the destination. Public entry points return an :class:`ExtractionResult`
and never raise.
"""

import logging
import os
import posixpath
import uuid
from pathlib import Path
from typing import Any, Callable, List, Mapping, Optional, Tuple, Union
from urllib.parse import unquote, urlparse

import requests

from ..archive import ArchiveIndex, CentralDirectoryEntry, MemberWriter, check_supported
from ..archive.records import METHOD_STORED
from ..common.cancellation import CancellationToken
from ..common.checksums import compute_crc32
from ..common.errors import (
    EndOfCentralDirectoryNotFound,
    FormatError,
    IntegrityError,
    MemberNotFoundError,
    PartFetchError,
    SourceNotFoundError,
    WriteError,
)
from ..common.logging import LogContext
from ..payload import PayloadReader, is_payload
from ..remote import LocalFileStream, RemoteFileHandle, RemoteStream, RetryPolicy
from .cache import ArchiveCache
from .config import PartFetchConfig
from .models import (
    ExtractionOptions,
    ExtractionRequest,
    ExtractionResult,
    MemberInfo,
    is_remote_locator,
)

logger = logging.getLogger(__name__)

PAYLOAD_MEMBER = "payload.bin"
IMAGE_SUFFIX = ".img"

ProgressCallback = Callable[[int, Optional[int]], None]
Stream = Union[RemoteStream, LocalFileStream]


def _locator_basename(locator: str) -> str:
    if is_remote_locator(locator):
        return posixpath.basename(unquote(urlparse(locator).path))
    return Path(locator).name


def _image_name(name: str) -> str:
    """``boot`` -> ``boot.img``; names with an extension are kept."""
    return name if posixpath.splitext(name)[1] else name + IMAGE_SUFFIX


def _remove_partial(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning(f"Could not remove incomplete output {path}: {e}")
    else:
        logger.debug(f"Removed incomplete output {path}")


class ExtractionOrchestrator:
    """Extracts one named member per call.

    Each call owns its RemoteFileHandle; an injected ``session`` is only
    shared as a connection pool.

    Args:
        config: Configuration; defaults are used when omitted
        session: Optional ``requests.Session`` for every remote handle
        cancel_token: Optional token checked at every network round trip
    """

    def __init__(
        self,
        config: Optional[PartFetchConfig] = None,
        session: Optional[requests.Session] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> None:
        self.config = config or PartFetchConfig()
        self.session = session
        self.cancel_token = cancel_token

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def extract(
        self,
        request: ExtractionRequest,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ExtractionResult:
        """Extract ``request.member_name`` and report the outcome."""
        with LogContext(locator=request.source_locator, member=request.member_name):
            logger.info(
                f"Extracting {request.member_name} from {request.source_locator} "
                f"-> {request.destination_path}"
            )
            try:
                path, written = self._extract(request, on_progress)
            except PartFetchError as e:
                logger.error(f"Extraction of {request.member_name} failed: {e.message}")
                return ExtractionResult.from_error(e)
            except Exception as e:
                logger.exception(f"Unexpected error extracting {request.member_name}: {e}")
                return ExtractionResult(success=False, message=f"Unexpected error: {e}")

            logger.info(f"Extracted {request.member_name} -> {path} ({written} bytes)")
            return ExtractionResult.ok(path, written)

    def download(
        self,
        url: str,
        destination: Union[str, Path],
        on_progress: Optional[ProgressCallback] = None,
    ) -> ExtractionResult:
        """Download a whole remote object to ``destination``."""
        with LogContext(locator=url):
            try:
                target = self._resolve_destination(destination, _locator_basename(url) or "download.img")
                with self._open_handle(url, self.config.http.timeout) as handle:
                    written = handle.download(target, on_progress)
            except PartFetchError as e:
                logger.error(f"Download of {url} failed: {e.message}")
                return ExtractionResult.from_error(e)
            except Exception as e:
                logger.exception(f"Unexpected error downloading {url}: {e}")
                return ExtractionResult(success=False, message=f"Unexpected error: {e}")

            return ExtractionResult.ok(target, written)

    def list_members(self, locator: str) -> List[MemberInfo]:
        """List archive members, or payload partitions for a bare payload.

        Raises:
            PartFetchError: Any failure, including an unrecognized source
        """
        if is_remote_locator(locator):
            with self._open_handle(locator, self.config.http.timeout) as handle:
                handle.initialize()
                return self._list_stream(RemoteStream(handle), locator)

        with self._open_local(locator) as stream:
            return self._list_stream(stream, locator)

    # ------------------------------------------------------------------
    # Source classification
    # ------------------------------------------------------------------

    def _extract(
        self,
        request: ExtractionRequest,
        on_progress: Optional[ProgressCallback],
    ) -> Tuple[Path, int]:
        options = request.options
        verify = options.verify if options.verify is not None else self.config.extraction.verify
        timeout = options.timeout if options.timeout is not None else self.config.http.timeout
        args = (request.source_locator, request.member_name, request.destination_path, verify, on_progress)

        if not request.is_remote:
            with self._open_local(request.source_locator) as stream:
                return self._extract_from_stream(stream, *args)

        with self._open_handle(request.source_locator, timeout) as handle:
            handle.initialize()

            if self.config.cache.enabled:
                cache = ArchiveCache(Path(self.config.cache.directory))
                cached = cache.fetch(handle, on_progress)
                with self._open_local(str(cached)) as stream:
                    return self._extract_from_stream(stream, *args)

            return self._extract_from_stream(RemoteStream(handle), *args)

    def _extract_from_stream(
        self,
        stream: Stream,
        locator: str,
        name: str,
        destination: Union[str, Path],
        verify: bool,
        on_progress: Optional[ProgressCallback],
    ) -> Tuple[Path, int]:
        try:
            index = ArchiveIndex.open(stream)
        except EndOfCentralDirectoryNotFound:
            logger.info(f"{locator} is not a ZIP archive")
            return self._extract_non_archive(stream, locator, name, destination, verify, on_progress)

        entry = self._match_member(index, name)
        if entry is not None:
            target = self._resolve_destination(destination, posixpath.basename(entry.filename))
            return target, self._materialize_member(index, entry, target, verify, on_progress)

        payload_entry = self._match_member(index, PAYLOAD_MEMBER)
        if payload_entry is not None:
            logger.info(f"{name} not in archive, looking it up in {payload_entry.filename}")
            return self._extract_from_zipped_payload(index, payload_entry, name, destination, verify, on_progress)

        raise MemberNotFoundError(
            f"{name} not found in archive ({len(index)} members)",
            member=name, locator=locator,
        )

    def _extract_non_archive(
        self,
        stream: Stream,
        locator: str,
        name: str,
        destination: Union[str, Path],
        verify: bool,
        on_progress: Optional[ProgressCallback],
    ) -> Tuple[Path, int]:
        if stream.size >= 4 and is_payload(stream.read_range(0, 3)):
            logger.info(f"{locator} is an update payload")
            reader = PayloadReader.open(stream, cancel_token=self.cancel_token)
            return self._extract_payload_partition(reader, name, destination, verify, on_progress)

        return self._materialize_raw(stream, locator, name, destination, on_progress)

    @staticmethod
    def _match_member(index: ArchiveIndex, name: str) -> Optional[CentralDirectoryEntry]:
        """Exact name, then ``name.img``, then a case-insensitive basename match."""
        entry = index.find(name)
        if entry is not None:
            return entry

        image_name = _image_name(name)
        if image_name != name:
            entry = index.find(image_name)
            if entry is not None:
                return entry

        wanted = {name.lower(), image_name.lower()}
        for candidate in index:
            if not candidate.is_dir and posixpath.basename(candidate.filename).lower() in wanted:
                return candidate
        return None

    # ------------------------------------------------------------------
    # Materialization
    # ------------------------------------------------------------------

    def _materialize_member(
        self,
        index: ArchiveIndex,
        entry: CentralDirectoryEntry,
        target: Path,
        verify: bool,
        on_progress: Optional[ProgressCallback],
    ) -> int:
        """Fetch, decompress and write one member; no partial output survives."""
        if entry.is_dir:
            raise FormatError(f"{entry.filename} is a directory", member=entry.filename)
        check_supported(entry)
        data_range = index.resolve_range(entry)

        try:
            out = open(target, "wb")
        except OSError as e:
            raise WriteError(f"Cannot create {target}: {e}", path=str(target)) from e

        try:
            with out:
                writer = MemberWriter(out, entry.compression_method, name=str(target))
                if data_range.is_empty:
                    written = 0
                else:
                    index.stream.fetch_range(data_range.start, data_range.end, writer, on_progress)
                    written = writer.finish()

            if written != entry.uncompressed_size:
                raise IntegrityError(
                    f"{entry.filename}: wrote {written} bytes, expected {entry.uncompressed_size}",
                    member=entry.filename,
                )
            if verify:
                self._verify_member(target, entry)
        except BaseException:
            _remove_partial(target)
            raise

        return written

    @staticmethod
    def _verify_member(target: Path, entry: CentralDirectoryEntry) -> None:
        try:
            actual = compute_crc32(target)
        except OSError as e:
            raise WriteError(f"Cannot read back {target}: {e}", path=str(target)) from e
        if actual != entry.crc32:
            raise IntegrityError(
                f"CRC32 mismatch for {entry.filename}: expected {entry.crc32:08x}, got {actual:08x}",
                member=entry.filename,
            )
        logger.debug(f"Verified CRC32 {actual:08x} of {target}")

    def _extract_from_zipped_payload(
        self,
        index: ArchiveIndex,
        payload_entry: CentralDirectoryEntry,
        name: str,
        destination: Union[str, Path],
        verify: bool,
        on_progress: Optional[ProgressCallback],
    ) -> Tuple[Path, int]:
        check_supported(payload_entry)
        data_range = index.resolve_range(payload_entry)

        if payload_entry.compression_method == METHOD_STORED:
            reader = PayloadReader.open(
                index.stream,
                base_offset=data_range.start,
                limit=data_range.end + 1,
                cancel_token=self.cancel_token,
            )
            return self._extract_payload_partition(reader, name, destination, verify, on_progress)

        # Compressed payloads cannot be addressed in place
        scratch_dir = Path(self.config.cache.directory)
        try:
            scratch_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise WriteError(f"Cannot create {scratch_dir}: {e}", path=str(scratch_dir)) from e
        scratch = scratch_dir / f"payload-{uuid.uuid4().hex}.bin"

        logger.info(f"Inflating {payload_entry.filename} ({payload_entry.uncompressed_size} bytes) to {scratch}")
        try:
            self._materialize_member(index, payload_entry, scratch, False, on_progress)
            with LocalFileStream(scratch, self.config.http.chunk_size, self.cancel_token) as local:
                reader = PayloadReader.open(local, cancel_token=self.cancel_token)
                return self._extract_payload_partition(reader, name, destination, verify, on_progress)
        finally:
            _remove_partial(scratch)

    def _extract_payload_partition(
        self,
        reader: PayloadReader,
        name: str,
        destination: Union[str, Path],
        verify: bool,
        on_progress: Optional[ProgressCallback],
    ) -> Tuple[Path, int]:
        partition = reader.find_partition(name)
        target = self._resolve_destination(destination, partition.partition_name + IMAGE_SUFFIX)
        try:
            written = reader.extract_partition(partition.partition_name, target, verify, on_progress)
        except BaseException:
            _remove_partial(target)
            raise
        return target, written

    def _materialize_raw(
        self,
        stream: Stream,
        locator: str,
        name: str,
        destination: Union[str, Path],
        on_progress: Optional[ProgressCallback],
    ) -> Tuple[Path, int]:
        """Treat the whole object as the requested partition image.

        Only done when the basename ends in ``.img`` or the partition name
        appears in the locator: the whole URL for remote sources (query
        strings included), the file name for local ones.

        Raises:
            FormatError: The locator does not look like an image of ``name``
        """
        basename = _locator_basename(locator)
        stem = posixpath.splitext(_image_name(name))[0].lower()
        haystack = locator.lower() if is_remote_locator(locator) else basename.lower()
        is_image = basename.lower().endswith(IMAGE_SUFFIX)
        if not (is_image or (stem and stem in haystack)):
            raise FormatError(
                f"{locator} is neither a ZIP archive, an update payload nor an image of {name}",
                locator=locator, member=name,
            )

        target = self._resolve_destination(destination, basename if is_image else _image_name(name))
        logger.info(f"Treating {locator} as raw image {name}")

        if isinstance(stream, RemoteStream):
            # Partial file stays on failure; the result reports it
            return target, stream.handle.download(target, on_progress)

        if target.resolve() == Path(stream.name).resolve():
            raise WriteError(f"Destination {target} is the source file", path=str(target))

        try:
            out = open(target, "wb")
        except OSError as e:
            raise WriteError(f"Cannot create {target}: {e}", path=str(target)) from e
        try:
            with out:
                writer = MemberWriter(out, METHOD_STORED, name=str(target))
                if stream.size:
                    stream.fetch_range(0, stream.size - 1, writer, on_progress)
                written = writer.finish()
        except BaseException:
            _remove_partial(target)
            raise
        return target, written

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _list_stream(self, stream: Stream, locator: str) -> List[MemberInfo]:
        try:
            index = ArchiveIndex.open(stream)
        except EndOfCentralDirectoryNotFound:
            if stream.size >= 4 and is_payload(stream.read_range(0, 3)):
                reader = PayloadReader.open(stream, cancel_token=self.cancel_token)
                return [MemberInfo(name=n, size=s, method="payload") for n, s in reader.list_partitions()]
            raise FormatError(f"{locator} is neither a ZIP archive nor an update payload", locator=locator)

        return [
            MemberInfo(
                name=entry.filename,
                size=entry.uncompressed_size,
                compressed_size=entry.compressed_size,
                method={0: "stored", 8: "deflate"}.get(entry.compression_method, str(entry.compression_method)),
            )
            for entry in index.entries()
        ]

    def _open_handle(self, url: str, timeout: float) -> RemoteFileHandle:
        http = self.config.http
        return RemoteFileHandle(
            url,
            headers=http.request_headers(),
            timeout=timeout,
            retry_policy=RetryPolicy(
                max_attempts=http.max_retries,
                base_delay=http.backoff_base,
                max_delay=http.backoff_max,
            ),
            chunk_size=http.chunk_size,
            session=self.session,
            cancel_token=self.cancel_token,
        )

    def _open_local(self, locator: str) -> LocalFileStream:
        path = Path(locator).expanduser()
        if path.is_dir():
            raise SourceNotFoundError(f"Source is a directory: {path}", path=str(path))
        return LocalFileStream(path, self.config.http.chunk_size, self.cancel_token)

    @staticmethod
    def _resolve_destination(destination: Union[str, Path], member_basename: str) -> Path:
        """Append ``member_basename`` when the destination names a directory."""
        raw = str(destination)
        target = Path(destination).expanduser()
        if raw.endswith(("/", os.sep)) or target.is_dir():
            target = target / member_basename
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise WriteError(f"Cannot create directory {target.parent}: {e}", path=str(target)) from e
        return target


def extract_partition(
    locator: str,
    name: str,
    destination_path: Union[str, Path],
    options: Union[ExtractionOptions, Mapping[str, Any], None] = None,
    *,
    config: Optional[PartFetchConfig] = None,
    on_progress: Optional[ProgressCallback] = None,
    cancel_token: Optional[CancellationToken] = None,
    session: Optional[requests.Session] = None,
) -> ExtractionResult:
    """Extract partition ``name`` from ``locator`` into ``destination_path``.

    Args:
        locator: ``http(s)://`` URL or local path of a ZIP, payload or image
        name: Member or partition name (``boot`` matches ``boot.img``)
        destination_path: Output file, an existing directory, or a path
            ending in a separator
        options: ``ExtractionOptions`` or a mapping with ``timeout``
            (seconds) and ``verify``
        config: Configuration; defaults when omitted
        on_progress: Called with (bytes done, bytes total)
        cancel_token: Token that aborts the extraction when cancelled
        session: Optional ``requests.Session`` to use

    Returns:
        ExtractionResult; never raises
    """
    try:
        opts = ExtractionOptions.coerce(options)
    except (TypeError, ValueError) as e:
        return ExtractionResult(success=False, message=str(e))

    request = ExtractionRequest(
        source_locator=locator,
        member_name=name,
        destination_path=destination_path,
        options=opts,
    )
    orchestrator = ExtractionOrchestrator(config, session=session, cancel_token=cancel_token)
    return orchestrator.extract(request, on_progress)


def download_partition_file(
    url: str,
    destination_path: Union[str, Path],
    *,
    config: Optional[PartFetchConfig] = None,
    on_progress: Optional[ProgressCallback] = None,
    cancel_token: Optional[CancellationToken] = None,
    session: Optional[requests.Session] = None,
) -> ExtractionResult:
    """Download a whole remote partition image; never raises."""
    orchestrator = ExtractionOrchestrator(config, session=session, cancel_token=cancel_token)
    return orchestrator.download(url, destination_path, on_progress)


def list_members(
    locator: str,
    *,
    config: Optional[PartFetchConfig] = None,
    session: Optional[requests.Session] = None,
) -> List[MemberInfo]:
    """Members of an archive, or partitions of a payload.

    Raises:
        PartFetchError: The source cannot be read or recognized
    """
    return ExtractionOrchestrator(config, session=session).list_members(locator)
