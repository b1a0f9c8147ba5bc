"""Central directory index over a seekable stream."""

import logging
from typing import Dict, Iterator, List, Optional, Protocol

from ..common.errors import EndOfCentralDirectoryNotFound, FormatError, MemberNotFoundError
from .records import (
    EOCD,
    EOCD_SEARCH_SIZE,
    LOCAL_HEADER,
    UINT32_MAX,
    ZIP64_EOCD,
    ZIP64_LOCATOR,
    ZIP64_LOCATOR_SIGNATURE,
    CentralDirectoryEntry,
    EndOfCentralDirectory,
    ResolvedRange,
    decode_filename,
    find_eocd,
    parse_central_directory,
    parse_local_header,
    parse_zip64_eocd,
    parse_zip64_locator,
)

logger = logging.getLogger(__name__)


class SeekableSource(Protocol):
    """What the index needs from a stream (RemoteStream or LocalFileStream)."""

    @property
    def size(self) -> int: ...

    def seek(self, offset: int, whence: int = 0) -> int: ...

    def read(self, size: int = -1) -> bytes: ...


class ArchiveIndex:
    """Parsed central directory of a ZIP or ZIP64 archive.

    Build one with :meth:`open`; a constructed index is always complete.
    Lookups are by exact member name. Resolving a member's byte range
    reads its local file header, so the index keeps a reference to the
    stream it was built from.
    """

    def __init__(
        self,
        stream: SeekableSource,
        eocd: EndOfCentralDirectory,
        entries: List[CentralDirectoryEntry],
    ) -> None:
        self.stream = stream
        self.eocd = eocd
        self._ordered = list(entries)
        self._by_name: Dict[str, CentralDirectoryEntry] = {}
        for entry in self._ordered:
            if entry.filename in self._by_name:
                logger.warning(f"Duplicate member name in archive, last one wins: {entry.filename}")
            self._by_name[entry.filename] = entry

    @classmethod
    def open(cls, stream: SeekableSource) -> "ArchiveIndex":
        """Locate and parse the central directory of ``stream``.

        Raises:
            EndOfCentralDirectoryNotFound: The object is not a ZIP archive
            FormatError: The directory structures are inconsistent
        """
        eocd = cls._locate_eocd(stream)
        if eocd.needs_zip64:
            eocd = cls._resolve_zip64(stream, eocd)

        if eocd.dir_offset + eocd.dir_size > eocd.offset:
            raise FormatError(
                f"Central directory ({eocd.dir_offset}+{eocd.dir_size}) overlaps its end record "
                f"at {eocd.offset}",
                dir_offset=eocd.dir_offset, dir_size=eocd.dir_size,
            )

        data = _read_exact(stream, eocd.dir_offset, eocd.dir_size, "central directory")
        entries = parse_central_directory(data, eocd.total_entries)

        logger.info(
            f"Indexed {len(entries)} archive members"
            f"{' (ZIP64)' if eocd.zip64 else ''} from {getattr(stream, 'name', 'stream')}"
        )
        return cls(stream, eocd, entries)

    @staticmethod
    def _locate_eocd(stream: SeekableSource) -> EndOfCentralDirectory:
        size = stream.size
        if size < EOCD.size:
            raise EndOfCentralDirectoryNotFound(
                f"Object of {size} bytes is too small to be a ZIP archive",
                size=size,
            )
        window = min(EOCD_SEARCH_SIZE, size)
        tail = _read_exact(stream, size - window, window, "archive tail")
        return find_eocd(tail, size - window)

    @staticmethod
    def _resolve_zip64(stream: SeekableSource, eocd: EndOfCentralDirectory) -> EndOfCentralDirectory:
        saturated_offset = eocd.dir_offset == UINT32_MAX
        locator_offset = eocd.offset - ZIP64_LOCATOR.size

        if locator_offset < 0:
            if saturated_offset:
                raise FormatError("ZIP64 locator missing before end of central directory")
            return eocd

        locator = _read_exact(stream, locator_offset, ZIP64_LOCATOR.size, "ZIP64 locator")
        if int.from_bytes(locator[:4], "little") != ZIP64_LOCATOR_SIGNATURE:
            if saturated_offset:
                raise FormatError("ZIP64 locator missing before end of central directory")
            # Exactly 0xFFFF entries or a 4 GiB directory in a plain archive
            return eocd

        zip64_offset = parse_zip64_locator(locator)
        record = _read_exact(stream, zip64_offset, ZIP64_EOCD.size, "ZIP64 end of central directory")
        resolved = parse_zip64_eocd(record, eocd)
        logger.debug(
            f"ZIP64 directory: {resolved.total_entries} entries, "
            f"{resolved.dir_size} bytes at {resolved.dir_offset}"
        )
        # Directory must end before the ZIP64 record, not the plain EOCD
        return EndOfCentralDirectory(
            offset=zip64_offset,
            total_entries=resolved.total_entries,
            dir_size=resolved.dir_size,
            dir_offset=resolved.dir_offset,
            comment_length=resolved.comment_length,
            zip64=True,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._ordered)

    def __iter__(self) -> Iterator[CentralDirectoryEntry]:
        return iter(self._ordered)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def names(self) -> List[str]:
        """Member names in archive order."""
        return [entry.filename for entry in self._ordered]

    def entries(self) -> List[CentralDirectoryEntry]:
        """Central directory entries in archive order, as a new list."""
        return list(self._ordered)

    def has_file(self, name: str) -> bool:
        return name in self._by_name

    def find(self, name: str) -> Optional[CentralDirectoryEntry]:
        return self._by_name.get(name)

    def get_file_info(self, name: str) -> CentralDirectoryEntry:
        """Central directory entry for ``name``.

        Raises:
            MemberNotFoundError: No member has exactly this name
        """
        entry = self._by_name.get(name)
        if entry is None:
            raise MemberNotFoundError(f"Member not found in archive: {name}", member=name)
        return entry

    def get_file_range(self, name: str) -> ResolvedRange:
        """Absolute byte span of the compressed data of ``name``."""
        return self.resolve_range(self.get_file_info(name))

    def resolve_range(self, entry: CentralDirectoryEntry) -> ResolvedRange:
        """Read the local header of ``entry`` and compute its data span.

        The local extra field may differ in length from the central copy,
        so the data start is only known after reading the local header.
        """
        offset = entry.local_header_offset
        header = parse_local_header(
            _read_exact(self.stream, offset, LOCAL_HEADER.size, f"local header of {entry.filename}")
        )
        raw_name = _read_exact(
            self.stream, offset + LOCAL_HEADER.size, header.name_length,
            f"local file name of {entry.filename}",
        )
        local_name = decode_filename(raw_name, header.flags)
        if local_name != entry.filename:
            raise FormatError(
                f"Local header name {local_name!r} does not match central directory "
                f"name {entry.filename!r}",
                member=entry.filename,
            )

        start = offset + LOCAL_HEADER.size + header.name_length + header.extra_length
        size = entry.compressed_size
        if start + size > self.stream.size:
            raise FormatError(
                f"Data of {entry.filename} runs past the end of the archive",
                member=entry.filename, start=start, size=size,
            )

        return ResolvedRange(start=start, end=start + size - 1, size=size)


def _read_exact(stream: SeekableSource, offset: int, length: int, what: str) -> bytes:
    """Read ``length`` bytes at ``offset`` or raise FormatError."""
    if length == 0:
        return b""
    if offset < 0 or offset + length > stream.size:
        raise FormatError(
            f"Truncated {what}: bytes {offset}-{offset + length - 1} beyond object of "
            f"{stream.size} bytes",
            offset=offset, length=length,
        )
    stream.seek(offset)
    data = stream.read(length)
    if len(data) != length:
        raise FormatError(
            f"Truncated {what}: read {len(data)} of {length} bytes",
            offset=offset, length=length,
        )
    return data
