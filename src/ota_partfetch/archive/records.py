"""ZIP record layouts and the immutable values parsed from them.

All integers are little-endian. Layouts follow APPNOTE.TXT sections 4.3.7
(local file header), 4.3.12 (central directory header), 4.3.14/4.3.15
(ZIP64 end of central directory record and locator) and 4.3.16 (end of
central directory record).
"""

import struct
from dataclasses import dataclass
from typing import List, Optional, Tuple

from ..common.errors import EndOfCentralDirectoryNotFound, FormatError

LOCAL_HEADER_SIGNATURE = 0x04034B50
CENTRAL_HEADER_SIGNATURE = 0x02014B50
EOCD_SIGNATURE = 0x06054B50
ZIP64_LOCATOR_SIGNATURE = 0x07064B50
ZIP64_EOCD_SIGNATURE = 0x06064B50

# signature, version, flags, method, time, date, crc32, csize, usize, name len, extra len
LOCAL_HEADER = struct.Struct("<IHHHHHIIIHH")
# signature, made by, needed, flags, method, time, date, crc32, csize, usize,
# name len, extra len, comment len, disk, internal attrs, external attrs, header offset
CENTRAL_HEADER = struct.Struct("<IHHHHHHIIIHHHHHII")
# signature, disk, directory disk, disk entries, total entries, dir size, dir offset, comment len
EOCD = struct.Struct("<IHHHHIIH")
# signature, directory disk, ZIP64 EOCD offset, total disks
ZIP64_LOCATOR = struct.Struct("<IIQI")
# signature, record size, made by, needed, disk, directory disk,
# disk entries, total entries, dir size, dir offset
ZIP64_EOCD = struct.Struct("<IQHHIIQQQQ")

MAX_COMMENT_LENGTH = 0xFFFF
# Largest tail that can hold an EOCD plus a maximal comment
EOCD_SEARCH_SIZE = EOCD.size + MAX_COMMENT_LENGTH

ZIP64_EXTRA_ID = 0x0001
UINT16_MAX = 0xFFFF
UINT32_MAX = 0xFFFFFFFF

METHOD_STORED = 0
METHOD_DEFLATED = 8

FLAG_ENCRYPTED = 0x0001
FLAG_UTF8 = 0x0800

_EOCD_MAGIC = struct.pack("<I", EOCD_SIGNATURE)


@dataclass(frozen=True)
class CentralDirectoryEntry:
    """One member as recorded in the central directory."""

    filename: str
    compressed_size: int
    uncompressed_size: int
    local_header_offset: int
    compression_method: int
    crc32: int
    flags: int = 0

    @property
    def is_dir(self) -> bool:
        return self.filename.endswith("/")

    @property
    def is_encrypted(self) -> bool:
        return bool(self.flags & FLAG_ENCRYPTED)


@dataclass(frozen=True)
class ResolvedRange:
    """Inclusive absolute byte span of a member's compressed data.

    An empty member has ``size == 0`` and ``end == start - 1``.
    """

    start: int
    end: int
    size: int

    @property
    def is_empty(self) -> bool:
        return self.size == 0


@dataclass(frozen=True)
class EndOfCentralDirectory:
    """Directory location taken from the EOCD, or its ZIP64 counterpart."""

    offset: int
    total_entries: int
    dir_size: int
    dir_offset: int
    comment_length: int
    zip64: bool = False

    @property
    def needs_zip64(self) -> bool:
        return (
            self.dir_offset == UINT32_MAX
            or self.dir_size == UINT32_MAX
            or self.total_entries == UINT16_MAX
        )


@dataclass(frozen=True)
class LocalFileHeader:
    flags: int
    compression_method: int
    compressed_size: int
    uncompressed_size: int
    name_length: int
    extra_length: int


def find_eocd(tail: bytes, tail_offset: int) -> EndOfCentralDirectory:
    """Scan ``tail`` backward for the End-Of-Central-Directory record.

    A candidate whose comment ends exactly at the end of the object wins.
    If none does (trailing bytes after the comment), the last candidate
    whose comment fits is used.

    Args:
        tail: Last bytes of the object
        tail_offset: Absolute offset of ``tail[0]``

    Raises:
        EndOfCentralDirectoryNotFound: No plausible record in ``tail``
    """
    fallback: Optional[Tuple[int, tuple]] = None
    search_end = len(tail) - EOCD.size + len(_EOCD_MAGIC)
    pos = tail.rfind(_EOCD_MAGIC, 0, max(search_end, 0))

    while pos != -1:
        fields = EOCD.unpack_from(tail, pos)
        comment_length = fields[7]
        record_end = pos + EOCD.size + comment_length
        if record_end == len(tail):
            return _eocd_from_fields(fields, tail_offset + pos)
        if record_end < len(tail) and fallback is None:
            fallback = (pos, fields)
        pos = tail.rfind(_EOCD_MAGIC, 0, pos + len(_EOCD_MAGIC) - 1)

    if fallback is not None:
        pos, fields = fallback
        return _eocd_from_fields(fields, tail_offset + pos)

    raise EndOfCentralDirectoryNotFound(
        "End of central directory record not found",
        searched_bytes=len(tail),
    )


def _eocd_from_fields(fields: tuple, offset: int) -> EndOfCentralDirectory:
    _, disk, dir_disk, _, total_entries, dir_size, dir_offset, comment_length = fields
    # 0xFFFF defers the disk numbers to the ZIP64 record
    if disk not in (0, UINT16_MAX) or dir_disk not in (0, UINT16_MAX):
        raise FormatError("Multi-disk archives are not supported", disk=disk)
    return EndOfCentralDirectory(
        offset=offset,
        total_entries=total_entries,
        dir_size=dir_size,
        dir_offset=dir_offset,
        comment_length=comment_length,
    )


def parse_zip64_locator(data: bytes) -> int:
    """Return the absolute offset of the ZIP64 EOCD record."""
    if len(data) < ZIP64_LOCATOR.size:
        raise FormatError("Truncated ZIP64 end of central directory locator")
    signature, _, zip64_eocd_offset, _ = ZIP64_LOCATOR.unpack_from(data)
    if signature != ZIP64_LOCATOR_SIGNATURE:
        raise FormatError(
            "Bad ZIP64 end of central directory locator signature",
            signature=hex(signature),
        )
    return zip64_eocd_offset


def parse_zip64_eocd(data: bytes, eocd: EndOfCentralDirectory) -> EndOfCentralDirectory:
    """Replace the 32-bit directory fields of ``eocd`` with the ZIP64 ones."""
    if len(data) < ZIP64_EOCD.size:
        raise FormatError("Truncated ZIP64 end of central directory record")
    fields = ZIP64_EOCD.unpack_from(data)
    signature = fields[0]
    if signature != ZIP64_EOCD_SIGNATURE:
        raise FormatError(
            "Bad ZIP64 end of central directory signature",
            signature=hex(signature),
        )
    total_entries, dir_size, dir_offset = fields[7], fields[8], fields[9]
    return EndOfCentralDirectory(
        offset=eocd.offset,
        total_entries=total_entries,
        dir_size=dir_size,
        dir_offset=dir_offset,
        comment_length=eocd.comment_length,
        zip64=True,
    )


def decode_filename(raw: bytes, flags: int) -> str:
    """Decode a member name: UTF-8 when flagged, CP437 otherwise."""
    if flags & FLAG_UTF8:
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise FormatError(f"Member name is not valid UTF-8: {raw!r}") from e
    return raw.decode("cp437")


def _apply_zip64_extra(
    extra: bytes, usize: int, csize: int, offset: int, filename: str
) -> Tuple[int, int, int]:
    """Replace saturated 32-bit values with those of a ZIP64 extra field.

    The extended information field stores, in this order, only the values
    whose header counterpart is 0xFFFFFFFF.
    """
    pos = 0
    while pos + 4 <= len(extra):
        header_id, length = struct.unpack_from("<HH", extra, pos)
        body = extra[pos + 4:pos + 4 + length]
        pos += 4 + length
        if header_id != ZIP64_EXTRA_ID:
            continue

        values = []
        for field_pos in range(0, len(body) - 7, 8):
            values.append(struct.unpack_from("<Q", body, field_pos)[0])

        needed = [usize == UINT32_MAX, csize == UINT32_MAX, offset == UINT32_MAX]
        if len(values) < sum(needed):
            raise FormatError(
                f"ZIP64 extra field too short for {filename}",
                member=filename,
            )
        it = iter(values)
        if needed[0]:
            usize = next(it)
        if needed[1]:
            csize = next(it)
        if needed[2]:
            offset = next(it)
        break

    return usize, csize, offset


def parse_central_directory(data: bytes, total_entries: int) -> List[CentralDirectoryEntry]:
    """Parse exactly ``total_entries`` headers that must fill ``data`` exactly.

    Raises:
        FormatError: Bad signature, truncated header, or a byte count that
            does not match the declared directory size
    """
    entries: List[CentralDirectoryEntry] = []
    pos = 0
    declared = len(data)

    for index in range(total_entries):
        if pos + CENTRAL_HEADER.size > declared:
            raise FormatError(
                f"Central directory overrun at entry {index}: "
                f"{pos + CENTRAL_HEADER.size} > {declared} bytes",
                entry=index,
            )

        (signature, _, _, flags, method, _, _, crc32, csize, usize,
         name_len, extra_len, comment_len, _, _, _, offset) = CENTRAL_HEADER.unpack_from(data, pos)

        if signature != CENTRAL_HEADER_SIGNATURE:
            raise FormatError(
                f"Bad central directory signature at entry {index}",
                entry=index, signature=hex(signature),
            )

        name_start = pos + CENTRAL_HEADER.size
        extra_start = name_start + name_len
        record_end = extra_start + extra_len + comment_len
        if record_end > declared:
            raise FormatError(
                f"Central directory overrun at entry {index}: {record_end} > {declared} bytes",
                entry=index,
            )

        filename = decode_filename(data[name_start:extra_start], flags)
        extra = data[extra_start:extra_start + extra_len]
        if UINT32_MAX in (usize, csize, offset):
            usize, csize, offset = _apply_zip64_extra(extra, usize, csize, offset, filename)

        entries.append(CentralDirectoryEntry(
            filename=filename,
            compressed_size=csize,
            uncompressed_size=usize,
            local_header_offset=offset,
            compression_method=method,
            crc32=crc32,
            flags=flags,
        ))
        pos = record_end

    if pos != declared:
        raise FormatError(
            f"Central directory size mismatch: parsed {pos} of {declared} declared bytes",
            parsed=pos, declared=declared,
        )

    return entries


def parse_local_header(data: bytes) -> LocalFileHeader:
    """Parse the fixed 30-byte part of a local file header."""
    if len(data) < LOCAL_HEADER.size:
        raise FormatError("Truncated local file header")
    (signature, _, flags, method, _, _, _, csize, usize,
     name_len, extra_len) = LOCAL_HEADER.unpack_from(data)
    if signature != LOCAL_HEADER_SIGNATURE:
        raise FormatError("Bad local file header signature", signature=hex(signature))
    return LocalFileHeader(
        flags=flags,
        compression_method=method,
        compressed_size=csize,
        uncompressed_size=usize,
        name_length=name_len,
        extra_length=extra_len,
    )
