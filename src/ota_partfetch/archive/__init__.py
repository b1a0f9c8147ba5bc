"""ZIP and ZIP64 central directory parsing."""

from .records import CentralDirectoryEntry, ResolvedRange, EndOfCentralDirectory
from .index import ArchiveIndex
from .inflate import MemberWriter, check_supported

__all__ = [
    'ArchiveIndex',
    'CentralDirectoryEntry',
    'ResolvedRange',
    'EndOfCentralDirectory',
    'MemberWriter',
    'check_supported',
]
