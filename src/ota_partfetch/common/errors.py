"""Base error definitions for ota_partfetch packages."""

from enum import Enum
from typing import Any, Dict


class ErrorKind(str, Enum):
    """Classification reported to callers in an extraction result."""

    NETWORK = "NetworkError"
    FORMAT = "FormatError"
    NOT_FOUND = "NotFound"
    RANGE = "RangeError"
    WRITE = "WriteError"
    CANCELLED = "Cancelled"


class PartFetchError(Exception):
    """Base exception for all ota_partfetch errors."""

    kind: ErrorKind = ErrorKind.FORMAT

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = context


class NetworkError(PartFetchError):
    """HTTP operation failed after all retry attempts."""

    kind = ErrorKind.NETWORK


class FormatError(PartFetchError):
    """Container bytes are malformed or use an unsupported feature."""

    kind = ErrorKind.FORMAT


class EndOfCentralDirectoryNotFound(FormatError):
    """No End-Of-Central-Directory record in the object tail."""
    pass


class UnsupportedCompressionError(FormatError):
    """Member uses a compression method other than stored or deflate."""
    pass


class IntegrityError(FormatError):
    """Extracted content does not match its recorded size or checksum."""
    pass


class PayloadError(FormatError):
    """Update payload header or manifest is invalid."""
    pass


class UnsupportedOperationError(PayloadError):
    """Payload install operation cannot be applied without a source image."""
    pass


class MemberNotFoundError(PartFetchError):
    """Requested member or partition is absent."""

    kind = ErrorKind.NOT_FOUND


class SourceNotFoundError(MemberNotFoundError):
    """Local source path does not exist."""
    pass


class ByteRangeError(PartFetchError):
    """Byte offsets are out of bounds or the handle cannot serve ranges."""

    kind = ErrorKind.RANGE


class WriteError(PartFetchError):
    """Destination filesystem operation failed."""

    kind = ErrorKind.WRITE


class ExtractionCancelledError(PartFetchError):
    """Operation was cancelled through its cancellation token."""

    kind = ErrorKind.CANCELLED
