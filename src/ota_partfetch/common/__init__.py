"""Common utilities for ota_partfetch packages."""

from .config import ConfigLoader
from .config_utils import expand_path_variables
from .logging import setup_logging, get_logger, LogContext
from .logging_config import LoggingConfig
from .cancellation import CancellationToken
from .errors import (
    ErrorKind, PartFetchError, NetworkError, FormatError,
    EndOfCentralDirectoryNotFound, UnsupportedCompressionError, IntegrityError,
    PayloadError, UnsupportedOperationError, MemberNotFoundError,
    SourceNotFoundError, ByteRangeError, WriteError, ExtractionCancelledError,
)
from .checksums import compute_crc32, compute_sha256

__all__ = [
    'ConfigLoader',
    'expand_path_variables',
    'LoggingConfig',
    'setup_logging',
    'get_logger',
    'LogContext',
    'CancellationToken',
    'ErrorKind',
    'PartFetchError',
    'NetworkError',
    'FormatError',
    'EndOfCentralDirectoryNotFound',
    'UnsupportedCompressionError',
    'IntegrityError',
    'PayloadError',
    'UnsupportedOperationError',
    'MemberNotFoundError',
    'SourceNotFoundError',
    'ByteRangeError',
    'WriteError',
    'ExtractionCancelledError',
    'compute_crc32',
    'compute_sha256',
]
