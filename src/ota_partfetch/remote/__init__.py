"""HTTP range access and seekable streams."""

from .retry import RetryPolicy
from .http_file import RemoteFileHandle, RangeSink, TransientHTTPError, parse_http_date
from .stream import RemoteStream, LocalFileStream

__all__ = [
    'RetryPolicy',
    'RemoteFileHandle',
    'RangeSink',
    'TransientHTTPError',
    'parse_http_date',
    'RemoteStream',
    'LocalFileStream',
]
