"""Android A/B update payload (``payload.bin``) support."""

from .reader import (
    PAYLOAD_MAGIC,
    PayloadHeader,
    PayloadReader,
    is_payload,
    parse_header,
)

__all__ = [
    'PAYLOAD_MAGIC',
    'PayloadHeader',
    'PayloadReader',
    'is_payload',
    'parse_header',
]
