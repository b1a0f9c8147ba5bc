"""Extract partition images from remote or local firmware archives using HTTP range requests."""

__version__ = "0.1.0"

from .common import CancellationToken, ErrorKind
from .extractor import (
    ExtractionOptions,
    ExtractionOrchestrator,
    ExtractionResult,
    PartFetchConfig,
    download_partition_file,
    extract_partition,
    list_members,
)

__all__ = [
    '__version__',
    'CancellationToken',
    'ErrorKind',
    'ExtractionOptions',
    'ExtractionOrchestrator',
    'ExtractionResult',
    'PartFetchConfig',
    'download_partition_file',
    'extract_partition',
    'list_members',
]
