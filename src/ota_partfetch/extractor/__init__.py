"""Partition extraction orchestration, caching and CLI."""

from .config import PartFetchConfig, HttpConfig, CacheConfig, ExtractionConfig, ApiConfig
from .models import ExtractionOptions, ExtractionRequest, ExtractionResult, MemberInfo
from .cache import ArchiveCache
from .orchestrator import (
    ExtractionOrchestrator,
    extract_partition,
    download_partition_file,
    list_members,
)

__all__ = [
    'PartFetchConfig',
    'HttpConfig',
    'CacheConfig',
    'ExtractionConfig',
    'ApiConfig',
    'ExtractionOptions',
    'ExtractionRequest',
    'ExtractionResult',
    'MemberInfo',
    'ArchiveCache',
    'ExtractionOrchestrator',
    'extract_partition',
    'download_partition_file',
    'list_members',
]
