"""On-disk cache of whole remote archives."""

import logging
import os
import posixpath
from datetime import datetime
from pathlib import Path
from typing import Optional
from urllib.parse import unquote, urlparse

from ..common.errors import WriteError
from ..remote.http_file import ProgressCallback, RemoteFileHandle

logger = logging.getLogger(__name__)

DEFAULT_CACHE_NAME = "remote.zip"
INTERIM_SUFFIX = ".part"


class ArchiveCache:
    """Keeps downloaded archives under ``directory`` keyed by URL basename.

    A cached file is reused only if its size equals the remote length and
    its modification time is not older than the remote Last-Modified. There
    is no content hash and no locking between concurrent writers.
    """

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)

    @staticmethod
    def key_for(url: str) -> str:
        """File name used for ``url``: the last path segment, or a fallback."""
        name = posixpath.basename(unquote(urlparse(url).path))
        if not name or name in (".", ".."):
            return DEFAULT_CACHE_NAME
        return name

    def path_for(self, url: str) -> Path:
        return self.directory / self.key_for(url)

    def is_valid(self, path: Path, remote_size: int, remote_mtime: Optional[datetime]) -> bool:
        """Size and mtime check against the remote metadata."""
        try:
            stat = path.stat()
        except FileNotFoundError:
            return False

        if stat.st_size != remote_size:
            logger.info(f"Cached {path.name} size {stat.st_size} != remote {remote_size}")
            return False

        if remote_mtime is not None and stat.st_mtime < remote_mtime.timestamp():
            logger.info(f"Cached {path.name} is older than the remote copy")
            return False

        return True

    def fetch(self, handle: RemoteFileHandle, on_progress: Optional[ProgressCallback] = None) -> Path:
        """Return a valid cached copy of ``handle``'s object, downloading if needed.

        The download goes to an interim file that is renamed into place
        only after it completed.

        Raises:
            NetworkError: Download failed
            WriteError: Cache directory or file cannot be written
        """
        path = self.path_for(handle.url)
        remote_size = handle.get_size()

        if self.is_valid(path, remote_size, handle.get_last_modified()):
            logger.info(f"Using cached archive {path}")
            return path

        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise WriteError(f"Cannot create cache directory {self.directory}: {e}",
                             path=str(self.directory)) from e

        interim = path.with_name(path.name + INTERIM_SUFFIX)
        try:
            handle.download(interim, on_progress)
        except BaseException:
            interim.unlink(missing_ok=True)
            raise

        try:
            os.replace(interim, path)
        except OSError as e:
            raise WriteError(f"Cannot move {interim} into the cache: {e}", path=str(path)) from e

        logger.info(f"Cached {handle.url} as {path}")
        return path

    def remove(self, url: str) -> bool:
        """Delete the cached copy of ``url``; returns True if one existed."""
        path = self.path_for(url)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True
