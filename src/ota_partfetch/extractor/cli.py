"""Command-line interface for partition extraction."""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional, Union

from .config import PartFetchConfig
from .orchestrator import download_partition_file, extract_partition, list_members
from ..common import ConfigLoader, PartFetchError, setup_logging

# Application name derived from the top-level package name
_package = (__package__ or "ota_partfetch.extractor").split(".")[0]
APP_NAME = _package.replace('_', '-')

_PROGRESS_STEP = 10


class ProgressLogger:
    """Logs transfer progress every ``_PROGRESS_STEP`` percent."""

    def __init__(self, logger: logging.Logger, label: str) -> None:
        self.logger = logger
        self.label = label
        self._next_percent = 0

    def __call__(self, current: int, total: Optional[int]) -> None:
        if not total:
            return
        percent = current * 100 // total
        if percent >= self._next_percent:
            self.logger.info(f"{self.label}: {current}/{total} bytes ({percent}%)")
            self._next_percent = percent - percent % _PROGRESS_STEP + _PROGRESS_STEP


def extract_command(
    config: PartFetchConfig,
    locator: str,
    name: str,
    destination: Union[str, Path],
    timeout: Optional[float] = None,
    verify: Optional[bool] = None,
) -> int:
    """Extract one partition.

    Returns:
        Exit code (0 for success)
    """
    logger = logging.getLogger(__package__ or __name__)

    result = extract_partition(
        locator,
        name,
        destination,
        {"timeout": timeout, "verify": verify},
        config=config,
        on_progress=ProgressLogger(logger, f"Extracting {name}"),
    )

    if result.success:
        logger.info(f"Extracted {name} -> {result.path} ({result.bytes_written} bytes)")
        return 0

    logger.error(f"Extraction failed [{result.error.value if result.error else 'Error'}]: {result.message}")
    return 1


def download_command(config: PartFetchConfig, url: str, destination: Union[str, Path]) -> int:
    """Download a whole remote image.

    Returns:
        Exit code (0 for success)
    """
    logger = logging.getLogger(__package__ or __name__)

    result = download_partition_file(
        url,
        destination,
        config=config,
        on_progress=ProgressLogger(logger, "Downloading"),
    )

    if result.success:
        logger.info(f"Downloaded {url} -> {result.path} ({result.bytes_written} bytes)")
        return 0

    logger.error(f"Download failed [{result.error.value if result.error else 'Error'}]: {result.message}")
    return 1


def list_command(config: PartFetchConfig, locator: str) -> int:
    """Print archive members or payload partitions, one per line."""
    logger = logging.getLogger(__package__ or __name__)

    try:
        members = list_members(locator, config=config)
    except PartFetchError as e:
        logger.error(f"Cannot list {locator}: {e.message}")
        return 1

    for member in members:
        print(f"{member.size:>14}  {member.method or '':<8}  {member.name}")
    logger.info(f"{len(members)} entries in {locator}")
    return 0


def serve_command(config: PartFetchConfig, host: Optional[str], port: Optional[int]) -> int:
    """Run the HTTP API with uvicorn."""
    import uvicorn
    from ..api.server import create_app

    logger = logging.getLogger(__package__ or __name__)
    host = host or config.api.host
    port = port or config.api.port

    logger.info(
        "Starting API server",
        extra={"extra_fields": {"host": host, "port": port}},
    )
    uvicorn.run(create_app(config), host=host, port=port, log_config=None)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description="Extract partition images from remote or local firmware archives"
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to config file (defaults.toml)"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    extract = subparsers.add_parser("extract", help="Extract one partition image")
    extract.add_argument("locator", help="URL or local path of a ZIP, payload.bin or image")
    extract.add_argument("name", help="Member or partition name, e.g. boot or boot.img")
    extract.add_argument("destination", help="Output file or directory")
    extract.add_argument("--timeout", type=float, help="Per-request timeout in seconds")
    extract.add_argument(
        "--verify",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Check CRC32/SHA-256 after writing (overrides config)"
    )
    extract.add_argument(
        "--cache",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Download and cache the whole archive (overrides config)"
    )

    download = subparsers.add_parser("download", help="Download a whole remote image")
    download.add_argument("url", help="Image URL")
    download.add_argument("destination", help="Output file or directory")

    listing = subparsers.add_parser("list", help="List archive members or payload partitions")
    listing.add_argument("locator", help="URL or local path")

    serve = subparsers.add_parser("serve", help="Run the HTTP API server")
    serve.add_argument("--host", help="Bind address (overrides config)")
    serve.add_argument("--port", type=int, help="Bind port (overrides config)")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    loader = ConfigLoader(app_name=APP_NAME, config_class=PartFetchConfig)
    config = loader.load(defaults_path=args.config)

    setup_logging(
        level=config.logging.level,
        format=config.logging.format,
        log_file=config.logging.file,
        max_file_size_mb=config.logging.max_file_size_mb,
        backup_count=config.logging.backup_count,
    )

    if args.command == "extract":
        if args.cache is not None:
            config.cache.enabled = args.cache
        return extract_command(
            config,
            args.locator,
            args.name,
            args.destination,
            timeout=args.timeout,
            verify=args.verify,
        )
    if args.command == "download":
        return download_command(config, args.url, args.destination)
    if args.command == "list":
        return list_command(config, args.locator)
    return serve_command(config, args.host, args.port)


if __name__ == "__main__":
    sys.exit(main())
