"""Configuration utilities."""

import tempfile
import platformdirs
from pathlib import Path

APP_DIR_NAME = "ota-partfetch"


def expand_path_variables(path: str) -> str:
    """Expand ${VAR} variables in paths.

    Supported variables:
        ${USER_HOME}: User's home directory
        ${USER_CACHE}: User cache directory
        ${USER_DATA}: User data directory
        ${USER_LOGS}: User log directory
        ${TEMP}: Temporary directory

    Args:
        path: Path string with variables

    Returns:
        Expanded path string
    """
    if not isinstance(path, str):
        return path

    replacements = {
        "${USER_HOME}": str(Path.home()),
        "${USER_CACHE}": platformdirs.user_cache_dir(),
        "${USER_DATA}": platformdirs.user_data_dir(),
        "${USER_LOGS}": platformdirs.user_log_dir(),
        "${TEMP}": tempfile.gettempdir(),
    }

    for var, value in replacements.items():
        path = path.replace(var, value)

    return path


def default_cache_dir() -> str:
    """Unexpanded default location for cached remote archives."""
    return f"${{USER_CACHE}}/{APP_DIR_NAME}"
