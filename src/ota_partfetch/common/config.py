"""Configuration loader with multi-source support."""

import logging
import os
import toml
from pathlib import Path
from typing import Any, Dict, Generic, List, Optional, Tuple, Type, TypeVar
import platformdirs
from pydantic import BaseModel

logger = logging.getLogger(__name__)

T = TypeVar('T', bound=BaseModel)

CONFIG_FILE_NAME = "config.toml"
DEFAULTS_FILE_NAME = "defaults.toml"

_TRUE_VALUES = ("true", "yes", "on")
_FALSE_VALUES = ("false", "no", "off")


def _read_toml(path: Path) -> Dict[str, Any]:
    logger.debug(f"Reading configuration from {path}")
    with open(path, "r", encoding="utf-8") as f:
        return toml.load(f)


class ConfigLoader(Generic[T]):
    """Loads configuration from layered sources.

    Layers, lowest priority first: defaults file, system config, user
    config, ``OTA_PARTFETCH_*`` environment variables. The merged
    dictionary is validated by ``config_class``; without one the plain
    dictionary is returned.

    Args:
        app_name: Directory name under /etc and the user config dir, and
            the source of the environment variable prefix
        config_class: Pydantic model validating the merged dictionary
    """

    def __init__(self, app_name: str = "ota-partfetch", config_class: Optional[Type[T]] = None) -> None:
        self.app_name = app_name
        self.config_class = config_class
        self._config: Optional[T] = None
        self.sources: List[str] = []

    @property
    def env_prefix(self) -> str:
        return f"{self.app_name.upper().replace('-', '_')}_"

    @property
    def user_config_path(self) -> Path:
        return Path(platformdirs.user_config_dir(appname=self.app_name, appauthor=False)) / CONFIG_FILE_NAME

    @property
    def system_config_path(self) -> Path:
        if os.name == "nt":
            base = Path(os.environ.get("PROGRAMDATA", "C:\\ProgramData"))
            return base / self.app_name / CONFIG_FILE_NAME
        return Path("/etc") / self.app_name / CONFIG_FILE_NAME

    def load(self, defaults_path: Optional[Path] = None) -> T:
        """Merge every source and validate the result.

        Args:
            defaults_path: Explicit defaults file (the CLI ``--config``
                option); searched for in ./config and ~/.config otherwise

        Returns:
            Validated configuration object
        """
        self.sources = []
        layers: List[Tuple[str, Optional[Dict[str, Any]]]] = [
            ("defaults", self._load_defaults(defaults_path)),
            ("system", self._load_system_config()),
            ("user", self._load_user_config()),
        ]

        config_dict: Dict[str, Any] = {}
        for label, layer in layers:
            if layer:
                config_dict = self._deep_merge(config_dict, layer)
                self.sources.append(label)

        overridden = self._apply_env_overrides(config_dict)
        if overridden:
            self.sources.append("environment")
        logger.debug(f"Configuration sources: {', '.join(self.sources) or 'built-in defaults'}")

        if self.config_class:
            self._config = self.config_class(**config_dict)
        else:
            self._config = config_dict

        return self._config

    def _defaults_candidates(self) -> List[Path]:
        return [
            Path.cwd() / "config" / DEFAULTS_FILE_NAME,
            Path.home() / ".config" / self.app_name / DEFAULTS_FILE_NAME,
        ]

    def _load_defaults(self, defaults_path: Optional[Path] = None) -> Dict[str, Any]:
        """Load the explicit defaults file, or the first one found."""
        if defaults_path is not None:
            if not defaults_path.exists():
                logger.warning(f"Config file {defaults_path} does not exist, ignoring it")
                return {}
            return _read_toml(defaults_path)

        for path in self._defaults_candidates():
            if path.exists():
                return _read_toml(path)

        return {}

    def _load_system_config(self) -> Optional[Dict[str, Any]]:
        """Load system-wide configuration."""
        path = self.system_config_path
        return _read_toml(path) if path.exists() else None

    def _load_user_config(self) -> Optional[Dict[str, Any]]:
        """Load user-specific configuration."""
        path = self.user_config_path
        if path.exists():
            return _read_toml(path)

        logger.debug(f"User config not found at {path}")
        return None

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def _apply_env_overrides(self, config: Dict[str, Any]) -> int:
        """Apply environment variables to ``config`` in place.

        ``OTA_PARTFETCH_HTTP_MAX_RETRIES=5`` sets ``http.max_retries``: the
        first segment after the prefix names the section, the rest is the key.

        Returns:
            Number of values overridden
        """
        prefix = self.env_prefix
        applied = 0

        for env_key, env_value in os.environ.items():
            if not env_key.startswith(prefix):
                continue

            section, _, key = env_key[len(prefix):].lower().partition("_")
            if not section or not key:
                logger.warning(f"Ignoring {env_key}: expected {prefix}<SECTION>_<KEY>")
                continue

            current = config.setdefault(section, {})
            if not isinstance(current, dict):
                logger.warning(f"Ignoring {env_key}: '{section}' is not a config section")
                continue
            current[key] = self._convert_env_value(env_value)
            applied += 1

        return applied

    def _convert_env_value(self, value: str) -> Any:
        """Convert string environment variable to appropriate type."""
        lowered = value.strip().lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False

        try:
            return float(value) if "." in value else int(value)
        except ValueError:
            pass

        if "," in value:
            return [v.strip() for v in value.split(",") if v.strip()]

        return value

    def save_user_config(self, config: BaseModel) -> Path:
        """Write ``config`` to the user config file and return its path."""
        path = self.user_config_path
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w", encoding="utf-8") as f:
            toml.dump(config.model_dump(exclude_none=True), f)

        logger.info(f"Saved configuration to {path}")
        return path

    @property
    def config(self) -> T:
        """Get loaded configuration."""
        if self._config is None:
            self._config = self.load()
        return self._config
