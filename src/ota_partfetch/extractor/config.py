"""Configuration schema for partition extraction."""

from typing import Dict, List
from pydantic import BaseModel, Field, ConfigDict, field_validator
from ..common import LoggingConfig, expand_path_variables
from ..common.config_utils import default_cache_dir

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


def _default_headers() -> Dict[str, str]:
    # Some firmware mirrors reject requests without a browser-like referer
    return {
        "Referer": "https://www.miui.com/",
        "Accept": "*/*",
        "Accept-Language": "zh-CN,zh;q=0.9,en;q=0.8",
    }


class HttpConfig(BaseModel):
    """HTTP client settings for remote sources."""

    model_config = ConfigDict(extra='forbid')

    timeout: float = Field(
        default=30.0,
        gt=0,
        description="Per-request timeout in seconds"
    )
    max_retries: int = Field(
        default=3,
        ge=1,
        description="Attempts per HTTP operation, including the first one"
    )
    backoff_base: float = Field(
        default=1.0,
        ge=0,
        description="Delay after the first failed attempt (doubles each attempt)"
    )
    backoff_max: float = Field(
        default=30.0,
        gt=0,
        description="Upper bound for a single retry delay"
    )
    chunk_size: int = Field(
        default=1024 * 1024,
        ge=1024,
        description="Streaming chunk size in bytes"
    )
    user_agent: str = Field(
        default=DEFAULT_USER_AGENT,
        min_length=1,
        description="User-Agent header sent with every request"
    )
    headers: Dict[str, str] = Field(
        default_factory=_default_headers,
        description="Additional request headers"
    )

    def request_headers(self) -> Dict[str, str]:
        """Headers for a RemoteFileHandle."""
        return {"User-Agent": self.user_agent, **self.headers}


class CacheConfig(BaseModel):
    """On-disk cache for whole downloaded archives."""

    model_config = ConfigDict(extra='forbid')

    enabled: bool = Field(
        default=False,
        description="Download remote archives whole and reuse them across extractions"
    )
    directory: str = Field(
        default_factory=default_cache_dir,
        validate_default=True,
        description="Cache directory (supports ${USER_CACHE}, ${TEMP}, ...)"
    )

    @field_validator('directory')
    @classmethod
    def expand_directory(cls, v: str) -> str:
        """Resolve path variables."""
        return expand_path_variables(v)


class ExtractionConfig(BaseModel):
    """Defaults applied when a request does not set its own options."""

    model_config = ConfigDict(extra='forbid')

    verify: bool = Field(
        default=False,
        description="Check size and CRC32 (or SHA-256 for payloads) after writing"
    )


class ApiConfig(BaseModel):
    """HTTP API server settings."""

    model_config = ConfigDict(extra='forbid')

    host: str = Field(default="127.0.0.1", description="Bind address")
    port: int = Field(default=8765, ge=1, le=65535, description="Bind port")
    enable_cors: bool = Field(default=False, description="Add permissive CORS middleware")
    cors_origins: List[str] = Field(default_factory=list, description="Allowed CORS origins")


class PartFetchConfig(BaseModel):
    """Root configuration."""

    model_config = ConfigDict(extra='forbid')

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    http: HttpConfig = Field(default_factory=HttpConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)
