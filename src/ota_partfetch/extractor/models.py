"""Request and result records for partition extraction."""

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from ..common.errors import ErrorKind, PartFetchError

REMOTE_SCHEMES = ("http://", "https://")


def is_remote_locator(locator: str) -> bool:
    """True if ``locator`` names a network resource rather than a local path."""
    return locator.strip().lower().startswith(REMOTE_SCHEMES)


@dataclass
class ExtractionOptions:
    """Per-request overrides; ``None`` falls back to the configuration."""

    timeout: Optional[float] = None
    verify: Optional[bool] = None

    def __post_init__(self) -> None:
        if self.timeout is not None and not self.timeout > 0:
            raise ValueError(f"timeout must be greater than 0 seconds, got {self.timeout}")

    @classmethod
    def coerce(cls, options: Union["ExtractionOptions", Mapping[str, Any], None]) -> "ExtractionOptions":
        """Accept an instance, a plain mapping, or None."""
        if options is None:
            return cls()
        if isinstance(options, cls):
            return options
        known = {f.name for f in fields(cls)}
        unknown = set(options) - known
        if unknown:
            raise ValueError(f"Unknown extraction options: {', '.join(sorted(unknown))}")
        return cls(**dict(options))


@dataclass
class ExtractionRequest:
    source_locator: str
    member_name: str
    destination_path: Union[str, Path]
    options: ExtractionOptions = field(default_factory=ExtractionOptions)

    @property
    def is_remote(self) -> bool:
        return is_remote_locator(self.source_locator)


@dataclass
class ExtractionResult:
    """Outcome of a public entry point; never raised, always returned."""

    success: bool
    error: Optional[ErrorKind] = None
    message: Optional[str] = None
    path: Optional[Path] = None
    bytes_written: int = 0

    @classmethod
    def ok(cls, path: Path, bytes_written: int, message: Optional[str] = None) -> "ExtractionResult":
        return cls(success=True, path=path, bytes_written=bytes_written, message=message)

    @classmethod
    def from_error(cls, error: PartFetchError) -> "ExtractionResult":
        return cls(success=False, error=error.kind, message=error.message)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"success": self.success}
        if self.error is not None:
            data["error"] = self.error.value
        if self.message:
            data["message"] = self.message
        if self.path is not None:
            data["path"] = str(self.path)
        if self.success:
            data["bytes_written"] = self.bytes_written
        return data


@dataclass(frozen=True)
class MemberInfo:
    """One listed archive member or payload partition."""

    name: str
    size: int
    compressed_size: Optional[int] = None
    method: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "size": self.size,
            "compressed_size": self.compressed_size,
            "method": self.method,
        }
