"""Error types surfaced by the content engine and its line sources.

Load failures are recorded on the engine as its last error and never raised.
Save failures are recorded the same way and re-raised so callers can react.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar


class ErrorCode:
    """Constants for machine-readable error codes."""

    RANGE_LOAD_FAILED = "range_load_failed"
    SAVE_FAILED = "save_failed"
    SAVE_REJECTED = "save_rejected"
    SOURCE_UNAVAILABLE = "source_unavailable"
    SOURCE_HTTP_ERROR = "source_http_error"
    INVALID_PAYLOAD = "invalid_payload"
    PATH_OUTSIDE_ROOT = "path_outside_root"
    FILE_NOT_FOUND = "file_not_found"


@dataclass
class ContentError(Exception):
    """Base class for content engine errors.

    Attributes:
        code: Machine-readable error identifier.
        message: Human-readable description.
        details: Additional structured information.
    """

    code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    severity: ClassVar[str] = "error"

    def __post_init__(self) -> None:
        Exception.__init__(self, self.message)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"error": self.code, "message": self.message}
        if self.details:
            result["details"] = dict(self.details)
        return result

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


@dataclass
class RangeLoadError(ContentError):
    """A line-range fetch failed; the range stays unrecorded."""

    code: str = field(default=ErrorCode.RANGE_LOAD_FAILED)
    message: str = field(default="Failed to load file range")
    details: dict[str, Any] = field(default_factory=dict)

    start: int = 0
    end: int = 0

    severity: ClassVar[str] = "warning"

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["range"] = {"start": self.start, "end": self.end}
        return result


@dataclass
class SaveError(ContentError):
    """A patch batch was not applied; pending edits are preserved."""

    code: str = field(default=ErrorCode.SAVE_FAILED)
    message: str = field(default="Failed to save edits")
    details: dict[str, Any] = field(default_factory=dict)

    patch_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["patch_count"] = self.patch_count
        return result


@dataclass
class SourceError(ContentError):
    """A line source could not serve a request."""

    code: str = field(default=ErrorCode.SOURCE_UNAVAILABLE)
    message: str = field(default="Line source request failed")
    details: dict[str, Any] = field(default_factory=dict)

    status_code: int | None = None

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.status_code is not None:
            result["status_code"] = self.status_code
        return result


__all__ = [
    "ErrorCode",
    "ContentError",
    "RangeLoadError",
    "SaveError",
    "SourceError",
]
