"""Contract between the content engine and whatever serves file lines."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol, Sequence, runtime_checkable

from ..editor.patches import PatchOperation
from ..errors import ErrorCode, SourceError

__all__ = ["LineSource", "RangeResult", "PatchOutcome"]


@dataclass(slots=True, frozen=True)
class RangeResult:
    """Lines actually served for a requested window.

    ``end_line`` is exclusive and may be smaller than requested at end of file.
    """

    start_line: int
    end_line: int
    total_lines: int
    lines: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_payload(cls, payload: Any) -> RangeResult:
        if not isinstance(payload, Mapping):
            raise SourceError(code=ErrorCode.INVALID_PAYLOAD, message="Range payload must be an object")
        raw_lines = payload.get("lines")
        if not isinstance(raw_lines, Sequence) or isinstance(raw_lines, (str, bytes)):
            raise SourceError(code=ErrorCode.INVALID_PAYLOAD, message="Range payload requires a 'lines' array")
        try:
            start = int(payload["startLine"])
            total = int(payload["totalLines"])
            end = int(payload.get("endLine", start + len(raw_lines)))
        except (KeyError, TypeError, ValueError) as exc:
            raise SourceError(
                code=ErrorCode.INVALID_PAYLOAD,
                message="Range payload requires integer startLine/endLine/totalLines",
            ) from exc
        return cls(start_line=start, end_line=end, total_lines=total, lines=tuple(str(line) for line in raw_lines))

    def to_payload(self) -> dict[str, Any]:
        return {
            "startLine": self.start_line,
            "endLine": self.end_line,
            "totalLines": self.total_lines,
            "lines": list(self.lines),
        }


@dataclass(slots=True, frozen=True)
class PatchOutcome:
    """Result of submitting a patch batch."""

    success: bool
    total_lines: int

    @classmethod
    def from_payload(cls, payload: Any) -> PatchOutcome:
        if not isinstance(payload, Mapping):
            raise SourceError(code=ErrorCode.INVALID_PAYLOAD, message="Patch payload must be an object")
        try:
            total = int(payload.get("totalLines", 0))
        except (TypeError, ValueError) as exc:
            raise SourceError(code=ErrorCode.INVALID_PAYLOAD, message="totalLines must be an integer") from exc
        return cls(success=bool(payload.get("success", False)), total_lines=total)

    def to_payload(self) -> dict[str, Any]:
        return {"success": self.success, "totalLines": self.total_lines}


@runtime_checkable
class LineSource(Protocol):
    """Asynchronous backend serving line windows and applying patch batches."""

    async def fetch_range(self, path: str, start_line: int, end_line: int) -> RangeResult:
        """Return the lines of ``path`` within ``[start_line, end_line)``."""

    async def apply_patches(self, path: str, patches: Sequence[PatchOperation]) -> PatchOutcome:
        """Apply ``patches`` to ``path`` as a single atomic batch."""
