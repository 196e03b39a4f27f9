"""Line-based patch operations and batch application helpers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Sequence

from .overlay import DirtyRange

PATCH_TYPES: frozenset[str] = frozenset({"replace", "insert", "delete"})


class PatchApplyError(RuntimeError):
    """Raised when a patch batch cannot be applied cleanly."""

    def __init__(
        self,
        message: str,
        *,
        reason: str = "invalid_patch",
        index: int | None = None,
        start_line: int | None = None,
        end_line: int | None = None,
    ) -> None:
        super().__init__(message)
        self.reason = reason
        self.index = index
        self.start_line = start_line
        self.end_line = end_line

    def details(self) -> dict[str, Any]:
        return {
            "reason": self.reason,
            "index": self.index,
            "start_line": self.start_line,
            "end_line": self.end_line,
        }


@dataclass(slots=True, frozen=True)
class PatchOperation:
    """One entry of an ordered patch batch over half-open line ranges."""

    type: str
    start_line: int
    end_line: int
    content: str = ""

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "startLine": self.start_line,
            "endLine": self.end_line,
            "content": self.content,
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> PatchOperation:
        try:
            op_type = str(payload["type"])
            start = int(payload["startLine"])
            end = int(payload.get("endLine", start))
        except (KeyError, TypeError, ValueError) as exc:
            raise PatchApplyError("Malformed patch payload", reason="invalid_payload") from exc
        content = payload.get("content") or ""
        return cls(type=op_type, start_line=start, end_line=end, content=str(content))

    @classmethod
    def replace(cls, dirty: DirtyRange) -> PatchOperation:
        return cls(type="replace", start_line=dirty.start_line, end_line=dirty.end_line, content=dirty.content)


def patches_from_dirty_ranges(ranges: Iterable[DirtyRange]) -> list[PatchOperation]:
    """Map each dirty range to a ``replace`` operation, keeping their order."""

    return [PatchOperation.replace(dirty) for dirty in ranges]


def apply_line_patches(lines: Sequence[str], patches: Sequence[PatchOperation]) -> List[str]:
    """Apply ``patches`` to ``lines`` as one batch and return the new lines.

    Every operation addresses the original line numbering. The whole batch is
    validated before anything changes, then applied bottom-up so earlier
    indices stay valid.
    """

    if not patches:
        raise PatchApplyError("Patch batch requires at least one entry", reason="empty_patch_batch")

    _validate_batch(lines, patches)
    ordered = sorted(enumerate(patches), key=lambda item: (item[1].start_line, item[1].end_line, item[0]))

    updated = list(lines)
    for _index, patch in reversed(ordered):
        if patch.type == "replace":
            updated[patch.start_line : patch.end_line] = patch.content.split("\n")
        elif patch.type == "insert":
            updated[patch.start_line : patch.start_line] = patch.content.split("\n")
        else:
            del updated[patch.start_line : patch.end_line]
    return updated


def _validate_batch(lines: Sequence[str], patches: Sequence[PatchOperation]) -> None:
    total = len(lines)
    for index, patch in enumerate(patches):
        if patch.type not in PATCH_TYPES:
            raise PatchApplyError(
                f"Unsupported patch type: {patch.type!r}",
                reason="invalid_opcode",
                index=index,
            )
        if patch.start_line < 0 or patch.end_line < patch.start_line:
            raise PatchApplyError(
                "Patch range is inverted or negative",
                reason="invalid_range",
                index=index,
                start_line=patch.start_line,
                end_line=patch.end_line,
            )
        if patch.start_line > total or patch.end_line > total:
            raise PatchApplyError(
                "Patch range exceeds document length",
                reason="range_overflow",
                index=index,
                start_line=patch.start_line,
                end_line=patch.end_line,
            )
    _ensure_non_overlapping(patches)


def _ensure_non_overlapping(patches: Sequence[PatchOperation]) -> None:
    spans = sorted(
        (patch.start_line, patch.end_line if patch.type != "insert" else patch.start_line, index)
        for index, patch in enumerate(patches)
    )
    previous_end = -1
    for start, end, index in spans:
        if start < previous_end:
            raise PatchApplyError(
                "Patch ranges may not overlap",
                reason="range_overlap",
                index=index,
                start_line=start,
                end_line=end,
            )
        previous_end = max(previous_end, end)


__all__ = [
    "PATCH_TYPES",
    "PatchApplyError",
    "PatchOperation",
    "apply_line_patches",
    "patches_from_dirty_ranges",
]
