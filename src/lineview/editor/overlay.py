"""Sparse overlay of uncommitted per-line edits."""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterator, Mapping


@dataclass(slots=True, frozen=True)
class DirtyRange:
    """Maximal run of consecutively numbered edited lines.

    ``end_line`` is exclusive and ``content`` holds the run's lines joined
    with ``"\\n"``.
    """

    start_line: int
    end_line: int
    content: str

    @property
    def line_count(self) -> int:
        return self.end_line - self.start_line

    def to_dict(self) -> dict[str, int | str]:
        return {"startLine": self.start_line, "endLine": self.end_line, "content": self.content}


def coalesce_dirty_ranges(edits: Mapping[int, str]) -> list[DirtyRange]:
    """Partition ``edits`` into maximal runs of consecutive line numbers."""

    if not edits:
        return []

    line_numbers = sorted(edits)
    ranges: list[DirtyRange] = []
    run_start = line_numbers[0]
    run_lines = [edits[run_start]]
    last_line = run_start

    for line_number in line_numbers[1:]:
        if line_number == last_line + 1:
            run_lines.append(edits[line_number])
        else:
            ranges.append(DirtyRange(run_start, last_line + 1, "\n".join(run_lines)))
            run_start = line_number
            run_lines = [edits[line_number]]
        last_line = line_number

    ranges.append(DirtyRange(run_start, last_line + 1, "\n".join(run_lines)))
    return ranges


class EditOverlay:
    """Line number to pending content, independent of what has been loaded.

    Every mutation swaps in a fresh dict so views handed out earlier keep
    showing the state they were taken from.
    """

    __slots__ = ("_edits",)

    def __init__(self, edits: Mapping[int, str] | None = None) -> None:
        self._edits: dict[int, str] = dict(edits or {})

    def __len__(self) -> int:
        return len(self._edits)

    def __contains__(self, line_number: object) -> bool:
        return line_number in self._edits

    def __iter__(self) -> Iterator[int]:
        return iter(self.line_numbers())

    def __bool__(self) -> bool:
        return bool(self._edits)

    def view(self) -> Mapping[int, str]:
        """Return a read-only view of the current edits."""

        return MappingProxyType(self._edits)

    def get(self, line_number: int) -> str | None:
        return self._edits.get(line_number)

    def set_line_content(self, line_number: int, content: str) -> None:
        if line_number < 0:
            raise ValueError(f"Line number must be non-negative, got {line_number}")
        updated = dict(self._edits)
        updated[line_number] = content
        self._edits = updated

    def discard(self, line_number: int) -> None:
        if line_number not in self._edits:
            return
        updated = dict(self._edits)
        del updated[line_number]
        self._edits = updated

    def discard_saved(self, saved: Mapping[int, str]) -> None:
        """Drop entries that still hold the content in ``saved``.

        Lines edited again after ``saved`` was captured keep their newer value.
        """

        updated = {
            line: content
            for line, content in self._edits.items()
            if line not in saved or saved[line] != content
        }
        self._edits = updated

    def clear(self) -> None:
        self._edits = {}

    def snapshot(self) -> dict[int, str]:
        return dict(self._edits)

    def line_numbers(self) -> list[int]:
        return sorted(self._edits)

    def dirty_ranges(self) -> list[DirtyRange]:
        return coalesce_dirty_ranges(self._edits)


__all__ = ["DirtyRange", "EditOverlay", "coalesce_dirty_ranges"]
