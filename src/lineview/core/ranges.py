"""Half-open line spans and the merged set of loaded spans."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, Iterator


@dataclass(slots=True, frozen=True)
class LineSpan:
    """Half-open ``[start, end)`` interval of line indices.

    Unpacks as a ``(start, end)`` pair but is not a sequence; use
    :attr:`length` for the number of lines it covers.
    """

    start: int
    end: int

    def __post_init__(self) -> None:
        start = self._coerce_index(self.start, "start")
        end = self._coerce_index(self.end, "end")
        if end < start:
            raise ValueError(f"LineSpan end ({end}) precedes start ({start})")
        object.__setattr__(self, "start", start)
        object.__setattr__(self, "end", end)

    @staticmethod
    def _coerce_index(value: Any, label: str) -> int:
        try:
            number = int(value)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"LineSpan {label} must be an integer") from exc
        if number < 0:
            return 0
        return number

    def __iter__(self) -> Iterator[int]:
        yield self.start
        yield self.end

    @property
    def length(self) -> int:
        """Return the number of lines covered by the span."""

        return self.end - self.start

    @property
    def is_empty(self) -> bool:
        return self.start == self.end

    @property
    def key(self) -> str:
        """Return the ``"start-end"`` key used to track in-flight requests."""

        return f"{self.start}-{self.end}"


def merge_spans(spans: Iterable[LineSpan]) -> list[LineSpan]:
    """Collapse overlapping or adjacent spans into a sorted minimal list.

    Two spans merge when ``next.start <= current.end``: overlapping or
    touching half-open spans. A span ending at 10 and one starting at 11
    stay apart because line 10 is not covered by either. The result only
    depends on the input contents, never on their order.
    """

    ordered = sorted(spans, key=lambda span: (span.start, span.end))
    if len(ordered) <= 1:
        return ordered

    merged: list[LineSpan] = []
    current = ordered[0]
    for candidate in ordered[1:]:
        if candidate.start <= current.end:
            if candidate.end > current.end:
                current = LineSpan(current.start, candidate.end)
        else:
            merged.append(current)
            current = candidate
    merged.append(current)
    return merged


class LoadedRangeSet:
    """Sorted, disjoint, non-adjacent set of fully fetched line spans.

    ``is_range_loaded`` only answers ``True`` when a single stored span covers
    the query; it never stitches several spans together.
    """

    __slots__ = ("_spans",)

    def __init__(self, spans: Iterable[LineSpan] = ()) -> None:
        self._spans: list[LineSpan] = merge_spans(spans)

    def __len__(self) -> int:
        return len(self._spans)

    def __iter__(self) -> Iterator[LineSpan]:
        return iter(tuple(self._spans))

    def __repr__(self) -> str:
        inner = ", ".join(f"[{span.start}, {span.end})" for span in self._spans)
        return f"LoadedRangeSet({inner})"

    @property
    def ranges(self) -> tuple[LineSpan, ...]:
        return tuple(self._spans)

    def is_range_loaded(self, start: int, end: int) -> bool:
        for span in self._spans:
            if span.start <= start and span.end >= end:
                return True
        return False

    def record_range(self, start: int, end: int) -> None:
        """Add ``[start, end)`` and re-merge the set."""

        span = LineSpan(start, end)
        if span.is_empty:
            return
        self._spans.append(span)
        self.merge_ranges()

    def merge_ranges(self) -> None:
        if len(self._spans) <= 1:
            return
        self._spans = merge_spans(self._spans)

    def clear(self) -> None:
        self._spans = []

    def covered_lines(self) -> int:
        return sum(span.length for span in self._spans)

    def missing_spans(self, start: int, end: int) -> list[LineSpan]:
        """Return the gaps inside ``[start, end)`` not covered by any span."""

        window = LineSpan(start, end)
        gaps: list[LineSpan] = []
        cursor = window.start
        for span in self._spans:
            if span.end <= cursor:
                continue
            if span.start >= window.end:
                break
            if span.start > cursor:
                gaps.append(LineSpan(cursor, min(span.start, window.end)))
            cursor = max(cursor, span.end)
            if cursor >= window.end:
                break
        if cursor < window.end:
            gaps.append(LineSpan(cursor, window.end))
        return gaps


__all__ = ["LineSpan", "LoadedRangeSet", "merge_spans"]
