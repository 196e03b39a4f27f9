"""Core domain types shared by the content engine."""

from .ranges import LineSpan, LoadedRangeSet, merge_spans

__all__ = ["LineSpan", "LoadedRangeSet", "merge_spans"]
