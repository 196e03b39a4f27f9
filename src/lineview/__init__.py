"""Virtualized line-range content engine for very large text files."""

from .core.ranges import LineSpan, LoadedRangeSet
from .editor.content_engine import LineEntry, VirtualizedContent
from .editor.overlay import DirtyRange
from .editor.patches import PatchOperation
from .errors import ContentError, RangeLoadError, SaveError, SourceError
from .services.line_source import LineSource, PatchOutcome, RangeResult

__version__ = "0.1.0"

__all__ = [
    "ContentError",
    "DirtyRange",
    "LineEntry",
    "LineSource",
    "LineSpan",
    "LoadedRangeSet",
    "PatchOperation",
    "PatchOutcome",
    "RangeLoadError",
    "RangeResult",
    "SaveError",
    "SourceError",
    "VirtualizedContent",
    "__version__",
]
