"""Line sources and settings consumed by the content engine."""

from .http_source import HttpLineSource
from .line_source import LineSource, PatchOutcome, RangeResult
from .local_source import LocalFileLineSource
from .settings import ContentSettings, SettingsStore

__all__ = [
    "ContentSettings",
    "HttpLineSource",
    "LineSource",
    "LocalFileLineSource",
    "PatchOutcome",
    "RangeResult",
    "SettingsStore",
]
