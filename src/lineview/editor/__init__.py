"""Edit overlay, patch operations and the virtualized content engine."""

from importlib import import_module
from typing import Any

from . import events, overlay, patches

__all__ = ["events", "overlay", "patches", "content_engine", "VirtualizedContent", "LineEntry"]


def __getattr__(name: str) -> Any:
    if name == "content_engine":
        module = import_module(f"{__name__}.{name}")
        globals()[name] = module
        return module
    if name in {"VirtualizedContent", "LineEntry"}:
        return getattr(__getattr__("content_engine"), name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
