"""Typed publish/subscribe channel owned by each content engine.

Every :class:`~lineview.editor.content_engine.VirtualizedContent` carries its
own :class:`ContentEventBus`, so subscribers live exactly as long as the engine
they observe.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, DefaultDict, Generic, TypeVar
from weakref import WeakMethod, ref

logger = logging.getLogger(__name__)

E = TypeVar("E", bound="ContentEvent")

Handler = Callable[[E], None]


@dataclass(slots=True)
class ContentEvent:
    """Base class for engine events."""


@dataclass(slots=True)
class FileChanged(ContentEvent):
    """Emitted when the engine switches to a new file identity.

    Attributes:
        path: The new file path, or ``None`` when the engine was detached.
        generation: The generation counter after the switch.
        total_lines: The seeded line-count estimate.
    """

    path: str | None
    generation: int
    total_lines: int


@dataclass(slots=True)
class RangeLoaded(ContentEvent):
    """Emitted after a fetched window has been written and recorded."""

    path: str
    start: int
    end: int
    total_lines: int


@dataclass(slots=True)
class RangeLoadFailed(ContentEvent):
    """Emitted when a fetch fails; the requested range stays unrecorded."""

    path: str
    start: int
    end: int
    error: Exception


@dataclass(slots=True)
class EditsChanged(ContentEvent):
    """Emitted whenever the edit overlay changes outside of a save."""

    edited_lines: int


@dataclass(slots=True)
class EditsSaved(ContentEvent):
    """Emitted after a patch batch has been applied."""

    path: str
    patch_count: int
    saved_lines: int
    total_lines: int


@dataclass(slots=True)
class SaveFailed(ContentEvent):
    """Emitted when a patch batch fails; the overlay is left untouched."""

    path: str
    patch_count: int
    error: Exception


# Scroll-driven loads publish far too often to log each one.
_QUIET_EVENT_TYPES: set[type] = {RangeLoaded}


class ContentEventBus(Generic[E]):
    """Synchronous publish/subscribe bus keyed by event type.

    Bound-method handlers are held through :class:`weakref.WeakMethod` so a
    discarded view does not keep receiving events. Handlers run in
    registration order; one that raises is logged and the rest still run.
    Not thread-safe; use it from the event loop thread.
    """

    __slots__ = ("_handlers",)

    def __init__(self) -> None:
        self._handlers: DefaultDict[type[ContentEvent], list[_HandlerRef]] = defaultdict(list)

    def subscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        self._handlers[event_type].append(_HandlerRef.create(handler))
        logger.debug("Subscribed %s to %s", _handler_name(handler), event_type.__name__)

    def unsubscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        """Remove the first registration of ``handler``; unknown handlers are ignored."""

        handlers = self._handlers.get(event_type)
        if handlers is None:
            return
        for index, handler_ref in enumerate(handlers):
            if handler_ref.matches(handler):
                handlers.pop(index)
                logger.debug("Unsubscribed %s from %s", _handler_name(handler), event_type.__name__)
                return

    def publish(self, event: ContentEvent) -> None:
        event_type = type(event)
        handlers = self._handlers.get(event_type)
        if not handlers:
            return

        if event_type not in _QUIET_EVENT_TYPES:
            logger.debug("Publishing %s to %d handler(s)", event_type.__name__, len(handlers))

        has_dead = False
        for handler_ref in list(handlers):
            handler = handler_ref.resolve()
            if handler is None:
                has_dead = True
                continue
            try:
                handler(event)
            except Exception:
                logger.exception(
                    "Handler %s raised for event %s",
                    _handler_name(handler),
                    event_type.__name__,
                )

        if has_dead:
            handlers[:] = [item for item in handlers if item.resolve() is not None]

    def clear(self) -> None:
        self._handlers.clear()

    def handler_count(self, event_type: type[E] | None = None) -> int:
        if event_type is not None:
            return len(self._handlers.get(event_type, []))
        return sum(len(handlers) for handlers in self._handlers.values())


class _HandlerRef:
    """Weak reference for bound methods, strong reference for everything else."""

    __slots__ = ("_ref", "_is_weak")

    def __init__(self, handler_ref: WeakMethod | ref | Handler, is_weak: bool) -> None:
        self._ref = handler_ref
        self._is_weak = is_weak

    @classmethod
    def create(cls, handler: Handler) -> _HandlerRef:
        if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
            try:
                return cls(WeakMethod(handler), is_weak=True)  # type: ignore[arg-type]
            except TypeError:
                pass
        return cls(handler, is_weak=False)

    def resolve(self) -> Handler | None:
        if not self._is_weak:
            return self._ref  # type: ignore[return-value]
        return self._ref()  # type: ignore[operator]

    def matches(self, handler: Handler) -> bool:
        resolved = self.resolve()
        if resolved is None:
            return False
        return resolved == handler


def _handler_name(handler: Any) -> str:
    if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
        return f"{type(handler.__self__).__name__}.{handler.__func__.__name__}"
    if hasattr(handler, "__name__"):
        return handler.__name__
    return repr(handler)


__all__ = [
    "ContentEvent",
    "ContentEventBus",
    "EditsChanged",
    "EditsSaved",
    "FileChanged",
    "Handler",
    "RangeLoadFailed",
    "RangeLoaded",
    "SaveFailed",
]
