"""Virtualized line-range content engine.

The engine lets a view show and edit a very large text file while holding
only the line windows it has fetched. It keeps three pieces of state:

* the line store, a sparse ``line number -> LineEntry`` mapping;
* the loaded-range set, merged half-open spans known to be fully fetched;
* the edit overlay, pending per-line edits that are independent of loading.

Loads never raise: failures are recorded on :attr:`VirtualizedContent.error`
and the range stays unrecorded so an identical call is a valid retry. Saves
record their failure the same way and re-raise it, leaving the overlay intact.

Every container is replaced wholesale on update, so a mapping handed to a
reader stays a consistent snapshot. Fetched lines are written before their
span is recorded, so a span never reports loaded ahead of its content.
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Awaitable, Mapping

from ..core.ranges import LineSpan, LoadedRangeSet
from ..errors import ErrorCode, RangeLoadError, SaveError
from ..services.line_source import LineSource, RangeResult
from ..services.settings import ContentSettings
from ..utils.telemetry import TelemetryClient
from .events import (
    ContentEventBus,
    EditsChanged,
    EditsSaved,
    FileChanged,
    RangeLoaded,
    RangeLoadFailed,
    SaveFailed,
)
from .overlay import DirtyRange, EditOverlay, coalesce_dirty_ranges
from .patches import patches_from_dirty_ranges

__all__ = ["LineEntry", "VirtualizedContent"]

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class LineEntry:
    """Content of a line that has been fetched or saved."""

    content: str
    loaded: bool = True


class VirtualizedContent:
    """Range cache and edit overlay for one file at a time."""

    def __init__(
        self,
        source: LineSource,
        path: str | None = None,
        *,
        chunk_size: int = 200,
        overscan: int = 50,
        enabled: bool = True,
        initial_total_lines: int = 0,
        discard_stale_responses: bool = True,
        telemetry: TelemetryClient | None = None,
        events: ContentEventBus | None = None,
    ) -> None:
        if chunk_size < 1:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        if overscan < 0:
            raise ValueError(f"overscan must be non-negative, got {overscan}")
        self._source = source
        self._chunk_size = chunk_size
        self._overscan = overscan
        self._enabled = enabled
        self._initial_total_lines = max(0, initial_total_lines)
        self._discard_stale = discard_stale_responses
        self._telemetry = telemetry or TelemetryClient(enabled=False)
        self.events: ContentEventBus = events or ContentEventBus()

        self._path: str | None = path or None
        self._generation = 0
        self._lines: dict[int, LineEntry] = {}
        self._ranges = LoadedRangeSet()
        self._overlay = EditOverlay()
        self._pending: set[str] = set()
        self._total_lines = self._initial_total_lines
        self._error: Exception | None = None
        self._active_loads = 0
        self._active_saves = 0
        self._tasks: set[asyncio.Task[None]] = set()

    @classmethod
    def from_settings(
        cls,
        source: LineSource,
        settings: ContentSettings,
        *,
        path: str | None = None,
        telemetry: TelemetryClient | None = None,
    ) -> VirtualizedContent:
        return cls(
            source,
            path,
            chunk_size=settings.chunk_size,
            overscan=settings.overscan,
            enabled=settings.enabled,
            initial_total_lines=settings.initial_total_lines,
            discard_stale_responses=settings.discard_stale_responses,
            telemetry=telemetry,
        )

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------
    @property
    def path(self) -> str | None:
        return self._path

    @property
    def generation(self) -> int:
        """Counter bumped on every file identity change."""

        return self._generation

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    @property
    def overscan(self) -> int:
        return self._overscan

    @property
    def enabled(self) -> bool:
        return self._enabled

    @enabled.setter
    def enabled(self, value: bool) -> None:
        self._enabled = bool(value)

    @property
    def lines(self) -> Mapping[int, LineEntry]:
        return MappingProxyType(self._lines)

    @property
    def edited_lines(self) -> Mapping[int, str]:
        return self._overlay.view()

    @property
    def total_lines(self) -> int:
        return self._total_lines

    @property
    def loaded_ranges(self) -> tuple[LineSpan, ...]:
        return self._ranges.ranges

    @property
    def pending_keys(self) -> frozenset[str]:
        return frozenset(self._pending)

    @property
    def is_loading(self) -> bool:
        return self._active_loads > 0

    @property
    def is_saving(self) -> bool:
        return self._active_saves > 0

    @property
    def error(self) -> Exception | None:
        return self._error

    @property
    def has_unsaved_changes(self) -> bool:
        return bool(self._overlay)

    @property
    def is_fully_loaded(self) -> bool:
        return self._total_lines > 0 and self._ranges.is_range_loaded(0, self._total_lines)

    @property
    def full_content(self) -> str | None:
        """The whole file joined with ``"\\n"``, or ``None`` until fully loaded."""

        if not self.is_fully_loaded:
            return None
        lines = self._lines
        parts: list[str] = []
        gaps = 0
        for number in range(self._total_lines):
            entry = lines.get(number)
            if entry is None:
                gaps += 1
                parts.append("")
            else:
                parts.append(entry.content)
        if gaps:
            LOGGER.warning(
                "Line store is missing %d line(s) of %s despite full range coverage",
                gaps,
                self._path,
            )
        return "\n".join(parts)

    def is_range_loaded(self, start: int, end: int) -> bool:
        return self._ranges.is_range_loaded(start, end)

    def missing_spans(self, start: int, end: int) -> list[LineSpan]:
        """Return the parts of ``[start, end)`` no loaded span covers."""

        return self._ranges.missing_spans(start, end)

    def line_content(self, line_number: int) -> str | None:
        """Return what a view should render: the pending edit, else the fetched line."""

        edited = self._overlay.get(line_number)
        if edited is not None:
            return edited
        entry = self._lines.get(line_number)
        return entry.content if entry is not None else None

    # ------------------------------------------------------------------
    # File identity
    # ------------------------------------------------------------------
    def set_file(self, path: str | None, *, initial_total_lines: int | None = None) -> None:
        """Switch to ``path``, dropping every cached line, range and edit.

        Requests still in flight for the previous file are not cancelled; their
        results are discarded on arrival unless stale discarding is disabled.
        They no longer count towards :attr:`is_loading`.
        """

        path = path or None
        if path == self._path and initial_total_lines is None:
            return
        if initial_total_lines is not None:
            self._initial_total_lines = max(0, initial_total_lines)

        self._generation += 1
        self._path = path
        self._lines = {}
        self._ranges = LoadedRangeSet()
        self._overlay = EditOverlay()
        self._pending = set()
        self._active_loads = 0
        self._total_lines = self._initial_total_lines
        self._error = None
        LOGGER.debug("Switched to %s (generation %d)", path, self._generation)
        self.events.publish(
            FileChanged(path=path, generation=self._generation, total_lines=self._total_lines)
        )

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------
    async def load_range(self, start: int, end: int) -> None:
        """Fetch ``[start, end)`` unless it is already loaded or in flight."""

        if not self._enabled or not self._path:
            return
        span = LineSpan(start, end)
        pending = self._pending
        if span.key in pending:
            LOGGER.debug("Skipping duplicate request for [%d, %d)", span.start, span.end)
            return
        if self._ranges.is_range_loaded(span.start, span.end):
            return

        path = self._path
        generation = self._generation
        pending.add(span.key)
        self._active_loads += 1
        try:
            with self._telemetry.timed("range_fetch", start=span.start, end=span.end) as props:
                try:
                    result = await self._source.fetch_range(path, span.start, span.end)
                except Exception as exc:
                    props["failed"] = True
                    self._record_load_failure(path, generation, span, exc)
                    return
                props["lines"] = len(result.lines)
            if self._is_stale(generation):
                LOGGER.debug("Discarding [%d, %d) of %s fetched before a file switch", span.start, span.end, path)
                return
            self._apply_range_result(path, result)
        finally:
            pending.discard(span.key)
            if generation == self._generation:
                self._active_loads -= 1

    def prefetch_adjacent(self, visible_start: int, visible_end: int) -> list[asyncio.Task[None]]:
        """Schedule loads for one chunk before and after the visible window.

        Returns the scheduled tasks without awaiting them. Must be called with
        a running event loop.
        """

        if not self._enabled or not self._path:
            return []
        before = max(0, visible_start - self._chunk_size)
        after = min(self._total_lines, visible_end + self._chunk_size)

        scheduled: list[asyncio.Task[None]] = []
        if before < visible_start and not self._ranges.is_range_loaded(before, visible_start):
            scheduled.append(self._schedule(self.load_range(before, visible_start)))
        if after > visible_end and not self._ranges.is_range_loaded(visible_end, after):
            scheduled.append(self._schedule(self.load_range(visible_end, after)))
        return scheduled

    def get_visible_range(
        self,
        scroll_top: float,
        viewport_height: float,
        line_height: float,
        overscan: int | None = None,
    ) -> LineSpan:
        """Return the window to render for the given scroll geometry."""

        if line_height <= 0:
            raise ValueError(f"line_height must be positive, got {line_height}")
        extra = self._overscan if overscan is None else max(0, overscan)
        start = max(0, math.floor(scroll_top / line_height) - extra)
        visible_count = math.ceil(viewport_height / line_height)
        end = min(self._total_lines, start + visible_count + 2 * extra)
        return LineSpan(start, max(start, end))

    async def load_initial(self) -> None:
        """Fetch the first chunk when nothing is known about the file yet."""

        if self._enabled and self._path and self._total_lines == 0:
            await self.load_range(0, self._chunk_size)

    async def load_all(self) -> None:
        """Fetch the whole file in one request unless it is already loaded."""

        if not self._enabled or not self._path or self._total_lines == 0:
            return
        if self.is_fully_loaded:
            return
        await self.load_range(0, self._total_lines)

    async def wait_idle(self) -> None:
        """Wait for every scheduled prefetch, including ones scheduled meanwhile."""

        while self._tasks:
            await asyncio.gather(*tuple(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel outstanding prefetches."""

        tasks = tuple(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Edit overlay
    # ------------------------------------------------------------------
    def set_line_content(self, line_number: int, content: str) -> None:
        self._overlay.set_line_content(line_number, content)
        self.events.publish(EditsChanged(edited_lines=len(self._overlay)))

    def revert_line(self, line_number: int) -> None:
        """Drop the pending edit for ``line_number`` if there is one."""

        if line_number not in self._overlay:
            return
        self._overlay.discard(line_number)
        self.events.publish(EditsChanged(edited_lines=len(self._overlay)))

    def clear_edits(self) -> None:
        self._overlay.clear()
        self.events.publish(EditsChanged(edited_lines=0))

    def get_dirty_ranges(self) -> list[DirtyRange]:
        return self._overlay.dirty_ranges()

    # ------------------------------------------------------------------
    # Saving
    # ------------------------------------------------------------------
    async def save_edits(self) -> None:
        """Submit every pending edit as one ordered batch of ``replace`` patches.

        Raises:
            SaveError: when the source raises or reports ``success=False``.
                The overlay is left exactly as it was.
        """

        if not self._overlay:
            return
        if not self._enabled:
            LOGGER.debug("Engine disabled; keeping %d pending edit(s)", len(self._overlay))
            return

        path = self._path
        generation = self._generation
        saved = self._overlay.snapshot()
        patches = patches_from_dirty_ranges(coalesce_dirty_ranges(saved))

        self._active_saves += 1
        try:
            with self._telemetry.timed("save", patches=len(patches), lines=len(saved)) as props:
                try:
                    if not path:
                        raise SaveError(message="No file is open", patch_count=len(patches))
                    outcome = await self._source.apply_patches(path, patches)
                    if not outcome.success:
                        raise SaveError(
                            code=ErrorCode.SAVE_REJECTED,
                            message=f"Patch batch for {path} was rejected",
                            patch_count=len(patches),
                        )
                except SaveError as exc:
                    props["failed"] = True
                    self._record_save_failure(path, generation, exc)
                    raise
                except Exception as exc:
                    props["failed"] = True
                    error = SaveError(message=f"Failed to save edits to {path}: {exc}", patch_count=len(patches))
                    self._record_save_failure(path, generation, error)
                    raise error from exc
        finally:
            self._active_saves -= 1

        if self._is_stale(generation):
            LOGGER.debug("Save for %s completed after a file switch; state left untouched", path)
            return

        self._lines = {
            **self._lines,
            **{number: LineEntry(content) for number, content in saved.items()},
        }
        self._total_lines = outcome.total_lines
        self._overlay.discard_saved(saved)
        self._error = None
        LOGGER.info("Saved %d line(s) in %d patch(es) to %s", len(saved), len(patches), path)
        self.events.publish(
            EditsSaved(
                path=path,
                patch_count=len(patches),
                saved_lines=len(saved),
                total_lines=self._total_lines,
            )
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _is_stale(self, generation: int) -> bool:
        return self._discard_stale and generation != self._generation

    def _apply_range_result(self, path: str, result: RangeResult) -> None:
        start = result.start_line
        end = min(result.end_line, start + len(result.lines))
        if end != result.end_line:
            LOGGER.debug(
                "Range [%d, %d) of %s carried %d line(s); recording [%d, %d)",
                start,
                result.end_line,
                path,
                len(result.lines),
                start,
                end,
            )

        updates = {start + offset: LineEntry(content) for offset, content in enumerate(result.lines)}
        self._lines = {**self._lines, **updates}
        self._total_lines = result.total_lines
        if end > start:
            self._ranges.record_range(start, end)
        self._error = None
        self._telemetry.track_event("range_loaded", start=start, end=end, total_lines=result.total_lines)
        self.events.publish(RangeLoaded(path=path, start=start, end=end, total_lines=result.total_lines))

    def _record_load_failure(self, path: str, generation: int, span: LineSpan, exc: Exception) -> None:
        if self._is_stale(generation):
            LOGGER.debug("Ignoring failed fetch of [%d, %d) for previous file %s", span.start, span.end, path)
            return
        error = RangeLoadError(
            message=f"Failed to load lines [{span.start}, {span.end}) of {path}: {exc}",
            start=span.start,
            end=span.end,
        )
        error.__cause__ = exc
        self._error = error
        LOGGER.warning("%s", error.message)
        self._telemetry.track_event("range_load_failed", start=span.start, end=span.end, error=exc)
        self.events.publish(RangeLoadFailed(path=path, start=span.start, end=span.end, error=error))

    def _record_save_failure(self, path: str | None, generation: int, error: SaveError) -> None:
        LOGGER.warning("%s", error.message)
        self._telemetry.track_event("save_failed", patches=error.patch_count, error=error)
        if self._is_stale(generation):
            return
        self._error = error
        self.events.publish(SaveFailed(path=path or "", patch_count=error.patch_count, error=error))

    def _schedule(self, coro: Awaitable[Any]) -> asyncio.Task[None]:
        task = asyncio.get_running_loop().create_task(coro)  # type: ignore[arg-type]
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task
