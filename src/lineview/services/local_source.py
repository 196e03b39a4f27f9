"""Line source serving files from the local filesystem."""

from __future__ import annotations

import asyncio
import logging
import weakref
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Sequence

from ..editor.patches import PatchApplyError, PatchOperation, apply_line_patches
from ..errors import ErrorCode, SourceError
from ..utils import file_io
from .line_source import PatchOutcome, RangeResult

__all__ = ["LocalFileLineSource"]

LOGGER = logging.getLogger(__name__)


class LocalFileLineSource:
    """Serves line windows from disk and applies patch batches atomically.

    When ``root`` is given, relative paths resolve against it and any path
    escaping it is refused. Patch batches are applied in memory first so a
    rejected batch never touches the file. Range fetches stream the file
    instead of loading it. File IO runs in a worker thread.
    """

    def __init__(self, root: Path | str | None = None) -> None:
        self._root = Path(root).expanduser().resolve() if root is not None else None
        self._locks: weakref.WeakValueDictionary[Path, asyncio.Lock] = weakref.WeakValueDictionary()

    @property
    def root(self) -> Path | None:
        return self._root

    async def fetch_range(self, path: str, start_line: int, end_line: int) -> RangeResult:
        target = self._resolve(path)
        lines, total = await asyncio.to_thread(self._read_window, target, start_line, end_line)
        start = min(max(0, start_line), total)
        return RangeResult(
            start_line=start,
            end_line=start + len(lines),
            total_lines=total,
            lines=tuple(lines),
        )

    async def apply_patches(self, path: str, patches: Sequence[PatchOperation]) -> PatchOutcome:
        target = self._resolve(path)
        async with self._lock_for(target):
            document = await asyncio.to_thread(self._read, target)
            try:
                updated = apply_line_patches(document.lines, patches)
            except PatchApplyError as exc:
                LOGGER.warning("Rejected patch batch for %s: %s (%s)", target, exc, exc.reason)
                return PatchOutcome(success=False, total_lines=document.line_count)
            if not document.lines and updated:
                document.trailing_newline = True
            document.lines = updated
            await asyncio.to_thread(file_io.write_document, target, document)
        LOGGER.debug("Applied %d patch(es) to %s (%d lines)", len(patches), target, len(updated))
        return PatchOutcome(success=True, total_lines=len(updated))

    def _resolve(self, path: str) -> Path:
        candidate = Path(path).expanduser()
        if self._root is None:
            return candidate.resolve()
        resolved = (self._root / candidate).resolve()
        if resolved != self._root and self._root not in resolved.parents:
            raise SourceError(
                code=ErrorCode.PATH_OUTSIDE_ROOT,
                message=f"Path {path!r} escapes {self._root}",
            )
        return resolved

    def _lock_for(self, target: Path) -> asyncio.Lock:
        lock = self._locks.get(target)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[target] = lock
        return lock

    @staticmethod
    def _read(target: Path) -> file_io.TextDocument:
        with _read_errors(target):
            return file_io.read_document(target)

    @staticmethod
    def _read_window(target: Path, start: int, end: int) -> tuple[list[str], int]:
        with _read_errors(target):
            return file_io.read_line_window(target, start, end)


@contextmanager
def _read_errors(target: Path) -> Iterator[None]:
    try:
        yield
    except FileNotFoundError as exc:
        raise SourceError(code=ErrorCode.FILE_NOT_FOUND, message=f"No such file: {target}") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise SourceError(message=f"Unable to read {target}: {exc}") from exc
