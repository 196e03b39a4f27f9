"""Shared test helpers and stub line sources."""

from __future__ import annotations

import asyncio
from typing import Callable, Sequence

from lineview.editor.patches import PatchOperation, apply_line_patches
from lineview.services.line_source import PatchOutcome, RangeResult


class FakeLineSource:
    """In-memory line source that records every call.

    ``fetch_gate`` and ``patch_gate`` hold requests open until set, which lets
    tests interleave engine calls with in-flight requests.
    """

    def __init__(self, lines: Sequence[str] | None = None, *, total: int = 0) -> None:
        self.lines = list(lines) if lines is not None else [f"line {n}" for n in range(total)]
        self.fetch_calls: list[tuple[str, int, int]] = []
        self.patch_calls: list[tuple[str, list[PatchOperation]]] = []
        self.fetch_error: Exception | None = None
        self.patch_error: Exception | None = None
        self.reject_patches = False
        self.fetch_gate: asyncio.Event | None = None
        self.patch_gate: asyncio.Event | None = None

    async def fetch_range(self, path: str, start_line: int, end_line: int) -> RangeResult:
        self.fetch_calls.append((path, start_line, end_line))
        await asyncio.sleep(0)
        if self.fetch_gate is not None:
            await self.fetch_gate.wait()
        if self.fetch_error is not None:
            raise self.fetch_error
        total = len(self.lines)
        start = min(start_line, total)
        end = min(max(start, end_line), total)
        return RangeResult(start, end, total, tuple(self.lines[start:end]))

    async def apply_patches(self, path: str, patches: Sequence[PatchOperation]) -> PatchOutcome:
        self.patch_calls.append((path, list(patches)))
        await asyncio.sleep(0)
        if self.patch_gate is not None:
            await self.patch_gate.wait()
        if self.patch_error is not None:
            raise self.patch_error
        if self.reject_patches:
            return PatchOutcome(success=False, total_lines=len(self.lines))
        self.lines = apply_line_patches(self.lines, patches)
        return PatchOutcome(success=True, total_lines=len(self.lines))


async def wait_for(predicate: Callable[[], bool], *, attempts: int = 100) -> None:
    """Yield to the event loop until ``predicate()`` holds."""

    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition never became true")
