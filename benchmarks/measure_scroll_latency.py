"""Benchmark helper for scroll-driven range loading."""

from __future__ import annotations

import argparse
import asyncio
import statistics
import time
from pathlib import Path
from typing import Sequence

from lineview.editor.content_engine import VirtualizedContent
from lineview.editor.patches import PatchOperation
from lineview.services.line_source import LineSource, PatchOutcome, RangeResult
from lineview.services.local_source import LocalFileLineSource


class _SimulatedSource:
    """Serves synthetic lines after a fixed delay."""

    def __init__(self, total_lines: int, latency_ms: float) -> None:
        self._total = total_lines
        self._latency = max(0.0, latency_ms) / 1000.0
        self.requests = 0

    async def fetch_range(self, path: str, start_line: int, end_line: int) -> RangeResult:
        self.requests += 1
        await asyncio.sleep(self._latency)
        start = min(start_line, self._total)
        end = min(max(start, end_line), self._total)
        lines = tuple(f"{path}:{number}" for number in range(start, end))
        return RangeResult(start, end, self._total, lines)

    async def apply_patches(self, path: str, patches: Sequence[PatchOperation]) -> PatchOutcome:  # pragma: no cover - helper
        return PatchOutcome(success=True, total_lines=self._total)


async def _measure(
    source: LineSource,
    path: str,
    *,
    steps: int,
    scroll_px: float,
    viewport_px: float,
    line_px: float,
    chunk_size: int,
    overscan: int,
) -> dict[str, float]:
    engine = VirtualizedContent(source, path, chunk_size=chunk_size, overscan=overscan)
    await engine.load_initial()

    samples: list[float] = []
    misses = 0
    scroll_top = 0.0
    for _ in range(steps):
        window = engine.get_visible_range(scroll_top, viewport_px, line_px)
        started = time.perf_counter()
        if not engine.is_range_loaded(window.start, window.end):
            misses += 1
            await engine.load_range(window.start, window.end)
        engine.prefetch_adjacent(window.start, window.end)
        samples.append((time.perf_counter() - started) * 1_000)
        scroll_top += scroll_px
        await asyncio.sleep(0)
        if window.end >= engine.total_lines:
            break

    await engine.aclose()
    gaps = engine.missing_spans(0, engine.total_lines) if engine.total_lines else []
    if len(samples) >= 2:
        p95 = statistics.quantiles(samples, n=20, method="inclusive")[18]
    else:
        p95 = samples[0] if samples else 0.0
    return {
        "steps": float(len(samples)),
        "misses": float(misses),
        "ranges": float(len(engine.loaded_ranges)),
        "gaps": float(len(gaps)),
        "avg_ms": statistics.fmean(samples) if samples else 0.0,
        "p95_ms": p95,
        "max_ms": max(samples) if samples else 0.0,
    }


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Measure scroll latency of the virtualized content engine")
    parser.add_argument("--file", type=Path, help="Scroll through a real file instead of synthetic lines")
    parser.add_argument("--total-lines", type=int, default=1_000_000, help="Synthetic file length")
    parser.add_argument("--latency-ms", type=float, default=20.0, help="Simulated fetch latency (ms)")
    parser.add_argument("--steps", type=int, default=500, help="Scroll events to simulate")
    parser.add_argument("--scroll-px", type=float, default=400.0, help="Pixels scrolled per event")
    parser.add_argument("--viewport-px", type=float, default=800.0, help="Viewport height in pixels")
    parser.add_argument("--line-px", type=float, default=20.0, help="Line height in pixels")
    parser.add_argument(
        "--chunk-sizes",
        type=int,
        nargs="+",
        default=(100, 200, 500),
        help="Chunk sizes to benchmark",
    )
    parser.add_argument("--overscan", type=int, default=50, help="Extra lines rendered around the viewport")
    return parser.parse_args()


def _render_table(rows: Sequence[tuple[int, dict[str, float]]]) -> str:
    headers = ("chunk", "steps", "misses", "ranges", "gaps", "avg ms", "p95 ms", "max ms")
    lines = [" | ".join(headers), " | ".join("-" * len(h) for h in headers)]
    for chunk_size, row in rows:
        lines.append(
            " | ".join(
                [
                    f"{chunk_size:>5}",
                    f"{int(row['steps']):>5}",
                    f"{int(row['misses']):>6}",
                    f"{int(row['ranges']):>6}",
                    f"{int(row['gaps']):>4}",
                    f"{row['avg_ms']:>6.2f}",
                    f"{row['p95_ms']:>6.2f}",
                    f"{row['max_ms']:>6.2f}",
                ]
            )
        )
    return "\n".join(lines)


def main() -> None:
    args = _parse_args()

    async def _runner() -> list[tuple[int, dict[str, float]]]:
        rows: list[tuple[int, dict[str, float]]] = []
        for chunk_size in args.chunk_sizes:
            if args.file is not None:
                source: LineSource = LocalFileLineSource(args.file.parent)
                path = args.file.name
            else:
                source = _SimulatedSource(args.total_lines, args.latency_ms)
                path = "synthetic.txt"
            result = await _measure(
                source,
                path,
                steps=max(1, args.steps),
                scroll_px=args.scroll_px,
                viewport_px=args.viewport_px,
                line_px=args.line_px,
                chunk_size=max(1, chunk_size),
                overscan=max(0, args.overscan),
            )
            rows.append((chunk_size, result))
        return rows

    rows = asyncio.run(_runner())
    label = str(args.file) if args.file is not None else f"{args.total_lines} synthetic lines, {args.latency_ms:.1f} ms fetch"
    print(f"Scroll latency ({label})")
    print(_render_table(rows))


if __name__ == "__main__":  # pragma: no cover - script entry point
    main()
