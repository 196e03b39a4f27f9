"""Command-line entry point for inspecting and editing files through the engine."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, Mapping, Sequence, TextIO, get_type_hints

from .editor.content_engine import VirtualizedContent
from .errors import SaveError
from .services.http_source import HttpLineSource
from .services.line_source import LineSource
from .services.local_source import LocalFileLineSource
from .services.settings import ContentSettings, SettingsStore
from .utils import logging as logging_utils
from .utils.telemetry import TelemetryClient, telemetry_enabled

_LOGGER = logging.getLogger(__name__)
_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
_FALSE_VALUES = {"0", "false", "no", "off", "disabled"}


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point invoked by the ``lineview`` console script."""

    parser = _build_parser()
    args = parser.parse_args(argv)

    settings_path = args.settings_path or os.environ.get("LINEVIEW_SETTINGS_PATH")
    store = SettingsStore(Path(settings_path).expanduser() if settings_path else None)
    try:
        overrides = _coerce_cli_overrides(args.overrides or [])
    except ValueError as exc:
        print(f"Invalid --set override: {exc}", file=sys.stderr)
        return 2
    settings = store.load(overrides=overrides or None)

    debug = args.debug or _env_flag("LINEVIEW_DEBUG")
    logging_utils.configure_from_settings(settings, debug=debug)

    if args.dump_settings:
        _dump_settings(settings, store, overrides=overrides)
        return 0
    if args.command is None:
        parser.print_help()
        return 2

    return asyncio.run(_run_command(args, settings))


async def _run_command(args: argparse.Namespace, settings: ContentSettings) -> int:
    source = _build_source(args, settings)
    telemetry = TelemetryClient(enabled=telemetry_enabled(settings))
    engine = VirtualizedContent.from_settings(source, settings, path=args.path, telemetry=telemetry)
    _LOGGER.debug("Running %s on %s via %s", args.command, args.path, type(source).__name__)
    try:
        if args.command == "show":
            return await _show(engine, args.start, args.end, sys.stdout)
        return await _edit(engine, args.line, args.text, sys.stdout)
    finally:
        await engine.aclose()
        telemetry.flush()
        if isinstance(source, HttpLineSource):
            await source.aclose()


async def _show(engine: VirtualizedContent, start: int, end: int | None, stream: TextIO) -> int:
    stop = start + engine.chunk_size if end is None else end
    if stop > start:
        await engine.load_range(start, stop)
    if engine.error is not None:
        print(f"error: {engine.error}", file=sys.stderr)
        return 1

    width = len(str(max(stop, 1)))
    for number in range(start, min(stop, engine.total_lines)):
        content = engine.line_content(number)
        stream.write(f"{number + 1:>{width}} | {content if content is not None else ''}\n")
    return 0


async def _edit(engine: VirtualizedContent, line: int, text: str, stream: TextIO) -> int:
    if line < 1:
        print("error: line numbers start at 1", file=sys.stderr)
        return 2
    engine.set_line_content(line - 1, text)
    try:
        await engine.save_edits()
    except SaveError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    stream.write(f"saved line {line} of {engine.path} ({engine.total_lines} lines)\n")
    return 0


def _build_source(args: argparse.Namespace, settings: ContentSettings) -> LineSource:
    if args.remote:
        return HttpLineSource.from_settings(settings)
    return LocalFileLineSource(args.root)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lineview",
        description="Read and edit large text files through the virtualized line-range engine.",
    )
    parser.add_argument("--settings-path", metavar="PATH", help="Override the default ~/.lineview/settings.json path.")
    parser.add_argument(
        "--set",
        dest="overrides",
        metavar="KEY=VALUE",
        action="append",
        default=[],
        help="Override a setting for this run (repeatable).",
    )
    parser.add_argument("--dump-settings", action="store_true", help="Print the effective settings and exit.")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging.")
    parser.add_argument("--remote", action="store_true", help="Use the HTTP backend at base_url instead of local files.")
    parser.add_argument("--root", metavar="DIR", help="Restrict local file access to DIR.")

    subparsers = parser.add_subparsers(dest="command")
    show = subparsers.add_parser("show", help="Print a window of lines.")
    show.add_argument("path")
    show.add_argument("--start", type=int, default=0, help="First line index to print (0-based).")
    show.add_argument("--end", type=int, default=None, help="Line index to stop before (defaults to the first chunk).")

    edit = subparsers.add_parser("edit", help="Replace one line and save.")
    edit.add_argument("path")
    edit.add_argument("line", type=int, help="Line number to replace (1-based).")
    edit.add_argument("text")
    return parser


def _coerce_cli_overrides(items: Sequence[str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    fields = ContentSettings.__dataclass_fields__  # type: ignore[attr-defined]
    type_hints = get_type_hints(ContentSettings)
    for entry in items:
        if "=" not in entry:
            raise ValueError(f"Override '{entry}' must use KEY=VALUE syntax.")
        key, raw_value = entry.split("=", 1)
        key = key.strip()
        if not key:
            raise ValueError("Override is missing a field name.")
        if key not in fields:
            raise ValueError(f"Unknown setting '{key}'.")
        overrides[key] = _coerce_value(type_hints.get(key, str), raw_value.strip())
    return overrides


def _coerce_value(annotation: Any, raw_value: str) -> Any:
    if annotation is bool:
        lowered = raw_value.lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        raise ValueError(f"Cannot coerce '{raw_value}' to a boolean.")
    if annotation is int:
        return int(raw_value, 10)
    if annotation is float:
        return float(raw_value)
    return raw_value


def _dump_settings(
    settings: ContentSettings,
    store: SettingsStore,
    *,
    overrides: Mapping[str, Any],
    stream: TextIO | None = None,
) -> None:
    destination = stream or sys.stdout
    output = {
        "settings": asdict(settings),
        "meta": {
            "path": str(store.path),
            "cli_overrides": sorted(overrides),
            "environment_variables": sorted(name for name in os.environ if name.startswith("LINEVIEW_")),
            "log_path": str(logging_utils.get_log_path() or ""),
        },
    }
    json.dump(output, destination, indent=2)
    destination.write("\n")


def _env_flag(name: str, *, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
