"""Opt-in telemetry for range loads and saves.

Events are buffered in memory and appended to ``telemetry.jsonl`` when the
buffer fills or :meth:`TelemetryClient.flush` is called. Nothing is recorded
unless the client is enabled.
"""

from __future__ import annotations

import json
import os
import time
import uuid
from collections import Counter
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator

__all__ = ["TelemetryClient", "TelemetryEvent", "telemetry_enabled"]

_DEFAULT_TELEMETRY_DIR = Path.home() / ".lineview" / "telemetry"
_TRUE_VALUES = {"1", "true", "yes", "on"}
_EVENT_PREFIX = "lineview."


@dataclass(slots=True)
class TelemetryEvent:
    name: str
    properties: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def serialize(self, session_id: str) -> str:
        payload = {
            "session_id": session_id,
            "name": self.name,
            "timestamp": self.timestamp.isoformat(),
            "properties": self.properties,
        }
        return json.dumps(payload, default=_json_default, ensure_ascii=False)


@dataclass(slots=True)
class TelemetryClient:
    """Buffers engine events and flushes them as JSONL when enabled."""

    enabled: bool = False
    storage_dir: Path | str | None = None
    max_buffer: int = 64
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    _buffer: list[TelemetryEvent] = field(default_factory=list, init=False, repr=False)
    _counts: Counter = field(default_factory=Counter, init=False, repr=False)

    def track_event(self, name: str, **props: Any) -> None:
        if not self.enabled:
            return
        qualified = name if name.startswith(_EVENT_PREFIX) else f"{_EVENT_PREFIX}{name}"
        self._buffer.append(TelemetryEvent(name=qualified, properties=_sanitize_props(props)))
        self._counts[qualified] += 1
        if len(self._buffer) >= self.max_buffer:
            self.flush()

    @contextmanager
    def timed(self, name: str, **props: Any) -> Iterator[Dict[str, Any]]:
        """Track ``name`` with a ``duration_ms`` property once the block exits.

        The yielded dict can be filled with extra properties inside the block.
        The event is recorded whether or not the block raises.
        """

        extra: Dict[str, Any] = {}
        started = time.perf_counter()
        try:
            yield extra
        finally:
            duration_ms = round((time.perf_counter() - started) * 1000, 3)
            self.track_event(name, **{**props, **extra, "duration_ms": duration_ms})

    def flush(self) -> Path | None:
        if not self.enabled or not self._buffer:
            return None

        target_dir = _resolve_storage_dir(self.storage_dir)
        target_dir.mkdir(parents=True, exist_ok=True)
        log_path = target_dir / "telemetry.jsonl"
        with log_path.open("a", encoding="utf-8") as handle:
            for event in self._buffer:
                handle.write(event.serialize(self.session_id))
                handle.write("\n")
        self._buffer.clear()
        return log_path

    def counts(self) -> dict[str, int]:
        """Return how many times each event was tracked this session."""

        return dict(self._counts)

    @property
    def buffered(self) -> int:
        return len(self._buffer)


def telemetry_enabled(settings: Any | None = None) -> bool:
    """Return ``True`` if telemetry should be enabled for the current session."""

    env_value = os.environ.get("LINEVIEW_TELEMETRY")
    if env_value is not None:
        return env_value.strip().lower() in _TRUE_VALUES
    if settings is None:
        return False
    return bool(getattr(settings, "telemetry_opt_in", False))


def _sanitize_props(props: Dict[str, Any]) -> Dict[str, Any]:
    sanitized: Dict[str, Any] = {}
    for key, value in props.items():
        if isinstance(value, Path):
            sanitized[key] = str(value)
        elif isinstance(value, BaseException):
            sanitized[key] = type(value).__name__
        else:
            sanitized[key] = value
    return sanitized


def _json_default(value: Any) -> Any:
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value)!r} is not JSON serializable")


def _resolve_storage_dir(storage_dir: Path | str | None) -> Path:
    env_override = os.environ.get("LINEVIEW_TELEMETRY_DIR")
    return Path(storage_dir or env_override or _DEFAULT_TELEMETRY_DIR).expanduser()
