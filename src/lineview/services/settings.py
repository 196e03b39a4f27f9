"""Engine settings and their JSON persistence."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping

__all__ = ["ContentSettings", "SettingsStore", "DEFAULT_SETTINGS_PATH"]

LOGGER = logging.getLogger(__name__)
_SETTINGS_DIR = Path.home() / ".lineview"
DEFAULT_SETTINGS_PATH = _SETTINGS_DIR / "settings.json"
_SETTINGS_VERSION = 1
_ENV_OVERRIDES: Mapping[str, str] = {
    "LINEVIEW_BASE_URL": "base_url",
}
_BOOL_ENV_OVERRIDES: Mapping[str, str] = {
    "LINEVIEW_ENABLED": "enabled",
    "LINEVIEW_DISCARD_STALE": "discard_stale_responses",
    "LINEVIEW_DEBUG_LOGGING": "debug_logging",
}
_INT_ENV_OVERRIDES: Mapping[str, str] = {
    "LINEVIEW_CHUNK_SIZE": "chunk_size",
    "LINEVIEW_OVERSCAN": "overscan",
    "LINEVIEW_INITIAL_TOTAL_LINES": "initial_total_lines",
    "LINEVIEW_MAX_RETRIES": "max_retries",
}
_FLOAT_ENV_OVERRIDES: Mapping[str, str] = {
    "LINEVIEW_REQUEST_TIMEOUT": "request_timeout",
}
_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}


@dataclass(slots=True)
class ContentSettings:
    """Tunables for the content engine and its HTTP line source."""

    chunk_size: int = 200
    overscan: int = 50
    enabled: bool = True
    initial_total_lines: int = 0
    discard_stale_responses: bool = True
    base_url: str = "http://localhost:5001/api"
    request_timeout: float = 30.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    debug_logging: bool = False
    telemetry_opt_in: bool = False


class SettingsStore:
    """Persistence adapter for :class:`ContentSettings`."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or DEFAULT_SETTINGS_PATH

    @property
    def path(self) -> Path:
        return self._path

    def load(self, *, overrides: Mapping[str, Any] | None = None) -> ContentSettings:
        """Load settings from disk, then apply ``overrides`` and ``LINEVIEW_*`` variables."""

        payload = self._read_payload()
        settings = ContentSettings()
        if payload:
            data = _filter_fields(payload)
            try:
                settings = ContentSettings(**data)
            except TypeError as exc:
                LOGGER.warning("Settings payload contained unexpected data: %s", exc)
                settings = ContentSettings()
            if payload.get("version") != _SETTINGS_VERSION:
                LOGGER.debug("Settings file %s has version %r", self._path, payload.get("version"))

        if overrides:
            settings = self._apply_overrides(settings, overrides, source="runtime")
        return self._apply_env_overrides(settings)

    def save(self, settings: ContentSettings) -> Path:
        """Persist settings with an atomic replace."""

        data: Dict[str, Any] = asdict(settings)
        data["version"] = _SETTINGS_VERSION
        body = json.dumps(data, indent=2, sort_keys=True)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(".tmp")
        tmp_path.write_text(body, encoding="utf-8")
        tmp_path.replace(self._path)
        LOGGER.debug("Settings saved to %s", self._path)
        return self._path

    def _read_payload(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as exc:
            LOGGER.warning("Settings file %s is not valid JSON: %s", self._path, exc)
            return {}
        if not isinstance(data, Mapping):
            LOGGER.warning("Settings file %s does not contain an object", self._path)
            return {}
        return dict(data)

    def _apply_overrides(
        self,
        settings: ContentSettings,
        overrides: Mapping[str, Any],
        *,
        source: str,
    ) -> ContentSettings:
        allowed = {field.name for field in fields(ContentSettings)}
        filtered = {key: value for key, value in overrides.items() if key in allowed and value is not None}
        if filtered:
            LOGGER.debug("Applying %s settings overrides: %s", source, sorted(filtered))
            settings = replace(settings, **filtered)
        return settings

    def _apply_env_overrides(self, settings: ContentSettings) -> ContentSettings:
        overrides: Dict[str, Any] = {}
        for env_name, field_name in _ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is not None:
                overrides[field_name] = value
        for env_name, field_name in _BOOL_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is not None:
                overrides[field_name] = value.strip().lower() in _TRUE_VALUES
        for env_name, field_name in _INT_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is None:
                continue
            try:
                overrides[field_name] = int(value, 10)
            except ValueError:
                LOGGER.warning("Environment override %s=%s is not a valid integer", env_name, value)
        for env_name, field_name in _FLOAT_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is None:
                continue
            try:
                overrides[field_name] = float(value)
            except ValueError:
                LOGGER.warning("Environment override %s=%s is not a valid float", env_name, value)
        if overrides:
            settings = self._apply_overrides(settings, overrides, source="environment")
        return settings


def _filter_fields(payload: Mapping[str, Any]) -> Dict[str, Any]:
    allowed = {field.name for field in fields(ContentSettings)}
    return {key: value for key, value in payload.items() if key in allowed}
