from __future__ import annotations

import json
import threading
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict

from detect_kit.errors import ConfigError
from detect_kit.model_config import check_unit_interval


@dataclass(frozen=True)
class DetectionSettings:
    """
    Consumer-tunable knobs, re-read at the start of every tick.
    """

    confidence_threshold: float = 0.45
    iou_threshold: float = 0.45
    tick_interval_ms: int = 100

    def __post_init__(self) -> None:
        check_unit_interval("confidence_threshold", self.confidence_threshold)
        check_unit_interval("iou_threshold", self.iou_threshold)
        if isinstance(self.tick_interval_ms, bool) or not isinstance(self.tick_interval_ms, int):
            raise ConfigError("tick_interval_ms must be an integer")
        if self.tick_interval_ms <= 0:
            raise ConfigError("tick_interval_ms must be > 0")

    @property
    def tick_interval_s(self) -> float:
        return self.tick_interval_ms / 1000.0


class SettingsCell:
    """
    Mutable holder for the current `DetectionSettings`.

    Writers swap in a new frozen snapshot; readers always get a complete one.
    """

    def __init__(self, settings: DetectionSettings = DetectionSettings()):
        self._settings = settings
        self._lock = threading.Lock()

    def get(self) -> DetectionSettings:
        with self._lock:
            return self._settings

    def set(self, settings: DetectionSettings) -> None:
        with self._lock:
            self._settings = settings

    def update(self, **changes: Any) -> DetectionSettings:
        """Apply a partial change; invalid values raise ConfigError and leave the cell untouched."""

        with self._lock:
            updated = replace(self._settings, **changes)
            self._settings = updated
            return updated


def _require_number(payload: Dict[str, Any], key: str, default: float) -> float:
    value = payload.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{key} must be a number")
    return float(value)


def load_settings(path: Path) -> DetectionSettings:
    if not path.exists():
        raise FileNotFoundError(f"Settings file not found: {path}")
    raw = path.read_text(encoding="utf-8")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid settings JSON: {path}") from exc
    if not isinstance(payload, dict):
        raise ConfigError("Settings must be a JSON object")

    defaults = DetectionSettings()
    allowed = {"confidence_threshold", "iou_threshold", "tick_interval_ms"}
    unknown = sorted(set(payload.keys()) - allowed)
    if unknown:
        raise ConfigError(f"Unknown settings keys: {unknown}")

    interval = payload.get("tick_interval_ms", defaults.tick_interval_ms)
    if isinstance(interval, bool) or not isinstance(interval, int):
        raise ConfigError("tick_interval_ms must be an integer")

    return DetectionSettings(
        confidence_threshold=_require_number(payload, "confidence_threshold", defaults.confidence_threshold),
        iou_threshold=_require_number(payload, "iou_threshold", defaults.iou_threshold),
        tick_interval_ms=interval,
    )
