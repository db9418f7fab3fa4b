"""
Live detection session built on top of `detect_kit`.

`detect_kit` owns the numeric pipeline; this package only schedules it:
- tunable settings (thresholds, tick interval) re-read every tick
- a cancellable repeating timer that skips ticks instead of queueing them
- the detection loop with model-load status and atomic result publishing
- OpenCV capture as a frame source
"""

from __future__ import annotations

from typing import Any

from .settings import DetectionSettings, SettingsCell, load_settings
from .timer import RepeatingTimer, TimerToken
from .loop import DetectionLoop, FrameSource, LoopState, LoopStats, ModelStatus
from .log import setup_logging

# Optional dependency boundary:
# `ingest` depends on OpenCV (`cv2`) and should not break imports of the loop
# modules (tests can run without cv2 installed).
try:
    from .ingest import CaptureInfo, OpenCVFrameSource, get_capture_info, open_capture
except ModuleNotFoundError as exc:
    if getattr(exc, "name", None) != "cv2":
        raise

    CaptureInfo = Any  # type: ignore[misc,assignment]
    OpenCVFrameSource = Any  # type: ignore[misc,assignment]

    def open_capture(*args: Any, **kwargs: Any) -> Any:  # type: ignore[misc]
        raise RuntimeError("OpenCV (cv2) is not installed. Install opencv-python to use capture ingestion.")

    def get_capture_info(*args: Any, **kwargs: Any) -> Any:  # type: ignore[misc]
        raise RuntimeError("OpenCV (cv2) is not installed. Install opencv-python to use capture ingestion.")

__all__ = [
    "DetectionSettings",
    "SettingsCell",
    "load_settings",
    "RepeatingTimer",
    "TimerToken",
    "DetectionLoop",
    "FrameSource",
    "LoopState",
    "LoopStats",
    "ModelStatus",
    "setup_logging",
    "CaptureInfo",
    "OpenCVFrameSource",
    "get_capture_info",
    "open_capture",
]
