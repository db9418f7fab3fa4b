from __future__ import annotations


class DetectionError(Exception):
    """
    Base class for errors raised by the detection pipeline.
    """


class ConfigError(DetectionError, ValueError):
    """Malformed model or loop configuration. Raised at construction time."""


class ModelLoadError(DetectionError):
    """Model bytes missing/corrupt or rejected by the inference engine."""


class InvalidFrameError(DetectionError):
    """Zero-area or unreadable frame."""


class InferenceError(DetectionError):
    """The inference engine call failed or returned an unexpected output."""
