from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from .errors import InvalidFrameError
from .palette import color_to_hex


@dataclass(frozen=True)
class Frame:
    """
    One RGBA video frame, shaped (H, W, 4) uint8.

    Frames are borrowed from the frame source for a single preprocessing call;
    the pipeline never keeps a reference after the tick.
    """

    pixels: np.ndarray

    def __post_init__(self) -> None:
        p = self.pixels
        if p is None or not hasattr(p, "shape"):
            raise InvalidFrameError("Frame pixels must be a NumPy array.")
        if p.ndim != 3 or p.shape[2] != 4:
            raise InvalidFrameError(f"Expected RGBA frame shape (H, W, 4), got {p.shape}")
        if p.dtype != np.uint8:
            raise InvalidFrameError(f"Expected uint8 frame pixels, got {p.dtype}")

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @classmethod
    def from_bgr(cls, image_bgr: np.ndarray) -> "Frame":
        """Build a frame from an OpenCV-style BGR (or BGRA) image."""

        try:
            import cv2  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError("OpenCV is required for Frame.from_bgr(). Install with `pip install opencv-python`.") from e

        if image_bgr is None or not hasattr(image_bgr, "shape") or image_bgr.ndim != 3:
            raise InvalidFrameError(f"Expected image shape (H, W, 3), got {getattr(image_bgr, 'shape', None)}")
        if image_bgr.shape[0] == 0 or image_bgr.shape[1] == 0:
            raise InvalidFrameError(f"Frame has zero area: {image_bgr.shape}")

        if image_bgr.shape[2] == 3:
            rgba = cv2.cvtColor(image_bgr, cv2.COLOR_BGR2RGBA)
        elif image_bgr.shape[2] == 4:
            rgba = cv2.cvtColor(image_bgr, cv2.COLOR_BGRA2RGBA)
        else:
            raise InvalidFrameError(f"Unsupported channel count: {image_bgr.shape[2]}")
        return cls(pixels=rgba)


@dataclass(frozen=True)
class Tensor:
    """
    Flat float32 buffer plus its NCHW shape descriptor.
    """

    data: np.ndarray
    shape: Tuple[int, ...]

    def __post_init__(self) -> None:
        expected = int(np.prod(self.shape))
        if self.data.ndim != 1 or self.data.size != expected:
            raise ValueError(f"Tensor buffer of size {self.data.size} does not match shape {self.shape}")

    def as_array(self) -> np.ndarray:
        return self.data.reshape(self.shape)


@dataclass(frozen=True)
class LetterboxInfo:
    """
    Geometry used to place a frame inside the model canvas.

    ratio: uniform resize factor (model px per image px)
    pad: (dx, dy) offset of the resized image inside the canvas
    """

    ratio: float
    pad: Tuple[float, float]
    resized_size: Tuple[int, int]


@dataclass(frozen=True)
class Detection:
    """
    One detected object in image pixel coordinates.
    """

    box: Tuple[float, float, float, float]  # left, top, width, height
    label: str
    confidence: float
    color: Tuple[int, int, int]
    class_id: Optional[int] = None

    def as_xyxy(self) -> Tuple[float, float, float, float]:
        left, top, w, h = self.box
        return left, top, left + w, top + h

    @property
    def color_hex(self) -> str:
        return color_to_hex(self.color)


@dataclass(frozen=True)
class DetectionSet:
    """
    Detections surviving suppression for one tick.
    """

    detections: Tuple[Detection, ...] = ()
    tick: int = 0
    timestamp: float = 0.0
    frame_size: Tuple[int, int] = (0, 0)

    def __len__(self) -> int:
        return len(self.detections)

    def __iter__(self):
        return iter(self.detections)
