from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Optional

import cv2

from detect_kit.errors import InvalidFrameError
from detect_kit.types import Frame

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class CaptureInfo:
    fps: Optional[float]
    width: Optional[int]
    height: Optional[int]


def open_capture(*, video: Optional[str] = None, webcam: Optional[int] = None, rtsp: Optional[str] = None) -> cv2.VideoCapture:
    sources = [video is not None, webcam is not None, rtsp is not None]
    if sum(bool(s) for s in sources) != 1:
        raise ValueError("Exactly one of video/webcam/rtsp must be provided.")

    if video is not None:
        cap = cv2.VideoCapture(video)
    elif rtsp is not None:
        cap = cv2.VideoCapture(rtsp)
    else:
        cap = cv2.VideoCapture(int(webcam))

    if not cap.isOpened():
        raise RuntimeError("Failed to open video source.")
    return cap


def get_capture_info(cap: cv2.VideoCapture) -> CaptureInfo:
    fps = cap.get(cv2.CAP_PROP_FPS)
    if fps is None or fps <= 0:
        fps_val = None
    else:
        fps_val = float(fps)

    w = cap.get(cv2.CAP_PROP_FRAME_WIDTH)
    h = cap.get(cv2.CAP_PROP_FRAME_HEIGHT)
    w_val = int(w) if w and w > 0 else None
    h_val = int(h) if h and h > 0 else None

    return CaptureInfo(fps=fps_val, width=w_val, height=h_val)


class OpenCVFrameSource:
    """
    Frame source backed by `cv2.VideoCapture`.

    `read()` returns None while the capture has nothing to give (camera warming
    up, end of a file); the loop treats that as a skipped tick. With
    `loop_video=True` a file rewinds at its end.
    """

    def __init__(self, cap: cv2.VideoCapture, *, loop_video: bool = False):
        self._cap = cap
        self._loop_video = loop_video
        self._lock = threading.Lock()
        self.info = get_capture_info(cap)

    @classmethod
    def open(
        cls,
        *,
        video: Optional[str] = None,
        webcam: Optional[int] = None,
        rtsp: Optional[str] = None,
        loop_video: bool = False,
    ) -> "OpenCVFrameSource":
        cap = open_capture(video=video, webcam=webcam, rtsp=rtsp)
        source = cls(cap, loop_video=loop_video and video is not None)
        LOGGER.info(
            "Opened capture %s (%sx%s @ %s fps)",
            video or rtsp or f"webcam:{webcam}",
            source.info.width,
            source.info.height,
            source.info.fps,
        )
        return source

    def read(self) -> Optional[Frame]:
        with self._lock:
            if not self._cap.isOpened():
                return None
            ok, image = self._cap.read()
            if (not ok or image is None) and self._loop_video:
                self._cap.set(cv2.CAP_PROP_POS_FRAMES, 0)
                ok, image = self._cap.read()
        if not ok or image is None:
            return None
        if image.ndim == 2:
            image = cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
        if image.shape[0] == 0 or image.shape[1] == 0:
            raise InvalidFrameError(f"Capture returned an empty frame: {image.shape}")
        return Frame.from_bgr(image)

    def close(self) -> None:
        with self._lock:
            self._cap.release()

    def __enter__(self) -> "OpenCVFrameSource":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

