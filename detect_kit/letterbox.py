from typing import Sequence, Tuple

import numpy as np

from .errors import ConfigError, InvalidFrameError
from .types import Frame, LetterboxInfo, Tensor


def _target_hw(target_shape: Sequence[int]) -> Tuple[int, int]:
    shape = tuple(int(d) for d in target_shape)
    if len(shape) == 4:
        _, channels, h, w = shape
        if channels != 3:
            raise ConfigError(f"Target shape must have 3 channels, got {shape}")
    elif len(shape) == 2:
        h, w = shape
    else:
        raise ConfigError(f"Target shape must be (N, C, H, W) or (H, W), got {shape}")
    if h <= 0 or w <= 0:
        raise ConfigError(f"Target shape must be positive, got {shape}")
    return h, w


def letterbox_geometry(frame_size: Tuple[int, int], target_size: Tuple[int, int]) -> LetterboxInfo:
    """
    Uniform scale + centered placement of a (w, h) frame inside a (w, h) canvas.

    The resized size is floored and the offsets are half the remaining padding,
    so they can be fractional (e.g. 0.5) for odd remainders.
    """

    fw, fh = frame_size
    tw, th = target_size
    if fw <= 0 or fh <= 0:
        raise InvalidFrameError(f"Frame has zero area: {fw}x{fh}")

    r = min(tw / fw, th / fh)
    # epsilon keeps exact fits (e.g. 1280 * 0.5) from flooring one pixel short
    resized_w = int(np.floor(fw * r + 1e-9))
    resized_h = int(np.floor(fh * r + 1e-9))
    dw = (tw - resized_w) / 2
    dh = (th - resized_h) / 2

    return LetterboxInfo(ratio=r, pad=(dw, dh), resized_size=(resized_w, resized_h))


def _axis_lookup(target: int, offset: float, resized: int, ratio: float, source: int) -> Tuple[np.ndarray, np.ndarray]:
    coords = np.arange(target, dtype=np.float64)
    inside = (coords >= offset) & (coords < offset + resized)
    src = np.floor((coords - offset) / ratio).astype(np.int64)
    return inside, np.clip(src, 0, source - 1)


def preprocess(frame: Frame, target_shape: Sequence[int]) -> Tuple[Tensor, LetterboxInfo]:
    """
    Letterbox an RGBA frame into a planar (NCHW) float32 tensor in [0, 1].

    Nearest-neighbour sampling, alpha discarded, padding filled with 0.

    Returns:
        tensor: flat buffer shaped (1, 3, H, W)
        info: ratio/pad used, needed to map boxes back to the frame
    """

    th, tw = _target_hw(target_shape)
    pixels = getattr(frame, "pixels", None)
    if pixels is None or not hasattr(pixels, "shape") or pixels.ndim != 3 or pixels.shape[2] < 3:
        raise InvalidFrameError(f"Unreadable frame: {getattr(pixels, 'shape', None)}")
    if pixels.dtype != np.uint8:
        raise InvalidFrameError(f"Expected uint8 frame pixels, got {pixels.dtype}")

    fh, fw = pixels.shape[:2]
    info = letterbox_geometry((fw, fh), (tw, th))
    dw, dh = info.pad
    resized_w, resized_h = info.resized_size

    inside_x, src_x = _axis_lookup(tw, dw, resized_w, info.ratio, fw)
    inside_y, src_y = _axis_lookup(th, dh, resized_h, info.ratio, fh)

    # (H, W, 3) gather, then RGB -> planes
    rgb = pixels[src_y[:, None], src_x[None, :], :3].astype(np.float32) / 255.0
    rgb[~(inside_y[:, None] & inside_x[None, :])] = 0.0
    planes = np.ascontiguousarray(np.transpose(rgb, (2, 0, 1)), dtype=np.float32)

    return Tensor(data=planes.ravel(), shape=(1, 3, th, tw)), info
