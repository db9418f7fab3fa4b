from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np

from .errors import InferenceError, InvalidFrameError
from .model_config import ModelConfig
from .palette import color_for_class
from .types import Detection, LetterboxInfo


@dataclass(frozen=True)
class PostConfig:
    """
    Decoding options for (1, rows, 5 + C) YOLOv5-style outputs.
    """

    # Map boxes back by undoing the letterbox (pad + ratio) when the
    # preprocessing geometry is known. False scales each axis by
    # image_dim / model_dim, ignoring the padding.
    invert_letterbox: bool = True


class Postprocessor:
    """
    Decode raw rows [cx, cy, w, h, obj, class_scores...] into candidate detections.

    Candidates keep the row order of the output; sorting is left to the suppressor.
    """

    def __init__(self, model_cfg: ModelConfig, cfg: PostConfig = PostConfig()):
        self.model_cfg = model_cfg
        self.cfg = cfg

    def process(
        self,
        raw: np.ndarray,
        image_width: int,
        image_height: int,
        confidence_threshold: float,
        letterbox: Optional[LetterboxInfo] = None,
    ) -> List[Detection]:
        """
        Args:
            raw: engine output shaped (1, rows, 5 + C) or (rows, 5 + C)
            image_width/image_height: size of the frame the boxes are mapped to
            confidence_threshold: both objectness and obj * class score must exceed it
            letterbox: geometry from `preprocess`; required for the inverse-letterbox mapping
        """

        if image_width <= 0 or image_height <= 0:
            raise InvalidFrameError(f"Image size must be positive, got {image_width}x{image_height}")

        boxes, scores, class_ids = self._decode(raw, confidence_threshold)
        if scores.size == 0:
            return []

        boxes = self._scale_boxes(boxes, (image_width, image_height), letterbox)

        names = self.model_cfg.class_names
        return [
            Detection(
                box=(float(left), float(top), float(w), float(h)),
                label=names[int(cls_id)],
                confidence=float(score),
                color=color_for_class(int(cls_id)),
                class_id=int(cls_id),
            )
            for (left, top, w, h), score, cls_id in zip(boxes, scores, class_ids)
        ]

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #
    def _decode(self, raw: np.ndarray, threshold: float) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Filter rows and return (cx, cy, w, h) boxes in model pixels, scores and class ids.
        """

        p = np.asarray(raw)
        if p.ndim == 3:
            if p.shape[0] != 1:
                raise InferenceError(f"Batch > 1 is not supported (got shape {p.shape}).")
            p = p[0]
        if p.ndim != 2:
            raise InferenceError(f"Unsupported output shape: {p.shape}")
        if p.shape[1] != self.model_cfg.row_size:
            raise InferenceError(
                f"Expected rows of 5 + {self.model_cfg.num_classes} values, got shape {p.shape}"
            )

        p = p.astype(np.float64, copy=False)

        # Cheap reject on objectness before touching class scores.
        p = p[p[:, 4] > threshold]
        if p.shape[0] == 0:
            return np.empty((0, 4)), np.empty((0,)), np.empty((0,), dtype=np.int64)

        class_scores = p[:, 5:]
        class_ids = np.argmax(class_scores, axis=1)  # first max wins on ties
        class_conf = class_scores[np.arange(class_scores.shape[0]), class_ids]
        scores = p[:, 4] * class_conf

        keep = scores > threshold
        return p[keep, 0:4], np.minimum(scores[keep], 1.0), class_ids[keep]

    def _scale_boxes(
        self,
        boxes: np.ndarray,
        image_size: Tuple[int, int],
        letterbox: Optional[LetterboxInfo],
    ) -> np.ndarray:
        """
        Map center-form model boxes to (left, top, width, height) image boxes.
        """

        cx, cy, w, h = (boxes[:, i].copy() for i in range(4))

        if self.cfg.invert_letterbox and letterbox is not None:
            dw, dh = letterbox.pad
            r = letterbox.ratio
            cx = (cx - dw) / r
            cy = (cy - dh) / r
            w = w / r
            h = h / r
        else:
            image_w, image_h = image_size
            sx = image_w / self.model_cfg.input_width
            sy = image_h / self.model_cfg.input_height
            cx, w = cx * sx, w * sx
            cy, h = cy * sy, h * sy

        w = np.maximum(w, 0.0)
        h = np.maximum(h, 0.0)
        return np.stack([cx - w / 2, cy - h / 2, w, h], axis=1)


def postprocess(
    raw: np.ndarray,
    image_width: int,
    image_height: int,
    confidence_threshold: float,
    *,
    config: ModelConfig,
    letterbox: Optional[LetterboxInfo] = None,
) -> List[Detection]:
    """Functional wrapper around `Postprocessor.process`."""

    post = Postprocessor(config, PostConfig(invert_letterbox=letterbox is not None))
    return post.process(raw, image_width, image_height, confidence_threshold, letterbox=letterbox)
