from typing import List, Optional, Sequence, Tuple

import numpy as np

from .types import Detection


Box = Tuple[float, float, float, float]


def iou(box_a: Box, box_b: Box) -> float:
    """
    Intersection over union of two (left, top, width, height) boxes.

    Returns 0 for disjoint or touching boxes and when the union is empty.
    """

    ax, ay, aw, ah = box_a
    bx, by, bw, bh = box_b

    inter_w = min(ax + aw, bx + bw) - max(ax, bx)
    inter_h = min(ay + ah, by + bh) - max(ay, by)
    if inter_w <= 0 or inter_h <= 0:
        return 0.0

    inter = inter_w * inter_h
    union = aw * ah + bw * bh - inter
    if union <= 0:
        return 0.0
    return float(inter / union)


def _iou_one_to_many(box: np.ndarray, others: np.ndarray) -> np.ndarray:
    x1 = np.maximum(box[0], others[:, 0])
    y1 = np.maximum(box[1], others[:, 1])
    x2 = np.minimum(box[0] + box[2], others[:, 0] + others[:, 2])
    y2 = np.minimum(box[1] + box[3], others[:, 1] + others[:, 3])

    w = x2 - x1
    h = y2 - y1
    inter = np.where((w > 0) & (h > 0), w * h, 0.0)
    union = box[2] * box[3] + others[:, 2] * others[:, 3] - inter
    out = np.zeros_like(inter)
    np.divide(inter, union, out=out, where=union > 0)
    return out


def suppress(
    candidates: Sequence[Detection],
    iou_threshold: float,
    max_detections: Optional[int] = None,
) -> List[Detection]:
    """
    Class-aware greedy NMS.

    Candidates are visited by confidence (stable for ties). Each unmarked one
    is kept and discards every later unmarked candidate with the same label
    whose IoU with it exceeds `iou_threshold`. Kept detections are returned in
    keep order, i.e. confidence-descending.
    """

    if not candidates:
        return []

    order = sorted(range(len(candidates)), key=lambda i: -candidates[i].confidence)
    dets = [candidates[i] for i in order]
    boxes = np.array([d.box for d in dets], dtype=np.float64)
    labels = np.array([d.label for d in dets], dtype=object)

    marked = np.zeros(len(dets), dtype=bool)
    kept: List[Detection] = []

    for i, det in enumerate(dets):
        if marked[i]:
            continue
        marked[i] = True
        kept.append(det)
        if max_detections is not None and len(kept) >= max_detections:
            break

        rest = np.arange(i + 1, len(dets))
        rest = rest[~marked[rest] & (labels[rest] == det.label)]
        if rest.size == 0:
            continue
        overlaps = _iou_one_to_many(boxes[i], boxes[rest])
        marked[rest[overlaps > iou_threshold]] = True

    return kept
