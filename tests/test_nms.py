import unittest

import numpy as np

from detect_kit.nms import iou, suppress
from detect_kit.palette import color_for_class
from detect_kit.types import Detection


def _det(box, label: str = "person", confidence: float = 0.9) -> Detection:
    return Detection(box=tuple(float(v) for v in box), label=label, confidence=confidence, color=color_for_class(0))


class TestIoU(unittest.TestCase):
    def test_disjoint_boxes(self) -> None:
        self.assertEqual(iou((0, 0, 10, 10), (20, 20, 5, 5)), 0.0)

    def test_touching_boxes(self) -> None:
        self.assertEqual(iou((0, 0, 10, 10), (10, 0, 10, 10)), 0.0)

    def test_identical_boxes(self) -> None:
        self.assertEqual(iou((3, 4, 10, 20), (3, 4, 10, 20)), 1.0)

    def test_known_overlap(self) -> None:
        self.assertAlmostEqual(iou((0, 0, 10, 10), (2.5, 0, 10, 10)), 0.6)

    def test_zero_area_union(self) -> None:
        self.assertEqual(iou((5, 5, 0, 0), (5, 5, 0, 0)), 0.0)

    def test_symmetric(self) -> None:
        rng = np.random.default_rng(7)
        for _ in range(200):
            a = tuple(rng.uniform(0, 50, size=4))
            b = tuple(rng.uniform(0, 50, size=4))
            self.assertAlmostEqual(iou(a, b), iou(b, a))


class TestSuppress(unittest.TestCase):
    def test_overlapping_same_label_keeps_highest(self) -> None:
        hi = _det((0, 0, 10, 10), confidence=0.92)
        lo = _det((2.5, 0, 10, 10), confidence=0.70)
        self.assertEqual(suppress([lo, hi], 0.45), [hi])

    def test_different_labels_are_never_suppressed(self) -> None:
        person = _det((0, 0, 10, 10), "person", 0.92)
        chair = _det((2.5, 0, 10, 10), "chair", 0.70)
        self.assertEqual(suppress([person, chair], 0.45), [person, chair])

    def test_overlap_at_threshold_is_kept(self) -> None:
        a = _det((0, 0, 10, 10), confidence=0.9)
        b = _det((2.5, 0, 10, 10), confidence=0.8)
        self.assertEqual(len(suppress([a, b], 0.6)), 2)

    def test_output_sorted_by_confidence(self) -> None:
        dets = [
            _det((0, 0, 10, 10), confidence=0.5),
            _det((100, 0, 10, 10), confidence=0.9),
            _det((200, 0, 10, 10), confidence=0.7),
        ]
        kept = suppress(dets, 0.45)
        self.assertEqual([d.confidence for d in kept], [0.9, 0.7, 0.5])

    def test_equal_confidence_keeps_input_order(self) -> None:
        first = _det((0, 0, 10, 10), confidence=0.8)
        second = _det((1, 0, 10, 10), confidence=0.8)
        self.assertEqual(suppress([first, second], 0.45), [first])
        self.assertEqual(suppress([second, first], 0.45), [second])

    def test_discarded_box_does_not_suppress_others(self) -> None:
        a = _det((0, 0, 10, 10), confidence=0.9)
        b = _det((5, 0, 10, 10), confidence=0.8)  # overlaps a and c
        c = _det((10, 0, 10, 10), confidence=0.7)  # touches a only
        self.assertEqual(suppress([a, b, c], 0.3), [a, c])

    def test_max_detections(self) -> None:
        dets = [_det((i * 20, 0, 10, 10), confidence=0.5 + i * 0.01) for i in range(5)]
        self.assertEqual(len(suppress(dets, 0.45, max_detections=2)), 2)

    def test_empty(self) -> None:
        self.assertEqual(suppress([], 0.45), [])

    def test_kept_dominate_discarded(self) -> None:
        rng = np.random.default_rng(11)
        labels = ["person", "chair"]
        dets = [
            _det(tuple(rng.uniform(0, 40, size=2)) + tuple(rng.uniform(5, 30, size=2)),
                 labels[int(rng.integers(0, 2))],
                 float(rng.uniform(0.3, 1.0)))
            for _ in range(40)
        ]
        kept = suppress(dets, 0.45)
        self.assertLessEqual(len(kept), len(dets))
        kept_ids = {id(d) for d in kept}
        for d in dets:
            if id(d) in kept_ids:
                continue
            # every discarded box was dominated by a kept same-label box
            self.assertTrue(
                any(k.label == d.label and k.confidence >= d.confidence and iou(k.box, d.box) > 0.45 for k in kept)
            )
        for a in kept:
            for b in kept:
                if a is not b and a.label == b.label:
                    self.assertLessEqual(iou(a.box, b.box), 0.45)


if __name__ == "__main__":
    unittest.main()
