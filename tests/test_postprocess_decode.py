import unittest

import numpy as np

from detect_kit.errors import InferenceError, InvalidFrameError
from detect_kit.letterbox import letterbox_geometry
from detect_kit.model_config import ModelConfig
from detect_kit.palette import color_for_class
from detect_kit.postprocess import PostConfig, Postprocessor, postprocess

from fakes import CLASS_NAMES, make_output, make_row


def _cfg() -> ModelConfig:
    return ModelConfig(input_shape=(1, 3, 640, 640), class_names=CLASS_NAMES)


class TestYoloPostprocessDecode(unittest.TestCase):
    def test_single_confident_row(self) -> None:
        raw = make_output([make_row(320, 320, 64, 64, 0.9, [0.9, 0.0, 0.0])])
        dets = postprocess(raw, 640, 640, 0.45, config=_cfg())
        self.assertEqual(len(dets), 1)
        self.assertEqual(dets[0].label, "person")
        self.assertEqual(dets[0].class_id, 0)
        self.assertAlmostEqual(dets[0].confidence, 0.81, places=5)

    def test_combined_score_below_threshold_is_dropped(self) -> None:
        raw = make_output([make_row(320, 320, 64, 64, 0.6, [0.0, 0.6, 0.0])])
        self.assertEqual(postprocess(raw, 640, 640, 0.45, config=_cfg()), [])

    def test_objectness_at_threshold_is_rejected(self) -> None:
        raw = make_output([make_row(320, 320, 64, 64, 0.45, [1.0, 0.0, 0.0])])
        self.assertEqual(postprocess(raw, 640, 640, 0.45, config=_cfg()), [])

    def test_tie_picks_lowest_class_index(self) -> None:
        raw = make_output([make_row(320, 320, 64, 64, 0.9, [0.2, 0.8, 0.8])])
        dets = postprocess(raw, 640, 640, 0.45, config=_cfg())
        self.assertEqual(len(dets), 1)
        self.assertEqual(dets[0].label, "bicycle")

    def test_rows_keep_output_order(self) -> None:
        raw = make_output(
            [
                make_row(100, 100, 10, 10, 0.6, [0.0, 0.0, 0.9]),
                make_row(200, 200, 10, 10, 0.99, [0.99, 0.0, 0.0]),
                make_row(300, 300, 10, 10, 0.1, [0.99, 0.0, 0.0]),
            ]
        )
        dets = postprocess(raw, 640, 640, 0.45, config=_cfg())
        self.assertEqual([d.label for d in dets], ["chair", "person"])

    def test_center_box_converted_to_top_left(self) -> None:
        raw = make_output([make_row(320, 240, 100, 50, 0.9, [0.9, 0.0, 0.0])])
        dets = postprocess(raw, 640, 640, 0.45, config=_cfg())
        self.assertEqual(dets[0].box, (270.0, 215.0, 100.0, 50.0))

    def test_per_axis_scaling_without_letterbox(self) -> None:
        raw = make_output([make_row(320, 320, 64, 64, 0.9, [0.9, 0.0, 0.0])])
        dets = postprocess(raw, 1280, 720, 0.45, config=_cfg())
        left, top, w, h = dets[0].box
        self.assertAlmostEqual(w, 128.0)
        self.assertAlmostEqual(h, 72.0)
        self.assertAlmostEqual(left, 576.0)
        self.assertAlmostEqual(top, 324.0)

    def test_inverse_letterbox_mapping(self) -> None:
        info = letterbox_geometry((1280, 720), (640, 640))
        raw = make_output([make_row(320, 320, 64, 64, 0.9, [0.9, 0.0, 0.0])])
        dets = postprocess(raw, 1280, 720, 0.45, config=_cfg(), letterbox=info)
        left, top, w, h = dets[0].box
        self.assertAlmostEqual(w, 128.0)
        self.assertAlmostEqual(h, 128.0)
        self.assertAlmostEqual(left, 576.0)
        self.assertAlmostEqual(top, 296.0)

    def test_invert_letterbox_can_be_disabled(self) -> None:
        info = letterbox_geometry((1280, 720), (640, 640))
        raw = make_output([make_row(320, 320, 64, 64, 0.9, [0.9, 0.0, 0.0])])
        post = Postprocessor(_cfg(), PostConfig(invert_letterbox=False))
        dets = post.process(raw, 1280, 720, 0.45, letterbox=info)
        self.assertAlmostEqual(dets[0].box[1], 324.0)

    def test_negative_size_clamped_to_zero(self) -> None:
        raw = make_output([make_row(320, 320, -10, 20, 0.9, [0.9, 0.0, 0.0])])
        dets = postprocess(raw, 640, 640, 0.45, config=_cfg())
        self.assertEqual(dets[0].box[2], 0.0)

    def test_color_is_stable_per_class(self) -> None:
        raw = make_output(
            [
                make_row(100, 100, 10, 10, 0.9, [0.0, 0.0, 0.9]),
                make_row(300, 300, 10, 10, 0.9, [0.0, 0.0, 0.9]),
            ]
        )
        dets = postprocess(raw, 640, 640, 0.45, config=_cfg())
        self.assertEqual(dets[0].color, dets[1].color)
        self.assertEqual(dets[0].color, color_for_class(2))

    def test_two_dimensional_output_accepted(self) -> None:
        raw = make_output([make_row(320, 320, 64, 64, 0.9, [0.9, 0.0, 0.0])])[0]
        self.assertEqual(len(postprocess(raw, 640, 640, 0.45, config=_cfg())), 1)

    def test_empty_output(self) -> None:
        self.assertEqual(postprocess(make_output([]), 640, 640, 0.45, config=_cfg()), [])

    def test_row_size_mismatch_raises(self) -> None:
        raw = np.zeros((1, 4, 85), dtype=np.float32)
        with self.assertRaises(InferenceError):
            postprocess(raw, 640, 640, 0.45, config=_cfg())

    def test_batch_above_one_raises(self) -> None:
        raw = np.zeros((2, 4, 8), dtype=np.float32)
        with self.assertRaises(InferenceError):
            postprocess(raw, 640, 640, 0.45, config=_cfg())

    def test_zero_image_size_raises(self) -> None:
        with self.assertRaises(InvalidFrameError):
            postprocess(make_output([]), 0, 640, 0.45, config=_cfg())


if __name__ == "__main__":
    unittest.main()
