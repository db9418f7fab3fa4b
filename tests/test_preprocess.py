import unittest

import numpy as np

from detect_kit.errors import ConfigError, InvalidFrameError
from detect_kit.letterbox import letterbox_geometry, preprocess
from detect_kit.types import Frame, LetterboxInfo


def _random_frame(width: int, height: int, seed: int = 0) -> Frame:
    rng = np.random.default_rng(seed)
    return Frame(pixels=rng.integers(0, 256, size=(height, width, 4), dtype=np.uint8))


class TestLetterboxGeometry(unittest.TestCase):
    def test_exact_fit_has_no_padding(self) -> None:
        info = letterbox_geometry((640, 640), (640, 640))
        self.assertEqual(info.ratio, 1.0)
        self.assertEqual(info.pad, (0.0, 0.0))
        self.assertEqual(info.resized_size, (640, 640))

    def test_wide_frame_pads_vertically(self) -> None:
        info = letterbox_geometry((1280, 720), (640, 640))
        self.assertAlmostEqual(info.ratio, 0.5)
        self.assertEqual(info.resized_size, (640, 360))
        self.assertEqual(info.pad, (0.0, 140.0))

    def test_small_frame_scales_up_with_single_ratio(self) -> None:
        info = letterbox_geometry((320, 160), (640, 640))
        self.assertAlmostEqual(info.ratio, 2.0)
        self.assertEqual(info.resized_size, (640, 320))
        self.assertEqual(info.pad, (0.0, 160.0))

    def test_geometry_is_ratio_pad_and_resized_size(self) -> None:
        info = letterbox_geometry((1280, 720), (640, 640))
        self.assertEqual(info, LetterboxInfo(ratio=0.5, pad=(0.0, 140.0), resized_size=(640, 360)))

    def test_zero_sized_frame_rejected(self) -> None:
        with self.assertRaises(InvalidFrameError):
            letterbox_geometry((0, 480), (640, 640))


class TestPreprocess(unittest.TestCase):
    def test_exact_size_is_one_to_one(self) -> None:
        frame = _random_frame(8, 6)
        tensor, info = preprocess(frame, (1, 3, 6, 8))
        self.assertEqual(info.pad, (0.0, 0.0))
        self.assertEqual(tensor.shape, (1, 3, 6, 8))
        self.assertEqual(tensor.data.dtype, np.float32)

        expected = np.transpose(frame.pixels[:, :, :3].astype(np.float32) / 255.0, (2, 0, 1))
        self.assertTrue(np.allclose(tensor.as_array()[0], expected))

    def test_output_is_planar_rgb_without_alpha(self) -> None:
        pixels = np.zeros((4, 4, 4), dtype=np.uint8)
        pixels[..., 0] = 255  # red
        pixels[..., 3] = 128  # alpha must be dropped
        tensor, _ = preprocess(Frame(pixels=pixels), (1, 3, 4, 4))

        plane = 4 * 4
        self.assertTrue(np.all(tensor.data[:plane] == 1.0))
        self.assertTrue(np.all(tensor.data[plane:] == 0.0))

    def test_padding_rows_are_zero(self) -> None:
        # 8x4 frame in an 8x8 canvas: two padding rows above and below
        pixels = np.full((4, 8, 4), 200, dtype=np.uint8)
        tensor, info = preprocess(Frame(pixels=pixels), (1, 3, 8, 8))
        self.assertEqual(info.pad, (0.0, 2.0))

        arr = tensor.as_array()[0]
        self.assertTrue(np.all(arr[:, :2, :] == 0.0))
        self.assertTrue(np.all(arr[:, 6:, :] == 0.0))
        self.assertTrue(np.allclose(arr[:, 2:6, :], 200.0 / 255.0))

    def test_downscale_uses_nearest_source_pixel(self) -> None:
        frame = _random_frame(16, 8, seed=3)
        tensor, info = preprocess(frame, (1, 3, 8, 8))
        self.assertAlmostEqual(info.ratio, 0.5)
        self.assertEqual(info.pad, (0.0, 2.0))

        arr = tensor.as_array()[0]
        # target (y=2 + j, x=i) samples source (2j, 2i)
        for j in range(4):
            for i in range(8):
                src = frame.pixels[2 * j, 2 * i, :3].astype(np.float32) / 255.0
                self.assertTrue(np.allclose(arr[:, 2 + j, i], src))

    def test_values_stay_in_unit_range(self) -> None:
        for seed, (w, h) in enumerate([(33, 17), (5, 40), (64, 64), (1, 1)]):
            tensor, _ = preprocess(_random_frame(w, h, seed=seed), (1, 3, 32, 32))
            self.assertGreaterEqual(float(tensor.data.min()), 0.0)
            self.assertLessEqual(float(tensor.data.max()), 1.0)

    def test_zero_area_frame_raises_invalid_frame(self) -> None:
        frame = Frame(pixels=np.zeros((0, 10, 4), dtype=np.uint8))
        with self.assertRaises(InvalidFrameError):
            preprocess(frame, (1, 3, 640, 640))

    def test_bad_target_shape_raises_config_error(self) -> None:
        with self.assertRaises(ConfigError):
            preprocess(_random_frame(4, 4), (1, 3, 0, 640))
        with self.assertRaises(ConfigError):
            preprocess(_random_frame(4, 4), (1, 1, 64, 64))

    def test_non_rgba_frame_rejected(self) -> None:
        with self.assertRaises(InvalidFrameError):
            Frame(pixels=np.zeros((4, 4, 3), dtype=np.uint8))

    def test_non_uint8_frame_rejected(self) -> None:
        with self.assertRaises(InvalidFrameError):
            Frame(pixels=np.full((4, 4, 4), 1000, dtype=np.int32))
        with self.assertRaises(InvalidFrameError):
            Frame(pixels=np.ones((4, 4, 4), dtype=np.float32))

    def test_preprocess_rejects_non_uint8_pixels(self) -> None:
        class Loose:
            pixels = np.full((4, 4, 4), 1000, dtype=np.int32)

        with self.assertRaises(InvalidFrameError):
            preprocess(Loose(), (1, 3, 4, 4))  # type: ignore[arg-type]


if __name__ == "__main__":
    unittest.main()
