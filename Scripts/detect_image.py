from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

import cv2

from detect_kit import Frame, ModelConfig, load_model_config, load_pipeline
from live_detection import setup_logging

LOGGER = logging.getLogger("detect_image")


def read_image(path: str):
    img = cv2.imread(path)
    if img is None:
        raise FileNotFoundError(f"Could not read image at path: {path}")
    return img


def main() -> int:
    parser = argparse.ArgumentParser(description="Run the detector on one image and print detections as JSON lines.")
    parser.add_argument("image", help="Path to an input image.")
    parser.add_argument("--model", default="models/yolov5s.onnx", help="Model path (relative to project root).")
    parser.add_argument("--backend", default=None, help="onnxruntime / torchscript (default: from extension).")
    parser.add_argument("--model-config", default=None, help="JSON model profile.")
    parser.add_argument("--conf", type=float, default=None, help="Confidence threshold.")
    parser.add_argument("--iou", type=float, default=None, help="IoU threshold for NMS.")
    parser.add_argument("--log-level", default="WARNING")
    args = parser.parse_args()
    setup_logging(args.log_level)

    model_cfg = load_model_config(Path(args.model_config)) if args.model_config else ModelConfig()
    pipeline = load_pipeline(args.model, backend=args.backend, config=model_cfg)

    frame = Frame.from_bgr(read_image(args.image))
    detections = pipeline.detect(frame, args.conf, args.iou)
    LOGGER.info("%d detections in %s", len(detections), args.image)
    for det in detections:
        print(
            json.dumps(
                {
                    "label": det.label,
                    "confidence": round(det.confidence, 4),
                    "box": [round(v, 1) for v in det.box],
                    "color": det.color_hex,
                }
            )
        )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
