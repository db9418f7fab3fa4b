from __future__ import annotations

import argparse
import json
import statistics
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Iterable, List

import cv2
import numpy as np
from tqdm import tqdm

from detect_kit import Frame, ModelConfig, load_model_config, load_pipeline
from live_detection import setup_logging


@dataclass(frozen=True)
class TimingSummary:
    n: int
    mean_ms: float
    p50_ms: float
    p95_ms: float


@dataclass(frozen=True)
class BenchmarkResult:
    model: str
    preprocess: TimingSummary
    inference: TimingSummary
    postprocess: TimingSummary
    total: TimingSummary
    mean_detections: float


def _summarize_s(values_s: List[float]) -> TimingSummary:
    ms = np.array(values_s, dtype=np.float64) * 1000.0
    return TimingSummary(
        n=int(ms.size),
        mean_ms=float(statistics.fmean(ms)) if ms.size else 0.0,
        p50_ms=float(np.percentile(ms, 50)) if ms.size else 0.0,
        p95_ms=float(np.percentile(ms, 95)) if ms.size else 0.0,
    )


def _iter_frames(args: argparse.Namespace) -> Iterable[Frame]:
    if args.image is not None:
        img = cv2.imread(args.image)
        if img is None:
            raise FileNotFoundError(f"Could not read image at path: {args.image}")
        frame = Frame.from_bgr(img)
        for _ in range(int(args.repeats)):
            yield frame
        return

    cap = cv2.VideoCapture(args.video)
    if not cap.isOpened():
        raise FileNotFoundError(f"Could not open video: {args.video}")
    try:
        for _ in range(int(args.repeats)):
            ok, img = cap.read()
            if not ok or img is None:
                break
            yield Frame.from_bgr(img)
    finally:
        cap.release()


def _format_ms_triplet(s: TimingSummary) -> str:
    return f"{s.mean_ms:.3f}/{s.p50_ms:.3f}/{s.p95_ms:.3f}"


def main() -> int:
    parser = argparse.ArgumentParser(description="Time each pipeline stage (preprocess / inference / post+NMS).")
    src = parser.add_mutually_exclusive_group(required=True)
    src.add_argument("--image", default=None, help="Path to an input image (repeated N times).")
    src.add_argument("--video", default=None, help="Path to an input video file.")
    parser.add_argument("--model", default="models/yolov5s.onnx", help="Model path (relative to project root).")
    parser.add_argument("--backend", default=None, help="onnxruntime / torchscript (default: from extension).")
    parser.add_argument("--model-config", default=None, help="JSON model profile.")
    parser.add_argument("--conf", type=float, default=0.45, help="Confidence threshold.")
    parser.add_argument("--iou", type=float, default=0.45, help="IoU threshold for NMS.")
    parser.add_argument("--warmup", type=int, default=10, help="Warmup frames to run but not record.")
    parser.add_argument("--repeats", type=int, default=200, help="Number of frames to run.")
    parser.add_argument("--json-out", default=None, help="Optional output path to write results JSON.")
    args = parser.parse_args()
    setup_logging("WARNING")

    if args.warmup < 0:
        raise ValueError("--warmup must be >= 0")
    if args.repeats < 1:
        raise ValueError("--repeats must be >= 1")

    model_cfg = load_model_config(Path(args.model_config)) if args.model_config else ModelConfig()
    pipeline = load_pipeline(args.model, backend=args.backend, config=model_cfg)

    t_pre: List[float] = []
    t_inf: List[float] = []
    t_post: List[float] = []
    t_total: List[float] = []
    counts: List[int] = []

    for i, frame in enumerate(tqdm(_iter_frames(args), total=int(args.repeats), unit="frame")):
        detections, timings = pipeline.detect_timed(frame, args.conf, args.iou)
        if i < int(args.warmup):
            continue
        t_pre.append(timings.preprocess_s)
        t_inf.append(timings.inference_s)
        t_post.append(timings.postprocess_s)
        t_total.append(timings.preprocess_s + timings.inference_s + timings.postprocess_s)
        counts.append(len(detections))

    if not t_total:
        raise RuntimeError("No samples recorded. Check your source, --warmup and --repeats.")

    result = BenchmarkResult(
        model=str(args.model),
        preprocess=_summarize_s(t_pre),
        inference=_summarize_s(t_inf),
        postprocess=_summarize_s(t_post),
        total=_summarize_s(t_total),
        mean_detections=float(statistics.fmean(counts)),
    )

    print("stage        mean/p50/p95 ms")
    print(f"preprocess   {_format_ms_triplet(result.preprocess)}")
    print(f"inference    {_format_ms_triplet(result.inference)}")
    print(f"post+nms     {_format_ms_triplet(result.postprocess)}")
    print(f"total        {_format_ms_triplet(result.total)}")
    fps = (1000.0 / result.total.mean_ms) if result.total.mean_ms > 0 else 0.0
    print(f"fps(mean_total)={fps:.2f} detections/frame={result.mean_detections:.2f}")

    if args.json_out:
        out_path = Path(args.json_out)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(json.dumps(asdict(result), indent=2, sort_keys=True), encoding="utf-8")
        print(f"wrote {out_path}")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
