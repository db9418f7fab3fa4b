from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List, Optional

from detect_kit import FileModelSource, ModelConfig, ModelHandle, load_model_config
from detect_kit.backends import engine_for
from detect_kit.runtime import infer_backend
from detect_kit.types import DetectionSet
from live_detection import (
    DetectionLoop,
    DetectionSettings,
    ModelStatus,
    OpenCVFrameSource,
    load_settings,
    setup_logging,
)

LOGGER = logging.getLogger("run_live_detect")


def _parse_providers(raw: Optional[str]) -> Optional[List[str]]:
    if raw is None:
        return None
    # PowerShell line continuations and copy/paste can leave stray backticks/quotes.
    parts = [p.strip().strip("'\"`") for p in str(raw).split(",")]
    return [p for p in parts if p] or None


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Live object detection on a webcam, video file or RTSP stream.")
    src = parser.add_mutually_exclusive_group(required=True)
    src.add_argument("--webcam", type=int, default=None, help="Webcam index (e.g., 0).")
    src.add_argument("--video", default=None, help="Path to an input video file.")
    src.add_argument("--rtsp", default=None, help="RTSP URL.")
    parser.add_argument("--loop-video", action="store_true", help="Rewind --video at its end.")

    parser.add_argument("--model", default="models/yolov5s.onnx", help="Model path (relative to project root).")
    parser.add_argument("--backend", default=None, help="onnxruntime / torchscript (default: from extension).")
    parser.add_argument("--model-config", default=None, help="JSON model profile (input shape, class names).")
    parser.add_argument(
        "--onnx-providers",
        default=None,
        help='Comma-separated ORT providers, e.g. "CUDAExecutionProvider,CPUExecutionProvider".',
    )

    parser.add_argument("--settings", default=None, help="JSON settings file (thresholds, tick interval).")
    parser.add_argument("--conf", type=float, default=None, help="Confidence threshold.")
    parser.add_argument("--iou", type=float, default=None, help="IoU threshold for NMS.")
    parser.add_argument("--interval-ms", type=int, default=None, help="Detection tick interval in milliseconds.")
    parser.add_argument("--duration-s", type=float, default=0.0, help="Stop after N seconds (0 = until Ctrl-C).")

    parser.add_argument("--log-level", default="INFO", help="Logging level.")
    parser.add_argument("--log-format", choices=("text", "json"), default="text")
    return parser


def resolve_settings(args: argparse.Namespace, model_cfg: ModelConfig) -> DetectionSettings:
    if args.settings:
        base = load_settings(Path(args.settings))
    else:
        base = DetectionSettings(
            confidence_threshold=model_cfg.confidence_threshold,
            iou_threshold=model_cfg.iou_threshold,
        )
    overrides: Dict[str, Any] = {}
    if args.conf is not None:
        overrides["confidence_threshold"] = float(args.conf)
    if args.iou is not None:
        overrides["iou_threshold"] = float(args.iou)
    if args.interval_ms is not None:
        overrides["tick_interval_ms"] = int(args.interval_ms)
    return replace(base, **overrides)


def _log_detections(result: DetectionSet) -> None:
    summary = ", ".join(f"{d.label} {d.confidence:.2f}" for d in result.detections) or "-"
    LOGGER.info("tick=%d objects=%d [%s]", result.tick, len(result), summary)


def run(args: argparse.Namespace) -> int:
    model_cfg = load_model_config(Path(args.model_config)) if args.model_config else ModelConfig()
    settings = resolve_settings(args, model_cfg)

    source = FileModelSource(args.model)
    backend = args.backend or infer_backend(source.path)
    options: Dict[str, Any] = {}
    providers = _parse_providers(args.onnx_providers)
    if providers is not None:
        options["providers"] = providers
    handle = ModelHandle(engine_for(backend), source, model_cfg, options=options)

    frames = OpenCVFrameSource.open(
        video=args.video,
        webcam=args.webcam,
        rtsp=args.rtsp,
        loop_video=bool(args.loop_video),
    )

    done = threading.Event()

    def on_status(status: ModelStatus, error: Optional[BaseException]) -> None:
        if status is ModelStatus.ERROR:
            LOGGER.error("Model failed to load: %s", error)
            done.set()
        else:
            LOGGER.info("Model status: %s", status.value)

    loop = DetectionLoop(handle, frames, settings)
    loop.subscribe(on_detections=_log_detections, on_status=on_status)

    def handle_interrupt(signum: int, frame: Optional[object]) -> None:  # pragma: no cover - signal handling
        LOGGER.warning("Received interrupt signal (%d), shutting down", signum)
        done.set()

    signal.signal(signal.SIGINT, handle_interrupt)

    try:
        loop.start()
        done.wait(timeout=args.duration_s if args.duration_s > 0 else None)
    finally:
        loop.stop(timeout=5.0)
        frames.close()

    stats = loop.stats()
    LOGGER.info(
        "ticks=%d published=%d not_ready=%d missed=%d failed=%d",
        stats.ticks,
        stats.published,
        stats.skipped_not_ready,
        stats.skipped_missed,
        stats.failed,
    )
    return 1 if loop.last_error is not None else 0


def main() -> int:
    parser = build_arg_parser()
    args = parser.parse_args()
    setup_logging(args.log_level, args.log_format)
    if args.duration_s < 0:
        parser.error("--duration-s must be >= 0")
    return run(args)


if __name__ == "__main__":
    sys.exit(main())
