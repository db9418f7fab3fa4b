"""
Reusable YOLOv5-style detection pipeline.

Frame -> letterbox tensor -> inference engine -> decoded candidates -> class-aware NMS.
The numeric stages only need NumPy; inference runtimes live in `detect_kit.backends`
and are imported on demand.
"""

from .errors import ConfigError, DetectionError, InferenceError, InvalidFrameError, ModelLoadError
from .types import Detection, DetectionSet, Frame, LetterboxInfo, Tensor
from .model_config import COCO_CLASS_NAMES, ModelConfig, load_class_names, load_model_config, yolov5s_config
from .letterbox import letterbox_geometry, preprocess
from .postprocess import PostConfig, Postprocessor, postprocess
from .nms import iou, suppress
from .palette import color_for_class, color_to_hex
from .runtime import (
    BytesModelSource,
    DetectionPipeline,
    FileModelSource,
    ModelHandle,
    find_project_root,
    load_pipeline,
    resolve_path,
)

__all__ = [
    "ConfigError",
    "DetectionError",
    "InferenceError",
    "InvalidFrameError",
    "ModelLoadError",
    "Detection",
    "DetectionSet",
    "Frame",
    "LetterboxInfo",
    "Tensor",
    "COCO_CLASS_NAMES",
    "ModelConfig",
    "load_class_names",
    "load_model_config",
    "yolov5s_config",
    "letterbox_geometry",
    "preprocess",
    "PostConfig",
    "Postprocessor",
    "postprocess",
    "iou",
    "suppress",
    "color_for_class",
    "color_to_hex",
    "BytesModelSource",
    "DetectionPipeline",
    "FileModelSource",
    "ModelHandle",
    "find_project_root",
    "load_pipeline",
    "resolve_path",
]
