from __future__ import annotations

import json
import numbers
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .errors import ConfigError


COCO_CLASS_NAMES: Tuple[str, ...] = (
    "person", "bicycle", "car", "motorcycle", "airplane", "bus", "train", "truck", "boat",
    "traffic light", "fire hydrant", "stop sign", "parking meter", "bench", "bird", "cat",
    "dog", "horse", "sheep", "cow", "elephant", "bear", "zebra", "giraffe", "backpack",
    "umbrella", "handbag", "tie", "suitcase", "frisbee", "skis", "snowboard", "sports ball",
    "kite", "baseball bat", "baseball glove", "skateboard", "surfboard", "tennis racket",
    "bottle", "wine glass", "cup", "fork", "knife", "spoon", "bowl", "banana", "apple",
    "sandwich", "orange", "broccoli", "carrot", "hot dog", "pizza", "donut", "cake", "chair",
    "couch", "potted plant", "bed", "dining table", "toilet", "tv", "laptop", "mouse", "remote",
    "keyboard", "cell phone", "microwave", "oven", "toaster", "sink", "refrigerator", "book",
    "clock", "vase", "scissors", "teddy bear", "hair drier", "toothbrush",
)


def check_unit_interval(name: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise ConfigError(f"{name} must be a number, got {value!r}")
    if not 0.0 <= value <= 1.0:
        raise ConfigError(f"{name} must be within [0, 1]")


@dataclass(frozen=True)
class ModelConfig:
    """
    Static description of the detector model, shared read-only by every stage.

    - input_shape: (batch, channels, height, width), e.g. (1, 3, 640, 640)
    - class_names: index -> label mapping used when decoding class scores
    - input_name/output_name: tensor names for the engine; output_name=None picks the first output
    """

    input_shape: Tuple[int, int, int, int] = (1, 3, 640, 640)
    class_names: Tuple[str, ...] = COCO_CLASS_NAMES
    confidence_threshold: float = 0.45
    iou_threshold: float = 0.45
    input_name: str = "images"
    output_name: Optional[str] = None

    def __post_init__(self) -> None:
        shape = tuple(self.input_shape)
        if len(shape) != 4:
            raise ConfigError(f"input_shape must have 4 dimensions (N, C, H, W), got {shape}")
        if any(isinstance(d, bool) or not isinstance(d, int) or d <= 0 for d in shape):
            raise ConfigError(f"input_shape dimensions must be positive integers, got {shape}")
        if shape[0] != 1:
            raise ConfigError("Batch > 1 is not supported (input_shape[0] must be 1)")
        if shape[1] != 3:
            raise ConfigError("input_shape[1] must be 3 (RGB)")
        # Accept lists from JSON and keep the dataclass hashable.
        object.__setattr__(self, "input_shape", shape)
        object.__setattr__(self, "class_names", tuple(str(n) for n in self.class_names))
        if not self.class_names:
            raise ConfigError("class_names must not be empty")
        check_unit_interval("confidence_threshold", self.confidence_threshold)
        check_unit_interval("iou_threshold", self.iou_threshold)
        if not self.input_name:
            raise ConfigError("input_name must not be empty")

    @property
    def num_classes(self) -> int:
        return len(self.class_names)

    @property
    def input_height(self) -> int:
        return self.input_shape[2]

    @property
    def input_width(self) -> int:
        return self.input_shape[3]

    @property
    def row_size(self) -> int:
        # cx, cy, w, h, objectness, class scores...
        return 5 + self.num_classes


def yolov5s_config() -> ModelConfig:
    return ModelConfig()


def load_class_names(metadata_path: Path) -> List[str]:
    """
    Load class names from the lightweight `metadata.yaml` format:

        names:
          0: person
          1: bicycle
          ...

    Ids must be contiguous from 0 so that the list index is the class id.
    """

    names: Dict[int, str] = {}
    in_names = False

    with open(metadata_path, "r", encoding="utf-8") as f:
        for raw in f:
            line = raw.strip()
            if not line or line.startswith("#"):
                continue
            if line == "names:":
                in_names = True
                continue
            if not in_names:
                continue

            # Parse "id: label"
            if ":" not in line:
                continue
            left, right = line.split(":", 1)
            left = left.strip()
            right = right.strip().strip("'").strip('"')
            if not left.isdigit():
                continue
            names[int(left)] = right

    if not names:
        raise ConfigError(f"No class names found in {metadata_path}")
    if sorted(names) != list(range(len(names))):
        raise ConfigError(f"Class ids in {metadata_path} must be contiguous from 0")
    return [names[i] for i in range(len(names))]


def _require_number(payload: Dict[str, Any], key: str, default: float) -> float:
    value = payload.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{key} must be a number")
    return float(value)


def _require_shape(payload: Dict[str, Any]) -> Tuple[int, int, int, int]:
    value = payload.get("input_shape", [1, 3, 640, 640])
    if not isinstance(value, list) or not all(isinstance(v, int) and not isinstance(v, bool) for v in value):
        raise ConfigError("input_shape must be a list of integers")
    return tuple(value)  # type: ignore[return-value]


def _class_names_from_payload(payload: Dict[str, Any], base_dir: Path) -> Sequence[str]:
    if "class_names" in payload and "class_names_file" in payload:
        raise ConfigError("Pass either class_names or class_names_file, not both")
    if "class_names_file" in payload:
        names_path = Path(payload["class_names_file"])
        if not names_path.is_absolute():
            names_path = base_dir / names_path
        return load_class_names(names_path)
    names = payload.get("class_names", list(COCO_CLASS_NAMES))
    if not isinstance(names, list) or not all(isinstance(n, str) for n in names):
        raise ConfigError("class_names must be a list of strings")
    return names


def load_model_config(path: Path) -> ModelConfig:
    """
    Read a JSON model profile. Missing keys fall back to the YOLOv5s defaults.
    """

    if not path.exists():
        raise FileNotFoundError(f"Model profile not found: {path}")
    raw = path.read_text(encoding="utf-8")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid model profile JSON: {path}") from exc
    if not isinstance(payload, dict):
        raise ConfigError("Model profile must be a JSON object")

    allowed = {
        "schema_version",
        "input_shape",
        "class_names",
        "class_names_file",
        "confidence_threshold",
        "iou_threshold",
        "input_name",
        "output_name",
    }
    unknown = sorted(set(payload.keys()) - allowed)
    if unknown:
        raise ConfigError(f"Unknown model profile keys: {unknown}")
    if payload.get("schema_version", 1) != 1:
        raise ConfigError("model profile schema_version must be 1")

    output_name = payload.get("output_name")
    if output_name is not None and not isinstance(output_name, str):
        raise ConfigError("output_name must be a string if provided")

    return ModelConfig(
        input_shape=_require_shape(payload),
        class_names=tuple(_class_names_from_payload(payload, path.parent)),
        confidence_threshold=_require_number(payload, "confidence_threshold", 0.45),
        iou_threshold=_require_number(payload, "iou_threshold", 0.45),
        input_name=str(payload.get("input_name", "images")),
        output_name=output_name,
    )
