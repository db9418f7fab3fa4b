from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from .backends import InferenceEngine, engine_for
from .errors import InferenceError, ModelLoadError
from .letterbox import preprocess
from .model_config import ModelConfig
from .nms import suppress
from .postprocess import PostConfig, Postprocessor
from .types import Detection, Frame, Tensor


PathLike = Union[str, Path]

LOGGER = logging.getLogger(__name__)


def find_project_root(
    start: Optional[PathLike] = None,
    markers: Sequence[str] = ("pyproject.toml", "setup.py", ".git", "requirements.txt"),
) -> Path:
    """
    Best-effort project root discovery.

    Useful when models live in `<root>/models` and scripts run from elsewhere.
    """

    p = Path(start) if start is not None else Path.cwd()
    p = p.resolve()

    # If a file is provided, start from its directory.
    if p.is_file():
        p = p.parent

    for parent in (p, *p.parents):
        for m in markers:
            if (parent / m).exists():
                return parent
    return p


def resolve_path(path: PathLike, root: Optional[PathLike] = "auto") -> Path:
    """
    Resolve `path` to an absolute Path.

    - Absolute paths are returned as-is.
    - Relative paths are resolved against `root` if provided, the project root otherwise.
    """

    p = Path(path)
    if p.is_absolute():
        return p

    if root == "auto" or root is None:
        base = find_project_root()
    else:
        base = Path(root).resolve()

    return (base / p).resolve()


class FileModelSource:
    """Reads model bytes from disk."""

    def __init__(self, path: PathLike, root: Optional[PathLike] = "auto"):
        self.path = resolve_path(path, root=root)

    def read(self) -> bytes:
        if not self.path.exists():
            raise ModelLoadError(f"Model file not found: {self.path}")
        try:
            return self.path.read_bytes()
        except OSError as e:
            raise ModelLoadError(f"Could not read model file {self.path}: {e}") from e

    def __repr__(self) -> str:
        return f"FileModelSource({str(self.path)!r})"


class BytesModelSource:
    """Model bytes already in memory (bundled asset, download done elsewhere)."""

    def __init__(self, data: bytes, name: str = "<memory>"):
        self._data = bytes(data)
        self.name = name

    def read(self) -> bytes:
        return self._data

    def __repr__(self) -> str:
        return f"BytesModelSource({self.name!r}, {len(self._data)} bytes)"


class ModelHandle:
    """
    The one loaded inference session, shared read-only by every tick.

    `load()` is the only writer. A failed load leaves the handle unloaded so
    the caller can retry explicitly.
    """

    def __init__(
        self,
        engine: InferenceEngine,
        source: Any,
        config: ModelConfig,
        options: Optional[Mapping[str, Any]] = None,
    ):
        self.engine = engine
        self.source = source
        self.config = config
        self.options = dict(options or {})
        self._session: Any = None
        self._lock = threading.Lock()

    @property
    def loaded(self) -> bool:
        return self._session is not None

    def load(self) -> None:
        with self._lock:
            if self._session is not None:
                return
            LOGGER.info("Loading model from %r with %s", self.source, getattr(self.engine, "name", self.engine))
            try:
                model_bytes = self.source.read()
                if not model_bytes:
                    raise ModelLoadError(f"Model source {self.source!r} returned no bytes.")
                session = self.engine.load(model_bytes, self.options)
            except ModelLoadError:
                LOGGER.exception("Model load failed")
                raise
            except Exception as e:
                LOGGER.exception("Model load failed")
                raise ModelLoadError(f"Failed to load model: {e}") from e
            self._session = session
            LOGGER.info("Model loaded")

    def run(self, tensor: Tensor) -> np.ndarray:
        """
        Feed one named input and return the configured (or first) output array.
        """

        session = self._session
        if session is None:
            raise InferenceError("Model is not loaded.")

        try:
            outputs = self.engine.run(session, {self.config.input_name: tensor.as_array()})
        except InferenceError:
            raise
        except Exception as e:
            raise InferenceError(f"Inference failed: {e}") from e

        if not outputs:
            raise InferenceError("Engine returned no outputs.")
        name = self.config.output_name
        if name is not None:
            if name not in outputs:
                raise InferenceError(f"Output {name!r} not found; engine returned {sorted(outputs)}")
            return np.asarray(outputs[name])
        return np.asarray(next(iter(outputs.values())))


@dataclass(frozen=True)
class StageTimings:
    preprocess_s: float = 0.0
    inference_s: float = 0.0
    postprocess_s: float = 0.0


class DetectionPipeline:
    """
    Single-frame pipeline: preprocess (letterbox) -> inference -> postprocess -> suppress.

    Returns detections in the frame's pixel coordinates.
    """

    def __init__(self, handle: ModelHandle, post_cfg: PostConfig = PostConfig()):
        self.handle = handle
        self.config = handle.config
        self.post = Postprocessor(self.config, post_cfg)

    def detect(
        self,
        frame: Frame,
        confidence_threshold: Optional[float] = None,
        iou_threshold: Optional[float] = None,
    ) -> List[Detection]:
        detections, _ = self.detect_timed(frame, confidence_threshold, iou_threshold)
        return detections

    def detect_timed(
        self,
        frame: Frame,
        confidence_threshold: Optional[float] = None,
        iou_threshold: Optional[float] = None,
    ) -> Tuple[List[Detection], StageTimings]:
        conf = self.config.confidence_threshold if confidence_threshold is None else confidence_threshold
        iou_thr = self.config.iou_threshold if iou_threshold is None else iou_threshold

        t0 = time.perf_counter()
        tensor, info = preprocess(frame, self.config.input_shape)
        t1 = time.perf_counter()
        raw = self.handle.run(tensor)
        t2 = time.perf_counter()
        candidates = self.post.process(raw, frame.width, frame.height, conf, letterbox=info)
        detections = suppress(candidates, iou_thr)
        t3 = time.perf_counter()

        return detections, StageTimings(preprocess_s=t1 - t0, inference_s=t2 - t1, postprocess_s=t3 - t2)

    def __call__(self, frame: Frame) -> List[Detection]:
        return self.detect(frame)


def infer_backend(path: Path) -> str:
    suffix = path.suffix.lower()
    if suffix == ".onnx":
        return "onnxruntime"
    if suffix in {".torchscript", ".ts", ".pt"}:
        return "torchscript"
    raise ValueError(f"Could not infer backend from extension '{suffix}'. Pass backend=... explicitly.")


def load_pipeline(
    model_path: PathLike,
    *,
    backend: Optional[str] = None,
    root: Optional[PathLike] = "auto",
    config: ModelConfig = ModelConfig(),
    post_cfg: PostConfig = PostConfig(),
    engine_options: Optional[Dict[str, Any]] = None,
    load: bool = True,
) -> DetectionPipeline:
    """
    Create a pipeline for a model on disk.

    Typical usage:
        pipe = load_pipeline("models/yolov5s.onnx")  # resolves from project root by default

    Args:
        model_path: relative paths resolve against the project root by default
        backend: "onnxruntime" or "torchscript"; None infers from the extension
        load: False defers loading to the first `handle.load()` (e.g. the detection loop)
    """

    source = FileModelSource(model_path, root=root)
    chosen = backend or infer_backend(source.path)
    handle = ModelHandle(engine_for(chosen), source, config, options=engine_options)
    if load:
        handle.load()
    return DetectionPipeline(handle, post_cfg=post_cfg)
