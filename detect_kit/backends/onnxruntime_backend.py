from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence

import numpy as np

from ..errors import InferenceError, ModelLoadError


_OPT_LEVELS = {
    "disabled": "ORT_DISABLE_ALL",
    "basic": "ORT_ENABLE_BASIC",
    "extended": "ORT_ENABLE_EXTENDED",
    "all": "ORT_ENABLE_ALL",
}


@dataclass(frozen=True)
class OnnxRuntimeEngineConfig:
    """
    Configuration for ONNX Runtime sessions.

    - providers: ORT execution providers (e.g., ["CUDAExecutionProvider", "CPUExecutionProvider"])
    - graph_optimization_level: one of disabled/basic/extended/all
    - intra_op_num_threads: 0 lets ORT decide
    """

    providers: Optional[Sequence[str]] = None
    graph_optimization_level: str = "all"
    intra_op_num_threads: int = 0

    @classmethod
    def from_options(cls, options: Optional[Mapping[str, Any]]) -> "OnnxRuntimeEngineConfig":
        if not options:
            return cls()
        providers = options.get("providers")
        return cls(
            providers=list(providers) if providers is not None else None,
            graph_optimization_level=str(options.get("graph_optimization_level", "all")),
            intra_op_num_threads=int(options.get("intra_op_num_threads", 0)),
        )


class OnnxRuntimeEngine:
    """
    Minimal ONNX Runtime engine.

    Sessions are created from the model bytes, not a path, so the caller
    decides where the bytes come from. Expects NCHW float32 inputs.
    """

    name = "onnxruntime"

    def __init__(self) -> None:
        try:
            import onnxruntime as ort  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ModelLoadError(
                "onnxruntime is required for the ONNX engine. Install it with `pip install onnxruntime` "
                "(or `onnxruntime-gpu`)."
            ) from e
        self._ort = ort

    @property
    def available_providers(self) -> Sequence[str]:
        return tuple(self._ort.get_available_providers())

    def load(self, model_bytes: bytes, options: Optional[Mapping[str, Any]] = None) -> Any:
        if not model_bytes:
            raise ModelLoadError("Model bytes are empty.")
        cfg = OnnxRuntimeEngineConfig.from_options(options)
        ort = self._ort

        sess_opts = ort.SessionOptions()
        level = _OPT_LEVELS.get(cfg.graph_optimization_level.lower())
        if level is None:
            raise ModelLoadError(f"Unknown graph_optimization_level: {cfg.graph_optimization_level!r}")
        sess_opts.graph_optimization_level = getattr(ort.GraphOptimizationLevel, level)
        if cfg.intra_op_num_threads > 0:
            sess_opts.intra_op_num_threads = cfg.intra_op_num_threads

        providers = list(cfg.providers) if cfg.providers is not None else None
        try:
            return ort.InferenceSession(bytes(model_bytes), sess_options=sess_opts, providers=providers)
        except Exception as e:
            raise ModelLoadError(f"ONNX Runtime rejected the model: {e}") from e

    def run(self, session: Any, feeds: Mapping[str, np.ndarray]) -> Dict[str, np.ndarray]:
        output_names: List[str] = [o.name for o in session.get_outputs()]
        try:
            outputs = session.run(output_names, dict(feeds))
        except Exception as e:
            raise InferenceError(f"ONNX Runtime inference failed: {e}") from e
        # dict keeps session order, so the first key is the engine's first output
        return dict(zip(output_names, outputs))
