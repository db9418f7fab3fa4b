"""
Inference engines for detect_kit.

Engines are kept in a separate module so the numeric stages (pre/post-processing,
suppression) stay lightweight and can be used without installing inference runtimes.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Protocol

import numpy as np


class InferenceEngine(Protocol):
    """
    Opaque engine: bytes in, session out; named arrays in, named arrays out.
    """

    name: str

    def load(self, model_bytes: bytes, options: Optional[Mapping[str, Any]] = None) -> Any:
        ...

    def run(self, session: Any, feeds: Mapping[str, np.ndarray]) -> Dict[str, np.ndarray]:
        ...


def engine_for(name: str) -> InferenceEngine:
    chosen = name.lower()
    if chosen == "onnxruntime":
        from .onnxruntime_backend import OnnxRuntimeEngine

        return OnnxRuntimeEngine()
    if chosen == "torchscript":
        from .torchscript_backend import TorchScriptEngine

        return TorchScriptEngine()
    raise ValueError(f"Unsupported backend: {name!r}")


__all__ = ["InferenceEngine", "engine_for"]
