from __future__ import annotations

import io
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

import numpy as np

from ..errors import InferenceError, ModelLoadError


@dataclass(frozen=True)
class TorchScriptEngineConfig:
    """
    Configuration for TorchScript inference.

    - device: "cpu" or "cuda" (if available)
    - half: cast input to float16 (only if the model expects it)
    """

    device: str = "cpu"
    half: bool = False

    @classmethod
    def from_options(cls, options: Optional[Mapping[str, Any]]) -> "TorchScriptEngineConfig":
        if not options:
            return cls()
        return cls(device=str(options.get("device", "cpu")), half=bool(options.get("half", False)))


@dataclass
class _TorchSession:
    model: Any
    device: Any
    half: bool


class TorchScriptEngine:
    """
    TorchScript engine using `torch.jit.load` on an in-memory buffer.

    Outputs are named "output0", "output1", ... in the order the module returns them.
    """

    name = "torchscript"

    def __init__(self) -> None:
        try:
            import torch  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ModelLoadError("torch is required for the TorchScript engine. Install with `pip install torch`.") from e
        self._torch = torch

    def load(self, model_bytes: bytes, options: Optional[Mapping[str, Any]] = None) -> Any:
        if not model_bytes:
            raise ModelLoadError("Model bytes are empty.")
        cfg = TorchScriptEngineConfig.from_options(options)
        torch = self._torch
        device = torch.device(cfg.device)
        try:
            model = torch.jit.load(io.BytesIO(bytes(model_bytes)), map_location=device)
        except Exception as e:
            raise ModelLoadError(f"torch.jit.load rejected the model: {e}") from e
        model.eval()
        return _TorchSession(model=model, device=device, half=cfg.half)

    def run(self, session: Any, feeds: Mapping[str, np.ndarray]) -> Dict[str, np.ndarray]:
        torch = self._torch
        if len(feeds) != 1:
            raise InferenceError(f"TorchScript engine takes exactly one input, got {sorted(feeds)}")
        blob = next(iter(feeds.values()))

        x = torch.as_tensor(blob, device=session.device)
        x = x.half() if session.half else x.float()
        x = x.contiguous()

        try:
            with torch.no_grad():
                y = session.model(x)
        except Exception as e:
            raise InferenceError(f"TorchScript inference failed: {e}") from e

        outputs = list(y) if isinstance(y, (tuple, list)) else [y]
        result: Dict[str, np.ndarray] = {}
        for i, out in enumerate(outputs):
            # YOLOv5 exports may append a list of per-level feature maps
            if not hasattr(out, "detach"):
                continue
            result[f"output{i}"] = out.detach().to("cpu").float().numpy()
        return result
