from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Union

import numpy as np

from ..types import EngineOutput


PathLike = Union[str, Path]


@dataclass(frozen=True)
class TorchScriptBackendConfig:
    """
    Configuration for TorchScript inference.

    - device: "cpu" or "cuda" (if available)
    - half: cast input to float16 (only if the model expects it)
    - output_index: if the model returns multiple outputs, select this index
    - channels_first: feed NCHW (standard Ultralytics TorchScript export)
    """

    device: str = "cpu"
    half: bool = False
    output_index: int = 0
    channels_first: bool = True


class TorchScriptBackend:
    """
    Minimal TorchScript engine using `torch.jit.load`.
    """

    def __init__(self, model_path: PathLike, cfg: TorchScriptBackendConfig = TorchScriptBackendConfig()):
        try:
            import torch  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError("torch is required for the TorchScript backend. Install with `pip install torch`.") from e

        self._torch = torch
        self.model_path = Path(model_path)
        if not self.model_path.exists():
            raise FileNotFoundError(str(self.model_path))

        self.device = torch.device(cfg.device)
        self.cfg = cfg

        model = torch.jit.load(str(self.model_path), map_location=self.device)
        model.eval()
        self.model = model

    def run(self, tensor: np.ndarray) -> EngineOutput:
        torch = self._torch
        x = torch.as_tensor(np.asarray(tensor, dtype=np.float32), device=self.device)
        if self.cfg.channels_first:
            x = x.permute(0, 3, 1, 2)
        x = x.half() if self.cfg.half else x.float()
        x = x.contiguous()

        with torch.no_grad():
            y = self.model(x)

        if isinstance(y, (tuple, list)):
            y = y[self.cfg.output_index]

        if hasattr(y, "detach"):
            y = y.detach()
        return EngineOutput.from_array(y.float().to("cpu").numpy())
