from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import numpy as np

from ..types import EngineOutput
from ._layout import to_model_layout


PathLike = Union[str, Path]


@dataclass(frozen=True)
class TfliteBackendConfig:
    """
    Configuration for TensorFlow Lite inference.

    - num_threads: interpreter threads (None lets the runtime decide)
    - output_index: which model output holds the detection head
    """

    num_threads: Optional[int] = None
    output_index: int = 0


class TfliteBackend:
    """
    TensorFlow Lite engine via `tflite_runtime`.

    The float16 YOLOv8 export used for fish scans takes NHWC input and emits
    either (1, 4 + C, A) or (1, A, 4 + C); the declared output shape is
    passed along so the decoder can tell which.
    """

    def __init__(self, model_path: PathLike, cfg: TfliteBackendConfig = TfliteBackendConfig()):
        try:
            import tflite_runtime.interpreter as tflite  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError(
                "tflite_runtime is required for the TFLite backend. Install with `pip install tflite-runtime`."
            ) from e

        self.model_path = Path(model_path)
        if not self.model_path.exists():
            raise FileNotFoundError(str(self.model_path))

        self.interpreter = tflite.Interpreter(model_path=str(self.model_path), num_threads=cfg.num_threads)
        self.interpreter.allocate_tensors()

        input_details = self.interpreter.get_input_details()
        output_details = self.interpreter.get_output_details()
        self.input_index = input_details[0]["index"]
        self.input_shape = tuple(int(s) for s in input_details[0]["shape"])
        out = output_details[cfg.output_index]
        self.output_index = out["index"]
        self.output_shape = tuple(int(s) for s in out["shape"])

    def run(self, tensor: np.ndarray) -> EngineOutput:
        blob = to_model_layout(tensor, self.input_shape)
        self.interpreter.set_tensor(self.input_index, blob)
        self.interpreter.invoke()
        # get_tensor copies, so the interpreter's buffer is free for the next call.
        pred = self.interpreter.get_tensor(self.output_index)
        return EngineOutput.from_array(pred, shape=self.output_shape)
