from __future__ import annotations

from typing import Sequence

import numpy as np


def to_model_layout(tensor: np.ndarray, input_shape: Sequence[object]) -> np.ndarray:
    """
    Convert the (1, S, S, 3) preprocessor blob to what the model declares.

    Exports disagree on NHWC vs NCHW; a declared 4-D input whose second dim
    is 3 gets the channels moved forward. Symbolic dims (strings/None) are
    ignored.
    """

    blob = np.asarray(tensor, dtype=np.float32)
    if len(input_shape) == 4 and input_shape[1] == 3 and input_shape[3] != 3:
        blob = np.transpose(blob, (0, 3, 1, 2))
    return np.ascontiguousarray(blob)
