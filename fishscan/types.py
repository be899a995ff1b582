from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np


@dataclass(frozen=True)
class Detection:
    """
    Single detection in normalized image space.

    `x, y` is the top-left corner, `width, height` the box size, all as
    fractions of the original image. Boxes coming out of the decoder are
    clamped so they never leave the unit square.
    """

    x: float
    y: float
    width: float
    height: float
    confidence: float
    class_id: int
    class_name: str

    @property
    def area(self) -> float:
        return max(0.0, self.width) * max(0.0, self.height)

    def as_xyxy(self) -> Tuple[float, float, float, float]:
        return self.x, self.y, self.x + self.width, self.y + self.height

    def to_pixels(self, image_width: int, image_height: int) -> Tuple[float, float, float, float]:
        """Scale to pixel space of an image of the given size: (x, y, w, h)."""
        return (
            self.x * image_width,
            self.y * image_height,
            self.width * image_width,
            self.height * image_height,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class DetectionResult:
    detections: Tuple[Detection, ...]
    original_width: int
    original_height: int
    model_input_size: int
    threshold: float

    def top_detection(self) -> Optional[Detection]:
        """Highest-confidence detection, or None when nothing was found."""
        best: Optional[Detection] = None
        for det in self.detections:
            if best is None or det.confidence > best.confidence:
                best = det
        return best

    def group_by_class(self) -> Dict[str, List[Detection]]:
        groups: Dict[str, List[Detection]] = {}
        for det in self.detections:
            groups.setdefault(det.class_name, []).append(det)
        return groups

    def to_dict(self) -> Dict[str, Any]:
        return {
            "detections": [d.to_dict() for d in self.detections],
            "original_width": self.original_width,
            "original_height": self.original_height,
            "model_input_size": self.model_input_size,
            "threshold": self.threshold,
        }


@dataclass
class PreprocessedImage:
    """
    Batched model input plus the size of the image it came from.

    The tensor is shaped (1, S, S, 3), float32 in [0, 1]. Call `release()`
    (or use as a context manager) once inference is done so the buffer is not
    kept alive by whoever still holds this object.
    """

    tensor: Optional[np.ndarray]
    original_width: int
    original_height: int
    released: bool = field(default=False, init=False)

    def release(self) -> None:
        self.tensor = None
        self.released = True

    def __enter__(self) -> "PreprocessedImage":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()


@dataclass(frozen=True)
class EngineOutput:
    """
    Raw engine output: a flat buffer and the shape the engine declares for it.
    """

    buffer: np.ndarray
    shape: Tuple[int, ...] = ()

    @classmethod
    def from_array(cls, arr: Any, shape: Optional[Sequence[int]] = None) -> "EngineOutput":
        a = np.asarray(arr, dtype=np.float32)
        declared = tuple(int(s) for s in (shape if shape is not None else a.shape))
        flat = a.reshape(-1)
        flat.setflags(write=False)
        return cls(buffer=flat, shape=declared)
