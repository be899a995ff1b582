from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Sequence, Tuple, Union

from .metadata import load_class_names


TILAPIA_CLASS_NAMES: Tuple[str, ...] = (
    "Bacterial Aeromonas Disease",
    "Healthy-Fish",
    "Streptococcus",
    "Tilapia Lake Virus",
)


@dataclass(frozen=True)
class DetectorConfig:
    """
    Model constants the pipeline depends on.

    `num_anchors` comes from the model head (80x80 + 40x40 + 20x20 grid cells
    for a 640 input) and is never inferred from the output at runtime.
    """

    input_size: int = 640
    num_anchors: int = 8400
    class_names: Sequence[str] = TILAPIA_CLASS_NAMES
    conf_threshold: float = 0.15
    iou_threshold: float = 0.4
    # Class-agnostic suppression unless set; a high-confidence box of one
    # class then hides overlapping boxes of every other class.
    per_class_nms: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "class_names", tuple(self.class_names))
        if self.input_size < 32:
            raise ValueError("input_size must be >= 32")
        if self.num_anchors <= 0:
            raise ValueError("num_anchors must be > 0")
        if not self.class_names:
            raise ValueError("class_names must not be empty")
        if not 0.0 <= self.conf_threshold <= 1.0:
            raise ValueError("conf_threshold must be within [0, 1]")
        if not 0.0 <= self.iou_threshold <= 1.0:
            raise ValueError("iou_threshold must be within [0, 1]")

    @property
    def num_classes(self) -> int:
        return len(self.class_names)

    @property
    def channels(self) -> int:
        return 4 + self.num_classes

    @property
    def expected_output_size(self) -> int:
        return self.num_anchors * self.channels

    def class_name(self, class_id: int) -> str:
        if 0 <= class_id < len(self.class_names):
            return self.class_names[class_id]
        return f"Class {class_id}"


def _require_number(payload: Dict[str, Any], key: str) -> float:
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be a number")
    return float(value)


def _require_int(payload: Dict[str, Any], key: str) -> int:
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an integer")
    return int(value)


def load_detector_config(path: Union[str, Path]) -> DetectorConfig:
    """
    Load a DetectorConfig from a JSON object. Missing keys keep their defaults.

    Class labels come either inline (`class_names`) or from a metadata file
    (`class_names_path`, relative to the config file), not both.
    """

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Detector config not found: {path}")
    raw = path.read_text(encoding="utf-8")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid detector config JSON: {path}") from exc
    if not isinstance(payload, dict):
        raise ValueError("Detector config must be a JSON object")

    allowed = {
        "input_size",
        "num_anchors",
        "class_names",
        "class_names_path",
        "conf_threshold",
        "iou_threshold",
        "per_class_nms",
    }
    unknown = sorted(set(payload.keys()) - allowed)
    if unknown:
        raise ValueError(f"Unknown detector config keys: {unknown}")

    kwargs: Dict[str, Any] = {}
    for key in ("input_size", "num_anchors"):
        if key in payload:
            kwargs[key] = _require_int(payload, key)
    for key in ("conf_threshold", "iou_threshold"):
        if key in payload:
            kwargs[key] = _require_number(payload, key)
    if "per_class_nms" in payload:
        if not isinstance(payload["per_class_nms"], bool):
            raise ValueError("per_class_nms must be a boolean")
        kwargs["per_class_nms"] = payload["per_class_nms"]

    if "class_names" in payload and "class_names_path" in payload:
        raise ValueError("Use either class_names or class_names_path, not both")
    if "class_names" in payload:
        names = payload["class_names"]
        if not isinstance(names, list) or not all(isinstance(n, str) for n in names):
            raise ValueError("class_names must be a list of strings")
        kwargs["class_names"] = tuple(names)
    elif "class_names_path" in payload:
        names_path = payload["class_names_path"]
        if not isinstance(names_path, str):
            raise ValueError("class_names_path must be a string")
        resolved = Path(names_path)
        if not resolved.is_absolute():
            resolved = path.parent / resolved
        kwargs["class_names"] = load_class_names(resolved)

    return DetectorConfig(**kwargs)
