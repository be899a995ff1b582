"""
On-device fish disease detection core.

Takes a fish photo, runs a YOLOv8-style detector through a pluggable
inference engine and returns deduplicated detections in normalized image
coordinates. Depends on NumPy and OpenCV only; inference runtimes live in
`fishscan.backends` and are imported on demand.
"""

from .config import TILAPIA_CLASS_NAMES, DetectorConfig, load_detector_config
from .engine import EngineContext, EngineState, InferenceEngine
from .errors import (
    DecodeError,
    EngineNotReadyError,
    FishscanError,
    InferenceExecutionError,
    ShapeMismatchWarning,
)
from .metadata import load_class_names
from .nms import box_iou, nms, nms_detections
from .postprocess import Layout, OutputDecoder, detect_layout
from .preprocess import preprocess_image
from .runtime import FishDetector, find_project_root, load_detector, load_engine, resolve_path
from .types import Detection, DetectionResult, EngineOutput, PreprocessedImage

__all__ = [
    "TILAPIA_CLASS_NAMES",
    "DetectorConfig",
    "load_detector_config",
    "EngineContext",
    "EngineState",
    "InferenceEngine",
    "DecodeError",
    "EngineNotReadyError",
    "FishscanError",
    "InferenceExecutionError",
    "ShapeMismatchWarning",
    "load_class_names",
    "box_iou",
    "nms",
    "nms_detections",
    "Layout",
    "OutputDecoder",
    "detect_layout",
    "preprocess_image",
    "FishDetector",
    "find_project_root",
    "load_detector",
    "load_engine",
    "resolve_path",
    "Detection",
    "DetectionResult",
    "EngineOutput",
    "PreprocessedImage",
]
