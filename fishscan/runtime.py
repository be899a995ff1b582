from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import Callable, Optional, Sequence, Union

from .config import DetectorConfig
from .engine import EngineContext, InferenceEngine, run_engine
from .errors import FishscanError, InferenceExecutionError
from .nms import nms_detections
from .postprocess import OutputDecoder
from .preprocess import ImageSource, preprocess_image
from .types import DetectionResult, PreprocessedImage

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]
Preprocessor = Callable[[ImageSource, int], PreprocessedImage]


def find_project_root(start: Optional[PathLike] = None, markers: Sequence[str] = ("pyproject.toml", ".git")) -> Path:
    """
    Walk up from `start` (default: cwd) to the first directory holding one of
    `markers`. Deployments keep weights beside the checkout, e.g.
    `assets/models/best_float16.tflite`, so this is the base for relative
    model paths. Falls back to `start` itself when no marker is found.
    """

    here = Path(start if start is not None else Path.cwd()).resolve()
    if here.is_file():
        here = here.parent
    for candidate in (here, *here.parents):
        if any((candidate / m).exists() for m in markers):
            return candidate
    return here


def resolve_path(path: PathLike, root: Optional[PathLike] = "auto") -> Path:
    """Absolute model path; relative ones resolve under `root` or the checkout root."""

    p = Path(path)
    if p.is_absolute():
        return p
    base = find_project_root() if root in ("auto", None) else Path(root).resolve()
    return (base / p).resolve()


class FishDetector:
    """
    Single-image detection pipeline: preprocess -> inference -> decode -> NMS.

    Every call is independent; the only shared state is the engine held by
    `engine_context`, which is loaded on first use.
    """

    def __init__(
        self,
        engine_context: EngineContext,
        config: DetectorConfig = DetectorConfig(),
        *,
        preprocessor: Preprocessor = preprocess_image,
    ):
        self.engine_context = engine_context
        self.config = config
        self.decoder = OutputDecoder(config)
        self._preprocess = preprocessor

    async def detect(self, image_ref: ImageSource, threshold: Optional[float] = None) -> DetectionResult:
        """
        Detect disease indicators in one image.

        Raises DecodeError for unreadable images, EngineNotReadyError when the
        model could not be loaded and InferenceExecutionError when the engine
        fails; no partial result is ever returned.
        """

        if threshold is None:
            threshold = self.config.conf_threshold
        engine = await self.engine_context.acquire()
        logger.debug("Detection start: %s (threshold=%.3f)", _describe(image_ref), threshold)

        prep: Optional[PreprocessedImage] = None
        try:
            prep = self._preprocess(image_ref, self.config.input_size)
            output = await self._infer(engine, prep)
            candidates = self.decoder.decode(
                output.buffer,
                output.shape,
                prep.original_width,
                prep.original_height,
                threshold,
            )
        finally:
            if prep is not None:
                prep.release()

        detections = nms_detections(
            candidates,
            iou_threshold=self.config.iou_threshold,
            per_class=self.config.per_class_nms,
        )
        logger.debug("Detections before NMS: %d, after NMS: %d", len(candidates), len(detections))
        for idx, det in enumerate(detections, start=1):
            logger.debug(
                "Detection #%d: %s | pos=(%.3f, %.3f) size=(%.3fx%.3f) conf=%.2f%%",
                idx,
                det.class_name,
                det.x,
                det.y,
                det.width,
                det.height,
                det.confidence * 100,
            )

        return DetectionResult(
            detections=tuple(detections),
            original_width=prep.original_width,
            original_height=prep.original_height,
            model_input_size=self.config.input_size,
            threshold=threshold,
        )

    def detect_sync(self, image_ref: ImageSource, threshold: Optional[float] = None) -> DetectionResult:
        """Blocking wrapper around `detect` for callers without an event loop."""
        return asyncio.run(self.detect(image_ref, threshold))

    async def _infer(self, engine: InferenceEngine, prep: PreprocessedImage):
        start = time.perf_counter()
        try:
            output = await run_engine(engine, prep.tensor)
        except FishscanError:
            raise
        except Exception as exc:
            logger.exception("Inference engine failed")
            raise InferenceExecutionError(f"Inference failed: {exc}") from exc
        logger.debug("Inference completed in %.1fms", (time.perf_counter() - start) * 1000)
        return output


def _describe(image_ref: ImageSource) -> str:
    if isinstance(image_ref, (str, Path)):
        return str(image_ref)
    return f"<{type(image_ref).__name__}>"


def load_engine(
    model_path: PathLike,
    *,
    backend: Optional[str] = None,
    root: Optional[PathLike] = "auto",
    onnx_providers: Optional[Sequence[str]] = None,
    torch_device: str = "cpu",
    tflite_threads: Optional[int] = None,
) -> InferenceEngine:
    """
    Open a model on disk with the matching inference runtime.

    Args:
        model_path: path to the model file; relative paths resolve against project root by default
        backend: "onnxruntime", "tflite" or "torchscript"; None infers it from the extension
        root: base directory for resolving relative model paths ("auto" uses best-effort project root)
    """

    resolved = resolve_path(model_path, root=root)
    chosen = backend
    if chosen is None:
        suffix = resolved.suffix.lower()
        if suffix == ".onnx":
            chosen = "onnxruntime"
        elif suffix == ".tflite":
            chosen = "tflite"
        elif suffix in {".torchscript", ".ts", ".pt"}:
            chosen = "torchscript"
        else:
            raise ValueError(
                f"Could not infer backend from extension '{suffix}'. Pass backend=... explicitly."
            )

    chosen = chosen.lower()
    if chosen == "onnxruntime":
        from .backends.onnxruntime_backend import OnnxRuntimeBackend, OnnxRuntimeBackendConfig

        return OnnxRuntimeBackend(resolved, OnnxRuntimeBackendConfig(providers=onnx_providers))

    if chosen == "tflite":
        from .backends.tflite_backend import TfliteBackend, TfliteBackendConfig

        return TfliteBackend(resolved, TfliteBackendConfig(num_threads=tflite_threads))

    if chosen == "torchscript":
        from .backends.torchscript_backend import TorchScriptBackend, TorchScriptBackendConfig

        return TorchScriptBackend(resolved, TorchScriptBackendConfig(device=torch_device))

    raise ValueError(f"Unsupported backend: {backend!r}")


def load_detector(
    model_path: PathLike,
    config: DetectorConfig = DetectorConfig(),
    *,
    backend: Optional[str] = None,
    root: Optional[PathLike] = "auto",
    onnx_providers: Optional[Sequence[str]] = None,
    torch_device: str = "cpu",
    tflite_threads: Optional[int] = None,
) -> FishDetector:
    """
    Create a detector for a model on disk. The model is opened on the first
    `detect()` call, not here.

        detector = load_detector("assets/best_float16.tflite")
        result = detector.detect_sync("scan.jpg")
    """

    def _loader() -> InferenceEngine:
        return load_engine(
            model_path,
            backend=backend,
            root=root,
            onnx_providers=onnx_providers,
            torch_device=torch_device,
            tflite_threads=tflite_threads,
        )

    return FishDetector(EngineContext(_loader), config)
