from __future__ import annotations

import enum
import logging
import warnings
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .config import DetectorConfig
from .errors import ShapeMismatchWarning
from .types import Detection

logger = logging.getLogger(__name__)


class Layout(enum.Enum):
    """
    Physical arrangement of a YOLOv8-style head output.

    CHANNELS_LAST: interleaved per anchor, (A, 4 + C) -> [cx, cy, w, h, s0..sC-1]
    CHANNELS_FIRST: planar, (4 + C, A) -> all cx, then all cy, w, h, then one
    block of A scores per class.
    """

    CHANNELS_LAST = "channels_last"
    CHANNELS_FIRST = "channels_first"


def detect_layout(shape: Optional[Sequence[int]], num_anchors: int, num_classes: int) -> Layout:
    """
    Channels-last only when the declared shape ends in exactly [A, 4 + C];
    every other shape (including unknown) is read as channels-first.
    """

    if shape is not None and len(shape) >= 2:
        if int(shape[-2]) == num_anchors and int(shape[-1]) == 4 + num_classes:
            return Layout.CHANNELS_LAST
    return Layout.CHANNELS_FIRST


def _fit(buffer: np.ndarray, size: int) -> np.ndarray:
    # Truncate surplus values, pad missing ones with NaN so affected anchors drop out.
    if buffer.shape[0] >= size:
        return buffer[:size]
    padded = np.full((size,), np.nan, dtype=np.float32)
    padded[: buffer.shape[0]] = buffer
    return padded


def read_channels_last(buffer: np.ndarray, num_anchors: int, num_classes: int) -> Tuple[np.ndarray, np.ndarray]:
    """Return (boxes_cxcywh (A, 4), scores (A, C)) from an interleaved buffer."""
    stride = 4 + num_classes
    p = _fit(buffer, num_anchors * stride).reshape(num_anchors, stride)
    return p[:, 0:4], p[:, 4:]


def read_channels_first(buffer: np.ndarray, num_anchors: int, num_classes: int) -> Tuple[np.ndarray, np.ndarray]:
    """Return (boxes_cxcywh (A, 4), scores (A, C)) from a planar buffer."""
    rows = 4 + num_classes
    p = _fit(buffer, rows * num_anchors).reshape(rows, num_anchors)
    return p[0:4, :].T, p[4:, :].T


_READERS = {
    Layout.CHANNELS_LAST: read_channels_last,
    Layout.CHANNELS_FIRST: read_channels_first,
}


@dataclass(frozen=True)
class DecodeStats:
    layout: Layout
    anchors: int
    below_threshold: int
    invalid: int
    candidates: int


class OutputDecoder:
    """
    Parse a raw detector output buffer into candidate detections.

    Box values from the model are normalized to its square input, so they are
    used directly as fractions of the original image. Output is pre-NMS, in
    anchor order.
    """

    def __init__(self, cfg: DetectorConfig):
        self.cfg = cfg
        self.shape_mismatches = 0
        self.last_stats: Optional[DecodeStats] = None

    def decode(
        self,
        buffer: Sequence[float],
        shape: Optional[Sequence[int]],
        original_width: int,
        original_height: int,
        threshold: Optional[float] = None,
    ) -> List[Detection]:
        """
        Arg:
            buffer: flat engine output
            shape: output shape declared by the engine (may be empty/None)
            original_width, original_height: size of the source image, only
                used for diagnostics; boxes stay normalized
            threshold: minimum winning class score; defaults to the config value
        """

        if threshold is None:
            threshold = self.cfg.conf_threshold
        flat = np.asarray(buffer, dtype=np.float32).reshape(-1)
        num_classes = self.cfg.num_classes
        layout = detect_layout(shape, self.cfg.num_anchors, num_classes)
        num_anchors = self._check_size(flat, shape, layout)
        logger.debug(
            "Decoding %d values as %s (shape=%s, image %dx%d, threshold=%.3f)",
            flat.shape[0],
            layout.value,
            "x".join(str(int(s)) for s in shape) if shape else "unknown",
            original_width,
            original_height,
            threshold,
        )

        boxes, scores = _READERS[layout](flat, num_anchors, num_classes)

        valid = np.isfinite(boxes).all(axis=1) & np.isfinite(scores).all(axis=1)
        scores = np.where(valid[:, None], scores, 0.0)
        # np.argmax returns the first index among equal maxima.
        class_ids = np.argmax(scores, axis=1)
        confidences = scores[np.arange(num_anchors), class_ids]
        keep = valid & (confidences >= threshold)

        detections = [
            self._make_detection(boxes[i], float(confidences[i]), int(class_ids[i]))
            for i in np.flatnonzero(keep)
        ]

        invalid = int(num_anchors - np.count_nonzero(valid))
        self.last_stats = DecodeStats(
            layout=layout,
            anchors=num_anchors,
            below_threshold=int(np.count_nonzero(valid) - len(detections)),
            invalid=invalid,
            candidates=len(detections),
        )
        logger.debug(
            "Processed %d anchors, %d below threshold, %d invalid, %d candidates",
            num_anchors,
            self.last_stats.below_threshold,
            invalid,
            len(detections),
        )
        return detections

    # ------------------------------------------------------------------ #
    # Helper internal
    # ------------------------------------------------------------------ #
    def _check_size(self, flat: np.ndarray, shape: Optional[Sequence[int]], layout: Layout) -> int:
        """
        Warn on a length mismatch and pick the anchor count to decode with.
        """

        expected = self.cfg.expected_output_size
        if flat.shape[0] == expected:
            return self.cfg.num_anchors

        self.shape_mismatches += 1
        msg = (
            f"Output size mismatch: expected {expected} "
            f"({self.cfg.num_anchors} anchors x {self.cfg.channels}), got {flat.shape[0]}"
        )
        logger.warning(msg)
        warnings.warn(msg, ShapeMismatchWarning, stacklevel=3)

        # A planar output declared as [..., 4 + C, A'] that matches the buffer
        # is decoded with its own anchor count.
        if layout is Layout.CHANNELS_FIRST and shape is not None and len(shape) >= 2:
            rows, anchors = int(shape[-2]), int(shape[-1])
            if rows == self.cfg.channels and anchors > 0 and rows * anchors == flat.shape[0]:
                return anchors
        return self.cfg.num_anchors

    def _make_detection(self, box: np.ndarray, confidence: float, class_id: int) -> Detection:
        cx, cy, w, h = (float(v) for v in box)
        x = cx - w / 2
        y = cy - h / 2
        x_c = min(max(x, 0.0), 1.0)
        y_c = min(max(y, 0.0), 1.0)
        return Detection(
            x=x_c,
            y=y_c,
            width=min(max(w, 0.0), 1.0 - x_c),
            height=min(max(h, 0.0), 1.0 - y_c),
            confidence=confidence,
            class_id=class_id,
            class_name=self.cfg.class_name(class_id),
        )
