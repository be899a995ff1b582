from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Sequence

import numpy as np

from .types import Detection


@dataclass
class NMSConfig:
    iou_threshold: float = 0.4


def box_iou(a: Detection, b: Detection) -> float:
    """
    Intersection-over-union of two detections. A zero union (both boxes
    degenerate) gives 0.0.
    """

    ax1, ay1, ax2, ay2 = a.as_xyxy()
    bx1, by1, bx2, by2 = b.as_xyxy()
    inter_w = max(0.0, min(ax2, bx2) - max(ax1, bx1))
    inter_h = max(0.0, min(ay2, by2) - max(ay1, by1))
    inter = inter_w * inter_h
    union = a.area + b.area - inter
    if union <= 0.0:
        return 0.0
    return inter / union


def nms(boxes: np.ndarray, scores: np.ndarray, cfg: NMSConfig) -> np.ndarray:
    """
    Simple NumPy NMS. Expects boxes shape (N,4) in xyxy and scores shape (N,).
    Returns indices of boxes to keep, highest score first.

    Equal scores keep their input order, so results are deterministic.
    """

    if boxes.size == 0:
        return np.empty((0,), dtype=np.int64)

    x1 = boxes[:, 0]
    y1 = boxes[:, 1]
    x2 = boxes[:, 2]
    y2 = boxes[:, 3]
    areas = np.clip(x2 - x1, 0.0, None) * np.clip(y2 - y1, 0.0, None)

    order = np.argsort(-scores, kind="stable")
    keep = []

    while order.size > 0:
        i = order[0]
        keep.append(i)

        xx1 = np.maximum(x1[i], x1[order[1:]])
        yy1 = np.maximum(y1[i], y1[order[1:]])
        xx2 = np.minimum(x2[i], x2[order[1:]])
        yy2 = np.minimum(y2[i], y2[order[1:]])

        w = np.maximum(0.0, xx2 - xx1)
        h = np.maximum(0.0, yy2 - yy1)
        inter = w * h
        union = areas[i] + areas[order[1:]] - inter
        iou = np.divide(inter, union, out=np.zeros_like(inter), where=union > 0)

        inds = np.where(iou <= cfg.iou_threshold)[0]
        order = order[inds + 1]

    return np.array(keep, dtype=np.int64)


def nms_detections(
    candidates: Sequence[Detection],
    iou_threshold: float = 0.4,
    per_class: bool = False,
) -> List[Detection]:
    """
    Drop overlapping duplicates, keeping the most confident box of each cluster.

    By default suppression is class-agnostic: a box is discarded when it
    overlaps any kept box by more than `iou_threshold`, whatever its class.
    With `per_class=True` only boxes of the same class suppress each other.

    Returns a new list ordered by confidence (descending); `candidates` is
    left untouched.
    """

    if not candidates:
        return []

    cands = list(candidates)
    boxes = np.array([d.as_xyxy() for d in cands], dtype=np.float64)
    scores = np.array([d.confidence for d in cands], dtype=np.float64)
    cfg = NMSConfig(iou_threshold=iou_threshold)

    if not per_class:
        return [cands[i] for i in nms(boxes, scores, cfg)]

    buckets: Dict[int, List[int]] = {}
    for idx, det in enumerate(cands):
        buckets.setdefault(det.class_id, []).append(idx)

    kept: List[int] = []
    for idx_list in buckets.values():
        idx = np.array(idx_list, dtype=np.int64)
        keep_local = nms(boxes[idx], scores[idx], cfg)
        kept.extend(idx[keep_local].tolist())

    # Merge buckets back by score; ties fall back to input order.
    kept.sort(key=lambda i: (-scores[i], i))
    return [cands[i] for i in kept]
