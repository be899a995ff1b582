import unittest

import numpy as np

from fishscan.nms import NMSConfig, box_iou, nms, nms_detections
from fishscan.types import Detection


def _det(x, y, w, h, conf, class_id=0) -> Detection:
    return Detection(x=x, y=y, width=w, height=h, confidence=conf, class_id=class_id, class_name=f"c{class_id}")


class TestBoxIou(unittest.TestCase):
    def test_identical_boxes(self) -> None:
        a = _det(0.1, 0.1, 0.3, 0.3, 0.9)
        self.assertAlmostEqual(box_iou(a, a), 1.0)

    def test_disjoint_boxes(self) -> None:
        self.assertEqual(box_iou(_det(0.0, 0.0, 0.2, 0.2, 0.9), _det(0.5, 0.5, 0.2, 0.2, 0.9)), 0.0)

    def test_touching_edges_do_not_overlap(self) -> None:
        self.assertEqual(box_iou(_det(0.0, 0.0, 0.5, 0.5, 0.9), _det(0.5, 0.0, 0.5, 0.5, 0.9)), 0.0)

    def test_degenerate_boxes(self) -> None:
        zero = _det(0.3, 0.3, 0.0, 0.0, 0.9)
        self.assertEqual(box_iou(zero, zero), 0.0)
        self.assertEqual(box_iou(zero, _det(0.2, 0.2, 0.3, 0.3, 0.9)), 0.0)

    def test_partial_overlap(self) -> None:
        # Two 0.2x0.2 boxes shifted by half a width: inter 0.02, union 0.06.
        iou = box_iou(_det(0.0, 0.0, 0.2, 0.2, 0.9), _det(0.1, 0.0, 0.2, 0.2, 0.9))
        self.assertAlmostEqual(iou, 1.0 / 3.0)


class TestNmsDetections(unittest.TestCase):
    def test_empty(self) -> None:
        self.assertEqual(nms_detections([]), [])

    def test_overlapping_pair_keeps_most_confident(self) -> None:
        low = _det(0.1, 0.1, 0.4, 0.4, 0.6)
        high = _det(0.12, 0.1, 0.4, 0.4, 0.9)
        self.assertGreater(box_iou(low, high), 0.4)
        self.assertEqual(nms_detections([low, high]), [high])

    def test_iou_at_threshold_is_kept(self) -> None:
        a = _det(0.0, 0.0, 0.2, 0.2, 0.9)
        b = _det(0.1, 0.0, 0.2, 0.2, 0.8)  # IoU 1/3
        self.assertEqual(nms_detections([a, b], iou_threshold=1.0 / 3.0 + 1e-9), [a, b])
        self.assertEqual(nms_detections([a, b], iou_threshold=0.3), [a])

    def test_output_sorted_and_input_untouched(self) -> None:
        cands = [
            _det(0.0, 0.0, 0.1, 0.1, 0.3),
            _det(0.5, 0.5, 0.1, 0.1, 0.8),
            _det(0.8, 0.0, 0.1, 0.1, 0.5),
        ]
        before = list(cands)
        out = nms_detections(cands)
        self.assertEqual([d.confidence for d in out], [0.8, 0.5, 0.3])
        self.assertEqual(cands, before)

    def test_equal_confidence_keeps_input_order(self) -> None:
        a = _det(0.0, 0.0, 0.2, 0.2, 0.7, class_id=0)
        b = _det(0.01, 0.0, 0.2, 0.2, 0.7, class_id=1)
        c = _det(0.6, 0.6, 0.2, 0.2, 0.7, class_id=2)
        self.assertEqual(nms_detections([a, b, c]), [a, c])
        self.assertEqual(nms_detections([b, a, c]), [b, c])

    def test_class_agnostic_by_default(self) -> None:
        sick = _det(0.1, 0.1, 0.4, 0.4, 0.9, class_id=0)
        healthy = _det(0.1, 0.1, 0.4, 0.4, 0.5, class_id=1)
        self.assertEqual(nms_detections([sick, healthy]), [sick])

    def test_per_class_keeps_overlapping_other_classes(self) -> None:
        sick = _det(0.1, 0.1, 0.4, 0.4, 0.9, class_id=0)
        sick_dup = _det(0.11, 0.1, 0.4, 0.4, 0.6, class_id=0)
        healthy = _det(0.1, 0.1, 0.4, 0.4, 0.7, class_id=1)
        self.assertEqual(nms_detections([sick_dup, healthy, sick], per_class=True), [sick, healthy])

    def test_never_grows_and_is_idempotent(self) -> None:
        rng = np.random.default_rng(11)
        for _ in range(20):
            n = int(rng.integers(0, 40))
            cands = [
                _det(
                    float(rng.uniform(0, 0.8)),
                    float(rng.uniform(0, 0.8)),
                    float(rng.uniform(0, 0.2)),
                    float(rng.uniform(0, 0.2)),
                    float(rng.choice([0.2, 0.5, 0.9])),
                    class_id=int(rng.integers(0, 4)),
                )
                for _ in range(n)
            ]
            for per_class in (False, True):
                once = nms_detections(cands, per_class=per_class)
                self.assertLessEqual(len(once), len(cands))
                self.assertEqual(nms_detections(once, per_class=per_class), once)


class TestIndexNms(unittest.TestCase):
    def test_returns_indices_by_score(self) -> None:
        boxes = np.array([[0, 0, 10, 10], [1, 1, 11, 11], [50, 50, 60, 60]], dtype=np.float32)
        scores = np.array([0.6, 0.9, 0.7], dtype=np.float32)
        keep = nms(boxes, scores, NMSConfig(iou_threshold=0.4))
        self.assertEqual(keep.tolist(), [1, 2])

    def test_empty(self) -> None:
        keep = nms(np.zeros((0, 4), dtype=np.float32), np.zeros((0,), dtype=np.float32), NMSConfig())
        self.assertEqual(keep.size, 0)


if __name__ == "__main__":
    unittest.main()
