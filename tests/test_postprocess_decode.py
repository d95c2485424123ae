import unittest

import numpy as np

from detect_kit.postprocess import DecodeConfig, DetectionDecoder
from detect_kit.types import TensorLayout

PERSON = 0
CHAIR = 56


def _empty_output(n: int = 8400, features: int = 84, background: float = 0.05) -> np.ndarray:
    out = np.zeros((1, features, n), dtype=np.float32)
    out[0, 4:, :] = background
    return out


def _set_cell(out: np.ndarray, i: int, bbox, class_feature: int, score: float) -> None:
    out[0, 0:4, i] = bbox
    out[0, class_feature, i] = score


class TestDetectionDecoder(unittest.TestCase):
    def test_single_person_in_full_size_output(self) -> None:
        out = _empty_output()
        _set_cell(out, 4321, (0.5, 0.5, 0.3, 0.4), 4 + PERSON, 0.95)

        dets = DetectionDecoder(DecodeConfig(confidence_threshold=0.7)).decode_class(out, PERSON)

        self.assertEqual(len(dets), 1)
        d = dets[0]
        self.assertEqual(d.class_id, PERSON)
        self.assertAlmostEqual(d.confidence, 0.95, places=5)
        self.assertAlmostEqual(d.bbox.x_center, 0.5, places=5)
        self.assertAlmostEqual(d.bbox.y_center, 0.5, places=5)
        self.assertAlmostEqual(d.bbox.width, 0.3, places=5)
        self.assertAlmostEqual(d.bbox.height, 0.4, places=5)

    def test_wrong_shape_returns_empty_without_raising(self) -> None:
        out = np.zeros((1, 80, 100), dtype=np.float32)
        decoder = DetectionDecoder(DecodeConfig(confidence_threshold=0.5))
        with self.assertLogs("detect_kit.postprocess", level="WARNING"):
            result = decoder.decode(out, [PERSON, CHAIR])
        self.assertEqual(result, {PERSON: [], CHAIR: []})

    def test_missing_batch_axis_returns_empty(self) -> None:
        out = np.zeros((84, 100), dtype=np.float32)
        decoder = DetectionDecoder(DecodeConfig(confidence_threshold=0.5))
        with self.assertLogs("detect_kit.postprocess", level="WARNING"):
            self.assertEqual(decoder.decode_class(out, PERSON), [])

    def test_bbox_is_read_from_feature_planes(self) -> None:
        # Cell 1 carries the box; an interleaved reading would pick up garbage from cell 0.
        out = _empty_output(n=8)
        out[0, :, 0] = 0.9
        out[0, 4:, 0] = 0.0
        _set_cell(out, 1, (0.25, 0.75, 0.1, 0.2), 4 + CHAIR, 0.8)

        dets = DetectionDecoder(DecodeConfig(confidence_threshold=0.5)).decode_class(out, CHAIR)
        self.assertEqual(len(dets), 1)
        self.assertAlmostEqual(dets[0].bbox.x_center, 0.25, places=5)
        self.assertAlmostEqual(dets[0].bbox.y_center, 0.75, places=5)
        self.assertAlmostEqual(dets[0].bbox.width, 0.1, places=5)
        self.assertAlmostEqual(dets[0].bbox.height, 0.2, places=5)

    def test_anchors_first_layout(self) -> None:
        out = _empty_output(n=16)
        _set_cell(out, 3, (0.5, 0.5, 0.3, 0.4), 4 + PERSON, 0.9)
        interleaved = np.ascontiguousarray(out.transpose(0, 2, 1))  # (1, 16, 84)

        anchors_first = DetectionDecoder(DecodeConfig(confidence_threshold=0.5, layout=TensorLayout.ANCHORS_FIRST))
        dets = anchors_first.decode_class(interleaved, PERSON)
        self.assertEqual(len(dets), 1)
        self.assertAlmostEqual(dets[0].bbox.height, 0.4, places=5)

        # The same buffer under the wrong layout tag is rejected, not silently misread.
        features_first = DetectionDecoder(DecodeConfig(confidence_threshold=0.5))
        with self.assertLogs("detect_kit.postprocess", level="WARNING"):
            self.assertEqual(features_first.decode_class(interleaved, PERSON), [])

    def test_objectness_gate_multiplies_scores(self) -> None:
        out = np.zeros((1, 84, 8), dtype=np.float32)
        out[0, 0:4, 2] = (0.5, 0.5, 0.2, 0.2)
        out[0, 4, 2] = 0.8  # objectness
        out[0, 5 + CHAIR, 2] = 0.9  # class scores start at feature 5

        gated = DetectionDecoder(DecodeConfig(confidence_threshold=0.7, use_objectness_gate=True))
        dets = gated.decode_class(out, CHAIR)
        self.assertEqual(len(dets), 1)
        self.assertAlmostEqual(dets[0].confidence, 0.72, places=5)

        stricter = DetectionDecoder(DecodeConfig(confidence_threshold=0.75, use_objectness_gate=True))
        self.assertEqual(stricter.decode_class(out, CHAIR), [])
        self.assertEqual(stricter.count(out, CHAIR), 0)

    def test_threshold_is_inclusive(self) -> None:
        out = _empty_output(n=4)
        _set_cell(out, 0, (0.5, 0.5, 0.3, 0.3), 4 + PERSON, 0.5)
        dets = DetectionDecoder(DecodeConfig(confidence_threshold=0.5)).decode_class(out, PERSON)
        self.assertEqual(len(dets), 1)

    def test_tiny_boxes_rejected(self) -> None:
        out = _empty_output(n=4)
        _set_cell(out, 0, (0.5, 0.5, 0.02, 0.3), 4 + PERSON, 0.9)
        _set_cell(out, 1, (0.5, 0.5, 0.3, 0.01), 4 + PERSON, 0.9)
        _set_cell(out, 2, (0.5, 0.5, 0.021, 0.021), 4 + PERSON, 0.9)
        dets = DetectionDecoder(DecodeConfig(confidence_threshold=0.5)).decode_class(out, PERSON)
        self.assertEqual(len(dets), 1)
        self.assertAlmostEqual(dets[0].bbox.width, 0.021, places=5)

    def test_multiple_classes_in_one_pass_keep_scan_order(self) -> None:
        out = _empty_output(n=10)
        _set_cell(out, 1, (0.2, 0.2, 0.1, 0.1), 4 + PERSON, 0.6)
        _set_cell(out, 4, (0.6, 0.6, 0.2, 0.2), 4 + CHAIR, 0.9)
        _set_cell(out, 7, (0.8, 0.8, 0.1, 0.1), 4 + PERSON, 0.95)
        _set_cell(out, 8, (0.3, 0.3, 0.1, 0.1), 4 + 2, 0.99)  # car, not requested

        result = DetectionDecoder(DecodeConfig(confidence_threshold=0.5)).decode(out, [PERSON, CHAIR])

        self.assertEqual(sorted(result.keys()), [PERSON, CHAIR])
        self.assertEqual([round(d.confidence, 2) for d in result[PERSON]], [0.6, 0.95])
        self.assertEqual(len(result[CHAIR]), 1)

    def test_argmax_decides_the_class(self) -> None:
        out = _empty_output(n=4)
        _set_cell(out, 0, (0.5, 0.5, 0.3, 0.3), 4 + PERSON, 0.8)
        out[0, 4 + CHAIR, 0] = 0.85
        decoder = DetectionDecoder(DecodeConfig(confidence_threshold=0.5))
        self.assertEqual(decoder.decode_class(out, PERSON), [])
        self.assertEqual(decoder.count(out, CHAIR), 1)

    def test_pixel_coordinates_are_normalized(self) -> None:
        out = _empty_output(n=4)
        _set_cell(out, 0, (320.0, 320.0, 192.0, 256.0), 4 + PERSON, 0.9)
        decoder = DetectionDecoder(DecodeConfig(confidence_threshold=0.5, coordinate_scale=640.0))
        d = decoder.decode_class(out, PERSON)[0]
        self.assertAlmostEqual(d.bbox.x_center, 0.5)
        self.assertAlmostEqual(d.bbox.width, 0.3)
        self.assertAlmostEqual(d.bbox.height, 0.4)

    def test_no_targets_returns_empty_mapping(self) -> None:
        decoder = DetectionDecoder(DecodeConfig(confidence_threshold=0.5))
        self.assertEqual(decoder.decode(_empty_output(n=4), []), {})


class TestDecodeConfig(unittest.TestCase):
    def test_threshold_out_of_range(self) -> None:
        with self.assertRaises(ValueError):
            DecodeConfig(confidence_threshold=1.5)

    def test_layout_accepts_string(self) -> None:
        cfg = DecodeConfig(confidence_threshold=0.4, layout="anchors_first")  # type: ignore[arg-type]
        self.assertIs(cfg.layout, TensorLayout.ANCHORS_FIRST)

    def test_feature_count(self) -> None:
        self.assertEqual(DecodeConfig(confidence_threshold=0.4).feature_count, 84)


if __name__ == "__main__":
    unittest.main()
