import json
import tempfile
import unittest
from datetime import datetime
from pathlib import Path

import numpy as np

from detect_kit.runtime import FrameDetections
from detect_kit.types import BBox, Detection
from winner_detection.matcher import MatchResult
from winner_detection.orchestrator import WinnerDetectionResult
from winner_detection.reporting import result_to_dict, timestamp_str, write_result_artifacts


def _success_result() -> WinnerDetectionResult:
    person = Detection(class_id=0, confidence=0.9, bbox=BBox(0.5, 0.5, 0.2, 0.4))
    chair = Detection(class_id=56, confidence=0.8, bbox=BBox(0.5, 0.6, 0.3, 0.4))
    frame = np.zeros((120, 160, 3), dtype=np.uint8)
    return WinnerDetectionResult(
        success=True,
        full_image=frame,
        attempts=2,
        winner_image=frame[10:60, 40:100].copy(),
        confidence=0.9,
        match=MatchResult(person=person, chair=chair, overlap=0.75, distance=0.1),
        detections=FrameDetections(by_class={0: [person], 56: [chair]}, orig_size=(160, 120)),
    )


class TestReporting(unittest.TestCase):
    def test_result_to_dict(self) -> None:
        payload = result_to_dict(_success_result())
        self.assertTrue(payload["success"])
        self.assertEqual(payload["attempts"], 2)
        self.assertEqual(payload["match"]["overlap"], 0.75)
        self.assertEqual(payload["match"]["person"]["class_id"], 0)
        self.assertEqual(sorted(payload["detections"].keys()), ["0", "56"])
        json.dumps(payload)

    def test_write_success_artifacts(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            out_dir = Path(tmp) / "run"
            path = write_result_artifacts(out_dir=out_dir, result=_success_result(), run_config={"conf": 0.5})
            payload = json.loads(path.read_text(encoding="utf-8"))
            self.assertEqual(payload["files"], {"full": "full.jpg", "winner": "winner.jpg", "annotated": "annotated.jpg"})
            self.assertEqual(payload["run_config"], {"conf": 0.5})
            for name in payload["files"].values():
                self.assertTrue((out_dir / name).exists())

    def test_write_failure_without_frame(self) -> None:
        result = WinnerDetectionResult(success=False, full_image=None, attempts=3)
        with tempfile.TemporaryDirectory() as tmp:
            path = write_result_artifacts(out_dir=Path(tmp), result=result)
            payload = json.loads(path.read_text(encoding="utf-8"))
            self.assertFalse(payload["success"])
            self.assertFalse(payload["has_full_image"])
            self.assertEqual(payload["files"], {})
            self.assertIsNone(payload["confidence"])

    def test_timestamp_str(self) -> None:
        self.assertEqual(timestamp_str(datetime(2024, 3, 9, 7, 5, 1)), "20240309-070501")


if __name__ == "__main__":
    unittest.main()
