"""
Writes the artifacts of one winner-detection run to disk.
"""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from detect_kit.codec import OpenCVCodec
from detect_kit.types import Detection
from detect_kit.visualize import draw_detections

from .orchestrator import WinnerDetectionResult


def detection_to_dict(d: Detection) -> Dict[str, Any]:
    return {
        "class_id": int(d.class_id),
        "confidence": float(d.confidence),
        "bbox": {
            "x_center": float(d.bbox.x_center),
            "y_center": float(d.bbox.y_center),
            "width": float(d.bbox.width),
            "height": float(d.bbox.height),
        },
    }


def result_to_dict(result: WinnerDetectionResult) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "success": bool(result.success),
        "attempts": int(result.attempts),
        "confidence": None if result.confidence is None else float(result.confidence),
        "has_full_image": result.full_image is not None,
        "has_winner_image": result.winner_image is not None,
    }
    if result.match is not None:
        payload["match"] = {
            "person": detection_to_dict(result.match.person),
            "chair": detection_to_dict(result.match.chair),
            "overlap": float(result.match.overlap),
            "distance": float(result.match.distance),
        }
    if result.detections is not None:
        payload["detections"] = {
            str(cid): [detection_to_dict(d) for d in dets] for cid, dets in result.detections.by_class.items()
        }
    return payload


def write_result_artifacts(
    *,
    out_dir: Path,
    result: WinnerDetectionResult,
    class_names: Optional[Mapping[int, str]] = None,
    run_config: Optional[Dict[str, Any]] = None,
    codec: Optional[OpenCVCodec] = None,
) -> Path:
    """
    Layout:
        out_dir/result.json
        out_dir/full.jpg       (if any frame was captured)
        out_dir/winner.jpg     (success only)
        out_dir/annotated.jpg  (success only; detections drawn, matched pair highlighted)
    """

    codec = codec or OpenCVCodec()
    out_dir.mkdir(parents=True, exist_ok=True)
    payload = result_to_dict(result)
    files: Dict[str, str] = {}

    if result.full_image is not None:
        files["full"] = codec.write(out_dir / "full.jpg", result.full_image).name
    if result.winner_image is not None:
        files["winner"] = codec.write(out_dir / "winner.jpg", result.winner_image).name
    if result.full_image is not None and result.detections is not None:
        highlight = (result.match.person, result.match.chair) if result.match is not None else ()
        vis = draw_detections(
            result.full_image,
            result.detections.all(),
            class_names=dict(class_names) if class_names else None,
            highlight=highlight,
        )
        files["annotated"] = codec.write(out_dir / "annotated.jpg", vis).name

    payload["files"] = files
    if run_config is not None:
        payload["run_config"] = run_config
    path = out_dir / "result.json"
    path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
    return path


def timestamp_str(now: Optional[datetime] = None) -> str:
    dt = now or datetime.now()
    return dt.strftime("%Y%m%d-%H%M%S")
