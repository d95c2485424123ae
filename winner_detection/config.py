from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from detect_kit.metadata import CHAIR_CLASS_ID, PERSON_CLASS_ID
from detect_kit.postprocess import DecodeConfig
from detect_kit.types import TensorLayout


@dataclass(frozen=True)
class WinnerConfig:
    confidence_threshold: float
    max_retries: int = 3
    retry_delay_s: float = 1.0
    min_overlap: float = 0.1
    # fraction of the person box width/height added on each side of the winner crop
    crop_padding: float = 0.2
    iou_threshold: float = 0.5
    target_size: int = 640
    person_class_id: int = PERSON_CLASS_ID
    chair_class_id: int = CHAIR_CLASS_ID
    class_count: int = 80
    layout: TensorLayout = TensorLayout.FEATURES_FIRST
    use_objectness_gate: bool = False
    # True for exports whose boxes are in input-pixel units (stock YOLOv8 ONNX)
    pixel_boxes: bool = False
    inference_timeout_s: Optional[float] = None

    def __post_init__(self) -> None:
        if not (0.0 <= self.confidence_threshold <= 1.0):
            raise ValueError("confidence_threshold must be within [0, 1]")
        if self.max_retries < 1:
            raise ValueError("max_retries must be >= 1")
        if self.retry_delay_s < 0:
            raise ValueError("retry_delay_s must be >= 0")
        if not (0.0 <= self.min_overlap < 1.0):
            raise ValueError("min_overlap must be within [0, 1)")
        if self.crop_padding < 0:
            raise ValueError("crop_padding must be >= 0")
        if not (0.0 <= self.iou_threshold <= 1.0):
            raise ValueError("iou_threshold must be within [0, 1]")
        if self.target_size < 32:
            raise ValueError("target_size must be >= 32")
        if self.person_class_id == self.chair_class_id:
            raise ValueError("person_class_id and chair_class_id must differ")
        if self.inference_timeout_s is not None and self.inference_timeout_s <= 0:
            raise ValueError("inference_timeout_s must be > 0 if provided")
        if not isinstance(self.layout, TensorLayout):
            object.__setattr__(self, "layout", TensorLayout(self.layout))

    def decode_config(self) -> DecodeConfig:
        return DecodeConfig(
            confidence_threshold=self.confidence_threshold,
            class_count=self.class_count,
            layout=self.layout,
            use_objectness_gate=self.use_objectness_gate,
            coordinate_scale=float(self.target_size) if self.pixel_boxes else 1.0,
        )


_NUMBER_KEYS = {
    "confidence_threshold",
    "retry_delay_s",
    "min_overlap",
    "crop_padding",
    "iou_threshold",
    "inference_timeout_s",
}
_INT_KEYS = {"max_retries", "target_size", "person_class_id", "chair_class_id", "class_count"}
_BOOL_KEYS = {"use_objectness_gate", "pixel_boxes"}
_STR_KEYS = {"layout", "notes"}


def _require_number(payload: Dict[str, Any], key: str) -> float:
    if key not in payload:
        raise ValueError(f"Missing required key: {key}")
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be a number")
    return float(value)


def _require_int(payload: Dict[str, Any], key: str) -> int:
    if key not in payload:
        raise ValueError(f"Missing required key: {key}")
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an integer")
    return int(value)


def profile_to_kwargs(payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate a profile payload and convert it into `WinnerConfig` keyword arguments.
    """

    allowed = {"schema_version"} | _NUMBER_KEYS | _INT_KEYS | _BOOL_KEYS | _STR_KEYS
    unknown = sorted(set(payload.keys()) - allowed)
    if unknown:
        raise ValueError(f"Unknown winner profile keys: {unknown}")

    if _require_int(payload, "schema_version") != 1:
        raise ValueError("winner profile schema_version must be 1")

    kwargs: Dict[str, Any] = {"confidence_threshold": _require_number(payload, "confidence_threshold")}
    for key in sorted(_NUMBER_KEYS - {"confidence_threshold"}):
        if payload.get(key) is not None:
            kwargs[key] = _require_number(payload, key)
    for key in sorted(_INT_KEYS):
        if key in payload:
            kwargs[key] = _require_int(payload, key)
    for key in sorted(_BOOL_KEYS):
        if key in payload:
            if not isinstance(payload[key], bool):
                raise ValueError(f"{key} must be a boolean")
            kwargs[key] = payload[key]
    # same default as the runner CLI: stock YOLOv8 exports emit boxes in input pixels
    kwargs.setdefault("pixel_boxes", True)
    if "layout" in payload:
        try:
            kwargs["layout"] = TensorLayout(payload["layout"])
        except ValueError as exc:
            choices = [m.value for m in TensorLayout]
            raise ValueError(f"layout must be one of {choices}") from exc
    notes = payload.get("notes")
    if notes is not None and not isinstance(notes, str):
        raise ValueError("notes must be a string if provided")
    return kwargs


def load_winner_profile(path: Path) -> WinnerConfig:
    if not path.exists():
        raise FileNotFoundError(f"Winner profile not found: {path}")
    raw = path.read_text(encoding="utf-8")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid winner profile JSON: {path}") from exc
    if not isinstance(payload, dict):
        raise ValueError("Winner profile must be a JSON object")
    return WinnerConfig(**profile_to_kwargs(payload))
