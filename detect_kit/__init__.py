"""
Lightweight, reusable detection helpers for fixed-shape YOLO-style models.

Framework-agnostic: everything operates on NumPy arrays. OpenCV is used for
resizing and image I/O; inference runtimes live in `detect_kit.backends`.
"""

from .types import BBox, Detection, TensorLayout
from .errors import PreprocessError, UnexpectedOutputShapeError
from .codec import OpenCVCodec
from .letterbox import LetterboxResult, chw_to_hwc, hwc_to_chw, image_to_tensor, letterbox, letterbox_tensor, tensor_stats
from .nms import NMSConfig, iou, nms, suppress
from .postprocess import DecodeConfig, DetectionDecoder, scale_to_source
from .runtime import DetectionPipeline, FrameDetections, find_project_root, load_backend, resolve_path
from .metadata import CHAIR_CLASS_ID, COCO_NAMES, PERSON_CLASS_ID, class_id_for, load_class_names
from .visualize import draw_detections

__all__ = [
    "BBox",
    "Detection",
    "TensorLayout",
    "PreprocessError",
    "UnexpectedOutputShapeError",
    "OpenCVCodec",
    "LetterboxResult",
    "chw_to_hwc",
    "hwc_to_chw",
    "image_to_tensor",
    "letterbox",
    "letterbox_tensor",
    "tensor_stats",
    "NMSConfig",
    "iou",
    "nms",
    "suppress",
    "DecodeConfig",
    "DetectionDecoder",
    "scale_to_source",
    "DetectionPipeline",
    "FrameDetections",
    "find_project_root",
    "load_backend",
    "resolve_path",
    "CHAIR_CLASS_ID",
    "COCO_NAMES",
    "PERSON_CLASS_ID",
    "class_id_for",
    "load_class_names",
    "draw_detections",
]
