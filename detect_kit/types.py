from dataclasses import dataclass
from enum import Enum
from typing import Tuple


class TensorLayout(str, Enum):
    """
    Memory layout of a raw detector output for a single image.

    - FEATURES_FIRST: (1, F, N), one plane per feature (YOLOv8 ONNX exports, 84 x 8400)
    - ANCHORS_FIRST: (1, N, F), features interleaved per candidate cell
    """

    FEATURES_FIRST = "features_first"
    ANCHORS_FIRST = "anchors_first"


@dataclass(frozen=True)
class BBox:
    """
    Normalized center-format box; all values are fractions of the frame extent.
    """

    x_center: float
    y_center: float
    width: float
    height: float

    def as_xyxy(self) -> Tuple[float, float, float, float]:
        half_w = self.width / 2
        half_h = self.height / 2
        return (
            self.x_center - half_w,
            self.y_center - half_h,
            self.x_center + half_w,
            self.y_center + half_h,
        )

    def to_pixels(self, image_width: int, image_height: int) -> Tuple[float, float, float, float]:
        x1, y1, x2, y2 = self.as_xyxy()
        return x1 * image_width, y1 * image_height, x2 * image_width, y2 * image_height

    @property
    def area(self) -> float:
        return max(0.0, self.width) * max(0.0, self.height)


@dataclass(frozen=True)
class Detection:
    """
    Generic detection representation used across backends.
    """

    class_id: int
    confidence: float
    bbox: BBox

    def as_xyxy(self) -> Tuple[float, float, float, float]:
        return self.bbox.as_xyxy()
