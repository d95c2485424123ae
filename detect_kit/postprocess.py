from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Sequence, Tuple

import numpy as np

from .errors import UnexpectedOutputShapeError
from .types import BBox, Detection, TensorLayout

LOGGER = logging.getLogger("detect_kit.postprocess")

BOX_FEATURES = 4


@dataclass(frozen=True)
class DecodeConfig:
    """
    Konfigurasi untuk decoding output detector.

    confidence_threshold has no default on purpose: callers choose it per use case.
    """

    confidence_threshold: float
    class_count: int = 80
    layout: TensorLayout = TensorLayout.FEATURES_FIRST
    # Feature 4 is objectness and class scores shift to 5.., confidence = obj * max(class).
    use_objectness_gate: bool = False
    # Boxes narrower or shorter than this (normalized) are treated as noise.
    min_box_size: float = 0.02
    # Raw bbox values are divided by this; use the input size for pixel-space exports.
    coordinate_scale: float = 1.0

    def __post_init__(self) -> None:
        if not (0.0 <= self.confidence_threshold <= 1.0):
            raise ValueError("confidence_threshold must be within [0, 1]")
        if self.class_count < 1:
            raise ValueError("class_count must be >= 1")
        if self.use_objectness_gate and self.class_count < 2:
            raise ValueError("class_count must be >= 2 when use_objectness_gate is set")
        if self.min_box_size < 0:
            raise ValueError("min_box_size must be >= 0")
        if self.coordinate_scale <= 0:
            raise ValueError("coordinate_scale must be > 0")
        if not isinstance(self.layout, TensorLayout):
            object.__setattr__(self, "layout", TensorLayout(self.layout))

    @property
    def feature_count(self) -> int:
        return BOX_FEATURES + self.class_count


class DetectionDecoder:
    """
    Decoder for fixed-shape YOLO outputs:

    - FEATURES_FIRST (1, 4 + C, N): bbox planes first, x = data[0*N + i], y = data[1*N + i], ...
    - ANCHORS_FIRST (1, N, 4 + C): one row of [cx, cy, w, h, scores...] per cell

    Decoding is best-effort per frame: a malformed output yields empty sets, never an exception.
    """

    def __init__(self, cfg: DecodeConfig):
        self.cfg = cfg

    def decode(self, output: np.ndarray, target_class_ids: Iterable[int]) -> Dict[int, List[Detection]]:
        """
        Decode one frame into raw (non-suppressed) detections, one list per requested class id.

        Each list keeps grid-scan order.
        """

        targets = [int(c) for c in target_class_ids]
        result: Dict[int, List[Detection]] = {cid: [] for cid in targets}
        if not targets:
            return result

        try:
            planes = self._to_feature_planes(output)
        except UnexpectedOutputShapeError as exc:
            LOGGER.warning("Dropping frame output: %s", exc)
            return result

        boxes, scores, class_ids = self._score_cells(planes)

        keep = np.isin(class_ids, np.array(targets))
        keep &= scores >= self.cfg.confidence_threshold
        keep &= boxes[:, 2] > self.cfg.min_box_size
        keep &= boxes[:, 3] > self.cfg.min_box_size

        for i in np.flatnonzero(keep):
            cx, cy, w, h = boxes[i]
            det = Detection(
                class_id=int(class_ids[i]),
                confidence=float(scores[i]),
                bbox=BBox(x_center=float(cx), y_center=float(cy), width=float(w), height=float(h)),
            )
            result[det.class_id].append(det)

        LOGGER.debug(
            "Decoded %d cells -> %s",
            planes.shape[1],
            {cid: len(dets) for cid, dets in result.items()},
        )
        return result

    def decode_class(self, output: np.ndarray, class_id: int) -> List[Detection]:
        return self.decode(output, [class_id])[int(class_id)]

    def count(self, output: np.ndarray, class_id: int) -> int:
        return len(self.decode_class(output, class_id))

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #
    def expected_shape(self) -> str:
        f = self.cfg.feature_count
        if self.cfg.layout is TensorLayout.FEATURES_FIRST:
            return f"[1, {f}, N]"
        return f"[1, N, {f}]"

    def _to_feature_planes(self, output: np.ndarray) -> np.ndarray:
        """
        Validate the raw output and return it as (F, N) feature planes.
        """

        p = np.asarray(output)
        f = self.cfg.feature_count
        if p.ndim != 3 or p.shape[0] != 1 or p.size == 0:
            raise UnexpectedOutputShapeError(self.expected_shape(), p.shape)

        if self.cfg.layout is TensorLayout.FEATURES_FIRST:
            if p.shape[1] != f:
                raise UnexpectedOutputShapeError(self.expected_shape(), p.shape)
            return p[0]

        if p.shape[2] != f:
            raise UnexpectedOutputShapeError(self.expected_shape(), p.shape)
        return p[0].T

    def _score_cells(self, planes: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Returns normalized cxcywh boxes (N, 4), confidences (N,) and best class ids (N,).
        """

        boxes = planes[0:BOX_FEATURES, :].T.astype(np.float64) / self.cfg.coordinate_scale
        rest = planes[BOX_FEATURES:, :]

        if self.cfg.use_objectness_gate:
            objectness = rest[0, :]
            class_scores = rest[1:, :]
            class_ids = np.argmax(class_scores, axis=0)
            class_conf = class_scores[class_ids, np.arange(class_scores.shape[1])]
            scores = objectness * class_conf
        else:
            class_scores = rest
            class_ids = np.argmax(class_scores, axis=0)
            scores = class_scores[class_ids, np.arange(class_scores.shape[1])]

        return boxes, scores.astype(np.float64), class_ids.astype(np.int64)


def scale_to_source(
    detections: Sequence[Detection],
    *,
    target_size: int,
    orig_size: Tuple[int, int],
    scale: float,
    pad: Tuple[int, int],
) -> List[Detection]:
    """
    Map boxes normalized to the letterboxed canvas back to boxes normalized to the source image.

    Corners are clipped to the source frame.
    """

    orig_w, orig_h = orig_size
    dw, dh = pad
    out: List[Detection] = []
    for d in detections:
        x1, y1, x2, y2 = d.as_xyxy()
        x1 = float(np.clip((x1 * target_size - dw) / scale / orig_w, 0.0, 1.0))
        x2 = float(np.clip((x2 * target_size - dw) / scale / orig_w, 0.0, 1.0))
        y1 = float(np.clip((y1 * target_size - dh) / scale / orig_h, 0.0, 1.0))
        y2 = float(np.clip((y2 * target_size - dh) / scale / orig_h, 0.0, 1.0))
        out.append(
            Detection(
                class_id=d.class_id,
                confidence=d.confidence,
                bbox=BBox(
                    x_center=(x1 + x2) / 2,
                    y_center=(y1 + y2) / 2,
                    width=x2 - x1,
                    height=y2 - y1,
                ),
            )
        )
    return out
