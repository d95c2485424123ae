"""
Person/chair association for a single frame.

Overlap is directional: the fraction of the person's box covered by the chair's
box, so a person sitting fully inside a larger chair box scores 1.0.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from detect_kit.types import Detection


@dataclass(frozen=True)
class MatchResult:
    person: Detection
    chair: Detection
    overlap: float
    distance: float


def person_overlap(
    person_xyxy: Tuple[float, float, float, float],
    chair_xyxy: Tuple[float, float, float, float],
) -> float:
    px1, py1, px2, py2 = person_xyxy
    cx1, cy1, cx2, cy2 = chair_xyxy
    inter = max(0.0, min(px2, cx2) - max(px1, cx1)) * max(0.0, min(py2, cy2) - max(py1, cy1))
    person_area = (px2 - px1) * (py2 - py1)
    if person_area <= 0:
        return 0.0
    return inter / person_area


def center_distance(a: Detection, b: Detection) -> float:
    return math.hypot(a.bbox.x_center - b.bbox.x_center, a.bbox.y_center - b.bbox.y_center)


def _better(candidate: MatchResult, best: Optional[MatchResult]) -> bool:
    if best is None:
        return True
    if candidate.overlap != best.overlap:
        return candidate.overlap > best.overlap
    if candidate.distance != best.distance:
        return candidate.distance < best.distance
    return candidate.person.confidence > best.person.confidence


def find_best_match(
    persons: Sequence[Detection],
    chairs: Sequence[Detection],
    image_width: int,
    image_height: int,
    min_overlap: float = 0.1,
) -> Optional[MatchResult]:
    """
    Pick the person/chair pair that best looks like "someone sitting on a chair".

    Pairs rank by higher overlap, then smaller center distance, then higher person
    confidence. Returns None when no pair has overlap > min_overlap.
    """

    if image_width <= 0 or image_height <= 0:
        raise ValueError(f"Image dimensions must be > 0, got {image_width}x{image_height}")

    best: Optional[MatchResult] = None
    chair_boxes = [c.bbox.to_pixels(image_width, image_height) for c in chairs]
    for person in persons:
        person_box = person.bbox.to_pixels(image_width, image_height)
        for chair, chair_box in zip(chairs, chair_boxes):
            candidate = MatchResult(
                person=person,
                chair=chair,
                overlap=person_overlap(person_box, chair_box),
                distance=center_distance(person, chair),
            )
            if _better(candidate, best):
                best = candidate

    if best is None or best.overlap <= min_overlap:
        return None
    return best
