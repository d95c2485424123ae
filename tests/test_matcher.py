import unittest

from detect_kit.types import BBox, Detection
from winner_detection.matcher import find_best_match, person_overlap


def _person(cx: float, cy: float, w: float, h: float, conf: float = 0.9) -> Detection:
    return Detection(class_id=0, confidence=conf, bbox=BBox(cx, cy, w, h))


def _chair(cx: float, cy: float, w: float, h: float, conf: float = 0.8) -> Detection:
    return Detection(class_id=56, confidence=conf, bbox=BBox(cx, cy, w, h))


class TestFindBestMatch(unittest.TestCase):
    def test_person_inside_chair_box(self) -> None:
        person = _person(0.5, 0.5, 0.2, 0.2)
        chair = _chair(0.5, 0.5, 0.25, 0.25)
        match = find_best_match([person], [chair], 1000, 1000)
        self.assertIsNotNone(match)
        assert match is not None
        self.assertAlmostEqual(match.overlap, 1.0)
        self.assertAlmostEqual(match.distance, 0.0)
        self.assertIs(match.person, person)
        self.assertIs(match.chair, chair)

    def test_overlap_is_relative_to_person_box(self) -> None:
        # Small chair inside a big person box: covers a quarter of the person.
        person = _person(0.5, 0.5, 0.4, 0.4)
        chair = _chair(0.5, 0.5, 0.2, 0.2)
        match = find_best_match([person], [chair], 640, 480)
        assert match is not None
        self.assertAlmostEqual(match.overlap, 0.25)

    def test_no_pair_above_min_overlap(self) -> None:
        person = _person(0.2, 0.2, 0.1, 0.1)
        chair = _chair(0.8, 0.8, 0.1, 0.1)
        self.assertIsNone(find_best_match([person], [chair], 1000, 1000))

    def test_min_overlap_is_strict(self) -> None:
        # Chair covers roughly the right half of the person box.
        person = _person(0.5, 0.5, 0.2, 0.2)
        chair = _chair(0.55, 0.5, 0.1, 0.2)
        match = find_best_match([person], [chair], 1000, 1000, min_overlap=0.0)
        assert match is not None
        self.assertAlmostEqual(match.overlap, 0.5)
        self.assertIsNone(find_best_match([person], [chair], 1000, 1000, min_overlap=match.overlap))
        self.assertIsNotNone(find_best_match([person], [chair], 1000, 1000, min_overlap=0.4))

    def test_empty_sets(self) -> None:
        chair = _chair(0.5, 0.5, 0.2, 0.2)
        self.assertIsNone(find_best_match([], [chair], 100, 100))
        self.assertIsNone(find_best_match([_person(0.5, 0.5, 0.2, 0.2)], [], 100, 100))

    def test_higher_overlap_wins(self) -> None:
        person = _person(0.5, 0.5, 0.2, 0.2)
        partial = _chair(0.58, 0.5, 0.2, 0.2, conf=0.99)
        full = _chair(0.5, 0.5, 0.3, 0.3, conf=0.5)
        match = find_best_match([person], [partial, full], 1000, 1000)
        assert match is not None
        self.assertIs(match.chair, full)

    def test_distance_breaks_overlap_tie(self) -> None:
        person = _person(0.5, 0.5, 0.1, 0.1)
        off_center = _chair(0.55, 0.5, 0.3, 0.3)
        centered = _chair(0.5, 0.5, 0.3, 0.3)
        match = find_best_match([person], [off_center, centered], 1000, 1000)
        assert match is not None
        self.assertIs(match.chair, centered)
        self.assertAlmostEqual(match.overlap, 1.0)

    def test_person_confidence_breaks_full_tie(self) -> None:
        low = _person(0.5, 0.5, 0.1, 0.1, conf=0.6)
        high = _person(0.5, 0.5, 0.1, 0.1, conf=0.9)
        chair = _chair(0.5, 0.5, 0.3, 0.3)
        match = find_best_match([low, high], [chair], 1000, 1000)
        assert match is not None
        self.assertIs(match.person, high)

    def test_deterministic_and_order_independent(self) -> None:
        persons = [
            _person(0.3, 0.5, 0.1, 0.3, conf=0.8),
            _person(0.7, 0.5, 0.1, 0.3, conf=0.9),
            _person(0.5, 0.2, 0.1, 0.1, conf=0.7),
        ]
        chairs = [
            _chair(0.32, 0.6, 0.15, 0.2),
            _chair(0.7, 0.55, 0.2, 0.3),
        ]
        first = find_best_match(persons, chairs, 1280, 720)
        again = find_best_match(persons, chairs, 1280, 720)
        swapped = find_best_match(list(reversed(persons)), list(reversed(chairs)), 1280, 720)
        self.assertEqual(first, again)
        self.assertEqual(first, swapped)
        assert first is not None
        self.assertIs(first.person, persons[1])
        self.assertIs(first.chair, chairs[1])

    def test_invalid_dimensions(self) -> None:
        with self.assertRaises(ValueError):
            find_best_match([], [], 0, 100)


class TestPersonOverlap(unittest.TestCase):
    def test_zero_area_person(self) -> None:
        self.assertEqual(person_overlap((10, 10, 10, 20), (0, 0, 50, 50)), 0.0)

    def test_disjoint(self) -> None:
        self.assertEqual(person_overlap((0, 0, 10, 10), (20, 20, 30, 30)), 0.0)


if __name__ == "__main__":
    unittest.main()
