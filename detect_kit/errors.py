from __future__ import annotations

from typing import Sequence, Tuple


class PreprocessError(ValueError):
    """Source image could not be decoded or has no usable dimensions."""


class UnexpectedOutputShapeError(ValueError):
    """Raw model output does not match the expected tensor contract."""

    def __init__(self, expected: str, actual: Sequence[int]):
        self.expected = expected
        self.actual: Tuple[int, ...] = tuple(int(d) for d in actual)
        super().__init__(f"Expected output shape {expected}, got {list(self.actual)}")
