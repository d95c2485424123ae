from __future__ import annotations

from typing import List, Optional

import numpy as np


class RoundSession:
    """
    State kept across the attempts of one winner-detection run.

    Create one per game round and discard it afterwards; nothing here outlives the round.
    """

    def __init__(self) -> None:
        self.first_image: Optional[np.ndarray] = None
        self.attempts = 0
        self.previous_chair_count: Optional[int] = None
        self.chair_counts: List[int] = []

    def start_attempt(self) -> int:
        self.attempts += 1
        return self.attempts

    def remember_capture(self, image: np.ndarray) -> None:
        # Only the very first frame is kept: it is the "moment the music stopped" reference.
        if self.first_image is None:
            self.first_image = image

    def record_chair_count(self, count: int) -> None:
        if count < 0:
            raise ValueError("chair count must be >= 0")
        self.previous_chair_count = int(count)
        self.chair_counts.append(int(count))

    def reset(self) -> None:
        self.first_image = None
        self.attempts = 0
        self.previous_chair_count = None
        self.chair_counts = []
