from __future__ import annotations

from detect_kit.errors import PreprocessError, UnexpectedOutputShapeError


class WinnerDetectionError(Exception):
    """Base class for winner-detection failures."""


class NoQualifyingMatchError(WinnerDetectionError):
    """Frame decoded fine but no person/chair pair cleared the overlap threshold; the attempt is retried."""


class AttemptExhaustedError(WinnerDetectionError):
    """
    All attempts used without a qualifying match.

    Never raised out of the orchestrator: it is reported as `WinnerDetectionResult.success = False`.
    """

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(f"No winner found after {attempts} attempt(s)")


__all__ = [
    "AttemptExhaustedError",
    "NoQualifyingMatchError",
    "PreprocessError",
    "UnexpectedOutputShapeError",
    "WinnerDetectionError",
]
