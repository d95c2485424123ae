"""
Musical-chairs winner detection built on top of `detect_kit`.

`detect_kit` owns the detector runtime (letterbox, decode, NMS, backends);
this package decides who won:
- person/chair matching
- the retrying capture -> infer -> match orchestrator
- per-round session state
- camera / engine / codec collaborators
- profile config, artifact reporting and the runner CLI
"""

from __future__ import annotations

from .collaborators import Camera, ExecutorEngine, ImageCodec, InferenceEngine, OpenCVCamera, StillImageCamera
from .config import WinnerConfig, load_winner_profile
from .errors import AttemptExhaustedError, NoQualifyingMatchError, WinnerDetectionError
from .matcher import MatchResult, find_best_match
from .orchestrator import AttemptState, WinnerDetectionResult, WinnerDetector, winner_crop_rect
from .session import RoundSession

__all__ = [
    "Camera",
    "ExecutorEngine",
    "ImageCodec",
    "InferenceEngine",
    "OpenCVCamera",
    "StillImageCamera",
    "WinnerConfig",
    "load_winner_profile",
    "AttemptExhaustedError",
    "NoQualifyingMatchError",
    "WinnerDetectionError",
    "MatchResult",
    "find_best_match",
    "AttemptState",
    "WinnerDetectionResult",
    "WinnerDetector",
    "winner_crop_rect",
    "RoundSession",
]
