"""
Winner detection: capture -> preprocess -> infer -> decode -> NMS -> match, retried a bounded number of times.

Every per-attempt problem (no frame, inference error, malformed output, no
qualifying pair) is downgraded to a retry; the caller always gets a
`WinnerDetectionResult` back.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

import numpy as np

from detect_kit.runtime import DetectionPipeline, FrameDetections
from detect_kit.types import BBox

from .collaborators import Camera, ImageCodec, InferenceEngine
from .config import WinnerConfig
from .errors import AttemptExhaustedError, NoQualifyingMatchError
from .matcher import MatchResult, find_best_match
from .session import RoundSession

LOGGER = logging.getLogger("winner_detection.orchestrator")


class AttemptState(str, Enum):
    IDLE = "IDLE"
    CAPTURING = "CAPTURING"
    INFERRING = "INFERRING"
    MATCHING = "MATCHING"
    SUCCESS = "SUCCESS"
    RETRY = "RETRY"
    EXHAUSTED = "EXHAUSTED"
    CANCELLED = "CANCELLED"


@dataclass(frozen=True)
class WinnerDetectionResult:
    success: bool
    full_image: Optional[np.ndarray]
    attempts: int
    winner_image: Optional[np.ndarray] = None
    confidence: Optional[float] = None
    match: Optional[MatchResult] = None
    detections: Optional[FrameDetections] = None


def clamp_rect_to_frame(
    rect_xyxy: Tuple[int, int, int, int],
    *,
    frame_width: int,
    frame_height: int,
) -> Tuple[int, int, int, int]:
    x0, y0, x1, y1 = rect_xyxy
    x0 = max(0, min(int(x0), frame_width))
    y0 = max(0, min(int(y0), frame_height))
    x1 = max(0, min(int(x1), frame_width))
    y1 = max(0, min(int(y1), frame_height))
    if x1 <= x0 or y1 <= y0:
        raise ValueError(f"Invalid rect after clamping: {(x0, y0, x1, y1)}")
    return x0, y0, x1, y1


def winner_crop_rect(bbox: BBox, image_width: int, image_height: int, padding: float = 0.2) -> Tuple[int, int, int, int]:
    """
    Pixel crop rect around a box, grown by `padding` x box size on every side and clamped to the image.
    """

    x1, y1, x2, y2 = bbox.to_pixels(image_width, image_height)
    pad_x = (x2 - x1) * padding
    pad_y = (y2 - y1) * padding
    return clamp_rect_to_frame(
        (
            int(math.floor(x1 - pad_x)),
            int(math.floor(y1 - pad_y)),
            int(math.ceil(x2 + pad_x)),
            int(math.ceil(y2 + pad_y)),
        ),
        frame_width=image_width,
        frame_height=image_height,
    )


class WinnerDetector:
    """
    Drives up to `config.max_retries` attempts to find the person sitting on a chair.

    Success reports the frame that produced the match; failure reports the first frame
    captured in the round, which is the stable "music stopped" reference.
    """

    def __init__(
        self,
        camera: Camera,
        engine: InferenceEngine,
        config: WinnerConfig,
        *,
        codec: Optional[ImageCodec] = None,
        session: Optional[RoundSession] = None,
    ) -> None:
        self.camera = camera
        self.engine = engine
        self.config = config
        # an injected session is the caller's to reset; an owned one is per call
        self._owns_session = session is None
        self.session = session if session is not None else RoundSession()
        self.pipeline = DetectionPipeline(
            None,
            config.decode_config(),
            target_size=config.target_size,
            iou_threshold=config.iou_threshold,
            codec=codec,
        )
        self.codec = self.pipeline.codec
        self.state = AttemptState.IDLE

    def _set_state(self, state: AttemptState) -> None:
        self.state = state
        LOGGER.debug("state -> %s", state.value)

    async def detect_winner(self, cancel: Optional[asyncio.Event] = None) -> WinnerDetectionResult:
        if self._owns_session:
            self.session.reset()
        self._set_state(AttemptState.IDLE)
        cfg = self.config
        attempts_made = 0

        for attempt in range(1, cfg.max_retries + 1):
            if cancel is not None and cancel.is_set():
                return self._cancelled(attempts_made)

            attempts_made = attempt
            self.session.start_attempt()
            t0 = time.perf_counter()
            try:
                result = await self._attempt(attempt)
            except NoQualifyingMatchError as exc:
                LOGGER.info("Attempt %d/%d: no winner (%s)", attempt, cfg.max_retries, exc)
                result = None
            except Exception as exc:
                LOGGER.warning("Attempt %d/%d failed: %s", attempt, cfg.max_retries, exc, exc_info=True)
                result = None
            LOGGER.debug("Attempt %d took %.1f ms", attempt, (time.perf_counter() - t0) * 1000.0)

            if result is not None:
                LOGGER.info(
                    "Winner found on attempt %d/%d (confidence=%.2f overlap=%.2f)",
                    attempt,
                    cfg.max_retries,
                    result.confidence,
                    result.match.overlap if result.match else float("nan"),
                )
                return result

            self._set_state(AttemptState.RETRY)
            if attempt < cfg.max_retries and await self._wait_or_cancel(cancel):
                return self._cancelled(attempts_made)

        self._set_state(AttemptState.EXHAUSTED)
        LOGGER.warning("%s", AttemptExhaustedError(cfg.max_retries))
        return WinnerDetectionResult(success=False, full_image=self.session.first_image, attempts=cfg.max_retries)

    async def _attempt(self, attempt: int) -> Optional[WinnerDetectionResult]:
        cfg = self.config

        self._set_state(AttemptState.CAPTURING)
        image = await self.camera.capture()
        if image is None:
            LOGGER.info("Attempt %d/%d: camera returned no frame", attempt, cfg.max_retries)
            return None
        self.session.remember_capture(image)

        self._set_state(AttemptState.INFERRING)
        prep = self.pipeline.prepare(image)
        output = await self._infer(prep.tensor)

        self._set_state(AttemptState.MATCHING)
        frame = self.pipeline.finish(output, prep, [cfg.person_class_id, cfg.chair_class_id])
        persons = frame.get(cfg.person_class_id)
        chairs = frame.get(cfg.chair_class_id)
        self.session.record_chair_count(len(chairs))

        if not persons or not chairs:
            raise NoQualifyingMatchError(f"found {len(persons)} person(s) and {len(chairs)} chair(s)")

        width, height = prep.orig_size
        match = find_best_match(persons, chairs, width, height, min_overlap=cfg.min_overlap)
        if match is None:
            raise NoQualifyingMatchError(f"no person/chair pair with overlap > {cfg.min_overlap}")

        rect = winner_crop_rect(match.person.bbox, width, height, padding=cfg.crop_padding)
        winner_image = self.codec.crop(image, rect)

        self._set_state(AttemptState.SUCCESS)
        return WinnerDetectionResult(
            success=True,
            full_image=image,
            attempts=attempt,
            winner_image=winner_image,
            confidence=match.person.confidence,
            match=match,
            detections=frame,
        )

    async def _infer(self, tensor: np.ndarray) -> np.ndarray:
        t0 = time.perf_counter()
        if self.config.inference_timeout_s is not None:
            output = await asyncio.wait_for(self.engine.run(tensor), timeout=self.config.inference_timeout_s)
        else:
            output = await self.engine.run(tensor)
        LOGGER.debug("Inference: %.1f ms", (time.perf_counter() - t0) * 1000.0)
        return output

    async def _wait_or_cancel(self, cancel: Optional[asyncio.Event]) -> bool:
        """Sleep the inter-attempt delay; True if cancellation was requested meanwhile."""
        delay = self.config.retry_delay_s
        if cancel is None:
            await asyncio.sleep(delay)
            return False
        try:
            await asyncio.wait_for(cancel.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True

    def _cancelled(self, attempts_made: int) -> WinnerDetectionResult:
        self._set_state(AttemptState.CANCELLED)
        LOGGER.info("Winner detection cancelled after %d attempt(s)", attempts_made)
        return WinnerDetectionResult(success=False, full_image=self.session.first_image, attempts=attempts_made)
