"""
Collaborators the orchestrator talks to: camera, inference engine, image codec.

Blocking work (OpenCV capture, ONNX Runtime) is pushed to the default executor
so awaiting it never stalls the event loop; callers still await each step in turn.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Protocol, Sequence, Tuple, Union

import numpy as np

from detect_kit.codec import OpenCVCodec

LOGGER = logging.getLogger("winner_detection.collaborators")

PathLike = Union[str, Path]
Rect = Tuple[int, int, int, int]


class Camera(Protocol):
    async def capture(self) -> Optional[np.ndarray]:
        ...


class InferenceEngine(Protocol):
    async def run(self, tensor: np.ndarray) -> np.ndarray:
        ...


class ImageCodec(Protocol):
    def decode(self, raw: bytes) -> np.ndarray:
        ...

    def resize(self, image: np.ndarray, width: int, height: int) -> np.ndarray:
        ...

    def crop(self, image: np.ndarray, rect: Rect) -> np.ndarray:
        ...


class ExecutorEngine:
    """
    Adapts a synchronous `infer_fn(blob) -> output` (e.g. `OnnxRuntimeBackend.infer`) to `InferenceEngine`.
    """

    def __init__(self, infer_fn: Callable[[np.ndarray], np.ndarray]):
        self._infer_fn = infer_fn

    async def run(self, tensor: np.ndarray) -> np.ndarray:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._infer_fn, tensor)


@dataclass(frozen=True)
class CaptureInfo:
    fps: Optional[float]
    width: Optional[int]
    height: Optional[int]


def open_capture(*, video: Optional[str] = None, webcam: Optional[int] = None, rtsp: Optional[str] = None):
    import cv2

    sources = [video is not None, webcam is not None, rtsp is not None]
    if sum(bool(s) for s in sources) != 1:
        raise ValueError("Exactly one of video/webcam/rtsp must be provided.")

    if video is not None:
        cap = cv2.VideoCapture(video)
    elif rtsp is not None:
        cap = cv2.VideoCapture(rtsp)
    else:
        cap = cv2.VideoCapture(int(webcam))

    if not cap.isOpened():
        raise RuntimeError("Failed to open video source.")
    return cap


def get_capture_info(cap) -> CaptureInfo:
    import cv2

    fps = cap.get(cv2.CAP_PROP_FPS)
    fps_val = float(fps) if fps and fps > 0 else None
    w = cap.get(cv2.CAP_PROP_FRAME_WIDTH)
    h = cap.get(cv2.CAP_PROP_FRAME_HEIGHT)
    return CaptureInfo(
        fps=fps_val,
        width=int(w) if w and w > 0 else None,
        height=int(h) if h and h > 0 else None,
    )


class OpenCVCamera:
    """
    Camera backed by `cv2.VideoCapture` (webcam index, video file or RTSP URL).

    Each `capture()` grabs a fresh frame and returns it as RGB, or None when the read fails.
    """

    def __init__(self, *, video: Optional[str] = None, webcam: Optional[int] = None, rtsp: Optional[str] = None):
        self._cap = open_capture(video=video, webcam=webcam, rtsp=rtsp)
        self.info = get_capture_info(self._cap)
        LOGGER.info("Opened capture: fps=%s size=%sx%s", self.info.fps, self.info.width, self.info.height)

    def _read(self) -> Optional[np.ndarray]:
        import cv2

        ok, frame = self._cap.read()
        if not ok or frame is None:
            LOGGER.debug("Capture read failed")
            return None
        return cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)

    async def capture(self) -> Optional[np.ndarray]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._read)

    def release(self) -> None:
        self._cap.release()


class StillImageCamera:
    """
    Camera that "captures" still images from disk, one path per call; None once the list is used up.
    """

    def __init__(self, paths: Sequence[PathLike], codec: Optional[OpenCVCodec] = None):
        self._paths: List[Path] = [Path(p) for p in paths]
        self._codec = codec or OpenCVCodec()
        self._next = 0

    async def capture(self) -> Optional[np.ndarray]:
        if self._next >= len(self._paths):
            LOGGER.debug("No still images left (%d used)", len(self._paths))
            return None
        path = self._paths[self._next]
        self._next += 1
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._codec.read, path)
