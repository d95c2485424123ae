from __future__ import annotations

from pathlib import Path
from typing import Tuple, Union

import numpy as np

from .errors import PreprocessError


PathLike = Union[str, Path]
Rect = Tuple[int, int, int, int]


def _cv2():
    try:
        import cv2  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError("OpenCV is required for OpenCVCodec. Install with `pip install opencv-python`.") from e
    return cv2


class OpenCVCodec:
    """
    Image codec backed by OpenCV.

    All images handed in and out are RGB `np.ndarray` (H, W, 3) uint8; the
    BGR <-> RGB swap happens only at the encode/decode boundary.
    """

    def decode(self, raw: bytes) -> np.ndarray:
        cv2 = _cv2()
        if not raw:
            raise PreprocessError("Cannot decode an empty byte buffer.")
        buf = np.frombuffer(raw, dtype=np.uint8)
        img = cv2.imdecode(buf, cv2.IMREAD_COLOR)
        if img is None:
            raise PreprocessError("Image bytes could not be decoded.")
        return cv2.cvtColor(img, cv2.COLOR_BGR2RGB)

    def encode(self, image_rgb: np.ndarray, ext: str = ".jpg") -> bytes:
        cv2 = _cv2()
        ok, buf = cv2.imencode(ext, cv2.cvtColor(image_rgb, cv2.COLOR_RGB2BGR))
        if not ok:
            raise RuntimeError(f"Failed to encode image as {ext}")
        return buf.tobytes()

    def resize(self, image: np.ndarray, width: int, height: int) -> np.ndarray:
        cv2 = _cv2()
        if (image.shape[1], image.shape[0]) == (width, height):
            return image
        return cv2.resize(image, (int(width), int(height)), interpolation=cv2.INTER_LINEAR)

    def crop(self, image: np.ndarray, rect: Rect) -> np.ndarray:
        x0, y0, x1, y1 = rect
        if x1 <= x0 or y1 <= y0:
            raise ValueError(f"Invalid crop rect: {rect}")
        return image[y0:y1, x0:x1].copy()

    def read(self, path: PathLike) -> np.ndarray:
        p = Path(path)
        try:
            raw = p.read_bytes()
        except OSError as exc:
            raise PreprocessError(f"Could not read image at path: {p}") from exc
        return self.decode(raw)

    def write(self, path: PathLike, image_rgb: np.ndarray) -> Path:
        p = Path(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_bytes(self.encode(image_rgb, ext=p.suffix or ".jpg"))
        return p
