from __future__ import annotations

import math
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Tuple, Union

import numpy as np

from .codec import OpenCVCodec
from .errors import PreprocessError


ImageSource = Union[np.ndarray, bytes, str, Path]


@dataclass(frozen=True)
class LetterboxResult:
    """
    Model-ready tensor plus the geometry used to build it.

    - tensor: float32 (1, 3, S, S), values in [0, 1]
    - orig_size: (width, height) of the source image
    - scale: resize factor applied to both axes
    - pad: (x_offset, y_offset) of the resized content inside the canvas, in pixels
    - resized_size: (width, height) of the resized content
    """

    tensor: np.ndarray
    orig_size: Tuple[int, int]
    scale: float
    pad: Tuple[int, int]
    resized_size: Tuple[int, int]

    @property
    def target_size(self) -> int:
        return int(self.tensor.shape[-1])


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _as_rgb(image: np.ndarray) -> np.ndarray:
    if image.ndim == 2:
        image = np.repeat(image[:, :, None], 3, axis=2)
    if image.ndim != 3 or image.shape[2] not in (3, 4):
        raise PreprocessError(f"Expected image shape (H, W, 3) or (H, W, 4), got {image.shape}")
    if image.shape[0] == 0 or image.shape[1] == 0:
        raise PreprocessError(f"Image has no usable dimensions: {image.shape}")
    # Alpha is dropped; letterboxing only ever reads RGB.
    return np.ascontiguousarray(image[:, :, :3])


def load_image(source: ImageSource, codec: Optional[OpenCVCodec] = None) -> np.ndarray:
    """
    Resolve an image source (array, encoded bytes, or file path) to an RGB array.
    """

    if isinstance(source, np.ndarray):
        return _as_rgb(source)
    codec = codec or OpenCVCodec()
    if isinstance(source, (bytes, bytearray, memoryview)):
        return _as_rgb(codec.decode(bytes(source)))
    if isinstance(source, (str, Path)):
        return _as_rgb(codec.read(source))
    raise PreprocessError(f"Unsupported image source type: {type(source).__name__}")


def letterbox(
    image: np.ndarray,
    new_shape: Union[int, Tuple[int, int]] = (640, 640),
    color: Tuple[int, int, int] = (0, 0, 0),
    scaleup: bool = True,
    codec: Optional[OpenCVCodec] = None,
):
    """
    Resize preserving aspect ratio and pad to `new_shape` (width, height).

    Padding offsets are floored, so any odd pixel of padding goes to the right/bottom.

    Returns:
        padded: resized + padded image
        scale: resize factor
        pad: (left, top) padding in pixels
    """

    if isinstance(new_shape, int):
        new_shape = (new_shape, new_shape)

    h, w = image.shape[:2]
    new_w, new_h = new_shape
    if w <= 0 or h <= 0:
        raise PreprocessError(f"Image has no usable dimensions: {image.shape}")

    # Scale ratio (new / old)
    r = min(new_w / w, new_h / h)
    if not scaleup:  # only scale down
        r = min(r, 1.0)

    resized_w = min(new_w, max(1, _round_half_up(w * r)))
    resized_h = min(new_h, max(1, _round_half_up(h * r)))

    codec = codec or OpenCVCodec()
    resized = codec.resize(image, resized_w, resized_h)

    left = (new_w - resized_w) // 2
    top = (new_h - resized_h) // 2

    padded = np.empty((new_h, new_w, resized.shape[2]), dtype=resized.dtype)
    padded[...] = np.asarray(color, dtype=resized.dtype)[: resized.shape[2]]
    padded[top : top + resized_h, left : left + resized_w] = resized

    return padded, r, (left, top)


def hwc_to_chw(hwc: np.ndarray) -> np.ndarray:
    """
    Planar re-layout: CHW[c, h, w] = HWC[h, w, c].
    """

    if hwc.ndim != 3:
        raise ValueError(f"Expected (H, W, C) array, got shape {hwc.shape}")
    return np.ascontiguousarray(np.transpose(hwc, (2, 0, 1)))


def chw_to_hwc(chw: np.ndarray) -> np.ndarray:
    if chw.ndim != 3:
        raise ValueError(f"Expected (C, H, W) array, got shape {chw.shape}")
    return np.ascontiguousarray(np.transpose(chw, (1, 2, 0)))


def letterbox_tensor(
    image: ImageSource,
    target_size: int = 640,
    codec: Optional[OpenCVCodec] = None,
) -> LetterboxResult:
    """
    Convert an image into a (1, 3, S, S) float32 tensor with black letterbox padding.

    Raises:
        PreprocessError: the image cannot be decoded or has no usable dimensions.
    """

    if target_size <= 0:
        raise PreprocessError(f"target_size must be > 0, got {target_size}")

    rgb = load_image(image, codec=codec)
    orig_h, orig_w = rgb.shape[:2]

    padded, scale, pad = letterbox(rgb, new_shape=(target_size, target_size), color=(0, 0, 0), codec=codec)
    resized_w = _round_half_up(orig_w * scale)
    resized_h = _round_half_up(orig_h * scale)

    # normalize, HWC -> CHW, add batch
    chw = hwc_to_chw(padded.astype(np.float32) / 255.0)
    tensor = chw[None, ...]

    return LetterboxResult(
        tensor=tensor,
        orig_size=(int(orig_w), int(orig_h)),
        scale=float(scale),
        pad=(int(pad[0]), int(pad[1])),
        resized_size=(min(target_size, max(1, resized_w)), min(target_size, max(1, resized_h))),
    )


def image_to_tensor(image: ImageSource, target_size: int = 640, codec: Optional[OpenCVCodec] = None) -> np.ndarray:
    return letterbox_tensor(image, target_size=target_size, codec=codec).tensor


def tensor_stats(tensor: np.ndarray) -> Dict[str, object]:
    """
    Quick sanity summary of an input tensor (per-channel min/max/mean, zero fraction).
    """

    t = np.asarray(tensor)
    if t.ndim != 4 or t.shape[0] != 1:
        raise ValueError(f"Expected (1, C, H, W) tensor, got shape {t.shape}")
    planes = t[0]
    return {
        "shape": [int(d) for d in t.shape],
        "dtype": str(t.dtype),
        "min": [float(p.min()) for p in planes],
        "max": [float(p.max()) for p in planes],
        "mean": [float(p.mean()) for p in planes],
        "zero_fraction": float(np.count_nonzero(t == 0) / t.size) if t.size else 0.0,
    }
