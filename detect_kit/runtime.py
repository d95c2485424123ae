from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Union

import numpy as np

from .codec import OpenCVCodec
from .letterbox import ImageSource, LetterboxResult, letterbox_tensor
from .nms import suppress
from .postprocess import DecodeConfig, DetectionDecoder, scale_to_source
from .types import Detection

LOGGER = logging.getLogger("detect_kit.runtime")

PathLike = Union[str, Path]
InferFn = Callable[[np.ndarray], np.ndarray]


def find_project_root(
    start: Optional[PathLike] = None,
    markers: Sequence[str] = ("pyproject.toml", ".git"),
) -> Path:
    """
    Best-effort project root discovery, so `models/yolov8n.onnx` resolves from anywhere in the repo.
    """

    p = Path(start) if start is not None else Path.cwd()
    p = p.resolve()

    # If a file is provided, start from its directory.
    if p.is_file():
        p = p.parent

    for parent in (p, *p.parents):
        for m in markers:
            if (parent / m).exists():
                return parent
    return p


def resolve_path(path: PathLike, root: Optional[PathLike] = "auto") -> Path:
    """
    Resolve `path` to an absolute Path.

    - Absolute paths are returned as-is.
    - Relative paths are resolved against `root` if provided, the project root otherwise.
    """

    p = Path(path)
    if p.is_absolute():
        return p

    if root == "auto" or root is None:
        base = find_project_root()
    else:
        base = Path(root).resolve()

    return (base / p).resolve()


def infer_backend_name(path: Path) -> str:
    suffix = path.suffix.lower()
    if suffix == ".onnx":
        return "onnxruntime"
    if suffix in {".torchscript", ".ts", ".pt"}:
        return "torchscript"
    raise ValueError(f"Could not infer backend from extension '{suffix}'. Pass backend=... explicitly.")


def load_backend(
    model_path: PathLike,
    *,
    backend: Optional[str] = None,
    root: Optional[PathLike] = "auto",
    onnx_providers: Optional[Sequence[str]] = None,
    onnx_input_name: Optional[str] = None,
    onnx_output_name: Optional[str] = None,
    torch_device: str = "cpu",
    torch_half: bool = False,
    torch_output_index: int = 0,
):
    """
    Load an inference backend for a model on disk; the returned object exposes `infer(blob)`.

    Args:
        model_path: path to the model file; relative paths resolve against the project root by default
        backend: "onnxruntime" or "torchscript"; None infers it from the file extension
    """

    resolved = resolve_path(model_path, root=root)
    chosen = (backend or infer_backend_name(resolved)).lower()

    if chosen == "onnxruntime":
        from .backends.onnxruntime_backend import OnnxRuntimeBackend, OnnxRuntimeBackendConfig

        return OnnxRuntimeBackend(
            resolved,
            OnnxRuntimeBackendConfig(
                providers=onnx_providers,
                input_name=onnx_input_name,
                output_name=onnx_output_name,
            ),
        )

    if chosen == "torchscript":
        from .backends.torchscript_backend import TorchScriptBackend, TorchScriptBackendConfig

        return TorchScriptBackend(
            resolved,
            TorchScriptBackendConfig(device=torch_device, half=torch_half, output_index=torch_output_index),
        )

    raise ValueError(f"Unsupported backend: {backend!r}")


@dataclass(frozen=True)
class FrameDetections:
    """
    Suppressed detections for one frame, normalized to the source image, keyed by class id.
    """

    by_class: Dict[int, List[Detection]]
    orig_size: tuple

    def get(self, class_id: int) -> List[Detection]:
        return self.by_class.get(int(class_id), [])

    def all(self) -> List[Detection]:
        out: List[Detection] = []
        for dets in self.by_class.values():
            out.extend(dets)
        return out


class DetectionPipeline:
    """
    Plug-and-play pipeline: letterbox -> inference -> decode -> per-class NMS -> source coordinates.

    `prepare` and `finish` are exposed separately so async callers can await inference in between.
    """

    def __init__(
        self,
        infer_fn: Optional[InferFn],
        decode_cfg: DecodeConfig,
        *,
        target_size: int = 640,
        iou_threshold: float = 0.5,
        codec: Optional[OpenCVCodec] = None,
    ):
        self._infer_fn = infer_fn
        self.decoder = DetectionDecoder(decode_cfg)
        self.target_size = int(target_size)
        self.iou_threshold = float(iou_threshold)
        self.codec = codec or OpenCVCodec()

    def prepare(self, image: ImageSource) -> LetterboxResult:
        t0 = time.perf_counter()
        prep = letterbox_tensor(image, target_size=self.target_size, codec=self.codec)
        LOGGER.debug("Preprocessing (letterbox_tensor): %.1f ms", (time.perf_counter() - t0) * 1000.0)
        return prep

    def finish(self, output: np.ndarray, prep: LetterboxResult, class_ids: Iterable[int]) -> FrameDetections:
        t0 = time.perf_counter()
        raw = self.decoder.decode(output, class_ids)
        by_class: Dict[int, List[Detection]] = {}
        for cid, dets in raw.items():
            kept = suppress(dets, iou_threshold=self.iou_threshold)
            by_class[cid] = scale_to_source(
                kept,
                target_size=prep.target_size,
                orig_size=prep.orig_size,
                scale=prep.scale,
                pad=prep.pad,
            )
        LOGGER.debug("Postprocessing (decode + NMS): %.1f ms", (time.perf_counter() - t0) * 1000.0)
        return FrameDetections(by_class=by_class, orig_size=prep.orig_size)

    def __call__(self, image: ImageSource, class_ids: Iterable[int]) -> FrameDetections:
        if self._infer_fn is None:
            raise RuntimeError("DetectionPipeline was created without an infer_fn; use prepare()/finish().")
        prep = self.prepare(image)
        t0 = time.perf_counter()
        output = self._infer_fn(prep.tensor)
        LOGGER.debug("Inference: %.1f ms", (time.perf_counter() - t0) * 1000.0)
        return self.finish(output, prep, class_ids)
