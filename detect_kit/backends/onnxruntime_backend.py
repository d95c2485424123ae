from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Tuple, Union

import numpy as np

LOGGER = logging.getLogger("detect_kit.backends.onnxruntime")

PathLike = Union[str, Path]


@dataclass(frozen=True)
class OnnxRuntimeBackendConfig:
    """
    Configuration for ONNX Runtime inference.

    - providers: ORT execution providers (e.g., ["CUDAExecutionProvider", "CPUExecutionProvider"])
    - input_name/output_name: override auto-selected I/O names (YOLOv8 exports use "images"/"output0")
    - optimize: enable all graph optimizations
    """

    providers: Optional[Sequence[str]] = None
    input_name: Optional[str] = None
    output_name: Optional[str] = None
    optimize: bool = True


class OnnxRuntimeBackend:
    """
    ONNX Runtime backend for detectors taking a (1, 3, S, S) float32 blob.

    Returns the selected output (e.g. (1, 84, 8400)) as a NumPy array.
    """

    def __init__(self, model_path: PathLike, cfg: OnnxRuntimeBackendConfig = OnnxRuntimeBackendConfig()):
        try:
            import onnxruntime as ort  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError(
                "onnxruntime is required for the ONNX backend. Install it with `pip install onnxruntime` "
                "(or `onnxruntime-gpu`)."
            ) from e

        self._ort = ort
        self.model_path = Path(model_path)
        if not self.model_path.exists():
            raise FileNotFoundError(str(self.model_path))

        sess_opts = ort.SessionOptions()
        if cfg.optimize:
            sess_opts.graph_optimization_level = ort.GraphOptimizationLevel.ORT_ENABLE_ALL
        providers = list(cfg.providers) if cfg.providers is not None else None
        self.session = ort.InferenceSession(str(self.model_path), sess_options=sess_opts, providers=providers)

        inp = self.session.get_inputs()[0]
        self.input_name = cfg.input_name or inp.name
        self.output_name = cfg.output_name or self.session.get_outputs()[0].name
        self.input_shape: Tuple[Any, ...] = tuple(inp.shape)

        LOGGER.info(
            "Loaded ONNX model %s input=%s%s output=%s providers=%s",
            self.model_path.name,
            self.input_name,
            list(self.input_shape),
            self.output_name,
            list(self.providers_in_use),
        )

    @property
    def providers_in_use(self) -> Sequence[str]:
        # ORT returns providers in priority order for this session.
        return tuple(self.session.get_providers())

    @property
    def input_size(self) -> Optional[int]:
        """Square spatial input size if the model declares a static one."""
        if len(self.input_shape) != 4:
            return None
        h, w = self.input_shape[2], self.input_shape[3]
        if isinstance(h, int) and h == w:
            return h
        return None

    def infer(self, blob: np.ndarray) -> np.ndarray:
        feeds: Dict[str, Any] = {self.input_name: np.ascontiguousarray(blob, dtype=np.float32)}
        outputs = self.session.run([self.output_name], feeds)
        return outputs[0]
