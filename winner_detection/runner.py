from __future__ import annotations

import argparse
import asyncio
import dataclasses
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from detect_kit.letterbox import letterbox_tensor, tensor_stats
from detect_kit.metadata import COCO_NAMES, load_class_names
from detect_kit.runtime import load_backend

from .collaborators import ExecutorEngine, OpenCVCamera, StillImageCamera
from .config import WinnerConfig, load_winner_profile
from .orchestrator import WinnerDetector
from .reporting import timestamp_str, write_result_artifacts

LOGGER = logging.getLogger("winner_detection.runner")


def setup_logging(level: int = logging.INFO) -> None:
    """Configure application logging if not already configured."""
    if logging.getLogger().handlers:
        logging.getLogger().setLevel(level)
        return
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Find the musical-chairs winner: the person sitting on a chair.")
    src = parser.add_mutually_exclusive_group(required=True)
    src.add_argument("--image", action="append", default=None, help="Still image; repeat for one image per attempt.")
    src.add_argument("--video", default=None, help="Path to a video file (one frame per attempt).")
    src.add_argument("--webcam", type=int, default=None, help="Webcam index (e.g., 0).")
    parser.add_argument("--model", default="models/yolov8n.onnx", help="Path to the detector (.onnx/.pt/.torchscript).")
    parser.add_argument("--backend", default=None, help="Force backend: onnxruntime / torchscript.")
    parser.add_argument(
        "--onnx-providers",
        default=None,
        help='Comma-separated ORT providers, e.g. "CUDAExecutionProvider,CPUExecutionProvider".',
    )
    parser.add_argument("--profile", default=None, help="Winner profile JSON (schema_version 1).")
    parser.add_argument("--metadata", default=None, help="Class names mapping (metadata.yaml); COCO names by default.")
    parser.add_argument("--conf", type=float, default=None, help="Confidence threshold (required unless in profile).")
    parser.add_argument("--iou", type=float, default=None, help="IoU threshold for NMS.")
    parser.add_argument("--retries", type=int, default=None, help="Maximum number of attempts.")
    parser.add_argument("--delay", type=float, default=None, help="Seconds to wait between attempts.")
    parser.add_argument("--min-overlap", type=float, default=None, help="Minimum person/chair overlap.")
    units = parser.add_mutually_exclusive_group()
    units.add_argument("--pixel-boxes", action="store_true", help="Model emits boxes in input pixels (default).")
    units.add_argument("--normalized-boxes", action="store_true", help="Model emits normalized boxes, not pixels.")
    parser.add_argument("--out-dir", default="runs/winner", help="Output directory (a timestamped subdir is created).")
    parser.add_argument("--verbose", action="store_true", help="Debug logging, including per-stage timings.")
    return parser


def resolve_config(args: argparse.Namespace) -> WinnerConfig:
    """
    Profile values first, CLI flags on top.
    """

    overrides: Dict[str, object] = {}
    if args.conf is not None:
        overrides["confidence_threshold"] = float(args.conf)
    if args.iou is not None:
        overrides["iou_threshold"] = float(args.iou)
    if args.retries is not None:
        overrides["max_retries"] = int(args.retries)
    if args.delay is not None:
        overrides["retry_delay_s"] = float(args.delay)
    if args.min_overlap is not None:
        overrides["min_overlap"] = float(args.min_overlap)

    if args.pixel_boxes:
        overrides["pixel_boxes"] = True
    elif args.normalized_boxes:
        overrides["pixel_boxes"] = False

    if args.profile:
        base = load_winner_profile(Path(args.profile))
        return dataclasses.replace(base, **overrides)

    if "confidence_threshold" not in overrides:
        raise ValueError("--conf is required when no --profile is given")
    # stock YOLOv8 exports emit boxes in input pixels
    overrides.setdefault("pixel_boxes", True)
    return WinnerConfig(**overrides)  # type: ignore[arg-type]


def check_input_size(backend: object, target_size: int) -> None:
    """
    Fail early when the model declares a static input size other than `target_size`.
    """

    declared = getattr(backend, "input_size", None)
    if declared is not None and int(declared) != int(target_size):
        raise ValueError(f"Model expects {declared}x{declared} input but target_size is {target_size}")


def _parse_providers(raw: Optional[str]) -> Optional[List[str]]:
    if not raw:
        return None
    return [p.strip().strip("'\"`") for p in str(raw).split(",") if p.strip()]


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.INFO)

    cfg = resolve_config(args)
    class_names = load_class_names(args.metadata) if args.metadata else dict(COCO_NAMES)

    backend = load_backend(args.model, backend=args.backend, onnx_providers=_parse_providers(args.onnx_providers))
    check_input_size(backend, cfg.target_size)
    engine = ExecutorEngine(backend.infer)

    release = None
    if args.image:
        camera = StillImageCamera(args.image)
        if args.verbose:
            LOGGER.debug("Input tensor stats: %s", tensor_stats(letterbox_tensor(args.image[0], cfg.target_size).tensor))
    else:
        camera = OpenCVCamera(video=args.video, webcam=args.webcam)
        release = camera.release

    try:
        result = asyncio.run(WinnerDetector(camera, engine, cfg).detect_winner())
    finally:
        if release is not None:
            release()

    out_dir = Path(args.out_dir) / timestamp_str()
    run_config = {k: (v.value if hasattr(v, "value") else v) for k, v in dataclasses.asdict(cfg).items()}
    run_config["model"] = str(args.model)
    result_path = write_result_artifacts(out_dir=out_dir, result=result, class_names=class_names, run_config=run_config)

    if result.success:
        print(f"Winner found after {result.attempts} attempt(s), confidence {result.confidence:.2f}")
    else:
        print(f"No winner after {result.attempts} attempt(s)")
    print(f"Wrote result: {result_path}")
    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
