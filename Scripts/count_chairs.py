import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from detect_kit import (  # noqa: E402
    CHAIR_CLASS_ID,
    DecodeConfig,
    DetectionPipeline,
    TensorLayout,
    load_backend,
)


def main() -> int:
    parser = argparse.ArgumentParser(description="Count chairs in a still image.")
    parser.add_argument("--image", required=True, help="Path to an input image.")
    parser.add_argument("--model", default="models/yolov8n.onnx", help="Path to the detector (.onnx/.pt).")
    parser.add_argument("--imgsz", type=int, default=640, help="Letterbox input size.")
    parser.add_argument("--conf", type=float, default=0.4, help="Confidence threshold.")
    parser.add_argument("--iou", type=float, default=0.5, help="IoU threshold for NMS.")
    parser.add_argument("--class-id", type=int, default=CHAIR_CLASS_ID, help="Class id to count (56 = COCO chair).")
    parser.add_argument("--objectness", action="store_true", help="Multiply class score by the objectness feature.")
    parser.add_argument(
        "--layout",
        choices=[m.value for m in TensorLayout],
        default=TensorLayout.FEATURES_FIRST.value,
        help="Raw output layout of the model.",
    )
    parser.add_argument("--raw", action="store_true", help="Count raw candidates, before NMS.")
    args = parser.parse_args()

    if args.imgsz < 32:
        raise ValueError("--imgsz must be >= 32")

    backend = load_backend(args.model)
    decode_cfg = DecodeConfig(
        confidence_threshold=args.conf,
        layout=TensorLayout(args.layout),
        use_objectness_gate=args.objectness,
        coordinate_scale=float(args.imgsz),
    )
    pipeline = DetectionPipeline(backend.infer, decode_cfg, target_size=args.imgsz, iou_threshold=args.iou)

    if args.raw:
        prep = pipeline.prepare(args.image)
        count = pipeline.decoder.count(backend.infer(prep.tensor), args.class_id)
    else:
        count = len(pipeline(args.image, [args.class_id]).get(args.class_id))

    print(f"class {args.class_id}: {count}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
