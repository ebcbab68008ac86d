from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

import cv2
from pydantic import ValidationError
from tqdm import tqdm

from .contracts import BackgroundReport, CropReport, ImageReport, SegmentationOptions
from .pipeline import SegmentationResult, StageTimings, process_image
from .preprocess import meta_to_dict

IMAGE_EXTS = {".jpg", ".jpeg", ".png", ".webp", ".bmp", ".tif", ".tiff"}


def _iter_images(input_dir: Path) -> Iterator[Path]:
    for p in sorted(input_dir.rglob("*")):
        if p.is_file() and p.suffix.lower() in IMAGE_EXTS:
            yield p


def parse_color(value: str) -> Tuple[int, int, int]:
    """
    Accept '#rrggbb', 'rrggbb' or 'r,g,b'.
    """
    s = value.strip()
    if "," in s:
        parts = [p.strip() for p in s.split(",")]
        if len(parts) != 3:
            raise argparse.ArgumentTypeError(f"Expected r,g,b, got {value!r}")
        try:
            return tuple(int(p) for p in parts)  # type: ignore[return-value]
        except ValueError as e:
            raise argparse.ArgumentTypeError(f"Invalid colour {value!r}") from e

    s = s.lstrip("#")
    if len(s) != 6:
        raise argparse.ArgumentTypeError(f"Expected #rrggbb, got {value!r}")
    try:
        return (int(s[0:2], 16), int(s[2:4], 16), int(s[4:6], 16))
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Invalid colour {value!r}") from e


def build_report(src: Path, out: Path, timings: StageTimings, result: SegmentationResult) -> ImageReport:
    model = result.background_model
    bounds = result.crop_bounds
    return ImageReport(
        source_path=str(src.resolve()),
        output_path=str(out.resolve()),
        width=result.working.orig_w,
        height=result.working.orig_h,
        working=meta_to_dict(result.working),
        background=BackgroundReport(
            r=model.r,
            g=model.g,
            b=model.b,
            tolerance=model.tolerance,
            expansion_tolerance=model.expansion_tolerance,
        ),
        crop=None
        if bounds is None
        else CropReport(top=bounds.top, bottom=bounds.bottom, left=bounds.left, right=bounds.right),
        timings_s={
            "load": timings.load_s,
            "segment": timings.segment_s,
            "composite": timings.composite_s,
            "total": timings.total_s,
        },
    )


def write_json(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Local heuristic background removal (no model, no network).")
    parser.add_argument("--input", required=True, type=str, help="Input image or directory of images.")
    parser.add_argument("--output", required=True, type=str, help="Output directory for RGBA PNGs.")
    parser.add_argument("--feather", default=None, type=int, help="Edge feather amount in pixels (default 2).")
    parser.add_argument(
        "--background-color",
        default=None,
        type=parse_color,
        help="Composite onto this colour ('#rrggbb' or 'r,g,b') instead of writing transparency.",
    )
    parser.add_argument("--no-crop", action="store_true", help="Keep the full canvas instead of auto-cropping.")
    parser.add_argument("--max-side", default=None, type=int, help="Working resolution cap (default 1200).")
    parser.add_argument("--report", action="store_true", help="Write a JSON report next to each output.")
    parser.add_argument("--fail-fast", action="store_true", help="Stop at the first image that fails.")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    overrides = {
        "background_color": args.background_color,
        "auto_crop": not args.no_crop,
    }
    if args.feather is not None:
        overrides["feather_amount"] = args.feather
    if args.max_side is not None:
        overrides["max_processing_side"] = args.max_side
    try:
        options = SegmentationOptions(**overrides)
    except ValidationError as e:
        print(f"Invalid options:\n{e}", file=sys.stderr)
        return 2

    input_path = Path(args.input)
    output_dir = Path(args.output)
    if not input_path.exists():
        raise FileNotFoundError(f"Input not found: {input_path}")

    if input_path.is_file():
        root = input_path.parent
        images = [input_path]
    else:
        root = input_path
        images = list(_iter_images(input_path))
    if not images:
        print(f"No images found under {input_path}")
        return 0

    failures = 0
    total0 = time.perf_counter()
    for img_path in tqdm(images, desc="Processing", unit="img"):
        rel = img_path.relative_to(root)
        out_path = (output_dir / rel).with_suffix(".png")
        try:
            timings, result = process_image(str(img_path), str(out_path), options)
        except (OSError, ValueError, cv2.error) as e:
            if args.fail_fast:
                raise
            failures += 1
            print(f"{img_path.name}: FAILED ({type(e).__name__}: {e})", file=sys.stderr)
            continue

        if args.report:
            report = build_report(img_path, out_path, timings, result)
            write_json(out_path.with_suffix(".json"), report.model_dump())

        print(
            f"{img_path.name}: total={timings.total_s:.3f}s "
            f"(load={timings.load_s:.3f}s seg={timings.segment_s:.3f}s comp={timings.composite_s:.3f}s)"
        )

    total1 = time.perf_counter()
    print(f"Done. {len(images) - failures}/{len(images)} images in {total1-total0:.2f}s")
    return 1 if failures else 0


if __name__ == "__main__":
    raise SystemExit(main())
