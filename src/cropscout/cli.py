"""Command line entry point: crop one image or a folder of images."""

import argparse
import json
import sys
from dataclasses import replace
from pathlib import Path
from typing import Optional, Sequence

from cropscout.config import default_options, resolve_output_quality
from cropscout.cropper import load_rgba, smart_crop, write_cropped, write_debug_overlay
from cropscout.models import BoostArea, CropError, InvalidConfigurationError, Rect
from cropscout.options import CropOptions, validate_options

SUPPORTED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp", ".bmp", ".tiff", ".tif"}


def _md_escape(value: object) -> str:
    """Escape values for markdown table cells."""
    text = "" if value is None else str(value)
    return text.replace("|", "\\|").replace("\n", " ").strip()


def write_markdown_report(
    report_path: Path,
    *,
    input_path: Path,
    output_folder: Path,
    options: CropOptions,
    rows: list[dict],
    failures: list[dict],
) -> None:
    """Write a markdown report with one row per cropped image."""
    lines: list[str] = []
    lines.append("# cropscout Crop Report")
    lines.append("")
    lines.append(f"- Input: `{input_path}`")
    lines.append(f"- Output: `{output_folder}`")
    if options.aspect > 0:
        lines.append(f"- Target: aspect `{options.aspect:g}:1`")
    elif options.width > 0 and options.height > 0:
        lines.append(f"- Target: `{options.width:g}x{options.height:g}`")
    else:
        lines.append("- Target: square (shorter edge)")
    lines.append(f"- Images cropped: `{len(rows)}`")
    lines.append("")
    lines.append("## Crops")
    lines.append("")
    lines.append("| # | Filename | Crop (x, y, w, h) | Total | Detail | Skin | Saturation | Boost | Penalty | Output |")
    lines.append("|---:|---|---|---:|---:|---:|---:|---:|---:|---|")
    for idx, row in enumerate(rows, start=1):
        score = row.get("score", {})
        lines.append(
            "| "
            f"{idx} | "
            f"{_md_escape(row.get('filename', ''))} | "
            f"{_md_escape(tuple(row.get('crop_xywh', ())))} | "
            f"{score.get('total', 0):.6f} | "
            f"{score.get('detail', 0):.3f} | "
            f"{score.get('skin', 0):.3f} | "
            f"{score.get('saturation', 0):.3f} | "
            f"{score.get('boost', 0):.3f} | "
            f"{score.get('penalty', 0):.3f} | "
            f"{_md_escape(row.get('output', ''))} |"
        )

    if failures:
        lines.append("")
        lines.append("## Skipped")
        lines.append("")
        lines.append("| Filename | Reason |")
        lines.append("|---|---|")
        for failure in failures:
            lines.append(
                f"| {_md_escape(failure.get('filename', ''))} | {_md_escape(failure.get('error', ''))} |"
            )

    report_path.write_text("\n".join(lines) + "\n", encoding="utf-8")


def _collect_images(src: Path) -> list[Path]:
    if src.is_file():
        return [src]
    return [p for p in sorted(src.iterdir()) if p.suffix.lower() in SUPPORTED_EXTENSIONS]


def run_batch(
    input_path: str,
    output_folder: str = "cropped",
    options: Optional[CropOptions] = None,
    boost_areas: Sequence[BoostArea] = (),
    out_size: Optional[tuple[int, int]] = None,
    save_debug: bool = False,
    quality: Optional[int] = None,
    debug: bool = False,
) -> list[dict]:
    """
    Crop every supported image under input_path and write reports.

    Args:
        input_path: Image file or folder of images
        output_folder: Folder for cropped JPEGs and reports
        options: Crop options (default: env/.env backed defaults)
        boost_areas: Boost regions applied to every image (pixel coordinates)
        out_size: Resize each crop to (width, height) when given
        save_debug: Write feature overlays and JSON sidecars
        quality: JPEG quality for outputs (default from CROPSCOUT_OUTPUT_QUALITY)
    """
    src = Path(input_path)
    out = Path(output_folder)

    if not src.exists():
        print(f"❌ Input not found: {src}")
        sys.exit(1)

    search_dir = src if src.is_dir() else src.parent
    if options is None:
        options = default_options(search_dir)
    if quality is None:
        quality = resolve_output_quality(search_dir)

    images = _collect_images(src)
    print("=" * 60)
    print("✂️  Content-aware crop")
    print(f"   Input:  {src}")
    print(f"   Output: {out}")
    print(f"📁 Found {len(images)} images")
    print("=" * 60)
    if not images:
        print("❌ No valid images found.")
        sys.exit(1)

    out.mkdir(parents=True, exist_ok=True)
    report: list[dict] = []
    failures: list[dict] = []

    for img_path in images:
        try:
            rgba = load_rgba(img_path)
            meta: dict = {}
            result = smart_crop(
                rgba,
                options,
                boost_areas,
                debug=debug,
                meta_out=meta if save_debug else None,
            )
            dest = out / f"{img_path.stem}_crop.jpg"
            write_cropped(rgba, result.area, dest, out_size=out_size, quality=quality)
            if save_debug:
                write_debug_overlay(meta, out / f"debug_{img_path.stem}.jpg", result)
        except (CropError, OSError) as e:
            print(f"  ⚠ Skipping {img_path.name}: {e}")
            failures.append({"filename": img_path.name, "error": str(e)})
            continue

        row = {"filename": img_path.name, "output": dest.name}
        row.update(result.as_dict())
        report.append(row)
        x, y, w, h = result.area.as_tuple()
        print(f"  ✅ {img_path.name} → {dest.name}  crop=({x}, {y}, {w}, {h})")
        print(f"       Total: {result.score.total:.6f} | Penalty: {result.score.penalty:.3f}")

    report_json_path = out / "crop_report.json"
    with open(report_json_path, "w", encoding="utf-8") as f:
        json.dump({"crops": report, "skipped": failures}, f, indent=2)
    report_md_path = out / "crop_report.md"
    write_markdown_report(
        report_md_path,
        input_path=src,
        output_folder=out,
        options=options,
        rows=report,
        failures=failures,
    )

    print(f"\n{'=' * 60}")
    print(f"🏆 Done! {len(report)} crops saved to {out}/ ({len(failures)} skipped)")
    print(f"📋 JSON Report: {report_json_path}")
    print(f"📝 Markdown Report: {report_md_path}")
    print(f"{'=' * 60}")

    return report


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


def _parse_boost(text: str) -> BoostArea:
    """Parse ``X,Y,W,H[,WEIGHT]`` into a BoostArea."""
    parts = [p.strip() for p in text.split(",")]
    if len(parts) not in (4, 5):
        raise argparse.ArgumentTypeError(f"expected X,Y,W,H[,WEIGHT], got {text!r}")
    try:
        x, y, w, h = (int(p) for p in parts[:4])
        weight = float(parts[4]) if len(parts) == 5 else 1.0
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid boost area {text!r}") from None
    if w <= 0 or h <= 0 or weight <= 0:
        raise argparse.ArgumentTypeError(f"boost size and weight must be positive: {text!r}")
    return BoostArea(Rect(x, y, w, h), weight)


class _HelpOnErrorArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that prints full help text on parse errors."""

    def error(self, message):
        self.print_help(sys.stderr)
        self.exit(2, f"\n{self.prog}: error: {message}\n")


def build_parser() -> argparse.ArgumentParser:
    parser = _HelpOnErrorArgumentParser(
        prog="cropscout",
        description="Find the most interesting crop of an image for a target size or aspect ratio.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s photo.jpg --width 1080 --height 1350
  %(prog)s ./input --output ./cropped --aspect 1
  %(prog)s photo.jpg --aspect 1.91 --boost 120,40,300,300,2.0 --save-debug
        """,
    )
    parser.add_argument("input", help="Image file or folder of images")
    parser.add_argument(
        "--output", "-o", default="cropped", help="Output folder (default: cropped)"
    )
    parser.add_argument("--width", type=int, default=0, help="Target width in pixels")
    parser.add_argument("--height", type=int, default=0, help="Target height in pixels")
    parser.add_argument(
        "--aspect", type=float, default=0.0, help="Target aspect ratio (width/height); overrides size"
    )
    parser.add_argument("--crop-width", type=int, default=None, help="Absolute crop width override")
    parser.add_argument("--crop-height", type=int, default=None, help="Absolute crop height override")
    parser.add_argument("--min-scale", type=float, default=1.0, help="Smallest crop scale (default: 1.0)")
    parser.add_argument("--max-scale", type=float, default=1.0, help="Largest crop scale (default: 1.0)")
    parser.add_argument("--scale-step", type=float, default=0.1, help="Scale decrement (default: 0.1)")
    parser.add_argument(
        "--step", type=int, default=None, help="Candidate position stride in pixels (env: CROPSCOUT_STEP)"
    )
    parser.add_argument(
        "--downsample",
        type=int,
        default=None,
        help="Scoring downsample factor (env: CROPSCOUT_DOWNSAMPLE)",
    )
    parser.add_argument(
        "--boost",
        action="append",
        type=_parse_boost,
        default=[],
        metavar="X,Y,W,H[,WEIGHT]",
        help="Region to favour (repeatable); weight defaults to 1.0",
    )
    parser.add_argument(
        "--no-prescale",
        dest="prescale",
        action="store_false",
        default=None,
        help="Analyse at full resolution instead of a ~256px working copy",
    )
    parser.add_argument(
        "--no-rule-of-thirds",
        dest="rule_of_thirds",
        action="store_false",
        default=None,
        help="Disable the rule-of-thirds bonus",
    )
    parser.add_argument(
        "--no-resize",
        dest="resize_output",
        action="store_false",
        help="Write crops at source resolution instead of --width x --height",
    )
    parser.add_argument("--quality", type=int, default=None, help="JPEG quality for outputs")
    parser.add_argument(
        "--save-debug", action="store_true", help="Write feature overlays and JSON sidecars"
    )
    parser.add_argument("--debug", action="store_true", help="Print per-image diagnostics")
    return parser


def options_from_args(args: argparse.Namespace, base: CropOptions) -> CropOptions:
    """Apply CLI overrides on top of env-backed defaults."""
    overrides = {
        "width": args.width,
        "height": args.height,
        "aspect": args.aspect,
        "crop_width": args.crop_width,
        "crop_height": args.crop_height,
        "min_scale": args.min_scale,
        "max_scale": args.max_scale,
        "scale_step": args.scale_step,
    }
    if args.step is not None:
        overrides["step"] = args.step
    if args.downsample is not None:
        overrides["score_down_sample"] = args.downsample
    if args.prescale is not None:
        overrides["prescale"] = args.prescale
    if args.rule_of_thirds is not None:
        overrides["rule_of_thirds"] = args.rule_of_thirds
    return replace(base, **overrides)


def main(argv: Optional[list[str]] = None):
    parser = build_parser()
    args = parser.parse_args(argv)

    src = Path(args.input)
    search_dir = src if src.is_dir() else src.parent
    options = options_from_args(args, default_options(search_dir))
    try:
        validate_options(options)
    except InvalidConfigurationError as e:
        parser.error(str(e))

    out_size = None
    if args.resize_output and args.aspect <= 0 and args.width > 0 and args.height > 0:
        out_size = (args.width, args.height)

    run_batch(
        input_path=args.input,
        output_folder=args.output,
        options=options,
        boost_areas=args.boost,
        out_size=out_size,
        save_debug=args.save_debug,
        quality=args.quality,
        debug=args.debug,
    )


if __name__ == "__main__":
    main()
