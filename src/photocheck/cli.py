from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Optional

from photocheck.core.models import ComplianceThresholds, ValidationMode
from photocheck.detection.detectors import MediaPipeFaceDetector
from photocheck.prepare import prepare_photo
from photocheck.validation.validator import ComplianceValidator, format_report_text


def _build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="id-photo", description="Check and prepare 600x600 ID photos.")
    p.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    sub = p.add_subparsers(dest="command", required=True)

    v = sub.add_parser("validate", help="Check a photo against the ID-photo requirements")
    v.add_argument("--input", "-i", required=True, help="Path to the photo (JPEG)")
    v.add_argument("--mode", choices=[m.value for m in ValidationMode], default=None,
                   help="Face rules: standard, or lenient for babies (default: standard)")
    v.add_argument("--config", help="JSON file overriding thresholds")
    v.add_argument("--ml", action="store_true", help="Use the MediaPipe face detector before the skin-region estimate")
    v.add_argument("--json", action="store_true", help="Print the result as JSON")

    pr = sub.add_parser("prepare", help="Crop, resize and compress a portrait into a candidate ID photo")
    pr.add_argument("--input", "-i", required=True, help="Path to input image")
    pr.add_argument("--output", "-o", required=True, help="Path to output JPEG")
    pr.add_argument("--size", type=int, default=600, help="Output size in pixels (default: 600)")
    pr.add_argument("--max-kb", type=float, default=240.0, help="Output file size ceiling in KB (default: 240)")
    pr.add_argument("--face-ratio", type=float, default=0.6, help="Face box area / photo area (default: 0.6)")
    pr.add_argument("--no-enhance", action="store_true", help="Skip the brightness/contrast/sharpening step")
    pr.add_argument("--white-bg", action="store_true", help="Replace the background with white (needs rembg)")
    pr.add_argument("--ml", action="store_true", help="Use the MediaPipe face detector to find the face")
    pr.add_argument("--validate", action="store_true", help="Validate the prepared photo and print the report")
    return p


def _load_thresholds(config: Optional[str]) -> ComplianceThresholds:
    if not config:
        return ComplianceThresholds()
    return ComplianceThresholds.from_json_file(config)


def _run_validate(args: argparse.Namespace) -> int:
    detector = MediaPipeFaceDetector() if args.ml else None
    validator = ComplianceValidator(_load_thresholds(args.config), face_detector=detector)
    result = validator.validate_file(args.input, mode=args.mode)
    if args.json:
        print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
    else:
        print(format_report_text(result))
    return 0 if result.is_valid else 1


def _run_prepare(args: argparse.Namespace) -> int:
    detector = MediaPipeFaceDetector() if args.ml else None
    prepared = prepare_photo(
        input_path=args.input,
        output_path=args.output,
        size=args.size,
        max_kb=args.max_kb,
        face_detector=detector,
        face_ratio=args.face_ratio,
        enhance=not args.no_enhance,
        white_background=args.white_bg,
    )
    print(f"Saved: {prepared.path} (quality {prepared.quality}, {prepared.size_bytes / 1024.0:.0f}KB)")
    if not prepared.face_found:
        print("Warning: no face found; the photo was centre-cropped.", file=sys.stderr)
    if args.validate:
        result = ComplianceValidator(face_detector=detector).validate_file(prepared.path)
        print(format_report_text(result))
        return 0 if result.is_valid else 1
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    args = _build_arg_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.command == "validate":
            return _run_validate(args)
        return _run_prepare(args)
    except (ValueError, RuntimeError, OSError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
