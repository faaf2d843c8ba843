from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import List, Optional, Tuple, Union

import numpy as np
from PIL import Image, ImageOps

from photocheck.analysis.regions import estimate_face_region
from photocheck.core.imaging import to_rgb_array
from photocheck.core.models import ComplianceThresholds, ValidationMode
from photocheck.detection.detectors import FaceDetector
from photocheck.validation.checks import (
    check_background,
    check_dimensions,
    check_face,
    check_file_size,
    check_format,
    check_lighting,
    check_noise,
    check_sharpness,
    face_error_result,
    multiple_faces_result,
)
from photocheck.validation.report import CheckResult, Severity, ValidationError, ValidationResult

logger = logging.getLogger(__name__)

# Pillow raises these for bytes it cannot turn into pixels.
_DECODE_ERRORS = (OSError, ValueError, SyntaxError, Image.DecompressionBombError)


def _failure(code: str, message: str, suggestion: str, **details) -> ValidationResult:
    error = ValidationError(
        code=code,
        message=message,
        severity=Severity.CRITICAL,
        suggestion=suggestion,
        details=details or None,
    )
    return ValidationResult(is_valid=False, compliance_score=0.0, errors=[error])


def _resolve_mode(mode: Union[ValidationMode, str]) -> ValidationMode:
    try:
        return ValidationMode(mode)
    except ValueError:
        choices = ", ".join(m.value for m in ValidationMode)
        raise ValueError(f"Unknown validation mode {mode!r} (expected one of: {choices})") from None


def decode_image(image_bytes: bytes) -> Tuple[np.ndarray, Optional[str]]:
    """Decode bytes to an RGB array (EXIF orientation applied) and the container format name."""
    with Image.open(io.BytesIO(image_bytes)) as img:
        container = img.format
        img.load()
        img = ImageOps.exif_transpose(img)
        if img.mode != "RGB":
            img = img.convert("RGB")
        return to_rgb_array(img), container


class ComplianceValidator:
    """
    Scores a photo against the ID-photo requirements in `thresholds`.

    The validator keeps no state between calls. `face_detector` is optional: when
    given it is asked first, and the skin-region estimate is used if it raises or
    finds nothing. More than one face from the detector is always an error.
    """

    def __init__(
        self,
        thresholds: Optional[ComplianceThresholds] = None,
        face_detector: Optional[FaceDetector] = None,
    ):
        self.thresholds = thresholds or ComplianceThresholds()
        self.face_detector = face_detector

    def validate(
        self,
        image_bytes: bytes,
        file_size_bytes: Optional[int] = None,
        file_extension: Optional[str] = None,
        mode: Union[ValidationMode, str, None] = None,
    ) -> ValidationResult:
        """
        Validate encoded image bytes.

        file_size_bytes defaults to len(image_bytes). file_extension may be a bare
        extension ("jpg", ".JPG") or a file name; when omitted only the decoded
        container is checked. `mode` applies the standard or lenient face rules on
        top of the configured thresholds.

        Never raises for bad image data: undecodable input gives a single
        DECODE_ERROR with score 0. An unknown `mode` is a caller error and raises
        ValueError before any image work.
        """
        t = self.thresholds if mode is None else self.thresholds.with_mode(_resolve_mode(mode))

        if not image_bytes:
            return _failure("DECODE_ERROR", "The image is empty.", "Retake the photo or choose another image.")
        try:
            rgb, container = decode_image(image_bytes)
        except _DECODE_ERRORS as e:
            logger.info("Could not decode image: %s", e)
            return _failure(
                "DECODE_ERROR",
                "Error processing image. Please try a different image.",
                "Retake the photo or choose another image.",
                error=str(e),
            )

        size = len(image_bytes) if file_size_bytes is None else int(file_size_bytes)
        try:
            checks, skipped = self._run_checks(rgb, size, file_extension, container, t)
        except Exception as e:
            logger.exception("Validation failed")
            return _failure(
                "PROCESSING_ERROR",
                f"Error processing image: {e}",
                "Please try taking a new photo.",
            )
        return self._aggregate(checks, skipped, t)

    def validate_file(self, path: Union[str, Path], mode: Union[ValidationMode, str, None] = None) -> ValidationResult:
        p = Path(path)
        try:
            data = p.read_bytes()
        except OSError as e:
            return _failure(
                "FILE_NOT_FOUND",
                f"Could not read {p.name}.",
                "Check that the file exists and is readable.",
                error=str(e),
            )
        return self.validate(data, file_size_bytes=len(data), file_extension=p.suffix, mode=mode)

    # ---------- pipeline ----------

    def _run_checks(
        self,
        rgb: np.ndarray,
        size_bytes: int,
        extension: Optional[str],
        container: Optional[str],
        t: ComplianceThresholds,
    ) -> Tuple[List[CheckResult], List[str]]:
        h, w = rgb.shape[:2]
        checks = [
            check_dimensions(w, h, t),
            check_file_size(size_bytes, t),
            check_format(extension, container, t),
        ]

        pixel_steps = ["face", "background", "lighting", "shadows"]
        if t.check_image_quality:
            pixel_steps += ["sharpness", "noise"]

        if t.fail_fast and any(i.is_critical for c in checks for i in c.issues):
            logger.debug("Metadata checks failed; skipping pixel analysis")
            return checks, pixel_steps

        checks.append(self._check_face(rgb, t))
        checks.append(check_background(rgb, t))
        checks.extend(check_lighting(rgb, t))
        if t.check_image_quality:
            checks.append(check_sharpness(rgb, t))
            checks.append(check_noise(rgb, t))

        for c in checks:
            logger.debug("check %s: passed=%s score=%.2f", c.name, c.passed, c.score)
        return checks, []

    def _check_face(self, rgb: np.ndarray, t: ComplianceThresholds) -> CheckResult:
        h, w = rgb.shape[:2]
        if self.face_detector is not None:
            name = type(self.face_detector).__name__
            try:
                faces = list(self.face_detector.detect(rgb))
            except Exception as e:
                logger.warning("%s failed (%s); falling back to skin-region estimate", name, e)
                faces = []
            if len(faces) > 1:
                return multiple_faces_result(len(faces), name)
            if len(faces) == 1:
                return check_face(faces[0], w, h, t, method=name)
            logger.debug("%s found no face; falling back to skin-region estimate", name)

        try:
            region = estimate_face_region(rgb, t)
        except Exception as e:
            logger.warning("Skin-region face estimate failed: %s", e)
            return face_error_result(e)
        return check_face(region.box, w, h, t, method="heuristic", region=region)

    @staticmethod
    def _aggregate(checks: List[CheckResult], skipped: List[str], t: ComplianceThresholds) -> ValidationResult:
        weights = t.weights.as_dict()
        earned = sum(weights.get(c.name, 0.0) * c.score for c in checks)
        # Skipped steps count as zero credit; steps disabled by configuration do not count.
        total = sum(weights.get(c.name, 0.0) for c in checks) + sum(weights.get(s, 0.0) for s in skipped)
        score = 100.0 * earned / total if total > 0 else 0.0
        score = round(min(100.0, max(0.0, score)), 2)

        errors = [issue for c in checks for issue in c.issues]
        return ValidationResult(
            is_valid=not any(e.is_critical for e in errors),
            compliance_score=score,
            errors=errors,
            checks={c.name: c.passed for c in checks},
            metrics={c.name: float(c.score) for c in checks},
            analysis={c.name: dict(c.details) for c in checks},
        )


def validate(
    image_bytes: bytes,
    file_size_bytes: Optional[int] = None,
    file_extension: Optional[str] = None,
    mode: Union[ValidationMode, str] = ValidationMode.STANDARD,
    face_detector: Optional[FaceDetector] = None,
) -> ValidationResult:
    """Validate with the thresholds of `mode`."""
    validator = ComplianceValidator(ComplianceThresholds.for_mode(_resolve_mode(mode)), face_detector=face_detector)
    return validator.validate(image_bytes, file_size_bytes=file_size_bytes, file_extension=file_extension)


def format_report_text(result: ValidationResult) -> str:
    lines: List[str] = []
    lines.append("ID Photo Compliance Report")
    lines.append("-" * 26)
    lines.append(f"Overall: {'PASS' if result.is_valid else 'FAIL'} (score {result.compliance_score:.0f}/100)")
    lines.append("")
    for name, passed in result.checks.items():
        mark = "✅" if passed else "❌"
        lines.append(f"{mark} {name}: {result.metrics.get(name, 0.0):.2f}")
    if result.errors:
        lines.append("")
        for e in result.errors:
            lines.append(f"[{e.severity.value}] {e.code}: {e.message}")
            if e.suggestion:
                lines.append(f"    -> {e.suggestion}")
    return "\n".join(lines)
