from __future__ import annotations

from typing import Any, Dict, List, Optional

import numpy as np

from photocheck.analysis.quality import (
    LightingReading,
    ShadowReading,
    analyze_lighting,
    detect_shadows,
    estimate_noise,
    laplacian_sharpness,
)
from photocheck.analysis.regions import sample_background
from photocheck.core.imaging import brightness_stats
from photocheck.core.models import ComplianceThresholds, FaceBox, FaceRegion
from photocheck.validation.report import CheckResult, Severity, ValidationError


def check_dimensions(width: int, height: int, t: ComplianceThresholds) -> CheckResult:
    """Exact match only: any difference, however small, fails."""
    ok = width == t.required_width and height == t.required_height
    issues = []
    if not ok:
        issues.append(
            ValidationError(
                code="INVALID_DIMENSIONS",
                message=(
                    f"Photo must be exactly {t.required_width}x{t.required_height} pixels "
                    f"(this photo is {width}x{height})."
                ),
                severity=Severity.CRITICAL,
                suggestion="Crop and resize the photo to the required size.",
                details={"current": f"{width}x{height}", "required": f"{t.required_width}x{t.required_height}"},
            )
        )
    return CheckResult(
        name="dimensions",
        passed=ok,
        score=1.0 if ok else 0.0,
        issues=issues,
        details={
            "width": width,
            "height": height,
            "expected_width": t.required_width,
            "expected_height": t.required_height,
            "aspect_ratio": width / height if height else 0.0,
        },
    )


def check_file_size(size_bytes: int, t: ComplianceThresholds) -> CheckResult:
    """Inclusive [min, max] KB bounds. Too large is critical, too small only a warning."""
    size_kb = size_bytes / 1024.0
    issues = []
    score = 1.0
    if size_kb > t.max_file_size_kb:
        score = 0.0
        issues.append(
            ValidationError(
                code="FILE_TOO_LARGE",
                message=f"Photo file size must be at most {t.max_file_size_kb:.0f}KB (this file is {size_kb:.0f}KB).",
                severity=Severity.CRITICAL,
                suggestion="Save with a slightly lower JPEG quality.",
                details={"size_kb": round(size_kb, 2), "max_kb": t.max_file_size_kb},
            )
        )
    elif size_kb < t.min_file_size_kb:
        score = 0.5
        issues.append(
            ValidationError(
                code="FILE_TOO_SMALL",
                message=f"Photo file size is only {size_kb:.0f}KB; at least {t.min_file_size_kb:.0f}KB is expected.",
                severity=Severity.WARNING,
                suggestion="The photo may be over-compressed. Save with a higher JPEG quality.",
                details={"size_kb": round(size_kb, 2), "min_kb": t.min_file_size_kb},
            )
        )
    return CheckResult(
        name="file_size",
        passed=not issues,
        score=score,
        issues=issues,
        details={
            "size_bytes": size_bytes,
            "size_kb": size_kb,
            "min_kb": t.min_file_size_kb,
            "max_kb": t.max_file_size_kb,
        },
    )


def normalize_extension(extension: Optional[str]) -> str:
    if not extension:
        return ""
    ext = extension.strip().lower()
    if "." in ext:
        ext = ext.rsplit(".", 1)[-1]
    return ext


def check_format(extension: Optional[str], container: Optional[str], t: ComplianceThresholds) -> CheckResult:
    """
    Extension (case-insensitive, a bare extension or a file name) and, when known,
    the decoded container must both be JPEG.
    """
    ext = normalize_extension(extension)
    ext_ok = ext in t.allowed_extensions if ext else True
    container_ok = container is None or container.upper() in ("JPEG", "MPO")
    ok = ext_ok and container_ok and bool(ext or container)

    issues = []
    if not ok:
        issues.append(
            ValidationError(
                code="INVALID_FORMAT",
                message="Photo must be in JPEG format (.jpg or .jpeg).",
                severity=Severity.CRITICAL,
                suggestion="Save the photo as JPEG.",
                details={"extension": ext or None, "container": container},
            )
        )
    return CheckResult(
        name="format",
        passed=ok,
        score=1.0 if ok else 0.0,
        issues=issues,
        details={"extension": ext or None, "container": container},
    )


# ---------- face ----------

def _face_issue(code: str, message: str, severity: Severity, suggestion: str, **details: Any) -> ValidationError:
    return ValidationError(code=code, message=message, severity=severity, suggestion=suggestion, details=details or None)


def no_face_result(method: str, details: Optional[Dict[str, Any]] = None) -> CheckResult:
    issue = _face_issue(
        "NO_FACE_DETECTED",
        "No face detected in the photo. Make sure your face is clearly visible and centred.",
        Severity.CRITICAL,
        "Face the camera in good, even light.",
    )
    return CheckResult(
        name="face", passed=False, score=0.0, issues=[issue], details={"face_count": 0, "method": method, **(details or {})}
    )


def multiple_faces_result(count: int, method: str) -> CheckResult:
    issue = _face_issue(
        "MULTIPLE_FACES",
        "Multiple faces detected. Only one person may be in the photo.",
        Severity.CRITICAL,
        "Make sure only you are in the frame.",
        face_count=count,
    )
    return CheckResult(name="face", passed=False, score=0.0, issues=[issue], details={"face_count": count, "method": method})


def face_error_result(error: Exception) -> CheckResult:
    issue = _face_issue(
        "FACE_DETECTION_ERROR",
        "Error detecting a face in the image.",
        Severity.CRITICAL,
        "Retake the photo with better lighting.",
        error=str(error),
    )
    return CheckResult(name="face", passed=False, score=0.0, issues=[issue], details={"method": "error", "error": str(error)})


def check_face(
    face: FaceBox,
    width: int,
    height: int,
    t: ComplianceThresholds,
    method: str,
    region: Optional[FaceRegion] = None,
) -> CheckResult:
    """Size, position, pose and expression rules for the one face in the photo."""
    ratio = region.area_ratio if region is not None else face.area_ratio(width, height)
    details: Dict[str, Any] = {
        "face_count": 1,
        "method": method,
        "face_ratio": ratio,
        "confidence": face.confidence,
        "bounding_box": {"left": face.left, "top": face.top, "width": face.width, "height": face.height},
    }
    if region is not None:
        details.update(
            {"source": region.source, "symmetry": region.symmetry, "has_facial_features": region.has_facial_features}
        )

    if face.confidence < t.min_face_confidence:
        return no_face_result(method, {"confidence": face.confidence, "fallback_box": region is not None and region.is_fallback})

    issues: List[ValidationError] = []
    pct = f"{ratio * 100:.0f}%"
    if ratio < t.min_face_ratio:
        issues.append(
            _face_issue(
                "FACE_TOO_SMALL",
                "Face is too small in the photo. Move closer to the camera.",
                Severity.CRITICAL,
                f"Face should fill {t.min_face_ratio * 100:.0f}-{t.max_face_ratio * 100:.0f}% of the photo.",
                face_ratio=pct,
            )
        )
    elif ratio > t.max_face_ratio:
        issues.append(
            _face_issue(
                "FACE_TOO_LARGE",
                "Face is too large in the photo. Move back from the camera.",
                Severity.CRITICAL,
                "Make sure your whole head and the top of your shoulders are visible.",
                face_ratio=pct,
            )
        )

    cx, cy = face.center
    x_offset = abs(cx - width / 2.0) / width if width else 0.0
    y_offset = abs(cy - height / 2.0) / height if height else 0.0
    details["center_offset"] = {"x": x_offset, "y": y_offset}
    if x_offset > t.max_center_offset or y_offset > t.max_center_offset:
        issues.append(
            _face_issue(
                "FACE_NOT_CENTERED",
                "Face is not well centred in the photo.",
                Severity.WARNING,
                "Keep your face in the middle of the frame.",
            )
        )

    if face.roll is not None:
        details["roll"] = face.roll
        if abs(face.roll) > t.max_head_roll:
            issues.append(
                _face_issue(
                    "HEAD_TILTED",
                    "Head appears tilted. Keep your head straight.",
                    Severity.WARNING,
                    "Look straight at the camera with your head level.",
                )
            )

    if t.check_expression:
        if face.left_eye_open is not None and face.right_eye_open is not None:
            details["eyes_open"] = {"left": face.left_eye_open, "right": face.right_eye_open}
            if face.left_eye_open < t.min_eye_open or face.right_eye_open < t.min_eye_open:
                issues.append(
                    _face_issue(
                        "EYES_CLOSED",
                        "Both eyes must be open and visible.",
                        Severity.WARNING,
                        "Keep your eyes open and look at the camera.",
                    )
                )
        if face.smiling is not None:
            details["smiling"] = face.smiling
            if face.smiling > t.max_smiling:
                issues.append(
                    _face_issue(
                        "NOT_NEUTRAL_EXPRESSION",
                        "Keep a neutral expression (no smiling).",
                        Severity.WARNING,
                        "Relax your face and keep your mouth closed.",
                    )
                )

    if region is not None and face.confidence < t.low_face_confidence:
        issues.append(
            _face_issue(
                "LOW_FACE_CONFIDENCE",
                "Face detection confidence is low.",
                Severity.INFO,
                "Good lighting and a plain background make the face easier to find.",
                confidence=round(face.confidence, 3),
            )
        )

    if any(i.is_critical for i in issues):
        score = 0.0
    else:
        warnings = sum(1 for i in issues if i.severity is Severity.WARNING)
        infos = sum(1 for i in issues if i.severity is Severity.INFO)
        score = max(0.0, 1.0 - 0.25 * warnings - 0.1 * infos)
    return CheckResult(name="face", passed=not any(i.is_critical for i in issues), score=score, issues=issues, details=details)


# ---------- background ----------

def check_background(rgb: np.ndarray, t: ComplianceThresholds) -> CheckResult:
    values = sample_background(rgb, band=t.background_band, step=t.background_step)
    mean, variance = brightness_stats(values)
    too_complex = variance > t.max_background_variance
    too_dark = mean < t.min_background_brightness

    issues = []
    if too_complex:
        issues.append(
            ValidationError(
                code="COMPLEX_BACKGROUND",
                message="Background is too complex or patterned. Use a plain white or light-coloured background.",
                severity=Severity.CRITICAL,
                suggestion="Stand in front of a plain white wall or backdrop.",
            )
        )
    elif too_dark:
        issues.append(
            ValidationError(
                code="POOR_CONTRAST",
                message="Background is too dark. Use a plain white or light-coloured background.",
                severity=Severity.WARNING,
                suggestion="Use a white or off-white background with light falling on it.",
            )
        )
    score = 1.0 - 0.5 * too_complex - 0.5 * too_dark
    return CheckResult(
        name="background",
        passed=not (too_complex or too_dark),
        score=float(score),
        issues=issues,
        details={
            "avg_brightness": mean,
            "variance": variance,
            "samples": int(values.size),
            "too_complex": bool(too_complex),
            "too_dark": bool(too_dark),
        },
    )


# ---------- lighting / shadows ----------

def lighting_issue(lighting: LightingReading, shadows: ShadowReading) -> Optional[ValidationError]:
    """The single most severe lighting problem: dark, bright, uneven, then shadows."""
    if lighting.too_dark:
        return ValidationError(
            code="IMAGE_TOO_DARK",
            message="Image is too dark. Add light or move to a brighter place.",
            severity=Severity.CRITICAL,
            suggestion="Face a window or another soft light source.",
        )
    if lighting.too_bright:
        return ValidationError(
            code="IMAGE_TOO_BRIGHT",
            message="Image is too bright or overexposed.",
            severity=Severity.CRITICAL,
            suggestion="Avoid direct sunlight and flash.",
        )
    if lighting.uneven:
        return ValidationError(
            code="UNEVEN_LIGHTING",
            message="Lighting on the face is uneven; the light source is probably at your side.",
            severity=Severity.WARNING,
            suggestion="Face the light source directly for even lighting.",
        )
    if shadows.harsh:
        return ValidationError(
            code="HARSH_SHADOWS",
            message="Harsh shadows detected on the face. Use softer, more even lighting.",
            severity=Severity.WARNING,
            suggestion="Use diffused light, such as a window with indirect light.",
        )
    return None


def check_lighting(rgb: np.ndarray, t: ComplianceThresholds) -> "tuple[CheckResult, CheckResult]":
    """Lighting and shadow checks; at most one issue is reported across the pair."""
    lighting = analyze_lighting(rgb, t)
    shadows = detect_shadows(rgb, t)
    issue = lighting_issue(lighting, shadows)
    lighting_issues = [issue] if issue is not None and issue.code != "HARSH_SHADOWS" else []
    shadow_issues = [issue] if issue is not None and issue.code == "HARSH_SHADOWS" else []
    return (
        CheckResult(
            name="lighting",
            passed=lighting.passed,
            score=lighting.score,
            issues=lighting_issues,
            details=lighting.as_dict(),
        ),
        CheckResult(
            name="shadows",
            passed=not shadows.harsh,
            score=shadows.score,
            issues=shadow_issues,
            details=shadows.as_dict(),
        ),
    )


# ---------- sharpness / noise ----------

def check_sharpness(rgb: np.ndarray, t: ComplianceThresholds) -> CheckResult:
    value = laplacian_sharpness(rgb, step=t.sharpness_step)
    ok = value >= t.min_sharpness
    issues = []
    if not ok:
        issues.append(
            ValidationError(
                code="LOW_SHARPNESS",
                message="Image appears blurry.",
                severity=Severity.WARNING,
                suggestion="Hold the camera steady and make sure the face is in focus.",
                details={"sharpness": round(value, 2)},
            )
        )
    score = 1.0 if ok else (min(1.0, value / t.min_sharpness) if t.min_sharpness > 0 else 0.0)
    return CheckResult(name="sharpness", passed=ok, score=score, issues=issues, details={"sharpness": value})


def check_noise(rgb: np.ndarray, t: ComplianceThresholds) -> CheckResult:
    value = estimate_noise(rgb, patches=t.noise_patches, size=t.noise_patch_size, seed=t.noise_seed)
    ok = value <= t.max_noise
    issues = []
    if not ok:
        issues.append(
            ValidationError(
                code="HIGH_NOISE",
                message="Image is noisy or grainy.",
                severity=Severity.WARNING,
                suggestion="Take the photo in brighter light so the camera does not boost sensitivity.",
                details={"noise": round(value, 2)},
            )
        )
    score = 1.0 if ok else max(0.0, 1.0 - (value - t.max_noise) / max(t.max_noise, 1e-9))
    return CheckResult(name="noise", passed=ok, score=score, issues=issues, details={"noise": value})
