from __future__ import annotations

import json
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple


class ValidationMode(str, Enum):
    STANDARD = "standard"
    LENIENT = "lenient"  # babies/young children


@dataclass(frozen=True)
class CheckWeights:
    """
    Points each check contributes to the compliance score.

    The score is normalized over the checks that actually ran, so the weights
    only need to be non-negative; the defaults sum to 100.
    """
    dimensions: float = 15.0
    file_size: float = 10.0
    format: float = 10.0
    face: float = 25.0
    background: float = 15.0
    lighting: float = 10.0
    shadows: float = 5.0
    sharpness: float = 5.0
    noise: float = 5.0

    def as_dict(self) -> Dict[str, float]:
        return {f.name: float(getattr(self, f.name)) for f in fields(self)}

    def total(self) -> float:
        return sum(self.as_dict().values())


@dataclass(frozen=True)
class ComplianceThresholds:
    """
    Every threshold used by the compliance engine.

    Photo requirements:
        required_width / required_height: exact pixel size (600x600).
        min_file_size_kb / max_file_size_kb: inclusive size bounds in KB (1 KB = 1024 bytes).
        allowed_extensions: accepted file extensions, compared case-insensitively.

    Face:
        min_face_ratio / max_face_ratio: face box area / image area.
        min_face_confidence: below this a face counts as not detected.

    Lighting values are luma on a 0..255 scale; shadow values are Sobel magnitudes.
    """
    # Photo requirements
    required_width: int = 600
    required_height: int = 600
    min_file_size_kb: float = 10.0
    max_file_size_kb: float = 240.0
    allowed_extensions: Tuple[str, ...] = ("jpg", "jpeg")
    fail_fast: bool = False

    # Face
    min_face_ratio: float = 0.50
    max_face_ratio: float = 0.70
    min_face_confidence: float = 0.5
    low_face_confidence: float = 0.7
    max_center_offset: float = 0.15
    max_head_roll: float = 10.0
    min_eye_open: float = 0.5
    max_smiling: float = 0.3
    check_expression: bool = True

    # Heuristic face estimator
    skin_sample_step: int = 4
    candidate_min_aspect: float = 0.6
    candidate_max_aspect: float = 1.4
    candidate_min_area: float = 0.05
    candidate_max_area: float = 0.8
    candidate_max_center_distance: float = 0.3
    optimal_face_ratio: float = 0.6

    # Edge-outline fallback (used when no skin region qualifies)
    canny_low: int = 50
    canny_high: int = 150
    edge_min_axis_ratio: float = 0.7
    edge_min_area: float = 0.1
    edge_max_area: float = 0.7
    edge_max_center_offset: float = 0.25
    edge_confidence: float = 0.65

    # Background
    background_band: int = 50
    background_step: int = 10
    min_background_brightness: float = 180.0
    max_background_variance: float = 1000.0

    # Lighting
    lighting_step: int = 5
    min_brightness: float = 80.0
    max_brightness: float = 220.0
    max_lighting_variance: float = 1500.0
    max_side_difference: float = 30.0

    # Shadows
    max_mean_gradient: float = 100.0
    harsh_gradient: float = 200.0
    max_harsh_ratio: float = 0.1

    # Sharpness / noise
    check_image_quality: bool = True
    sharpness_step: int = 5
    min_sharpness: float = 100.0
    noise_patches: int = 20
    noise_patch_size: int = 10
    noise_seed: int = 0
    max_noise: float = 10.0

    weights: CheckWeights = field(default_factory=CheckWeights)

    def __post_init__(self) -> None:
        if self.required_width <= 0 or self.required_height <= 0:
            raise ValueError("required_width/required_height must be > 0")
        if not (0 <= self.min_file_size_kb <= self.max_file_size_kb):
            raise ValueError("file size bounds must satisfy 0 <= min <= max")
        if not (0.0 <= self.min_face_ratio <= self.max_face_ratio <= 1.0):
            raise ValueError("face ratio bounds must satisfy 0 <= min <= max <= 1")
        for name in ("skin_sample_step", "background_step", "lighting_step", "sharpness_step", "noise_patch_size"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be >= 1")
        if any(w < 0 for w in self.weights.as_dict().values()):
            raise ValueError("weights must be non-negative")

    @staticmethod
    def standard() -> "ComplianceThresholds":
        return ComplianceThresholds()

    @staticmethod
    def lenient() -> "ComplianceThresholds":
        return ComplianceThresholds(
            min_face_ratio=0.40,
            max_face_ratio=0.80,
            min_face_confidence=0.4,
            check_expression=False,
        )

    @staticmethod
    def for_mode(mode: "ValidationMode | str") -> "ComplianceThresholds":
        mode = ValidationMode(mode)
        if mode is ValidationMode.LENIENT:
            return ComplianceThresholds.lenient()
        return ComplianceThresholds.standard()

    def with_mode(self, mode: "ValidationMode | str") -> "ComplianceThresholds":
        """Apply the face rules of `mode`, keeping every other value."""
        base = ComplianceThresholds.for_mode(mode)
        return replace(
            self,
            min_face_ratio=base.min_face_ratio,
            max_face_ratio=base.max_face_ratio,
            min_face_confidence=base.min_face_confidence,
            check_expression=base.check_expression,
        )

    @staticmethod
    def from_dict(data: Mapping[str, Any], base: Optional["ComplianceThresholds"] = None) -> "ComplianceThresholds":
        """
        Override `base` (default: standard) with values from `data`.

        A nested "weights" mapping overrides individual weights. Unknown keys and
        values of the wrong type raise ValueError; a single string is accepted for
        allowed_extensions.
        """
        base = base or ComplianceThresholds.standard()
        known = {f.name for f in fields(ComplianceThresholds)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown threshold keys: {', '.join(unknown)}")

        values: Dict[str, Any] = {}
        for key, value in data.items():
            if key == "weights":
                values[key] = _weights_from(value, base.weights)
            elif key == "allowed_extensions":
                values[key] = _extensions_from(value)
            else:
                values[key] = _coerce(key, value, getattr(base, key))
        return replace(base, **values)

    @staticmethod
    def from_json_file(path: "str | Path", base: Optional["ComplianceThresholds"] = None) -> "ComplianceThresholds":
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError(f"{path}: expected a JSON object")
        return ComplianceThresholds.from_dict(data, base=base)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _coerce(key: str, value: Any, default: Any) -> Any:
    """Check `value` against the type of the default it replaces."""
    if isinstance(default, bool):
        if not isinstance(value, bool):
            raise ValueError(f"{key}: expected true/false, got {value!r}")
        return value
    if isinstance(default, int):
        if not _is_number(value) or not float(value).is_integer():
            raise ValueError(f"{key}: expected an integer, got {value!r}")
        return int(value)
    if isinstance(default, float):
        if not _is_number(value):
            raise ValueError(f"{key}: expected a number, got {value!r}")
        return float(value)
    raise ValueError(f"{key}: cannot be set from configuration")


def _weights_from(value: Any, base: CheckWeights) -> CheckWeights:
    if not isinstance(value, Mapping):
        raise ValueError(f"weights: expected an object, got {value!r}")
    known = {f.name for f in fields(CheckWeights)}
    unknown = sorted(set(value) - known)
    if unknown:
        raise ValueError(f"Unknown weight keys: {', '.join(unknown)}")
    return replace(base, **{k: _coerce(f"weights.{k}", v, 0.0) for k, v in value.items()})


def _extensions_from(value: Any) -> Tuple[str, ...]:
    # a single string is one extension, not a sequence of characters
    items = [value] if isinstance(value, str) else value
    if not isinstance(items, (list, tuple)) or not all(isinstance(e, str) for e in items):
        raise ValueError(f"allowed_extensions: expected a string or a list of strings, got {value!r}")
    return tuple(e.strip().lower().lstrip(".") for e in items)


@dataclass(frozen=True)
class FaceBox:
    """
    Axis-aligned face rectangle in pixel coordinates, as reported by a face detector.

    Probabilities (eyes open, smiling) and roll are optional; detectors that cannot
    estimate them leave them as None and the related checks are skipped.
    """
    left: float
    top: float
    width: float
    height: float
    confidence: float = 1.0
    landmarks: Dict[str, Tuple[float, float]] = field(default_factory=dict)
    left_eye_open: Optional[float] = None
    right_eye_open: Optional[float] = None
    smiling: Optional[float] = None
    roll: Optional[float] = None

    @property
    def right(self) -> float:
        return self.left + self.width

    @property
    def bottom(self) -> float:
        return self.top + self.height

    @property
    def center(self) -> Tuple[float, float]:
        return self.left + self.width / 2.0, self.top + self.height / 2.0

    def area_ratio(self, image_width: int, image_height: int) -> float:
        area = float(image_width) * float(image_height)
        return (self.width * self.height) / area if area > 0 else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "left": self.left,
            "top": self.top,
            "width": self.width,
            "height": self.height,
            "confidence": self.confidence,
            "landmarks": {k: [float(v[0]), float(v[1])] for k, v in self.landmarks.items()},
            "left_eye_open": self.left_eye_open,
            "right_eye_open": self.right_eye_open,
            "smiling": self.smiling,
            "roll": self.roll,
        }


@dataclass(frozen=True)
class FaceRegion:
    """
    Face estimate produced by the heuristic estimator.

    `source` is "skin" (skin-region candidate), "edges" (ellipse fitted to the
    edge map) or "fallback" (centred box, nothing found).
    """
    box: FaceBox
    area_ratio: float
    score: float
    confidence: float
    symmetry: float = 0.0
    has_facial_features: bool = False
    is_fallback: bool = False
    source: str = "skin"
