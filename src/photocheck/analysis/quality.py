from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

import cv2
import numpy as np

from photocheck.core.imaging import brightness_stats, center_region, luma, sample_pixels
from photocheck.core.models import ComplianceThresholds


@dataclass(frozen=True)
class LightingReading:
    mean: float
    variance: float
    left_mean: float
    right_mean: float
    too_dark: bool
    too_bright: bool
    uneven: bool
    score: float

    @property
    def passed(self) -> bool:
        return not (self.too_dark or self.too_bright or self.uneven)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "avg_brightness": self.mean,
            "variance": self.variance,
            "left_brightness": self.left_mean,
            "right_brightness": self.right_mean,
            "too_dark": self.too_dark,
            "too_bright": self.too_bright,
            "uneven": self.uneven,
        }


@dataclass(frozen=True)
class ShadowReading:
    mean_gradient: float
    harsh_ratio: float
    harsh: bool

    @property
    def score(self) -> float:
        return 0.0 if self.harsh else 1.0

    def as_dict(self) -> Dict[str, Any]:
        return {"mean_gradient": self.mean_gradient, "harsh_ratio": self.harsh_ratio, "harsh": self.harsh}


def analyze_lighting(rgb: np.ndarray, thresholds: Optional[ComplianceThresholds] = None) -> LightingReading:
    """
    Brightness and evenness of the centre patch (where the face is expected).

    Uneven means a high luma variance or a left/right imbalance, typically a light
    source at the side. Images too narrow for a centre patch are measured whole;
    an empty image gives a neutral reading.
    """
    t = thresholds or ComplianceThresholds()
    h, w = rgb.shape[:2]
    region = center_region(h, w)
    if not sample_pixels(rgb, t.lighting_step, region).size:
        # centre patch is empty on very narrow images
        region = (0, 0, h, w)
    top, left, bottom, right = region
    mid = (left + right) // 2
    values = luma(sample_pixels(rgb, t.lighting_step, region))
    left_values = luma(sample_pixels(rgb, t.lighting_step, (top, left, bottom, mid)))
    right_values = luma(sample_pixels(rgb, t.lighting_step, (top, mid, bottom, right)))

    if values.size == 0:
        return LightingReading(0.0, 0.0, 0.0, 0.0, False, False, False, 1.0)

    mean, variance = brightness_stats(values)
    left_mean, _ = brightness_stats(left_values)
    right_mean, _ = brightness_stats(right_values)

    too_dark = mean < t.min_brightness
    too_bright = mean > t.max_brightness
    side_gap = abs(left_mean - right_mean) if left_values.size and right_values.size else 0.0
    uneven = variance > t.max_lighting_variance or side_gap > t.max_side_difference

    score = 1.0
    if too_dark or too_bright:
        score -= 0.4
    if uneven:
        score -= 0.3
    return LightingReading(mean, variance, left_mean, right_mean, too_dark, too_bright, uneven, max(0.0, score))


def gradient_magnitude(gray: np.ndarray) -> np.ndarray:
    """Sobel gradient magnitude (3x3 kernels) of a float gray image."""
    gray = np.asarray(gray, dtype=np.float64)
    gx = cv2.Sobel(gray, cv2.CV_64F, 1, 0, ksize=3)
    gy = cv2.Sobel(gray, cv2.CV_64F, 0, 1, ksize=3)
    return np.sqrt(gx * gx + gy * gy)


def detect_shadows(rgb: np.ndarray, thresholds: Optional[ComplianceThresholds] = None) -> ShadowReading:
    """Harsh shadows show up as strong luma transitions inside the central half of the image."""
    t = thresholds or ComplianceThresholds()
    h, w = rgb.shape[:2]
    region = rgb[h // 4 : 3 * h // 4, w // 4 : 3 * w // 4]
    if region.shape[0] < 3 or region.shape[1] < 3:
        return ShadowReading(0.0, 0.0, False)

    mag = gradient_magnitude(luma(region))
    mean_gradient = float(mag.mean())
    harsh_ratio = float((mag > t.harsh_gradient).mean())
    harsh = mean_gradient > t.max_mean_gradient or harsh_ratio > t.max_harsh_ratio
    return ShadowReading(mean_gradient, harsh_ratio, harsh)


def laplacian_sharpness(rgb: np.ndarray, step: int = 5) -> float:
    """
    Mean squared 4-neighbour Laplacian over the centre region, sampled every `step` px.

    Low values mean few edges, i.e. a blurry (or featureless) image.
    """
    h, w = rgb.shape[:2]
    if h < 3 or w < 3:
        return 0.0
    top, left, bottom, right = center_region(h, w)
    ys = np.arange(max(1, top), min(h - 1, bottom), step)
    xs = np.arange(max(1, left), min(w - 1, right), step)
    if ys.size == 0 or xs.size == 0:
        return 0.0

    gray = luma(rgb)
    yy, xx = np.meshgrid(ys, xs, indexing="ij")
    lap = gray[yy - 1, xx] + gray[yy + 1, xx] + gray[yy, xx - 1] + gray[yy, xx + 1] - 4.0 * gray[yy, xx]
    return float(np.mean(lap * lap))


def estimate_noise(rgb: np.ndarray, patches: int = 20, size: int = 10, seed: int = 0) -> float:
    """
    Median luma variance of `patches` square patches placed by a seeded generator.

    The fixed seed keeps the estimate reproducible; the median keeps patches that
    straddle a real edge from dominating.
    """
    h, w = rgb.shape[:2]
    if h == 0 or w == 0 or patches < 1:
        return 0.0
    rng = np.random.default_rng(seed)
    gray = luma(rgb)
    variances = []
    for _ in range(patches):
        x = int(rng.integers(0, max(1, w - size)))
        y = int(rng.integers(0, max(1, h - size)))
        patch = gray[y : y + size, x : x + size]
        if patch.size:
            variances.append(float(patch.var()))
    return float(np.median(variances)) if variances else 0.0
