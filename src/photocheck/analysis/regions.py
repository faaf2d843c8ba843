from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

import cv2
import numpy as np

from photocheck.core.imaging import (
    center_region,
    clean_mask,
    equalize_histogram,
    luma,
    sample_pixels,
    skin_mask,
)
from photocheck.core.models import ComplianceThresholds, FaceBox, FaceRegion

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Component:
    """Connected set of mask cells; bounds are inclusive cell indices."""
    cells: int
    min_x: int
    min_y: int
    max_x: int
    max_y: int


def sample_background(rgb: np.ndarray, band: int = 50, step: int = 10) -> np.ndarray:
    """Luma samples taken every `step` px inside a `band`-wide strip along each edge."""
    h, w = rgb.shape[:2]
    bh = max(1, min(band, h // 2 or 1))
    bw = max(1, min(band, w // 2 or 1))
    parts = [
        sample_pixels(rgb, step, (0, 0, bh, w)),
        sample_pixels(rgb, step, (h - bh, 0, h, w)),
        sample_pixels(rgb, step, (0, 0, h, bw)),
        sample_pixels(rgb, step, (0, w - bw, h, w)),
    ]
    return luma(np.concatenate(parts, axis=0))


def sample_center(rgb: np.ndarray, step: int = 5) -> np.ndarray:
    h, w = rgb.shape[:2]
    return luma(sample_pixels(rgb, step, center_region(h, w)))


def find_skin_regions(mask: np.ndarray) -> List[Component]:
    """
    4-connected components of a boolean mask.

    OpenCV labels components in raster order of their first cell, so the list is
    in scan order (top-left to bottom-right).
    """
    mask = np.asarray(mask, dtype=bool)
    if mask.size == 0:
        return []
    num, _, stats, _ = cv2.connectedComponentsWithStats(mask.astype(np.uint8), connectivity=4)
    components: List[Component] = []
    for i in range(1, num):
        x, y = int(stats[i, cv2.CC_STAT_LEFT]), int(stats[i, cv2.CC_STAT_TOP])
        w, h = int(stats[i, cv2.CC_STAT_WIDTH]), int(stats[i, cv2.CC_STAT_HEIGHT])
        area = int(stats[i, cv2.CC_STAT_AREA])
        components.append(Component(cells=area, min_x=x, min_y=y, max_x=x + w - 1, max_y=y + h - 1))
    return components


def symmetry_score(rgb: np.ndarray, box: FaceBox, step: int = 2) -> float:
    """
    Left/right mirror similarity of `box` around its vertical centre line, in 0..1.

    Compares RGB pixels at centre -/+ dx every `step` rows and columns; pairs falling
    outside the image are skipped. Returns 0.0 when nothing could be compared.
    """
    h, w = rgb.shape[:2]
    cx = int(round(box.left + box.width / 2.0))
    top = max(0, int(round(box.top)))
    bottom = min(h, int(round(box.bottom)))
    if top >= bottom:
        return 0.0

    dxs = np.arange(0, int(np.ceil(box.width / 2.0)), step)
    lx, rx = cx - dxs, cx + dxs
    keep = (lx >= 0) & (rx < w)
    lx, rx = lx[keep], rx[keep]
    if lx.size == 0:
        return 0.0

    rows = rgb[top:bottom:step].astype(np.float64)
    diff = np.abs(rows[:, lx, :] - rows[:, rx, :]).mean(axis=-1)
    return float(np.mean(1.0 - diff / 255.0))


def _has_eye_band(crop: np.ndarray) -> bool:
    # equalized luma keeps the comparison independent of overall exposure
    eq = equalize_histogram(luma(crop)).astype(np.float64)
    bh = eq.shape[0]
    eye_band = eq[int(bh * 0.20) : int(bh * 0.45)]
    cheek_band = eq[int(bh * 0.45) : int(bh * 0.70)]
    if eye_band.size == 0 or cheek_band.size == 0:
        return False
    return float(eye_band.mean()) < float(cheek_band.mean()) - 20.0


def _has_mouth_band(crop: np.ndarray) -> bool:
    lower = crop[int(crop.shape[0] * 0.60) :]
    if lower.size == 0:
        return False
    dark = lower.astype(np.float64).mean(axis=-1) < 120.0
    ratio = float(dark.mean())
    return 0.02 < ratio < 0.2


def has_facial_features(rgb: np.ndarray, box: FaceBox) -> bool:
    """
    True when the box shows an eye band or a mouth.

    Eyes: the band at 20-45% of the box height is clearly darker than the cheek
    band below it. Mouth: 2-20% of the pixels in the lowest 40% are dark.
    """
    h, w = rgb.shape[:2]
    top, bottom = max(0, int(box.top)), min(h, int(box.bottom))
    left, right = max(0, int(box.left)), min(w, int(box.right))
    if bottom - top < 10 or right - left < 10:
        return False
    crop = rgb[top:bottom, left:right, :3]
    return _has_eye_band(crop) or _has_mouth_band(crop)


def _component_box(comp: Component, step: int, height: int, width: int) -> FaceBox:
    left = comp.min_x * step
    top = comp.min_y * step
    right = min(width, (comp.max_x + 1) * step)
    bottom = min(height, (comp.max_y + 1) * step)
    return FaceBox(left=float(left), top=float(top), width=float(right - left), height=float(bottom - top))


def _is_face_like(box: FaceBox, height: int, width: int, t: ComplianceThresholds) -> bool:
    if box.width <= 0 or box.height <= 0:
        return False
    aspect = box.width / box.height
    if aspect < t.candidate_min_aspect or aspect > t.candidate_max_aspect:
        return False
    ratio = box.area_ratio(width, height)
    if ratio < t.candidate_min_area or ratio > t.candidate_max_area:
        return False
    bx, by = box.center
    distance = float(np.hypot(bx - width / 2.0, by - height / 2.0))
    return distance <= width * t.candidate_max_center_distance


def _score_region(rgb: np.ndarray, box: FaceBox, t: ComplianceThresholds) -> tuple:
    h, w = rgb.shape[:2]
    ratio = box.area_ratio(w, h)
    size_score = 1.0 - abs(ratio - t.optimal_face_ratio)
    bx, by = box.center
    position_score = 1.0 - (abs(bx - w / 2.0) / w + abs(by - h / 2.0) / h) / 2.0
    symmetry = symmetry_score(rgb, box)
    score = size_score * 0.3 + position_score * 0.3 + symmetry * 0.4
    return score, ratio, symmetry


def find_face_candidates(rgb: np.ndarray, thresholds: Optional[ComplianceThresholds] = None) -> List[FaceRegion]:
    """Every skin blob that passes the face-shape filters, scored, in scan order."""
    t = thresholds or ComplianceThresholds()
    h, w = rgb.shape[:2]
    if h == 0 or w == 0:
        return []

    step = t.skin_sample_step
    mask = clean_mask(skin_mask(rgb[::step, ::step, :3]))
    regions: List[FaceRegion] = []
    for comp in find_skin_regions(mask):
        box = _component_box(comp, step, h, w)
        if not _is_face_like(box, h, w, t):
            continue
        score, ratio, symmetry = _score_region(rgb, box, t)
        features = has_facial_features(rgb, box)
        confidence = min(1.0, max(0.0, 0.85 * score + (0.15 if features else 0.0)))
        regions.append(
            FaceRegion(
                box=FaceBox(box.left, box.top, box.width, box.height, confidence=confidence),
                area_ratio=ratio,
                score=score,
                confidence=confidence,
                symmetry=symmetry,
                has_facial_features=features,
            )
        )
    logger.debug("Skin regions: %d face-like candidate(s)", len(regions))
    return regions


def find_edge_ellipse(rgb: np.ndarray, thresholds: Optional[ComplianceThresholds] = None) -> Optional[FaceRegion]:
    """
    Face-shaped ellipse fitted to the outer contours of the Canny edge map.

    Catches faces whose skin tones the colour rules miss (tinted or washed-out
    photos). An outline is accepted when its axis ratio, size and centre look like
    a head; the largest such outline wins and gets a fixed confidence.
    """
    t = thresholds or ComplianceThresholds()
    h, w = rgb.shape[:2]
    if h < 3 or w < 3:
        return None

    gray = np.clip(np.rint(luma(rgb)), 0, 255).astype(np.uint8)
    edges = cv2.Canny(gray, t.canny_low, t.canny_high)
    contours, _ = cv2.findContours(edges, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_NONE)

    best = None
    best_area = 0.0
    for contour in contours:
        if len(contour) < 5:  # fitEllipse needs 5 points
            continue
        (cx, cy), axes, _ = cv2.fitEllipse(contour)
        minor, major = sorted(axes)
        if major <= 0 or minor / major < t.edge_min_axis_ratio:
            continue
        area = np.pi * (minor / 2.0) * (major / 2.0) / float(w * h)
        if area < t.edge_min_area or area > t.edge_max_area:
            continue
        if abs(cx - w / 2.0) > w * t.edge_max_center_offset or abs(cy - h / 2.0) > h * t.edge_max_center_offset:
            continue
        if area > best_area:
            best, best_area = contour, area

    if best is None:
        return None
    x, y, bw, bh = cv2.boundingRect(best)
    box = FaceBox(float(x), float(y), float(bw), float(bh), confidence=t.edge_confidence)
    logger.debug("Edge ellipse accepted at %s", box)
    return FaceRegion(
        box=box,
        area_ratio=box.area_ratio(w, h),
        score=t.edge_confidence,
        confidence=t.edge_confidence,
        symmetry=symmetry_score(rgb, box),
        has_facial_features=has_facial_features(rgb, box),
        source="edges",
    )


def _fallback_region(rgb: np.ndarray) -> FaceRegion:
    h, w = rgb.shape[:2]
    side = min(h, w) // 3
    top, left = h // 2 - side // 2, w // 2 - side // 2
    pixels = sample_pixels(rgb, 1, (top, left, top + side, left + side))
    skin_fraction = float(skin_mask(pixels).mean()) if len(pixels) else 0.0
    confidence = 0.3 * skin_fraction
    box = FaceBox(float(left), float(top), float(side), float(side), confidence=confidence)
    return FaceRegion(
        box=box,
        area_ratio=box.area_ratio(w, h),
        score=0.0,
        confidence=confidence,
        is_fallback=True,
        source="fallback",
    )


def estimate_face_region(rgb: np.ndarray, thresholds: Optional[ComplianceThresholds] = None) -> FaceRegion:
    """
    Best face-like skin region; failing that a face-shaped edge ellipse; failing
    that a low-confidence centred box.

    Never returns None. Ties keep the first candidate in scan order.
    """
    best: Optional[FaceRegion] = None
    for region in find_face_candidates(rgb, thresholds):
        if best is None or region.score > best.score:
            best = region
    if best is None:
        best = find_edge_ellipse(rgb, thresholds)
    return best if best is not None else _fallback_region(rgb)
