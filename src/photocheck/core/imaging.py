from __future__ import annotations

from typing import Optional, Tuple

import cv2
import numpy as np
from PIL import Image

# (top, left, bottom, right), bottom/right exclusive
Region = Tuple[int, int, int, int]


def to_rgb_array(img: Image.Image) -> np.ndarray:
    """(H, W, 3) uint8 RGB copy of a PIL image in any mode."""
    if img.mode != "RGB":
        img = img.convert("RGB")
    return np.array(img, dtype=np.uint8)


def luma(rgb: np.ndarray) -> np.ndarray:
    """Rec. 601 luma (0.299R + 0.587G + 0.114B) as float64, for an (..., 3) array."""
    rgb = np.asarray(rgb, dtype=np.float64)
    return 0.299 * rgb[..., 0] + 0.587 * rgb[..., 1] + 0.114 * rgb[..., 2]


def clip_region(region: Region, height: int, width: int) -> Region:
    top, left, bottom, right = region
    return max(0, top), max(0, left), min(height, bottom), min(width, right)


def center_region(height: int, width: int, radius: Optional[int] = None) -> Region:
    """Square of half-size `radius` (default width // 4) around the image centre."""
    cx, cy = width // 2, height // 2
    r = width // 4 if radius is None else radius
    return clip_region((cy - r, cx - r, cy + r, cx + r), height, width)


def sample_pixels(rgb: np.ndarray, step: int, region: Optional[Region] = None) -> np.ndarray:
    """
    Return the RGB triples found every `step` pixels (both axes) as an (N, 3) array.

    `region` restricts sampling to (top, left, bottom, right); it is clipped to the
    image, so an out-of-bounds region yields an empty (0, 3) array.
    """
    if step < 1:
        raise ValueError("step must be >= 1")
    h, w = rgb.shape[:2]
    top, left, bottom, right = clip_region(region or (0, 0, h, w), h, w)
    if top >= bottom or left >= right:
        return np.zeros((0, 3), dtype=np.uint8)
    return rgb[top:bottom:step, left:right:step, :3].reshape(-1, 3)


def brightness_stats(values: np.ndarray) -> Tuple[float, float]:
    """(mean, population variance); (0.0, 0.0) for an empty sample."""
    values = np.asarray(values, dtype=np.float64)
    if values.size == 0:
        return 0.0, 0.0
    return float(values.mean()), float(values.var())


# ---------- skin-tone rules ----------

def _channels(rgb: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    arr = np.asarray(rgb, dtype=np.float64)
    return arr[..., 0], arr[..., 1], arr[..., 2]


def is_skin_rgb(rgb: np.ndarray) -> np.ndarray:
    r, g, b = _channels(rgb)
    return (r > 95) & (g > 40) & (b > 20) & (r > g) & (r > b) & (np.abs(r - g) > 15)


def is_skin_ycbcr(rgb: np.ndarray) -> np.ndarray:
    r, g, b = _channels(rgb)
    cb = 128 - 0.169 * r - 0.331 * g + 0.5 * b
    cr = 128 + 0.5 * r - 0.419 * g - 0.081 * b
    return (cb >= 77) & (cb <= 127) & (cr >= 133) & (cr <= 173)


def is_skin_hsv(rgb: np.ndarray) -> np.ndarray:
    r, g, b = _channels(rgb)
    mx = np.maximum(np.maximum(r, g), b)
    mn = np.minimum(np.minimum(r, g), b)
    delta = mx - mn

    with np.errstate(divide="ignore", invalid="ignore"):
        safe = np.where(delta == 0, 1.0, delta)
        hue = np.where(
            mx == r,
            60.0 * np.mod((g - b) / safe, 6.0),
            np.where(mx == g, 60.0 * ((b - r) / safe + 2.0), 60.0 * ((r - g) / safe + 4.0)),
        )
        hue = np.where(delta == 0, 0.0, hue)
        sat = np.where(mx == 0, 0.0, delta / np.where(mx == 0, 1.0, mx))
    val = mx / 255.0
    return (hue >= 0) & (hue <= 50) & (sat >= 0.15) & (sat <= 0.68) & (val >= 0.35)


def skin_mask(rgb: np.ndarray) -> np.ndarray:
    """A pixel is skin if ANY of the RGB, YCbCr or HSV rules fires."""
    return is_skin_rgb(rgb) | is_skin_ycbcr(rgb) | is_skin_hsv(rgb)


def clean_mask(mask: np.ndarray, min_neighbors: int = 5) -> np.ndarray:
    """3x3 majority filter; border cells are cleared."""
    mask = np.asarray(mask, dtype=bool)
    h, w = mask.shape
    out = np.zeros_like(mask)
    if h < 3 or w < 3:
        return out
    m = mask.astype(np.uint8)
    counts = np.zeros((h - 2, w - 2), dtype=np.uint8)
    for dy in range(3):
        for dx in range(3):
            counts += m[dy : dy + h - 2, dx : dx + w - 2]
    out[1:-1, 1:-1] = counts >= min_neighbors
    return out


def equalize_histogram(gray: np.ndarray) -> np.ndarray:
    """
    Histogram-equalize a 0..255 gray array with OpenCV.

    When more than one level is present the darkest maps to 0 and the brightest
    to 255. Returns uint8 of the same shape; an empty array is returned unchanged.
    """
    levels = np.clip(np.rint(np.asarray(gray, dtype=np.float64)), 0, 255).astype(np.uint8)
    if levels.size == 0:
        return levels
    return cv2.equalizeHist(np.ascontiguousarray(levels))
