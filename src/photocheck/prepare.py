"""
prepare.py

Turn an arbitrary portrait into a candidate ID photo:
- Locates the face (optional detector, skin-region estimate as fallback)
- Scales the image so the face box covers the target share of the output
- Crops a centred square around the face, padding with white
- Optionally whitens the background (rembg) and applies a mild enhancement
- Saves a JPEG, lowering quality until the file fits the size ceiling

Always validate the result; preparation does not guarantee compliance.
"""

from __future__ import annotations

import io
import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

import cv2
import numpy as np
from PIL import Image, ImageEnhance, ImageOps

from photocheck.analysis.regions import estimate_face_region
from photocheck.core.imaging import to_rgb_array
from photocheck.core.models import FaceBox
from photocheck.detection.detectors import FaceDetector, largest_face

logger = logging.getLogger(__name__)

_SHARPEN = np.array([[0, -0.25, 0], [-0.25, 2, -0.25], [0, -0.25, 0]], dtype=np.float32)


@dataclass(frozen=True)
class PreparedPhoto:
    path: Path
    quality: int
    size_bytes: int
    face_found: bool


def _load_image_rgb(path: str) -> Image.Image:
    """Load an image, apply EXIF orientation, return RGB PIL Image."""
    try:
        img = Image.open(path)
        img = ImageOps.exif_transpose(img)
    except (OSError, ValueError) as e:
        raise RuntimeError(f"Could not read image {path}: {e}") from e
    if img.mode != "RGB":
        img = img.convert("RGB")
    return img


def _pil_to_bgr_np(img: Image.Image) -> np.ndarray:
    """PIL RGB -> OpenCV BGR numpy array."""
    return cv2.cvtColor(to_rgb_array(img), cv2.COLOR_RGB2BGR)


def _bgr_np_to_pil(img_bgr: np.ndarray) -> Image.Image:
    """OpenCV BGR numpy array -> PIL RGB."""
    return Image.fromarray(cv2.cvtColor(img_bgr, cv2.COLOR_BGR2RGB))


def _scale_bgr(img_bgr: np.ndarray, scale: float) -> np.ndarray:
    """Scale by `scale`: area averaging when shrinking, Lanczos when enlarging."""
    if scale <= 0:
        raise ValueError("Scale must be > 0")
    interpolation = cv2.INTER_AREA if scale < 1.0 else cv2.INTER_LANCZOS4
    return cv2.resize(img_bgr, None, fx=scale, fy=scale, interpolation=interpolation)


def _crop_square_with_padding(
    img_bgr: np.ndarray,
    center_xy: Tuple[float, float],
    size: int,
    pad_color_bgr: Tuple[int, int, int] = (255, 255, 255),
) -> np.ndarray:
    """
    Crop a size x size square centred at center_xy from img_bgr.
    Parts of the square outside the image are filled with pad_color_bgr.
    """
    h, w = img_bgr.shape[:2]
    cx, cy = center_xy
    left = int(round(cx - size / 2.0))
    top = int(round(cy - size / 2.0))

    out = np.full((size, size, 3), pad_color_bgr, dtype=np.uint8)

    src_left, src_top = max(0, left), max(0, top)
    src_right, src_bottom = min(w, left + size), min(h, top + size)
    if src_left >= src_right or src_top >= src_bottom:
        return out

    dst_left, dst_top = src_left - left, src_top - top
    out[dst_top : dst_top + (src_bottom - src_top), dst_left : dst_left + (src_right - src_left)] = img_bgr[
        src_top:src_bottom, src_left:src_right
    ]
    return out


def _white_background_with_rembg(pil_rgb: Image.Image) -> Image.Image:
    """
    Remove the background with rembg and composite onto white.
    If rembg isn't installed or fails, the image is returned unchanged.
    """
    try:
        from rembg import remove  # type: ignore
    except ImportError:
        logger.warning("rembg is not installed; keeping the original background")
        return pil_rgb

    try:
        cut = remove(pil_rgb)
        if isinstance(cut, bytes):
            cut = Image.open(io.BytesIO(cut))
        cut = cut.convert("RGBA")
        white = Image.new("RGBA", cut.size, (255, 255, 255, 255))
        return Image.alpha_composite(white, cut).convert("RGB")
    except Exception as e:
        logger.warning("Background removal failed (%s); keeping the original background", e)
        return pil_rgb


def _enhance(pil_rgb: Image.Image) -> Image.Image:
    """Slight brightness/contrast lift, a touch less saturation, light sharpening."""
    img = ImageEnhance.Brightness(pil_rgb).enhance(1.02)
    img = ImageEnhance.Contrast(img).enhance(1.08)
    img = ImageEnhance.Color(img).enhance(0.98)
    bgr = cv2.filter2D(_pil_to_bgr_np(img), -1, _SHARPEN)
    return _bgr_np_to_pil(bgr)


def _locate_face(rgb: np.ndarray, face_detector: Optional[FaceDetector]) -> Optional[FaceBox]:
    if face_detector is not None:
        try:
            face = largest_face(face_detector.detect(rgb))
            if face is not None:
                return face
        except Exception as e:
            logger.warning("%s failed (%s); using skin-region estimate", type(face_detector).__name__, e)
    region = estimate_face_region(rgb)
    return None if region.is_fallback else region.box


def encode_jpeg_within(pil_rgb: Image.Image, max_kb: float, start_quality: int = 95, min_quality: int = 40) -> Tuple[bytes, int]:
    """
    Encode as JPEG, stepping quality down by 5 until the data fits `max_kb`.

    Returns the smallest attempt (at `min_quality`) if nothing fits.
    """
    quality = start_quality
    while True:
        buf = io.BytesIO()
        pil_rgb.save(buf, format="JPEG", quality=quality, optimize=True)
        data = buf.getvalue()
        if len(data) <= max_kb * 1024 or quality <= min_quality:
            return data, quality
        quality = max(min_quality, quality - 5)


def prepare_photo(
    input_path: str,
    output_path: str,
    size: int = 600,
    max_kb: float = 240.0,
    face_detector: Optional[FaceDetector] = None,
    face_ratio: float = 0.6,
    enhance: bool = True,
    white_background: bool = False,
) -> PreparedPhoto:
    """
    Prepare input_path and save a size x size JPEG at output_path.

    Args:
      face_ratio: target face box area / output area (0.05-0.9)
      max_kb: output size ceiling; JPEG quality is lowered until the file fits
      face_detector: optional detector; the skin-region estimate is used when it finds nothing
    """
    if size < 200:
        raise ValueError("size too small; expected something like 600")
    if not (0.05 <= face_ratio <= 0.9):
        raise ValueError("face_ratio should be between 0.05 and 0.9")
    if max_kb <= 0:
        raise ValueError("max_kb must be > 0")
    if not output_path.lower().endswith((".jpg", ".jpeg")):
        raise ValueError("output must be a .jpg or .jpeg file")

    pil = _load_image_rgb(input_path)
    rgb = to_rgb_array(pil)
    bgr = _pil_to_bgr_np(pil)

    face = _locate_face(rgb, face_detector)
    if face is not None and face.width > 0 and face.height > 0:
        # Scale so the face box covers face_ratio of the output square
        scale = math.sqrt(face_ratio * size * size / (face.width * face.height))
        resized = _scale_bgr(bgr, scale)
        fx, fy = face.center
        out_bgr = _crop_square_with_padding(resized, (fx * scale, fy * scale), size=size)
    else:
        logger.info("No face located in %s; using a centre crop", input_path)
        h, w = bgr.shape[:2]
        side = min(h, w)
        square = _crop_square_with_padding(bgr, (w / 2.0, h / 2.0), size=side)
        out_bgr = cv2.resize(square, (size, size), interpolation=cv2.INTER_LANCZOS4)

    out_pil = _bgr_np_to_pil(out_bgr)
    if white_background:
        out_pil = _white_background_with_rembg(out_pil)
    if enhance:
        out_pil = _enhance(out_pil)

    data, quality = encode_jpeg_within(out_pil, max_kb)
    out = Path(output_path)
    out.write_bytes(data)
    logger.info("Saved %s (%dx%d, quality %d, %.0fKB)", out, size, size, quality, len(data) / 1024.0)
    return PreparedPhoto(path=out, quality=quality, size_bytes=len(data), face_found=face is not None)
