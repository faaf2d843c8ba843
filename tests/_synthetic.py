"""Synthetic test images: white background, flat skin-toned ovals."""

import io

import numpy as np
from PIL import Image

SKIN = (224, 172, 140)
WHITE = (255, 255, 255)


def blank(width=600, height=600, color=WHITE):
    arr = np.empty((height, width, 3), dtype=np.uint8)
    arr[:, :] = color
    return arr


def draw_oval(arr, cx, cy, rx, ry, color=SKIN):
    h, w = arr.shape[:2]
    yy, xx = np.mgrid[0:h, 0:w]
    inside = ((xx - cx) / float(rx)) ** 2 + ((yy - cy) / float(ry)) ** 2 <= 1.0
    arr[inside] = color
    return arr


def portrait(width=600, height=600, rx=None, ry=None):
    """Centred oval whose bounding box covers ~60% of the image."""
    rx = rx if rx is not None else int(width * 220 / 600)
    ry = ry if ry is not None else int(height * 245 / 600)
    return draw_oval(blank(width, height), width / 2.0, height / 2.0, rx, ry)


def two_faces(width=600, height=600):
    arr = blank(width, height)
    draw_oval(arr, 200, 300, 75, 90)
    draw_oval(arr, 400, 300, 75, 90)
    return arr


def checkerboard_border(arr, band=60, square=20, dark=(150, 150, 150)):
    h, w = arr.shape[:2]
    yy, xx = np.mgrid[0:h, 0:w]
    border = (yy < band) | (yy >= h - band) | (xx < band) | (xx >= w - band)
    dark_cells = ((yy // square) + (xx // square)) % 2 == 1
    arr[border & dark_cells] = dark
    arr[border & ~dark_cells] = WHITE
    return arr


def encode(arr, fmt="JPEG", **kwargs):
    buf = io.BytesIO()
    if fmt == "JPEG":
        kwargs.setdefault("quality", 95)
    Image.fromarray(arr, "RGB").save(buf, format=fmt, **kwargs)
    return buf.getvalue()
