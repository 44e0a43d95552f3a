"""Drawing of stereo tracklets onto stacked image pairs."""

from __future__ import annotations

from typing import Iterable, Sequence

import numpy as np

from vistrack.tracklet import StereoTracklet

_RNG_COEFF = 4164903690
_MASK32 = 0xFFFFFFFF
_MASK64 = 0xFFFFFFFFFFFFFFFF


def track_color(track_id: int) -> tuple[int, int, int]:
    """Return a BGR colour in [0, 255) that depends only on the track id."""
    state = (track_id & _MASK64) or _MASK32

    def draw() -> int:
        nonlocal state
        state = ((state & _MASK32) * _RNG_COEFF + (state >> 32)) & _MASK64
        return (state & _MASK32) % 255

    blue = draw()
    green = draw()
    red = draw()
    return blue, green, red


def _to_bgr(image: np.ndarray) -> np.ndarray:
    channels = 1 if image.ndim == 2 else (image.shape[2] if image.ndim == 3 else 0)
    if channels == 3:
        return image
    if channels == 1:
        plane = image if image.ndim == 2 else image[:, :, 0]
        return np.repeat(plane[:, :, None], 3, axis=2)
    raise ValueError("unsupported image format. Only grayscale or BGR images supported")


def _draw_circle(
    canvas: np.ndarray, center: tuple[int, int], radius: int, color, thickness: int
) -> None:
    height, width = canvas.shape[:2]
    cx, cy = center
    reach = radius + max(thickness, 0)
    x0, x1 = max(cx - reach, 0), min(cx + reach + 1, width)
    y0, y1 = max(cy - reach, 0), min(cy + reach + 1, height)
    if x0 >= x1 or y0 >= y1:
        return
    ys, xs = np.mgrid[y0:y1, x0:x1]
    distance = np.hypot(xs - cx, ys - cy)
    if thickness < 0:
        hit = distance <= radius
    else:
        hit = np.abs(distance - radius) <= max(thickness, 1) / 2.0
    canvas[y0:y1, x0:x1][hit] = color


def draw_matches(
    tracklets: Iterable[StereoTracklet],
    images: Sequence[tuple[np.ndarray, np.ndarray]],
    size: int = 3,
    thickness: int = 1,
) -> np.ndarray | None:
    """Stack the image pairs row by row and mark each tracklet's observations.

    Row i shows the left and right image of frame i side by side; the i-th
    match of every tracklet long enough is circled in its track colour.
    Returns None when there are no images or the first image is empty.
    A negative thickness draws filled circles.
    """
    if not images:
        return None
    first_left = np.asarray(images[0][0])
    if first_left.size == 0:
        return None
    tracklets = list(tracklets)
    height, width = first_left.shape[:2]
    output = np.zeros((len(images) * height, 2 * width, 3), dtype=np.uint8)

    for row, (left, right) in enumerate(images):
        left = np.asarray(left)
        right = np.asarray(right)
        if left.dtype != np.uint8 or right.dtype != np.uint8:
            raise ValueError("unsupported image format, only byte datatype supported.")
        if left.shape[:2] != (height, width) or right.shape[:2] != (height, width):
            raise ValueError("Image size differs from that of first image.")
        y_offset = row * height
        left_roi = output[y_offset : y_offset + height, :width]
        right_roi = output[y_offset : y_offset + height, width:]
        left_roi[...] = _to_bgr(left)
        right_roi[...] = _to_bgr(right)

        for tracklet in tracklets:
            if len(tracklet) <= row:
                continue
            color = track_color(tracklet.id)
            match = tracklet[row]
            _draw_circle(left_roi, (int(match.p1.u), int(match.p1.v)), size, color, thickness)
            _draw_circle(right_roi, (int(match.p2.u), int(match.p2.v)), size, color, thickness)
    return output