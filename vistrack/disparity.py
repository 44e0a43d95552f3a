"""Conversion of disparity images into organised point clouds."""

from __future__ import annotations

import warnings
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from vistrack.tracker import to_grayscale

_INVALID_POINT = (0.0, 0.0, 120.0, -1.0)
_GRAY_WEIGHTS = np.array([0.114, 0.587, 0.299])


@dataclass
class DisparityImage:
    """A float32 disparity image with the stereo geometry it was computed for."""

    image: np.ndarray
    f: float
    T: float
    min_disparity: float = 0.0
    max_disparity: float = 0.0


def build_remap_table(
    remap_in: Sequence[int], remap_out: Sequence[int], invalid_value: int
) -> np.ndarray:
    """Build a 256-entry intensity lookup table.

    Every level not listed in remap_in maps to invalid_value.
    """
    if len(remap_in) != len(remap_out):
        raise ValueError("Remap lookup table has invalid input->output size!")
    if invalid_value < 0:
        raise ValueError(
            "Value for invalid fields can not be negative when remap mode is enabled!"
        )
    table = np.full(256, min(invalid_value, 255), dtype=np.uint8)
    for level, value in zip(remap_in, remap_out):
        if not 0 <= level <= 255 or not 0 <= value <= 255:
            raise ValueError(f"Remap entry {level}->{value} is outside 0..255")
        table[level] = value
    return table


def _to_gray8(image: np.ndarray) -> np.ndarray:
    image = np.asarray(image)
    if image.ndim == 3 and image.shape[2] > 1:
        if image.dtype == np.uint8 and image.shape[2] == 3:
            return to_grayscale(image)
        gray = image[:, :, :3].astype(np.float64) @ _GRAY_WEIGHTS
    else:
        gray = image[:, :, 0] if image.ndim == 3 else image
        if gray.dtype == np.uint8:
            return gray.copy()
    return np.clip(np.rint(gray), 0, 255).astype(np.uint8)


class DisparityConverter:
    """Turns an intensity image and its disparity into x, y, z, intensity points."""

    def __init__(
        self,
        focal_length: float = 0.0,
        base_width: float = 0.0,
        invalid_value: int = -1,
        mask: np.ndarray | None = None,
        remap_in: Sequence[int] = (),
        remap_out: Sequence[int] = (),
    ) -> None:
        self.focal_length = focal_length
        self.base_width = base_width
        self.invalid_value = invalid_value
        self.mask = None if mask is None else np.asarray(mask)
        self.remap = (
            build_remap_table(remap_in, remap_out, invalid_value) if len(remap_in) else None
        )

    def convert(
        self, image: np.ndarray, disparity: DisparityImage, cx: float, cy: float
    ) -> np.ndarray:
        """Return a float32 array of shape (rows, cols, 4) holding x, y, z, intensity.

        Pixels that are invalid, masked out or outside the disparity range
        become the point (0, 0, 120) with intensity -1.
        """
        gray = _to_gray8(image)
        if self.remap is not None:
            gray = self.remap[gray]

        disp = np.asarray(disparity.image)
        if disp.dtype != np.float32:
            raise ValueError("Disparity image has not float type!")
        if gray.shape != disp.shape:
            raise ValueError("Image and Disparity image have different sizes!")
        if self.mask is not None and self.mask.shape != gray.shape:
            warnings.warn("Image and mask have different sizes. Ignoring mask!")
            self.mask = None

        focal = self.focal_length if self.focal_length > 0 else disparity.f
        base = self.base_width if self.base_width > 0 else disparity.T

        valid = (
            (gray.astype(np.int64) != self.invalid_value)
            & (disp >= disparity.min_disparity)
            & ((disp <= disparity.max_disparity) | (disparity.max_disparity == 0))
        )
        if self.mask is not None:
            valid &= self.mask > 0

        rows, cols = gray.shape
        xs = np.arange(cols, dtype=np.float64)[None, :]
        ys = np.arange(rows, dtype=np.float64)[:, None]
        with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
            scale = (np.float64(base) / disp.astype(np.float64)).astype(np.float32)
            x = (xs - cx) * scale
            y = (ys - cy) * scale
            z = scale * np.float64(focal)

        cloud = np.empty((rows, cols, 4), dtype=np.float32)
        cloud[..., 0] = np.where(valid, x, _INVALID_POINT[0])
        cloud[..., 1] = np.where(valid, y, _INVALID_POINT[1])
        cloud[..., 2] = np.where(valid, z, _INVALID_POINT[2])
        cloud[..., 3] = np.where(valid, gray / 255.0, _INVALID_POINT[3])
        return cloud