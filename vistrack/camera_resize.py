"""Cropping and resizing of camera images with matching intrinsics."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any

import numpy as np

_DEBAYERED = {
    "bayer_rggb8": "rgb8",
    "bayer_bggr8": "bgr8",
    "bayer_rggb16": "rgb16",
    "bayer_bggr16": "bgr16",
}


@dataclass
class ResizeParameters:
    """Region of interest and target size; a region is used when its size is positive.

    A non-negative new_width and new_height take precedence over scale.
    """

    roi_x: int = 0
    roi_y: int = 0
    roi_width: int = 0
    roi_height: int = 0
    new_width: int = -1
    new_height: int = -1
    scale: float = 1.0


@dataclass
class CameraInfo:
    """Calibration of a pinhole camera: K is 3x3 and P is 3x4, both row-major."""

    width: int = 0
    height: int = 0
    K: list[float] = field(default_factory=lambda: [0.0] * 9)
    P: list[float] = field(default_factory=lambda: [0.0] * 12)
    R: list[float] = field(default_factory=lambda: [0.0] * 9)
    D: list[float] = field(default_factory=list)
    distortion_model: str = ""
    binning_x: int = 0
    binning_y: int = 0
    roi_x_offset: int = 0
    roi_y_offset: int = 0
    header: Any = None


def choose_encoding(encoding: str) -> str:
    """Return the colour encoding a Bayer pattern is converted to; others pass through."""
    return _DEBAYERED.get(encoding, encoding)


def _axis_weights(src_len: int, dst_len: int):
    coords = (np.arange(dst_len, dtype=np.float64) + 0.5) * (src_len / dst_len) - 0.5
    coords = np.clip(coords, 0.0, src_len - 1)
    low = np.floor(coords).astype(np.intp)
    high = np.minimum(low + 1, src_len - 1)
    return low, high, coords - low


def resize_bilinear(image: np.ndarray, width: int, height: int) -> np.ndarray:
    """Resize with bilinear interpolation on pixel centres, keeping the dtype."""
    image = np.asarray(image)
    if width <= 0 or height <= 0:
        raise ValueError("target size must be positive")
    if image.ndim < 2 or image.shape[0] == 0 or image.shape[1] == 0:
        raise ValueError("cannot resize an empty image")
    extra = (1,) * (image.ndim - 2)
    source = image.astype(np.float64)

    y0, y1, fy = _axis_weights(image.shape[0], height)
    fy = fy.reshape((-1, 1) + extra)
    rows = source[y0] * (1.0 - fy) + source[y1] * fy

    x0, x1, fx = _axis_weights(image.shape[1], width)
    fx = fx.reshape((1, -1) + extra)
    result = rows[:, x0] * (1.0 - fx) + rows[:, x1] * fx

    if np.issubdtype(image.dtype, np.integer):
        limits = np.iinfo(image.dtype)
        result = np.clip(np.rint(result), limits.min, limits.max)
    return result.astype(image.dtype)


def _limited_roi(params: ResizeParameters, image_width: int, image_height: int):
    width = min(params.roi_width, image_width - params.roi_x)
    height = min(params.roi_height, image_height - params.roi_y)
    if params.roi_x >= 0 and params.roi_y >= 0 and width > 0 and height > 0:
        return width, height
    return None


def resize_image(image: np.ndarray, params: ResizeParameters) -> np.ndarray:
    """Crop to the region of interest, then resize to the new size or by scale."""
    image = np.asarray(image)
    roi = _limited_roi(params, image.shape[1], image.shape[0])
    if roi is not None:
        width, height = roi
        image = image[params.roi_y : params.roi_y + height, params.roi_x : params.roi_x + width]
    if params.new_width >= 0 and params.new_height >= 0:
        return resize_bilinear(image, params.new_width, params.new_height)
    if params.scale <= 0:
        raise ValueError("scale must be positive")
    width = int(round(image.shape[1] * params.scale))
    height = int(round(image.shape[0] * params.scale))
    return resize_bilinear(image, width, height)


def scale_camera_info(
    info: CameraInfo,
    params: ResizeParameters,
    image_width: int,
    image_height: int,
    new_width: int,
    new_height: int,
) -> CameraInfo:
    """Adapt the intrinsics to a cropped and resized image.

    Binning and region offsets are folded into K and P, so only K and P
    are meaningful afterwards.
    """
    scale_x = 1.0 / info.binning_x if info.binning_x > 0 else 1.0
    scale_y = 1.0 / info.binning_y if info.binning_y > 0 else 1.0
    if params.new_width >= 0 and params.new_height >= 0:
        if (
            params.roi_x >= 0
            and params.roi_y >= 0
            and params.roi_width > 0
            and params.roi_height > 0
        ):
            scale_x *= params.new_width / params.roi_width
            scale_y *= params.new_height / params.roi_height
        else:
            scale_x *= params.new_width / image_width
            scale_y *= params.new_height / image_height
    elif params.scale > 0:
        scale_x *= params.scale
        scale_y *= params.scale

    shift_x = info.roi_x_offset
    shift_y = info.roi_y_offset
    if _limited_roi(params, image_width, image_height) is not None:
        shift_x += params.roi_x
        shift_y += params.roi_y

    k = [0.0] * 9
    k[0] = info.K[0] * scale_x
    k[3] = info.K[3] * scale_x
    k[1] = info.K[1] * scale_y
    k[4] = info.K[4] * scale_y
    k[2] = (info.K[2] - shift_x) * scale_x
    k[5] = (info.K[5] - shift_y) * scale_y
    k[8] = 1.0

    p = [0.0] * 12
    p[0:3] = k[0:3]
    p[4:7] = k[3:6]
    p[8:11] = k[6:9]
    p[3] = info.P[3] * scale_x
    p[7] = info.P[7] * scale_y
    p[11] = info.P[11]

    return CameraInfo(
        width=new_width,
        height=new_height,
        K=k,
        P=p,
        R=list(info.R),
        D=list(info.D),
        distortion_model=info.distortion_model,
        header=copy.copy(info.header),
    )