"""Frame processing for feature tracking: scaling, blurring, masking and matching."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Sequence

import numpy as np
from PIL import Image, ImageDraw

from vistrack.camera_resize import resize_bilinear
from vistrack.matches import MatchesMessage, tracklets_to_matches
from vistrack.tracker import Matcher, Tracker, TrackerParameters
from vistrack.tracklet import Tracklet

_TRACKER_FIELDS = (
    "nms_n",
    "nms_tau",
    "match_binsize",
    "match_radius",
    "match_disp_tolerance",
    "outlier_disp_tolerance",
    "outlier_flow_tolerance",
    "half_resolution",
    "multi_stage",
    "max_tracklength",
    "method",
)


@dataclass
class ContourRoiParameters:
    """Settings of tracking restricted to a contour region of interest."""

    nms_n: int = 3
    nms_tau: int = 50
    match_binsize: int = 50
    match_radius: int = 200
    match_disp_tolerance: int = 2
    outlier_disp_tolerance: int = 5
    outlier_flow_tolerance: int = 5
    multi_stage: int = 1
    half_resolution: int = 1
    max_tracklength: int = 3
    method: int = 0
    scale_factor: float = 1.0
    blur_size: int = 3
    blur_sigma: float = 0.8


def _gaussian_kernel(size: int, sigma: float) -> np.ndarray:
    if sigma <= 0:
        sigma = 0.3 * ((size - 1) * 0.5 - 1) + 0.8
    offsets = np.arange(size, dtype=np.float64) - (size - 1) / 2.0
    kernel = np.exp(-(offsets**2) / (2.0 * sigma * sigma))
    return kernel / kernel.sum()


def _convolve_axis(data: np.ndarray, kernel: np.ndarray, axis: int) -> np.ndarray:
    radius = len(kernel) // 2
    if radius == 0:
        return data
    length = data.shape[axis]
    padding = [(0, 0)] * data.ndim
    padding[axis] = (radius, radius)
    padded = np.pad(data, padding, mode="reflect") if length > 1 else np.pad(data, padding, mode="edge")
    result = np.zeros_like(data)
    for offset, weight in enumerate(kernel):
        result += weight * np.take(padded, np.arange(offset, offset + length), axis=axis)
    return result


def gaussian_blur(image: np.ndarray, size: int, sigma: float) -> np.ndarray:
    """Blur with a square Gaussian kernel, mirroring the border without repeating it.

    A size of 0 or less is derived from sigma; a sigma of 0 or less from size.
    """
    image = np.asarray(image)
    if size <= 0:
        if sigma <= 0:
            raise ValueError("either blur size or sigma must be positive")
        factor = 3 if image.dtype == np.uint8 else 4
        size = int(round(sigma * factor * 2 + 1)) | 1
    if size % 2 == 0:
        raise ValueError("blur size must be odd")
    if image.ndim < 2 or image.size == 0:
        raise ValueError("cannot blur an empty image")
    kernel = _gaussian_kernel(size, sigma)
    data = image.astype(np.float64)
    data = _convolve_axis(data, kernel, 0)
    data = _convolve_axis(data, kernel, 1)
    if np.issubdtype(image.dtype, np.integer):
        limits = np.iinfo(image.dtype)
        data = np.clip(np.rint(data), limits.min, limits.max)
    return data.astype(image.dtype)


def contours_to_mask(
    contours: Sequence[Sequence[tuple[float, float]]],
    shape: tuple[int, int],
    scale_factor: float = 1.0,
) -> np.ndarray:
    """Return an 8-bit mask with the first contour, scaled, filled with 255."""
    rows, cols = shape[0], shape[1]
    canvas = Image.new("L", (cols, rows), 0)
    if len(contours) > 0:
        points = [(int(scale_factor * x), int(scale_factor * y)) for x, y in contours[0]]
        draw = ImageDraw.Draw(canvas)
        if len(points) == 1:
            draw.point(points, fill=255)
        elif len(points) == 2:
            draw.line(points, fill=255)
        elif len(points) > 2:
            draw.polygon(points, fill=255, outline=255)
    return np.array(canvas, dtype=np.uint8)


def tracker_parameters(params: Any) -> TrackerParameters:
    """Extract the matcher and tracker settings from a parameter set."""
    return TrackerParameters(**{name: getattr(params, name) for name in _TRACKER_FIELDS})


def tracker_parameters_changed(old: Any, new: Any) -> bool:
    """Tell whether settings that require a fresh tracker differ."""
    return any(getattr(old, name) != getattr(new, name) for name in _TRACKER_FIELDS)


class FeatureTrackingPipeline:
    """Prepares frames, runs the tracker and builds a matches message per frame.

    Without contours every pixel may be matched; with contours only the
    inside of the first contour is, and an empty contour list masks all.
    """

    max_timestamps = 1000

    def __init__(
        self,
        matcher_factory: Callable[[], Matcher],
        params: Any = None,
        scale_factor: float | None = None,
        blur_size: int | None = None,
        blur_sigma: float | None = None,
    ) -> None:
        self._matcher_factory = matcher_factory
        self.params = params if params is not None else ContourRoiParameters()
        self.scale_factor = (
            scale_factor if scale_factor is not None else getattr(self.params, "scale_factor", 1.0)
        )
        self.blur_size = blur_size if blur_size is not None else getattr(self.params, "blur_size", 3)
        self.blur_sigma = (
            blur_sigma if blur_sigma is not None else getattr(self.params, "blur_sigma", 0.8)
        )
        self.tracker = self._new_tracker()
        self.tracklets: list[Tracklet] = []
        self.timestamps: deque = deque()

    def _new_tracker(self) -> Tracker:
        return Tracker(self._matcher_factory(), tracker_parameters(self.params))

    def process(
        self,
        image: np.ndarray,
        stamp: Any,
        contours: Iterable[Sequence[tuple[float, float]]] | None = None,
    ) -> MatchesMessage:
        """Track features in a frame taken at `stamp` and return the matches message."""
        image = np.asarray(image)
        if self.scale_factor != 1.0:
            height, width = image.shape[:2]
            image = resize_bilinear(
                image, int(width * self.scale_factor), int(height * self.scale_factor)
            )
        image = gaussian_blur(image, self.blur_size, self.blur_sigma)

        mask = None
        if contours is not None:
            mask = contours_to_mask(list(contours), image.shape[:2], self.scale_factor)

        self.tracker.push_back(image, mask)
        self.tracklets = self.tracker.select_tracklets(0)
        self.timestamps.appendleft(stamp)

        message = tracklets_to_matches(self.tracklets, self.timestamps, self.scale_factor)
        message.stamp = self.timestamps[0]

        if len(self.timestamps) > self.max_timestamps:
            self.timestamps.pop()
        return message

    def reconfigure(self, params: Any) -> None:
        """Apply new settings; the tracker restarts when its own settings change."""
        old = self.params
        self.params = params
        self.scale_factor = getattr(params, "scale_factor", self.scale_factor)
        self.blur_size = getattr(params, "blur_size", self.blur_size)
        self.blur_sigma = getattr(params, "blur_sigma", self.blur_sigma)
        if tracker_parameters_changed(old, params):
            self.tracker = self._new_tracker()