"""Gamma correction, automatic gamma estimation and histogram stretching."""

from __future__ import annotations

import numpy as np

from vistrack.tracker import to_grayscale

_HIST_SIZE = 256
_MAX_GAMMA_STEPS = 50


def _require_8bit(image: np.ndarray) -> np.ndarray:
    image = np.asarray(image)
    if image.dtype != np.uint8:
        raise ValueError("Unsupported image type, only 8-bit images are supported")
    return image


def _histogram(image: np.ndarray) -> np.ndarray:
    plane = image if image.ndim == 2 else image[..., 0]
    return np.bincount(plane.ravel(), minlength=_HIST_SIZE).astype(np.float64)


def correct_gamma(image: np.ndarray, gamma: float) -> np.ndarray:
    """Map every pixel through the lookup table (i/255)**gamma * 255."""
    image = _require_8bit(image)
    levels = np.arange(_HIST_SIZE, dtype=np.float64) / 255.0
    table = (np.power(levels, gamma) * 255.0).astype(np.int64).astype(np.uint8)
    return table[image]


def compute_optimal_gamma(image: np.ndarray) -> float:
    """Estimate the gamma whose curve best fits the image's cumulative histogram."""
    image = _require_8bit(image)
    hist = _histogram(image)
    increments = np.concatenate(([hist[1]], hist[3 : _HIST_SIZE - 1]))
    cdf = np.cumsum(increments)
    with np.errstate(divide="ignore", invalid="ignore"):
        cdf = cdf / cdf[-1]

    values = np.arange(2, len(cdf) + 2, dtype=np.float64) / 255.0
    log_values = np.log(values)
    gamma = 1.0
    delta = 1.0
    steps = 0
    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        while abs(delta) > 1e-4 and steps <= _MAX_GAMMA_STEPS:
            remapped = np.power(values, gamma)
            jacobian = log_values * remapped
            jsq = float(np.sum(jacobian * jacobian))
            je = float(np.sum(jacobian * (remapped - cdf)))
            delta = je / 2.0 / jsq if jsq else float("nan")
            gamma -= delta
            steps += 1
    return gamma


def stretch_hist(image: np.ndarray, percentage: float) -> np.ndarray:
    """Scale intensities so the level below which `percentage` of pixels lie becomes 255."""
    image = _require_8bit(image)
    hist = _histogram(image)
    limit = percentage * image.shape[0] * image.shape[1]
    cumsum = 0.0
    index = 0
    while cumsum < limit and index < _HIST_SIZE:
        cumsum += hist[index]
        index += 1
    with np.errstate(divide="ignore", invalid="ignore"):
        scale = np.float64(255.0) / np.float64(index - 1)
        scaled = image.astype(np.float64) * scale
    scaled = np.nan_to_num(scaled, nan=0.0, posinf=255.0, neginf=0.0)
    return np.clip(np.rint(scaled), 0, 255).astype(np.uint8)


def gamma_correct_frame(image: np.ndarray, gamma: float, auto_gamma: bool = False) -> np.ndarray:
    """Gamma-correct a frame, scaling `gamma` by the estimated optimum when auto_gamma is set."""
    image = _require_8bit(image)
    if auto_gamma:
        gray = to_grayscale(image)
        return correct_gamma(image, compute_optimal_gamma(gray) * gamma)
    return correct_gamma(image, gamma)