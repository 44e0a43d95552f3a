"""Growing or shrinking labelled regions of a label image."""

from __future__ import annotations

from functools import reduce
from typing import Iterable

import numpy as np

DEFAULT_LABELS = (-1, 0, 1, 2, 3, 5, 24, 25, 26, 27, 28, 29, 30, 31, 32, 33)


def _sweep(mask: np.ndarray, k: int, axis: int, combine, fill: bool) -> np.ndarray:
    length = mask.shape[axis]
    padding = [(0, 0)] * mask.ndim
    padding[axis] = (k, k)
    padded = np.pad(mask, padding, constant_values=fill)
    shifted = (
        np.take(padded, np.arange(offset, offset + length), axis=axis)
        for offset in range(2 * k + 1)
    )
    return reduce(combine, shifted)


def _morph(mask: np.ndarray, k: int, erode: bool) -> np.ndarray:
    if k == 0:
        return mask.copy()
    combine, fill = (np.logical_and, True) if erode else (np.logical_or, False)
    rows = _sweep(mask, k, 0, combine, fill)
    return _sweep(rows, k, 1, combine, fill)


def dilate_labels(
    image: np.ndarray,
    half_kernel_size: int,
    erode: bool = False,
    labels: Iterable[int] | None = None,
) -> np.ndarray:
    """Dilate (or erode) the region of every label with a square kernel.

    Labels are processed in ascending order on the image as it is being
    changed, so a later label wins where regions meet. Labels outside the
    8-bit range match no pixel. An empty image is returned unchanged.
    """
    if half_kernel_size < 0:
        raise ValueError("half_kernel_size must not be negative")
    result = np.array(image, dtype=np.uint8, copy=True)
    if result.ndim != 2:
        raise ValueError("label image must be single-channel")
    if result.size == 0:
        return result
    for label in sorted(set(DEFAULT_LABELS if labels is None else labels)):
        if not 0 <= label <= 255:
            continue
        mask = _morph(result == label, half_kernel_size, erode)
        result[mask] = label
    return result