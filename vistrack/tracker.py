"""Mono feature tracking: associates frame-to-frame matches into tracklets."""

from __future__ import annotations

import copy
from collections import deque
from dataclasses import dataclass
from typing import Callable, Iterable, Protocol, Sequence, TypeVar

import numpy as np

from vistrack.tracklet import ImagePoint, Match, Tracklet

T = TypeVar("T")


@dataclass
class PMatch:
    """A feature match between the previous (p) and current (c) frame pairs."""

    u1p: float = 0.0
    v1p: float = 0.0
    i1p: int = 0
    u2p: float = 0.0
    v2p: float = 0.0
    i2p: int = 0
    u1c: float = 0.0
    v1c: float = 0.0
    i1c: int = 0
    u2c: float = 0.0
    v2c: float = 0.0
    i2c: int = 0


@dataclass
class TrackerParameters:
    """Matcher and tracker settings."""

    nms_n: int = 3
    nms_tau: int = 50
    match_binsize: int = 50
    match_radius: int = 200
    match_disp_tolerance: int = 2
    outlier_disp_tolerance: int = 5
    outlier_flow_tolerance: int = 5
    multi_stage: int = 1
    half_resolution: int = 1
    refinement: int = 1
    max_tracklength: int = 3
    method: int = 0


class Matcher(Protocol):
    """A feature matcher fed one grayscale image per frame."""

    def configure(self, params: TrackerParameters) -> None: ...

    def push_back(self, image: np.ndarray, mask: np.ndarray) -> None: ...

    def match_features(self, method: int) -> Sequence[PMatch]: ...


def to_grayscale(image: np.ndarray) -> np.ndarray:
    """Return a single-channel 8-bit view of a gray or BGR 8-bit image."""
    image = np.asarray(image)
    if image.dtype != np.uint8:
        raise ValueError("Unsupported image type")
    channels = 1 if image.ndim == 2 else (image.shape[2] if image.ndim == 3 else 0)
    if channels == 1:
        return image if image.ndim == 2 else image[:, :, 0]
    if channels == 3:
        blue, green, red = (image[:, :, c].astype(np.uint32) for c in range(3))
        gray = (blue * 1868 + green * 9617 + red * 4899 + 8192) >> 14
        return gray.astype(np.uint8)
    raise ValueError("Unsupported number of channels")


def _front_index(tracklet) -> int:
    return tracklet[0].p1.index


def associate_matches(
    tracklets: Iterable[T],
    matches: Iterable[PMatch],
    max_track_length: int,
    new_tracklet: Callable[[], T],
    current_match: Callable[[PMatch], object],
    previous_match: Callable[[PMatch], object],
) -> list[T]:
    """Extend tracklets by matches; start new ones, drop the unmatched.

    A tracklet continues when its newest observation has the index of a
    match in the previous frame. Tracklets are extended in place and those
    kept are returned, sorted by the index of their newest observation.
    """
    ordered_matches = sorted(matches, key=lambda m: m.i1p)
    pending = deque(sorted((t for t in tracklets if len(t)), key=_front_index))
    result: list[T] = []
    for match in ordered_matches:
        while pending and _front_index(pending[0]) < match.i1p:
            pending.popleft()
        if pending and _front_index(pending[0]) == match.i1p:
            tracklet = pending.popleft()
            tracklet.appendleft(current_match(match))
            tracklet.age += 1
            if max_track_length > 0 and len(tracklet) > max_track_length:
                tracklet.pop()
        else:
            tracklet = new_tracklet()
            tracklet.appendleft(previous_match(match))
            tracklet.appendleft(current_match(match))
        result.append(tracklet)
    return result


def select_tracklets(tracklets: Iterable[T], min_track_length: int = 0) -> list[T]:
    """Return copies of the tracklets at least min_track_length long (all if <= 0)."""
    if min_track_length > 0:
        return [copy.copy(t) for t in tracklets if len(t) >= min_track_length]
    return [copy.copy(t) for t in tracklets]


def _current_mono(match: PMatch) -> Match:
    return Match(ImagePoint(match.u1c, match.v1c, match.i1c))


def _previous_mono(match: PMatch) -> Match:
    return Match(ImagePoint(match.u1p, match.v1p, match.i1p))


class Tracker:
    """Feeds images to a matcher and keeps the resulting tracklets."""

    def __init__(self, matcher: Matcher, params: TrackerParameters | None = None) -> None:
        self._matcher = matcher
        self._params = params if params is not None else TrackerParameters()
        self._matcher.configure(self._params)
        self.tracklets: list[Tracklet] = []

    @property
    def parameters(self) -> TrackerParameters:
        return self._params

    @parameters.setter
    def parameters(self, params: TrackerParameters) -> None:
        self._params = params
        self._matcher.configure(params)

    def push_back(self, image: np.ndarray, mask: np.ndarray | None = None) -> None:
        """Match a new frame against the previous one and update the tracklets.

        Pixels where the mask is 0 are not matched; an empty mask matches all.
        """
        image = np.asarray(image)
        if image.dtype != np.uint8:
            raise ValueError("Unsupported image type")
        mask = np.zeros((0, 0), dtype=np.uint8) if mask is None else np.asarray(mask)
        if mask.dtype != np.uint8:
            raise ValueError("Unsupported mask type")
        gray = to_grayscale(image)
        self._matcher.push_back(gray, mask)
        matches = self._matcher.match_features(self._params.method)
        self.tracklets = associate_matches(
            self.tracklets,
            matches,
            self._params.max_tracklength,
            Tracklet,
            _current_mono,
            _previous_mono,
        )

    def select_tracklets(self, min_track_length: int = 0) -> list[Tracklet]:
        return select_tracklets(self.tracklets, min_track_length)