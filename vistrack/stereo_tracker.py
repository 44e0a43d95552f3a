"""Stereo feature tracking: associates stereo frame-pair matches into tracklets."""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Protocol, Sequence

import numpy as np

from vistrack.tracker import PMatch, associate_matches, select_tracklets, to_grayscale
from vistrack.tracklet import ImagePoint, StereoMatch, StereoTracklet


@dataclass
class StereoTrackerParameters:
    """Stereo matcher and tracker settings.

    Sub-pixel refinement is always disabled for stereo matching.
    """

    refinement: ClassVar[int] = 0

    nms_n: int = 3
    nms_tau: int = 50
    match_binsize: int = 50
    match_radius: int = 200
    match_disp_tolerance: int = 2
    outlier_disp_tolerance: int = 5
    outlier_flow_tolerance: int = 5
    multi_stage: int = 1
    half_resolution: int = 1
    f: float = 0.0
    cu: float = 0.0
    cv: float = 0.0
    base: float = 0.0
    max_tracklength: int = 3
    method: int = 2


class StereoMatcher(Protocol):
    """A feature matcher fed one grayscale image pair per frame."""

    def configure(self, params: StereoTrackerParameters) -> None: ...

    def push_back(self, left: np.ndarray, right: np.ndarray) -> None: ...

    def match_features(self, method: int) -> Sequence[PMatch]: ...


def _current_stereo(match: PMatch) -> StereoMatch:
    return StereoMatch(
        p1=ImagePoint(match.u1c, match.v1c, match.i1c),
        p2=ImagePoint(match.u2c, match.v2c, match.i2c),
    )


def _previous_stereo(match: PMatch) -> StereoMatch:
    return StereoMatch(
        p1=ImagePoint(match.u1p, match.v1p, match.i1p),
        p2=ImagePoint(match.u2p, match.v2p, match.i2p),
    )


class StereoTracker:
    """Feeds stereo image pairs to a matcher and keeps the resulting tracklets.

    Matching between features of subsequent frame pairs happens when a
    second pair is pushed; the tracklets are held in `tracklets`.
    """

    def __init__(
        self, matcher: StereoMatcher, params: StereoTrackerParameters | None = None
    ) -> None:
        self.params = params if params is not None else StereoTrackerParameters()
        self._matcher = matcher
        self._matcher.configure(self.params)
        self.tracklets: list[StereoTracklet] = []

    def push_back(self, left: np.ndarray, right: np.ndarray) -> None:
        """Match a new image pair against the previous one and update the tracklets."""
        left = np.asarray(left)
        right = np.asarray(right)
        if left.dtype != np.uint8 or right.dtype != np.uint8:
            raise ValueError("Unsupported image type")
        gray_left = to_grayscale(left)
        gray_right = to_grayscale(right)
        self._matcher.push_back(gray_left, gray_right)
        matches = self._matcher.match_features(self.params.method)
        self.tracklets = associate_matches(
            self.tracklets,
            matches,
            self.params.max_tracklength,
            StereoTracklet,
            _current_stereo,
            _previous_stereo,
        )

    def select_tracklets(self, min_track_length: int = 0) -> list[StereoTracklet]:
        """Return copies of the tracklets at least min_track_length long (all if <= 0)."""
        return select_tracklets(self.tracklets, min_track_length)