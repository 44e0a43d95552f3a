"""Conversion of tracklets into a matches message with timestamps."""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from typing import Any, Iterable, Sequence

from vistrack.tracklet import Tracklet


@dataclass(frozen=True)
class FeaturePoint:
    """Image coordinates of one observation in a track."""

    u: float
    v: float


@dataclass
class TrackletMessage:
    """A track of feature points, newest first, with the tracker's id."""

    id: int
    feature_points: list[FeaturePoint] = field(default_factory=list)


@dataclass
class MatchesMessage:
    """All tracks of a frame together with the stamps of their observations."""

    tracks: list[TrackletMessage] = field(default_factory=list)
    stamps: list[Any] = field(default_factory=list)
    stamp: Any = None


def _feature_point(match, scale_factor: float) -> FeaturePoint:
    u, v = float(match.p1.u), float(match.p1.v)
    if scale_factor != 1.0:
        u, v = u / scale_factor, v / scale_factor
    return FeaturePoint(u, v)


def tracklets_to_matches(
    tracklets: Iterable[Tracklet],
    timestamps: Sequence[Any],
    scale_factor: float = 1.0,
) -> MatchesMessage:
    """Build a matches message, undoing image scaling on the coordinates.

    Timestamps are ordered from newest to oldest; as many are kept as the
    longest track has observations.
    """
    tracks = [
        TrackletMessage(tracklet.id, [_feature_point(match, scale_factor) for match in tracklet])
        for tracklet in tracklets
    ]
    max_length = max((len(track.feature_points) for track in tracks), default=0)
    stamps = list(itertools.islice(timestamps, max_length))
    if len(stamps) < max_length:
        raise ValueError(
            f"need {max_length} timestamps for the longest tracklet, got {len(stamps)}"
        )
    if len(stamps) > 1 and stamps[0] < stamps[1]:
        raise ValueError("timestamps in wrong order")
    return MatchesMessage(tracks=tracks, stamps=stamps, stamp=next(iter(timestamps), None))