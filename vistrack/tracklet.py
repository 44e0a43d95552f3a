"""Image points, matches and tracks of matches over consecutive frames."""

from __future__ import annotations

import copy
import itertools
from collections import deque
from dataclasses import dataclass, field
from typing import Iterable, Iterator


@dataclass
class WorldPoint:
    """A 3D world point attached to a match."""

    data: list[float] = field(default_factory=lambda: [0.0, 0.0, 0.0])

    def __getitem__(self, index: int) -> float:
        return self.data[index]

    def __setitem__(self, index: int, value: float) -> None:
        self.data[index] = value

    def __iter__(self) -> Iterator[float]:
        return iter(self.data)


@dataclass(frozen=True)
class ImagePoint:
    """2D image coordinates with a feature index for identification."""

    u: float = -1.0
    v: float = -1.0
    index: int = -1


@dataclass
class Match:
    """An observation in one image with an optional world point."""

    p1: ImagePoint = field(default_factory=ImagePoint)
    x: WorldPoint | None = None


@dataclass
class StereoMatch(Match):
    """A match observed in both cameras of a stereo pair."""

    p2: ImagePoint = field(default_factory=ImagePoint)


class _TrackBase(deque):
    """A deque of matches, newest first, carrying a unique id and an age."""

    _ids: Iterator[int] = itertools.count()

    def __init__(self, matches: Iterable = ()) -> None:
        super().__init__(matches)
        self.id: int = next(type(self)._ids)
        self.age: int = 0

    def _duplicate(self, copier) -> "_TrackBase":
        cls = type(self)
        duplicate = cls.__new__(cls)
        deque.__init__(duplicate, (copier(match) for match in self))
        duplicate.id = self.id
        duplicate.age = self.age
        return duplicate

    def __copy__(self) -> "_TrackBase":
        return self._duplicate(copy.copy)

    def __deepcopy__(self, memo: dict) -> "_TrackBase":
        return self._duplicate(lambda match: copy.deepcopy(match, memo))

    def copy(self) -> "_TrackBase":
        return self.__copy__()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id}, age={self.age}, matches={list(self)!r})"


class Tracklet(_TrackBase):
    """A track of mono matches; each new tracklet takes the next id."""

    _ids = itertools.count()

    def __init__(self, matches: Iterable[Match] = ()) -> None:
        super().__init__(matches)


class StereoTracklet(_TrackBase):
    """A track of stereo matches; ids are counted apart from mono tracklets."""

    _ids = itertools.count()

    def __init__(self, matches: Iterable[StereoMatch] = ()) -> None:
        super().__init__(matches)