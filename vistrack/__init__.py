"""Feature tracklet management, epipolar geometry and image preprocessing."""

__version__ = "0.1.0"