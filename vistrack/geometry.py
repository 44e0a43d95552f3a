"""Epipolar geometry on stereo tracklets: fundamental and essential matrices,
relative pose, outlier removal and spatial bucketing."""

from __future__ import annotations

import copy
import math
from typing import Iterable, Sequence

import numpy as np

from vistrack.tracklet import StereoTracklet

_SAMPLE_SIZE = 8
_MAX_ITERATIONS = 1000
_MIN_SINGULAR_RATIO = 0.7
_RANSAC_SEED = 0


def _normalize(points: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Translate to the centroid and scale to a mean distance of sqrt(2)."""
    centroid = points.mean(axis=0)
    mean_distance = np.mean(np.linalg.norm(points - centroid, axis=1))
    scale = math.sqrt(2.0) / mean_distance if mean_distance > 0 else 1.0
    transform = np.array(
        [
            [scale, 0.0, -scale * centroid[0]],
            [0.0, scale, -scale * centroid[1]],
            [0.0, 0.0, 1.0],
        ]
    )
    homogeneous = np.column_stack([points, np.ones(len(points))])
    return homogeneous @ transform.T, transform


def _eight_point(points1: np.ndarray, points2: np.ndarray) -> np.ndarray:
    """Least-squares rank-2 fundamental matrix with x2^T F x1 = 0."""
    n1, t1 = _normalize(points1)
    n2, t2 = _normalize(points2)
    x1, y1 = n1[:, 0], n1[:, 1]
    x2, y2 = n2[:, 0], n2[:, 1]
    ones = np.ones(len(points1))
    design = np.column_stack([x2 * x1, x2 * y1, x2, y2 * x1, y2 * y1, y2, x1, y1, ones])
    _, _, vt = np.linalg.svd(design)
    fundamental = vt[-1].reshape(3, 3)
    u, s, vt = np.linalg.svd(fundamental)
    s[2] = 0.0
    fundamental = t2.T @ (u @ np.diag(s) @ vt) @ t1
    if abs(fundamental[2, 2]) > np.finfo(float).eps:
        return fundamental / fundamental[2, 2]
    return fundamental / np.linalg.norm(fundamental)


def _epipolar_error(fundamental: np.ndarray, points1: np.ndarray, points2: np.ndarray) -> np.ndarray:
    """Larger squared distance of each pair to the other point's epipolar line."""
    h1 = np.column_stack([points1, np.ones(len(points1))])
    h2 = np.column_stack([points2, np.ones(len(points2))])
    lines2 = h1 @ fundamental.T
    lines1 = h2 @ fundamental
    with np.errstate(divide="ignore", invalid="ignore"):
        d2 = np.sum(h2 * lines2, axis=1) ** 2 / (lines2[:, 0] ** 2 + lines2[:, 1] ** 2)
        d1 = np.sum(h1 * lines1, axis=1) ** 2 / (lines1[:, 0] ** 2 + lines1[:, 1] ** 2)
    error = np.maximum(d1, d2)
    return np.where(np.isnan(error), np.inf, error)


def _required_iterations(inlier_ratio: float, prob: float, current: int) -> int:
    success = inlier_ratio**_SAMPLE_SIZE
    if success >= 1.0:
        return 0
    denominator = math.log(1.0 - success)
    if denominator >= 0.0:
        return current
    numerator = math.log(max(1.0 - prob, np.finfo(float).tiny))
    return min(current, int(math.ceil(numerator / denominator)))


def find_fundamental_matrix(
    points1, points2, inlier_thresh: float = 3.0, prob: float = 0.9
) -> tuple[np.ndarray, np.ndarray]:
    """Estimate F with RANSAC so that x2^T F x1 = 0; return F and the inlier mask.

    A pair is an inlier when it lies within inlier_thresh pixels of the
    epipolar line in both images.
    """
    p1 = np.asarray(points1, dtype=np.float64).reshape(-1, 2)
    p2 = np.asarray(points2, dtype=np.float64).reshape(-1, 2)
    if p1.shape != p2.shape:
        raise ValueError("point sets differ in size")
    count = len(p1)
    if count < _SAMPLE_SIZE:
        raise ValueError(f"at least {_SAMPLE_SIZE} point pairs are needed, got {count}")

    rng = np.random.default_rng(_RANSAC_SEED)
    threshold = inlier_thresh * inlier_thresh
    best_mask: np.ndarray | None = None
    best_count = 0
    iterations = _MAX_ITERATIONS
    done = 0
    while done < iterations:
        sample = rng.choice(count, _SAMPLE_SIZE, replace=False)
        candidate = _eight_point(p1[sample], p2[sample])
        done += 1
        if not np.all(np.isfinite(candidate)):
            continue
        mask = _epipolar_error(candidate, p1, p2) <= threshold
        inliers = int(mask.sum())
        if inliers > best_count:
            best_mask, best_count = mask, inliers
            iterations = _required_iterations(inliers / count, prob, iterations)

    if best_mask is None or best_count < _SAMPLE_SIZE:
        raise ValueError("could not estimate a fundamental matrix")
    fundamental = _eight_point(p1[best_mask], p2[best_mask])
    return fundamental, best_mask


def _collect_points(
    tracklets: Sequence[StereoTracklet],
    pairing: tuple[int, int] | None,
    first_cam: bool,
) -> tuple[list[tuple[float, float]], list[tuple[float, float]], list[bool]]:
    points1: list[tuple[float, float]] = []
    points2: list[tuple[float, float]] = []
    valid: list[bool] = []
    for tracklet in tracklets:
        if pairing is None:
            if len(tracklet) == 0:
                valid.append(False)
                continue
            match = tracklet[0]
            points1.append((match.p1.u, match.p1.v))
            points2.append((match.p2.u, match.p2.v))
        else:
            first, second = pairing
            if len(tracklet) == 0 or len(tracklet) <= max(first, second):
                valid.append(False)
                continue
            a, b = tracklet[first], tracklet[second]
            pa, pb = (a.p1, b.p1) if first_cam else (a.p2, b.p2)
            points1.append((pa.u, pa.v))
            points2.append((pb.u, pb.v))
        valid.append(True)
    return points1, points2, valid


def estimate_fundamental_matrix(
    tracklets: Iterable[StereoTracklet],
    inlier_thresh: float = 3.0,
    prob: float = 0.9,
    pairing: tuple[int, int] | None = None,
    first_cam: bool = True,
) -> tuple[np.ndarray, list[bool]]:
    """Estimate F from the tracklets; return it with one inlier flag per tracklet.

    Without a pairing the newest stereo match relates the two cameras. With
    a pairing (a, b), the a-th and b-th matches of each tracklet are related
    in the first camera, or in the second when first_cam is false. Tracklets
    too short to take part are flagged as outliers.
    """
    tracklets = list(tracklets)
    points1, points2, valid = _collect_points(tracklets, pairing, first_cam)
    fundamental, mask = find_fundamental_matrix(points1, points2, inlier_thresh, prob)
    flags = iter(mask.tolist())
    inliers = [bool(next(flags)) if ok else False for ok in valid]
    return fundamental, inliers


def estimate_essential_matrix(
    tracklets: Iterable[StereoTracklet],
    k1,
    k2,
    inlier_thresh: float = 3.0,
    prob: float = 0.9,
) -> tuple[np.ndarray, list[bool]]:
    """Estimate E = K2^T F K1 from the newest stereo matches."""
    fundamental, inliers = estimate_fundamental_matrix(tracklets, inlier_thresh, prob)
    k1 = np.asarray(k1, dtype=np.float64)
    k2 = np.asarray(k2, dtype=np.float64)
    return k2.T @ fundamental @ k1, inliers


def _in_front(p1: np.ndarray, p2: np.ndarray, match) -> bool:
    """Triangulate one stereo match and test that it lies before both cameras."""
    system = np.vstack(
        [
            p1[2] * match.p1.u - p1[0],
            p1[2] * match.p1.v - p1[1],
            p2[2] * match.p2.u - p2[0],
            p2[2] * match.p2.v - p2[1],
        ]
    )
    point = np.linalg.svd(system)[2][-1]
    return (p1 @ point)[2] * point[3] > 0 and (p2 @ point)[2] * point[3] > 0


def estimate_rot_trans(
    tracklets: Iterable[StereoTracklet],
    k1,
    k2,
    inlier_thresh: float = 3.0,
    prob: float = 0.9,
) -> tuple[np.ndarray | None, np.ndarray | None, list[bool]]:
    """Recover the pose (R, t) of the second camera relative to the first.

    t has unit length. R and t are None when the essential matrix is too far
    from having two equal singular values. Of the four decompositions the
    one with the most inlier points in front of both cameras is chosen.
    """
    tracklets = list(tracklets)
    k1 = np.asarray(k1, dtype=np.float64)
    k2 = np.asarray(k2, dtype=np.float64)
    essential, inliers = estimate_essential_matrix(tracklets, k1, k2, inlier_thresh, prob)

    u, w, vt = np.linalg.svd(essential)
    with np.errstate(divide="ignore", invalid="ignore"):
        ratio = abs(w[0] / w[1])
    if ratio > 1.0:
        ratio = 1.0 / ratio
    if not ratio >= _MIN_SINGULAR_RATIO:
        return None, None, inliers

    if np.linalg.det(u) < 0:
        u = -u
    if np.linalg.det(vt) < 0:
        vt = -vt
    w_matrix = np.array([[0.0, -1.0, 0.0], [1.0, 0.0, 0.0], [0.0, 0.0, 1.0]])
    r1 = u @ w_matrix @ vt
    r2 = u @ w_matrix.T @ vt
    t1 = u[:, 2].copy()
    configs = [(r1, t1), (r1, -t1), (r2, t1), (r2, -t1)]

    projection1 = np.zeros((3, 4))
    projection1[:, :3] = k1
    supported = [t for t, ok in zip(tracklets, inliers) if ok]

    best = configs[0]
    best_support = 0
    for rotation, translation in configs:
        projection2 = k2 @ np.column_stack([rotation, translation])
        support = sum(_in_front(projection1, projection2, t[0]) for t in supported)
        if support > best_support:
            best, best_support = (rotation, translation), support
    return best[0], best[1], inliers


def remove_outliers(inliers: Sequence[bool], tracklets: Iterable[StereoTracklet]) -> list[StereoTracklet]:
    """Return the tracklets whose inlier flag is set."""
    tracklets = list(tracklets)
    if len(inliers) != len(tracklets):
        raise ValueError("inlier flags and tracklets differ in number")
    return [tracklet for tracklet, keep in zip(tracklets, inliers) if keep]


def bucketing(
    tracklets: Iterable[StereoTracklet], bucket_w: int, bucket_h: int
) -> list[StereoTracklet]:
    """Keep the oldest tracklet of every bucket of a grid over the first image.

    Buckets are visited row by row; on equal age the earlier tracklet wins.
    """
    if bucket_w <= 0 or bucket_h <= 0:
        raise ValueError("bucket size must be positive")
    tracklets = list(tracklets)
    max_u = 0
    max_v = 0
    for tracklet in tracklets:
        point = tracklet[0].p1
        if max_u < point.u:
            max_u = int(point.u)
        if max_v < point.v:
            max_v = int(point.v)

    count_w = max_u // bucket_w + 1
    count_h = max_v // bucket_h + 1
    buckets: list[list[StereoTracklet]] = [[] for _ in range(count_w * count_h)]
    for tracklet in tracklets:
        point = tracklet[0].p1
        bucket_x = min(max(0, int(point.u) // bucket_w), count_w - 1)
        bucket_y = min(max(0, int(point.v) // bucket_h), count_h - 1)
        buckets[bucket_y * count_w + bucket_x].append(tracklet)

    selected = []
    for bucket in buckets:
        oldest = None
        max_age = -1
        for tracklet in bucket:
            if max_age < tracklet.age:
                max_age = tracklet.age
                oldest = tracklet
        if oldest is not None:
            selected.append(copy.copy(oldest))
    return selected