import numpy as np
import pytest

from vistrack.geometry import (
    bucketing,
    estimate_essential_matrix,
    estimate_fundamental_matrix,
    estimate_rot_trans,
    find_fundamental_matrix,
    remove_outliers,
)
from vistrack.tracklet import ImagePoint, StereoMatch, StereoTracklet

K = np.array([[500.0, 0.0, 320.0], [0.0, 500.0, 240.0], [0.0, 0.0, 1.0]])


def _scene(count=40):
    angle = 0.1
    rotation = np.array(
        [
            [np.cos(angle), 0.0, np.sin(angle)],
            [0.0, 1.0, 0.0],
            [-np.sin(angle), 0.0, np.cos(angle)],
        ]
    )
    translation = np.array([-1.0, 0.05, 0.1])
    rng = np.random.default_rng(1)
    world = np.column_stack(
        [
            rng.uniform(-2.0, 2.0, count),
            rng.uniform(-1.5, 1.5, count),
            rng.uniform(4.0, 10.0, count),
        ]
    )
    first = (K @ world.T).T
    second = (K @ (world @ rotation.T + translation).T).T
    x1 = first[:, :2] / first[:, 2:]
    x2 = second[:, :2] / second[:, 2:]
    return rotation, translation, x1, x2


def _stereo_tracklets(x1, x2):
    return [
        StereoTracklet(
            [StereoMatch(p1=ImagePoint(float(a[0]), float(a[1]), i), p2=ImagePoint(float(b[0]), float(b[1]), i))]
        )
        for i, (a, b) in enumerate(zip(x1, x2))
    ]


def _max_line_distance(fundamental, x1, x2):
    h1 = np.column_stack([x1, np.ones(len(x1))])
    h2 = np.column_stack([x2, np.ones(len(x2))])
    lines = h1 @ fundamental.T
    distances = np.abs(np.sum(h2 * lines, axis=1)) / np.hypot(lines[:, 0], lines[:, 1])
    return float(distances.max())


def test_find_fundamental_matrix_fits_clean_points():
    _, _, x1, x2 = _scene()
    fundamental, mask = find_fundamental_matrix(x1, x2)
    assert mask.all()
    assert _max_line_distance(fundamental, x1, x2) < 1e-3
    assert np.linalg.matrix_rank(fundamental, tol=1e-8 * np.abs(fundamental).max()) == 2


def test_find_fundamental_matrix_needs_eight_points():
    _, _, x1, x2 = _scene(7)
    with pytest.raises(ValueError):
        find_fundamental_matrix(x1, x2)


def test_find_fundamental_matrix_rejects_mismatched_sets():
    _, _, x1, x2 = _scene()
    with pytest.raises(ValueError):
        find_fundamental_matrix(x1, x2[:-1])


def test_estimate_fundamental_flags_outlier_and_empty_tracklet():
    _, _, x1, x2 = _scene()
    tracklets = _stereo_tracklets(x1, x2)
    outlier = StereoTracklet(
        [StereoMatch(p1=ImagePoint(300.0, 200.0, 99), p2=ImagePoint(310.0, 260.0, 99))]
    )
    tracklets.insert(3, outlier)
    tracklets.append(StereoTracklet())
    fundamental, inliers = estimate_fundamental_matrix(tracklets)
    assert len(inliers) == len(tracklets)
    assert inliers[3] is False
    assert inliers[-1] is False
    assert sum(inliers) == len(x1)
    assert _max_line_distance(fundamental, x1, x2) < 1e-3


def test_estimate_fundamental_with_pairing_first_camera():
    _, _, x1, x2 = _scene()
    tracklets = [
        StereoTracklet(
            [
                StereoMatch(p1=ImagePoint(float(b[0]), float(b[1]), i)),
                StereoMatch(p1=ImagePoint(float(a[0]), float(a[1]), i)),
            ]
        )
        for i, (a, b) in enumerate(zip(x1, x2))
    ]
    tracklets.append(StereoTracklet([StereoMatch(p1=ImagePoint(1.0, 2.0, 7))]))
    fundamental, inliers = estimate_fundamental_matrix(tracklets, pairing=(1, 0))
    assert inliers[:-1] == [True] * len(x1)
    assert inliers[-1] is False
    assert _max_line_distance(fundamental, x1, x2) < 1e-3


def test_estimate_fundamental_with_pairing_second_camera():
    _, _, x1, x2 = _scene()
    tracklets = [
        StereoTracklet(
            [
                StereoMatch(p2=ImagePoint(float(a[0]), float(a[1]), i)),
                StereoMatch(p2=ImagePoint(float(b[0]), float(b[1]), i)),
            ]
        )
        for i, (a, b) in enumerate(zip(x1, x2))
    ]
    fundamental, inliers = estimate_fundamental_matrix(tracklets, pairing=(0, 1), first_cam=False)
    assert all(inliers)
    assert _max_line_distance(fundamental, x1, x2) < 1e-3


def test_estimate_essential_matrix_has_equal_singular_values():
    _, _, x1, x2 = _scene()
    essential, inliers = estimate_essential_matrix(_stereo_tracklets(x1, x2), K, K)
    assert all(inliers)
    singular = np.linalg.svd(essential, compute_uv=False)
    assert singular[0] / singular[1] == pytest.approx(1.0, abs=1e-6)
    assert singular[2] / singular[0] < 1e-8
    k_inv = np.linalg.inv(K)
    y1 = np.column_stack([x1, np.ones(len(x1))]) @ k_inv.T
    y2 = np.column_stack([x2, np.ones(len(x2))]) @ k_inv.T
    residual = np.abs(np.sum(y2 * (y1 @ essential.T), axis=1)) / np.abs(essential).max()
    assert residual.max() < 1e-8


def test_estimate_rot_trans_recovers_pose():
    rotation, translation, x1, x2 = _scene()
    estimated_r, estimated_t, inliers = estimate_rot_trans(_stereo_tracklets(x1, x2), K, K)
    assert all(inliers)
    np.testing.assert_allclose(estimated_r, rotation, atol=1e-6)
    np.testing.assert_allclose(estimated_t, translation / np.linalg.norm(translation), atol=1e-6)
    assert np.linalg.det(estimated_r) == pytest.approx(1.0)


def test_remove_outliers_keeps_flagged_tracklets():
    tracklets = [StereoTracklet([StereoMatch()]) for _ in range(3)]
    kept = remove_outliers([True, False, True], tracklets)
    assert [t.id for t in kept] == [tracklets[0].id, tracklets[2].id]


def test_remove_outliers_rejects_length_mismatch():
    tracklets = [StereoTracklet([StereoMatch()]) for _ in range(2)]
    with pytest.raises(ValueError):
        remove_outliers([True], tracklets)


def _at(u, v, age):
    tracklet = StereoTracklet([StereoMatch(p1=ImagePoint(u, v, 0))])
    tracklet.age = age
    return tracklet


def test_bucketing_selects_oldest_per_bucket_in_row_order():
    young = _at(5.0, 5.0, 1)
    old = _at(8.0, 8.0, 3)
    right = _at(25.0, 5.0, 2)
    below = _at(5.0, 25.0, 0)
    selected = bucketing([below, young, right, old], 20, 20)
    assert [t.id for t in selected] == [old.id, right.id, below.id]
    assert [t.age for t in selected] == [3, 2, 0]


def test_bucketing_prefers_first_on_equal_age_and_clamps_negative():
    first = _at(-3.0, 2.0, 2)
    second = _at(4.0, 1.0, 2)
    selected = bucketing([first, second], 10, 10)
    assert [t.id for t in selected] == [first.id]


def test_bucketing_empty_input_and_invalid_size():
    assert bucketing([], 10, 10) == []
    with pytest.raises(ValueError):
        bucketing([_at(1.0, 1.0, 0)], 0, 10)