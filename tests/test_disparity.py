import numpy as np
import pytest

from vistrack.disparity import DisparityConverter, DisparityImage, build_remap_table


def _disparity(rows=2, cols=3, value=4.0, f=10.0, base=2.0, min_d=0.0, max_d=0.0):
    return DisparityImage(
        image=np.full((rows, cols), value, dtype=np.float32),
        f=f,
        T=base,
        min_disparity=min_d,
        max_disparity=max_d,
    )


def test_remap_table_size_mismatch_raises():
    with pytest.raises(ValueError):
        build_remap_table([1, 2], [3], 0)


def test_remap_table_negative_invalid_raises():
    with pytest.raises(ValueError):
        build_remap_table([1], [3], -1)


def test_remap_table_entries():
    table = build_remap_table([3, 10], [7, 9], 0)
    assert table.shape == (256,)
    assert table[3] == 7
    assert table[10] == 9
    assert np.count_nonzero(table) == 2


def test_depth_invariant():
    image = np.full((2, 3), 100, dtype=np.uint8)
    disp = _disparity()
    cloud = DisparityConverter().convert(image, disp, cx=1.0, cy=0.0)
    assert cloud.shape == (2, 3, 4)
    assert np.allclose(cloud[..., 2] * disp.image, disp.f * disp.T)


def test_x_zero_at_principal_point_and_signs():
    image = np.full((2, 3), 100, dtype=np.uint8)
    cloud = DisparityConverter().convert(image, _disparity(), cx=1.0, cy=0.0)
    assert np.all(cloud[:, 1, 0] == 0)
    assert np.all(cloud[:, 0, 0] < 0)
    assert np.all(cloud[:, 2, 0] > 0)
    assert cloud[0, 0, 1] == 0
    assert cloud[1, 0, 1] > 0


def test_intensity_scaled_to_unit():
    image = np.array([[255, 0, 51]], dtype=np.uint8)
    cloud = DisparityConverter().convert(image, _disparity(rows=1), 0.0, 0.0)
    assert cloud[0, 0, 3] == pytest.approx(1.0)
    assert cloud[0, 1, 3] == pytest.approx(0.0)


def test_invalid_value_gives_invalid_point():
    image = np.array([[7, 100, 100]], dtype=np.uint8)
    cloud = DisparityConverter(invalid_value=7).convert(image, _disparity(rows=1), 0.0, 0.0)
    assert tuple(cloud[0, 0]) == (0.0, 0.0, 120.0, -1.0)
    assert cloud[0, 1, 3] >= 0


def test_disparity_range():
    image = np.full((1, 3), 50, dtype=np.uint8)
    disp = _disparity(rows=1, min_d=1.0, max_d=5.0)
    disp.image[0] = [0.5, 3.0, 6.0]
    cloud = DisparityConverter().convert(image, disp, 0.0, 0.0)
    assert cloud[0, 0, 3] == -1
    assert cloud[0, 1, 3] >= 0
    assert cloud[0, 2, 3] == -1


def test_zero_max_disparity_is_unbounded():
    image = np.full((1, 1), 50, dtype=np.uint8)
    disp = _disparity(rows=1, cols=1, value=1000.0, max_d=0.0)
    cloud = DisparityConverter().convert(image, disp, 0.0, 0.0)
    assert cloud[0, 0, 3] >= 0


def test_focal_length_override():
    image = np.full((1, 2), 50, dtype=np.uint8)
    disp = _disparity(rows=1, cols=2)
    default = DisparityConverter().convert(image, disp, 0.0, 0.0)
    override = DisparityConverter(focal_length=disp.f / 2).convert(image, disp, 0.0, 0.0)
    assert np.allclose(override[..., 2] * 2, default[..., 2])


def test_mask_excludes_pixels():
    image = np.full((1, 2), 50, dtype=np.uint8)
    mask = np.array([[0, 255]], dtype=np.uint8)
    cloud = DisparityConverter(mask=mask).convert(image, _disparity(rows=1, cols=2), 0.0, 0.0)
    assert cloud[0, 0, 3] == -1
    assert cloud[0, 1, 3] >= 0


def test_mask_size_mismatch_is_dropped():
    image = np.full((1, 2), 50, dtype=np.uint8)
    converter = DisparityConverter(mask=np.zeros((3, 3), dtype=np.uint8))
    with pytest.warns(UserWarning):
        cloud = converter.convert(image, _disparity(rows=1, cols=2), 0.0, 0.0)
    assert converter.mask is None
    assert np.all(cloud[..., 3] >= 0)


def test_wrong_disparity_type_raises():
    image = np.full((2, 3), 50, dtype=np.uint8)
    disp = _disparity()
    disp.image = disp.image.astype(np.float64)
    with pytest.raises(ValueError):
        DisparityConverter().convert(image, disp, 0.0, 0.0)


def test_size_mismatch_raises():
    image = np.full((4, 4), 50, dtype=np.uint8)
    with pytest.raises(ValueError):
        DisparityConverter().convert(image, _disparity(), 0.0, 0.0)


def test_remap_marks_unlisted_levels_invalid():
    image = np.array([[10, 20]], dtype=np.uint8)
    converter = DisparityConverter(invalid_value=0, remap_in=[10], remap_out=[255])
    cloud = converter.convert(image, _disparity(rows=1, cols=2), 0.0, 0.0)
    assert cloud[0, 0, 3] == pytest.approx(1.0)
    assert cloud[0, 1, 3] == -1


def test_color_image_is_converted():
    image = np.full((2, 3, 3), 200, dtype=np.uint8)
    cloud = DisparityConverter().convert(image, _disparity(), 0.0, 0.0)
    assert np.allclose(cloud[..., 3], 200 / 255.0)