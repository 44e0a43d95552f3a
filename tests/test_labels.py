import numpy as np
import pytest

from vistrack.labels import dilate_labels


def _image(background=10, size=5):
    return np.full((size, size), background, dtype=np.uint8)


def test_single_pixel_dilates_to_square():
    image = _image()
    image[2, 2] = 5
    result = dilate_labels(image, 1)
    assert np.all(result[1:4, 1:4] == 5)
    assert np.count_nonzero(result == 5) == 9
    assert image[1, 1] == 10


def test_unlisted_labels_untouched():
    image = _image()
    image[2, 2] = 100
    result = dilate_labels(image, 2)
    assert np.array_equal(result, image)


def test_zero_kernel_is_identity():
    image = _image()
    image[0, 0] = 3
    assert np.array_equal(dilate_labels(image, 0), image)


def test_later_label_wins():
    image = _image()
    image[2, 1] = 3
    image[2, 3] = 5
    result = dilate_labels(image, 1)
    assert result[2, 2] == 5
    assert result[2, 0] == 3
    assert result[2, 4] == 5


def test_erode_leaves_image_unchanged():
    image = _image()
    image[1:4, 1:4] = 5
    result = dilate_labels(image, 1, erode=True)
    assert np.array_equal(result, image)


def test_custom_labels():
    image = _image()
    image[2, 2] = 200
    result = dilate_labels(image, 1, labels=[200])
    assert np.count_nonzero(result == 200) == 9


def test_border_pixel_dilation_stays_inside():
    image = _image()
    image[0, 0] = 5
    result = dilate_labels(image, 1)
    assert result.shape == image.shape
    assert np.count_nonzero(result == 5) == 4


def test_empty_image_returned():
    image = np.zeros((0, 0), dtype=np.uint8)
    assert dilate_labels(image, 1).shape == (0, 0)


def test_negative_kernel_raises():
    with pytest.raises(ValueError):
        dilate_labels(_image(), -1)