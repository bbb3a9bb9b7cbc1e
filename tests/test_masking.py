import numpy as np

from brand_sanitizer.masking import apply_region_blur, valid_regions
from brand_sanitizer.models import BoundingBox

from conftest import logo_region, make_noise_image


def test_empty_region_list_returns_identical_copy(noise_image):
    result = apply_region_blur(noise_image, [])
    assert result is not noise_image
    assert result.dtype == noise_image.dtype
    assert np.array_equal(result, noise_image)


def test_small_region_is_left_untouched(noise_image):
    result = apply_region_blur(noise_image, [(10, 10, 5, 30)], min_region_size=10)
    assert np.array_equal(result, noise_image)


def test_only_region_pixels_change(noise_image):
    original = noise_image.copy()
    result = apply_region_blur(noise_image, [(16, 8, 20, 24)], intensity=5)

    # source never mutated
    assert np.array_equal(noise_image, original)

    inside = np.zeros(noise_image.shape[:2], dtype=bool)
    inside[8:32, 16:36] = True
    assert not np.array_equal(result[inside], original[inside])
    assert np.array_equal(result[~inside], original[~inside])


def test_accepts_detected_regions_and_boxes(noise_image):
    from_region = apply_region_blur(noise_image, [logo_region()])
    from_box = apply_region_blur(noise_image, [BoundingBox(x=8, y=8, width=24, height=24)])
    from_tuple = apply_region_blur(noise_image, [(8, 8, 24, 24)])
    assert np.array_equal(from_region, from_box)
    assert np.array_equal(from_box, from_tuple)


def test_regions_are_clipped_to_image():
    boxes = valid_regions([(-20, 50, 60, 40), (90, 90, 50, 50)], 100, 100, min_region_size=10)
    assert boxes == [
        BoundingBox(x=0, y=50, width=40, height=40),
        BoundingBox(x=90, y=90, width=10, height=10),
    ]


def test_region_outside_image_is_dropped():
    assert valid_regions([(200, 200, 50, 50)], 100, 100) == []


def test_full_frame_fallback_blurs_whole_image():
    image = make_noise_image()
    result = apply_region_blur(image, [], fallback="full_frame", full_frame_intensity=2)
    assert result.shape == image.shape
    assert not np.array_equal(result, image)


def test_small_region_untouched_next_to_blurred_region(noise_image):
    large = (4, 4, 24, 24)
    small = (44, 44, 6, 6)

    result = apply_region_blur(noise_image, [large, small], intensity=5, min_region_size=10)

    assert np.array_equal(result[44:50, 44:50], noise_image[44:50, 44:50])
    assert not np.array_equal(result[4:28, 4:28], noise_image[4:28, 4:28])


def test_padding_grows_valid_regions_within_image():
    boxes = valid_regions([(2, 30, 20, 20), (50, 50, 4, 4)], 64, 64, min_region_size=10, padding=5)
    # padded on every side, clipped at the left edge; the small box stays dropped
    assert boxes == [BoundingBox(x=0, y=25, width=27, height=30)]


def test_padding_blurs_beyond_the_region(noise_image):
    result = apply_region_blur(noise_image, [(20, 20, 16, 16)], intensity=5, padding=3)

    inside = np.zeros(noise_image.shape[:2], dtype=bool)
    inside[17:39, 17:39] = True
    assert not np.array_equal(result[17:20, 17:39], noise_image[17:20, 17:39])
    assert np.array_equal(result[~inside], noise_image[~inside])
