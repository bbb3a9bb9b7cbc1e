import io

import numpy as np
import pytest
from PIL import Image

from brand_sanitizer.exceptions import DecodeError
from brand_sanitizer.masking import gaussian_blur
from brand_sanitizer.sharpness import (
    BLUR_SCORES,
    blur_score_for,
    laplacian_variance,
    score,
    score_bytes,
    score_or_worst,
)

from conftest import make_noise_image


@pytest.mark.parametrize(
    "sharpness,expected",
    [
        (0.0, 100),
        (40.0, 100),
        (50.0, 80),
        (99.9, 80),
        (100.0, 60),
        (150.0, 40),
        (200.0, 20),
        (250.0, 20),
        (300.0, 0),
        (1000.0, 0),
    ],
)
def test_blur_score_buckets(sharpness, expected):
    assert blur_score_for(sharpness) == expected


def test_blur_score_is_monotonic_non_increasing():
    values = [blur_score_for(s) for s in np.linspace(0, 500, 501)]
    assert all(a >= b for a, b in zip(values, values[1:]))
    assert set(values) <= set(BLUR_SCORES)


def test_single_bright_pixel_variance():
    gray = np.zeros((5, 5), dtype=np.uint8)
    gray[2, 2] = 100
    # center response -400, four neighbours +100, averaged over 9 interior pixels
    assert laplacian_variance(gray) == pytest.approx(200000 / 9)


def test_uniform_image_is_maximally_blurred():
    image = np.full((32, 32, 3), 128, dtype=np.uint8)
    metric = score(image)
    assert metric.sharpness == 0.0
    assert metric.blur_score == 100


def test_tiny_image_has_no_interior():
    assert laplacian_variance(np.zeros((2, 10, 3), dtype=np.uint8)) == 0.0


def test_checkerboard_is_sharp():
    board = (np.indices((32, 32)).sum(axis=0) % 2 * 255).astype(np.uint8)
    image = np.stack([board] * 3, axis=-1)
    assert score(image).blur_score == 0


def test_blurring_lowers_sharpness():
    image = make_noise_image(96, 96)
    assert score(gaussian_blur(image, 3)).sharpness < score(image).sharpness


def test_score_is_deterministic():
    image = make_noise_image(seed=7)
    assert score(image) == score(image.copy())


def test_score_bytes_decodes_png():
    image = make_noise_image()
    buf = io.BytesIO()
    Image.fromarray(image).save(buf, format="PNG")
    assert score_bytes(buf.getvalue()).sharpness == pytest.approx(score(image).sharpness)


def test_score_bytes_rejects_garbage():
    with pytest.raises(DecodeError):
        score_bytes(b"not an image")


def test_score_or_worst_treats_garbage_as_blurred():
    metric = score_or_worst(b"not an image")
    assert metric.sharpness == 0.0
    assert metric.blur_score == 100
    assert metric.is_significant()
