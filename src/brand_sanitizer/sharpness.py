"""Laplacian-variance sharpness scoring.

Low variance means few edges, which means a blurrier image. The variance is
mapped onto a coarse 0-100 blur score so results can be compared across
images of different content.
"""

import numpy as np
import cv2

from .exceptions import DecodeError
from .image_io import decode_image
from .models import BlurMetric

# (upper sharpness bound, blur score); the first bound the sharpness is below wins
BLUR_BUCKETS = (
    (50.0, 100),
    (100.0, 80),
    (150.0, 60),
    (200.0, 40),
    (300.0, 20),
)
BLUR_SCORES = (0, 20, 40, 60, 80, 100)


def blur_score_for(sharpness: float) -> int:
    """Map a Laplacian variance onto the bucketed blur score."""
    for upper, score in BLUR_BUCKETS:
        if sharpness < upper:
            return score
    return 0


def laplacian_variance(image: np.ndarray) -> float:
    """Mean squared response of the 4-neighbour Laplacian over interior pixels.

    Border rows and columns are excluded; there is no wraparound.
    """
    if image.ndim == 3:
        gray = cv2.cvtColor(image, cv2.COLOR_RGB2GRAY)
    else:
        gray = image
    gray = gray.astype(np.float64)

    h, w = gray.shape[:2]
    if h < 3 or w < 3:
        return 0.0

    # Kernel:
    # [ 0  1  0 ]
    # [ 1 -4  1 ]
    # [ 0  1  0 ]
    center = gray[1:-1, 1:-1]
    response = (
        gray[:-2, 1:-1]
        + gray[2:, 1:-1]
        + gray[1:-1, :-2]
        + gray[1:-1, 2:]
        - 4.0 * center
    )
    return float(np.sum(response * response) / response.size)


def score(image: np.ndarray) -> BlurMetric:
    """Score a decoded RGB (or single-channel) image."""
    sharpness = laplacian_variance(image)
    return BlurMetric(sharpness=sharpness, blur_score=blur_score_for(sharpness))


def score_bytes(data: bytes) -> BlurMetric:
    """Score encoded image bytes.

    Raises:
        DecodeError: if the bytes cannot be decoded
    """
    return score(decode_image(data))


def score_or_worst(data: bytes) -> BlurMetric:
    """Score encoded bytes, treating undecodable input as maximally blurred."""
    try:
        return score_bytes(data)
    except DecodeError:
        return BlurMetric(sharpness=0.0, blur_score=100)
