"""Region masking and blur."""

from typing import Iterable, Literal, Union

import numpy as np
import cv2

from .models import BoundingBox, DetectedRegion

RegionLike = Union[BoundingBox, DetectedRegion, tuple[int, int, int, int]]


def _as_box(region: RegionLike) -> BoundingBox:
    if isinstance(region, DetectedRegion):
        return region.bbox
    if isinstance(region, BoundingBox):
        return region
    x, y, w, h = region
    return BoundingBox(x=int(x), y=int(y), width=int(w), height=int(h))


def valid_regions(
    regions: Iterable[RegionLike],
    image_width: int,
    image_height: int,
    min_region_size: int = 10,
    padding: int = 0,
) -> list[BoundingBox]:
    """Clip regions to the image and drop those too small to blur.

    The size check runs on the unpadded box; surviving boxes are then grown
    by ``padding`` pixels on every side and clipped again.
    """
    boxes = []
    for region in regions:
        box = _as_box(region)
        clipped = box.clip(image_width, image_height)
        if clipped.width < min_region_size or clipped.height < min_region_size:
            continue
        if padding > 0:
            clipped = BoundingBox(
                x=box.x - padding,
                y=box.y - padding,
                width=box.width + 2 * padding,
                height=box.height + 2 * padding,
            ).clip(image_width, image_height)
        boxes.append(clipped)
    return boxes


def gaussian_blur(image: np.ndarray, intensity: float) -> np.ndarray:
    """Gaussian blur with sigma ``intensity``; kernel size derived from sigma."""
    if intensity <= 0:
        return image.copy()
    return cv2.GaussianBlur(image, (0, 0), sigmaX=float(intensity))


def apply_region_blur(
    image: np.ndarray,
    regions: Iterable[RegionLike],
    intensity: int = 30,
    min_region_size: int = 10,
    fallback: Literal["copy", "full_frame"] = "copy",
    full_frame_intensity: int = 15,
    padding: int = 0,
) -> np.ndarray:
    """Blur each region in place on a copy of the image.

    Args:
        image: Input image as numpy array (RGB)
        regions: Boxes to blur, in pixel coordinates
        intensity: Gaussian sigma applied inside each region
        min_region_size: Regions narrower or shorter than this (after clipping)
            are left untouched
        fallback: What to do when no valid region remains. "copy" returns an
            unchanged copy, "full_frame" blurs the whole image lightly
        full_frame_intensity: Gaussian sigma for the full-frame fallback
        padding: Pixels added on every side of each valid region before
            blurring, clipped to the image

    Returns:
        New image; the input array is never modified
    """
    h, w = image.shape[:2]
    boxes = valid_regions(regions, w, h, min_region_size, padding)

    if not boxes:
        if fallback == "full_frame":
            return gaussian_blur(image, full_frame_intensity)
        return image.copy()

    result = image.copy()
    for box in boxes:
        y1, y2 = box.y, box.y + box.height
        x1, x2 = box.x, box.x + box.width
        # Patches are always cut from the source; overlaps are never blurred twice.
        patch = np.ascontiguousarray(image[y1:y2, x1:x2])
        result[y1:y2, x1:x2] = gaussian_blur(patch, intensity)

    return result
