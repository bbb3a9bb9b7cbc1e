"""Structural comparison between a photograph and its generative edit.

Both images are reduced to grayscale thumbnails of the same size and compared
pixel by pixel. An edit that shifts the whole frame, or rewrites a large share
of it, is treated as a different photograph rather than a retouch.
"""

from dataclasses import dataclass

import numpy as np
import cv2


@dataclass
class StructureCheck:
    is_valid: bool
    mean_diff: float
    changed_fraction: float
    reason: str = ""


def _grayscale(image: np.ndarray) -> np.ndarray:
    if image.ndim == 3 and image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_RGBA2GRAY)
    if image.ndim == 3:
        return cv2.cvtColor(image, cv2.COLOR_RGB2GRAY)
    return image


def _thumbnail_size(width: int, height: int, max_dimension: int) -> tuple[int, int]:
    """Fit inside a ``max_dimension`` square, never enlarging."""
    scale = min(1.0, max_dimension / max(width, height))
    return max(1, round(width * scale)), max(1, round(height * scale))


def validate_structure(
    original: np.ndarray,
    edited: np.ndarray,
    max_dimension: int = 512,
    mean_diff_threshold: float = 30.0,
    pixel_diff_threshold: int = 50,
    changed_fraction_threshold: float = 0.20,
) -> StructureCheck:
    """Check that ``edited`` keeps the layout of ``original``.

    Args:
        original: Image before the edit (RGB or grayscale)
        edited: Image after the edit; may differ in size
        max_dimension: Longest side of the comparison thumbnails
        mean_diff_threshold: Largest allowed mean absolute gray-level difference
        pixel_diff_threshold: Difference above which a pixel counts as changed
        changed_fraction_threshold: Largest allowed share of changed pixels

    Returns:
        StructureCheck; ``is_valid`` requires both measures under their limits
    """
    h, w = original.shape[:2]
    size = _thumbnail_size(w, h, max_dimension)

    before = cv2.resize(_grayscale(original), size, interpolation=cv2.INTER_AREA)
    after = cv2.resize(_grayscale(edited), size, interpolation=cv2.INTER_AREA)

    diff = np.abs(before.astype(np.int16) - after.astype(np.int16))
    mean_diff = float(diff.mean())
    changed_fraction = float((diff > pixel_diff_threshold).mean())

    reasons = []
    if mean_diff >= mean_diff_threshold:
        reasons.append(f"mean difference {mean_diff:.1f}, limit {mean_diff_threshold:g}")
    if changed_fraction >= changed_fraction_threshold:
        reasons.append(
            f"{changed_fraction:.0%} of pixels changed, limit {changed_fraction_threshold:.0%}"
        )

    return StructureCheck(
        is_valid=not reasons,
        mean_diff=mean_diff,
        changed_fraction=changed_fraction,
        reason="; ".join(reasons),
    )
