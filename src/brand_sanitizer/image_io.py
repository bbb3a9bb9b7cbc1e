"""Image decoding, encoding and fetching."""

import base64
import io
from pathlib import Path

import numpy as np
import requests
from PIL import Image, UnidentifiedImageError

from .exceptions import DecodeError


def decode_image(data: bytes) -> np.ndarray:
    """Decode encoded image bytes (JPEG, PNG, WebP, TIFF) to an RGB array.

    Raises:
        DecodeError: if the bytes are not a readable image
    """
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise DecodeError(f"Cannot decode image: {e}") from e

    # Convert to RGB if necessary
    if img.mode != "RGB":
        img = img.convert("RGB")
    return np.array(img)


def fetch_image_bytes(ref: str, timeout: float = 60.0) -> bytes:
    """Read raw image bytes from a local path or an http(s) URL.

    Raises:
        DecodeError: if the image cannot be read or downloaded
    """
    try:
        if ref.startswith(("http://", "https://")):
            resp = requests.get(ref, timeout=timeout)
            resp.raise_for_status()
            return resp.content
        return Path(ref).read_bytes()
    except (requests.RequestException, OSError) as e:
        raise DecodeError(f"Cannot read image {ref}: {e}") from e


def image_to_base64(
    image: np.ndarray,
    image_format: str = "JPEG",
    max_dimension: int = 2048,
) -> str:
    """Convert numpy array to a base64-encoded JPEG or PNG."""
    pil_image = Image.fromarray(image)

    # Resize if too large (vision APIs have image size limits)
    if max(pil_image.size) > max_dimension:
        ratio = max_dimension / max(pil_image.size)
        new_size = (int(pil_image.width * ratio), int(pil_image.height * ratio))
        pil_image = pil_image.resize(new_size, Image.LANCZOS)

    buffer = io.BytesIO()
    if image_format == "JPEG":
        pil_image.save(buffer, format="JPEG", quality=90)
    else:
        pil_image.save(buffer, format=image_format)
    return base64.standard_b64encode(buffer.getvalue()).decode("utf-8")
