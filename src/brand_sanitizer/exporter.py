"""PNG export of sanitized photographs with a JSON analysis sidecar."""

import json
from datetime import datetime
from pathlib import Path

import numpy as np
from PIL import Image

from .models import AnalysisResult, Product
from .store import safe_key


def export_image(
    image: np.ndarray,
    product: Product,
    output_dir: Path,
) -> Path:
    """Export a sanitized photograph as PNG.

    Args:
        image: Sanitized image as numpy array (RGB)
        product: Product the image belongs to (for naming)
        output_dir: Directory to save output

    Returns:
        Path to saved file
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    stem = safe_key(product.sku or product.id)
    output_path = output_dir / f"{stem}_sanitized.png"

    pil_image = Image.fromarray(image)
    if pil_image.mode != "RGB":
        pil_image = pil_image.convert("RGB")

    # Lossless so a later verification sees exactly what was exported
    pil_image.save(output_path, "PNG")
    return output_path


def save_sidecar(image_path: Path, product: Product, result: AnalysisResult) -> Path:
    """Save the analysis as a JSON sidecar next to the exported image."""
    sidecar_path = Path(image_path).with_suffix(".json")

    sidecar_data = {
        "product_id": product.id,
        "sku": product.sku,
        "original_title": product.name,
        "original_image": product.image,
        "exported_date": datetime.now().isoformat(),
        "analysis": result.model_dump(mode="json"),
    }

    with open(sidecar_path, "w") as f:
        json.dump(sidecar_data, f, indent=2)
    return sidecar_path
