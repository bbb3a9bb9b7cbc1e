from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from brand_sanitizer.detection import BrandDetector
from brand_sanitizer.editor import ImageEditor
from brand_sanitizer.exceptions import DetectionError
from brand_sanitizer.models import BoundingBox, DetectedRegion, Product, RiskAssessment


def clean(risk: int = 10) -> RiskAssessment:
    return RiskAssessment(brands=[], risk_score=risk, detected_elements=[])


def flagged(risk: int = 80, brands=("Nike",), elements=("Nike swoosh on side panel",)) -> RiskAssessment:
    return RiskAssessment(brands=list(brands), risk_score=risk, detected_elements=list(elements))


class FakeDetector(BrandDetector):
    """Replays scripted assessments; the last one repeats once the script runs out."""

    def __init__(self, assessments, regions=None, fail_on_call: int | None = None):
        super().__init__()
        self.assessments = list(assessments)
        self.regions = regions or []
        self.fail_on_call = fail_on_call
        self.assess_calls = 0
        self.detect_calls = []

    def assess_risk(self, image):
        self.assess_calls += 1
        if self.fail_on_call is not None and self.assess_calls == self.fail_on_call:
            raise DetectionError("detector unavailable")
        if len(self.assessments) > 1:
            return self.assessments.pop(0)
        return self.assessments[0]

    def detect(self, image, brand_hints=None):
        self.detect_calls.append(brand_hints)
        return list(self.regions)


class FakeEditor(ImageEditor):
    """Returns a slightly brighter copy and records every instruction."""

    def __init__(self):
        self.instructions = []
        self.categories = []

    def edit(self, image, instruction, category_hint="product"):
        self.instructions.append(instruction)
        self.categories.append(category_hint)
        return np.clip(image.astype(np.int16) + 1, 0, 255).astype(np.uint8)


def make_noise_image(h: int = 64, w: int = 64, seed: int = 0) -> np.ndarray:
    rng = np.random.default_rng(seed)
    return rng.integers(0, 256, size=(h, w, 3), dtype=np.uint8)


def write_image(path: Path, image: np.ndarray | None = None) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    if image is None:
        image = make_noise_image()
    Image.fromarray(image).save(str(path), format="PNG")
    return path


def logo_region(x=8, y=8, w=24, h=24) -> DetectedRegion:
    return DetectedRegion(kind="logo", label="Nike", confidence=0.9, bbox=BoundingBox(x=x, y=y, width=w, height=h))


@pytest.fixture
def noise_image() -> np.ndarray:
    return make_noise_image()


@pytest.fixture
def product(tmp_path) -> Product:
    path = write_image(tmp_path / "images" / "p1.png")
    return Product(id="p1", sku="SKU-1", name="Nike Air Jordan 1 Retro High", image=str(path))
