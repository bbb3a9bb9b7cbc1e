import pytest
from pydantic import ValidationError

from brand_sanitizer.exceptions import ExhaustedPasses
from brand_sanitizer.models import BlurMetric, BoundingBox, DetectedRegion, RiskAssessment


def test_clip_inside_is_unchanged():
    box = BoundingBox(x=10, y=20, width=30, height=40)
    assert box.clip(100, 100) == box


def test_clip_outside_is_empty():
    clipped = BoundingBox(x=150, y=10, width=30, height=40).clip(100, 100)
    assert (clipped.width, clipped.height) == (0, 40)


def test_from_corners_orders_points():
    assert BoundingBox.from_corners(50, 40, 10, 20) == BoundingBox(x=10, y=20, width=40, height=20)


def test_region_confidence_range():
    with pytest.raises(ValidationError):
        DetectedRegion(kind="logo", label="x", confidence=1.5, bbox=BoundingBox(x=0, y=0, width=1, height=1))


@pytest.mark.parametrize(
    "risk,brands,expected",
    [(10, [], True), (29, [], True), (30, [], False), (5, ["Nike"], False)],
)
def test_is_clean(risk, brands, expected):
    assert RiskAssessment(brands=brands, risk_score=risk).is_clean(30) is expected


def test_blur_significance():
    assert BlurMetric(sharpness=10, blur_score=60).is_significant()
    assert not BlurMetric(sharpness=400, blur_score=0).is_significant()
    assert not BlurMetric(sharpness=10, blur_score=60).is_significant(threshold=80)


def test_exhausted_passes_message():
    error = ExhaustedPasses(3, 55, ["Nike", "Adidas"])
    assert str(error) == "Exhausted 3 verification pass(es); risk score 55 remains (brands: Nike, Adidas)"
    assert error.passes == 3
