"""Data contracts shared across the pipeline."""

from datetime import datetime, timezone
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field


class BoundingBox(BaseModel):
    """Axis-aligned rectangle in pixel coordinates."""

    x: int
    y: int
    width: int
    height: int

    def clip(self, image_width: int, image_height: int) -> "BoundingBox":
        """Intersect with the image area. May return a zero-size box."""
        x1 = min(max(0, self.x), image_width)
        y1 = min(max(0, self.y), image_height)
        x2 = min(max(0, self.x + self.width), image_width)
        y2 = min(max(0, self.y + self.height), image_height)
        return BoundingBox(x=x1, y=y1, width=max(0, x2 - x1), height=max(0, y2 - y1))

    @classmethod
    def from_corners(cls, x1: float, y1: float, x2: float, y2: float) -> "BoundingBox":
        left, right = sorted((x1, x2))
        top, bottom = sorted((y1, y2))
        return cls(
            x=int(left),
            y=int(top),
            width=int(round(right - left)),
            height=int(round(bottom - top)),
        )


class DetectedRegion(BaseModel):
    kind: Literal["logo", "text"]
    label: str
    confidence: float = Field(ge=0.0, le=1.0)
    bbox: BoundingBox


class EditStrategy(BaseModel):
    type: Literal["swoosh", "logo", "text", "pattern", "silhouette", "unknown"]
    priority: Literal["high", "medium", "low"]
    approach: Literal["remove", "subtle", "ignore", "review"]
    instruction: str
    label: str = ""

    @property
    def is_active(self) -> bool:
        """Active strategies are sent to the generative editor."""
        return self.approach in ("remove", "subtle")


class BlurMetric(BaseModel):
    sharpness: float = Field(ge=0.0)
    blur_score: int

    def is_significant(self, threshold: int = 50) -> bool:
        return self.blur_score >= threshold


class RiskAssessment(BaseModel):
    brands: list[str] = Field(default_factory=list)
    risk_score: int = Field(ge=0, le=100)
    detected_elements: list[str] = Field(default_factory=list)

    def is_clean(self, threshold: int) -> bool:
        return self.risk_score < threshold and not self.brands


class ProductStatus(str, Enum):
    PENDING = "pending"
    CLEAN = "clean"
    BLUR_APPLIED = "blur_applied"
    FAILED = "failed"


class Product(BaseModel):
    id: str
    sku: str = ""
    name: str
    image: str  # local path or http(s) URL


class AnalysisResult(BaseModel):
    """The current analysis of one product. Re-runs overwrite it."""

    product_id: str
    status: ProductStatus = ProductStatus.PENDING
    title: str = ""
    risk_score: int = 100
    brands_detected: list[str] = Field(default_factory=list)
    edited_image_ref: str | None = None
    passes_used: int = 0
    fallback_blur_used: bool = False
    sharpness: float | None = None
    blur_score: int | None = None
    strategies: list[EditStrategy] = Field(default_factory=list)
    review_reasons: list[str] = Field(default_factory=list)
    error: str | None = None
    analyzed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
