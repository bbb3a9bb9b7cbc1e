"""Brand, logo and text detection backed by remote vision services.

Every detector offers two modes:

1. ``detect`` returns structured logo/text regions with pixel bounding boxes,
   used when a blur mask is needed
2. ``assess_risk`` returns a holistic judgment (brands, 0-100 risk score,
   free-form element labels) without geometry, used for go/no-go verification

Network and malformed-response failures surface as ``DetectionError`` once
the injected retry policy gives up.
"""

import json
import os
from abc import ABC, abstractmethod

import numpy as np
import requests

from .config import Config
from .exceptions import DetectionError
from .image_io import image_to_base64
from .models import BoundingBox, DetectedRegion, RiskAssessment
from .retry import RetryPolicy


class BrandDetector(ABC):
    """Common interface for brand detection backends."""

    def __init__(self, min_region_size: int = 10, retry: RetryPolicy | None = None):
        self.min_region_size = min_region_size
        self.retry = retry or RetryPolicy.none()

    @abstractmethod
    def detect(
        self,
        image: np.ndarray,
        brand_hints: list[str] | None = None,
    ) -> list[DetectedRegion]:
        """Locate logos and text, returning regions clipped to the image."""

    @abstractmethod
    def assess_risk(self, image: np.ndarray) -> RiskAssessment:
        """Judge how likely it is that brand marks are still visible."""


def normalize_regions(
    candidates: list[tuple[str, str, float, BoundingBox]],
    image_width: int,
    image_height: int,
    min_region_size: int,
) -> list[DetectedRegion]:
    """Clip candidate boxes to the image and discard ones below min size.

    Each candidate is ``(kind, label, confidence, bbox)``.
    """
    regions = []
    for kind, label, confidence, bbox in candidates:
        clipped = bbox.clip(image_width, image_height)
        if clipped.width < min_region_size or clipped.height < min_region_size:
            continue
        regions.append(
            DetectedRegion(
                kind=kind,
                label=label,
                confidence=min(max(confidence, 0.0), 1.0),
                bbox=clipped,
            )
        )
    return regions


def box_2d_to_bbox(box_2d: list[float], image_width: int, image_height: int) -> BoundingBox:
    """Convert ``[ymin, xmin, ymax, xmax]`` normalized to 0-1000 into pixels."""
    if len(box_2d) != 4:
        raise DetectionError(f"box_2d must have 4 values, got {box_2d!r}")
    ymin, xmin, ymax, xmax = (float(v) for v in box_2d)
    return BoundingBox.from_corners(
        xmin / 1000 * image_width,
        ymin / 1000 * image_height,
        xmax / 1000 * image_width,
        ymax / 1000 * image_height,
    )


def _normalize_confidence(value) -> float:
    confidence = float(value)
    # Some responses use a 0-100 scale
    return confidence / 100 if confidence > 1 else confidence


def _clamp_risk(value) -> int:
    return int(min(max(round(float(value)), 0), 100))


def parse_json_response(response_text: str) -> dict:
    """Extract a JSON object from a model response.

    Accepts raw JSON, a fenced ```json block, or the outermost ``{...}`` span.

    Raises:
        DetectionError: if no JSON object can be found
    """
    data = _extract_json(response_text)
    if not isinstance(data, dict):
        raise DetectionError(f"Detector response is not a JSON object: {type(data).__name__}")
    return data


def _string_list(data: dict, key: str) -> list[str]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise DetectionError(f"Detector field {key!r} must be a list, got {type(value).__name__}")
    return [str(v) for v in value]


def _extract_json(response_text: str):
    try:
        return json.loads(response_text)
    except json.JSONDecodeError:
        pass

    if "```json" in response_text:
        start = response_text.find("```json") + 7
        end = response_text.find("```", start)
        if end > start:
            try:
                return json.loads(response_text[start:end].strip())
            except json.JSONDecodeError:
                pass

    start = response_text.find("{")
    end = response_text.rfind("}") + 1
    if start >= 0 and end > start:
        try:
            return json.loads(response_text[start:end])
        except json.JSONDecodeError:
            pass

    raise DetectionError("Could not parse detector response as JSON")


RISK_PROMPT = """Analyze this product photograph and detect ANY visible brand elements.

Look for:
- Brand logos and symbols (swooshes, stripes, emblems, jumpman/wings marks)
- Brand text and wordmarks, including text on tags, tongues, insoles and packaging
- Signature brand patterns (monograms, repeated symbols)

Risk scale:
- 0-20: no visible branding
- 21-40: faint traces
- 41-70: partial logos or text still visible
- 71-100: clear, prominent brand elements

Return ONLY valid JSON in this exact format, with no additional text:
{
    "brands": ["Brand1"],
    "riskScore": 0,
    "detectedElements": ["Nike swoosh on side panel", "SPLY-350 text on upper"]
}

"detectedElements" must describe each visible element in a few words, naming what it is
(logo, swoosh, text, wordmark, monogram, pattern, silhouette...). Be VERY STRICT."""


def _region_prompt(brand_hints: list[str] | None) -> str:
    hints = ""
    if brand_hints:
        hints = f"\nPay particular attention to these brands: {', '.join(brand_hints)}.\n"
    return f"""Locate every brand logo and every piece of brand text in this product photograph.
{hints}
For EACH element return:
- "type": "logo" or "text"
- "label": what it is (brand name or the text itself)
- "confidence": 0-1
- "box_2d": [ymin, xmin, ymax, xmax] normalized to 0-1000, tight around the element

Return ONLY valid JSON in this exact format, with no additional text:
{{
    "regions": [
        {{"type": "logo", "label": "Nike", "confidence": 0.95, "box_2d": [300, 450, 400, 550]}}
    ]
}}"""


class ClaudeBrandDetector(BrandDetector):
    """Detection through Claude Vision with JSON-constrained prompts."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "claude-sonnet-4-20250514",
        client=None,
        max_tokens: int = 1024,
        min_region_size: int = 10,
        retry: RetryPolicy | None = None,
    ):
        super().__init__(min_region_size=min_region_size, retry=retry)
        self.api_key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        self.model = model
        self.max_tokens = max_tokens
        self._client = client

    def _get_client(self):
        if self._client is None:
            import anthropic

            if not self.api_key:
                raise DetectionError("ANTHROPIC_API_KEY not set")
            self._client = anthropic.Anthropic(api_key=self.api_key)
        return self._client

    def _ask(self, image: np.ndarray, prompt: str) -> dict:
        import anthropic

        # Missing credentials fail once, outside the retry loop
        client = self._get_client()
        image_base64 = image_to_base64(image)

        def _once() -> dict:
            try:
                message = client.messages.create(
                    model=self.model,
                    max_tokens=self.max_tokens,
                    messages=[
                        {
                            "role": "user",
                            "content": [
                                {
                                    "type": "image",
                                    "source": {
                                        "type": "base64",
                                        "media_type": "image/jpeg",
                                        "data": image_base64,
                                    },
                                },
                                {
                                    "type": "text",
                                    "text": prompt,
                                },
                            ],
                        }
                    ],
                )
            except anthropic.APIError as e:
                raise DetectionError(f"Claude API call failed: {e}") from e

            if not message.content:
                raise DetectionError("Empty response from Claude")
            text = getattr(message.content[0], "text", None)
            if not isinstance(text, str):
                raise DetectionError("Claude response has no text block")
            return parse_json_response(text)

        return self.retry.call(_once, description="Claude detection")

    def assess_risk(self, image: np.ndarray) -> RiskAssessment:
        data = self._ask(image, RISK_PROMPT)
        if "riskScore" not in data:
            raise DetectionError("Detector response is missing riskScore")
        try:
            return RiskAssessment(
                brands=_string_list(data, "brands"),
                risk_score=_clamp_risk(data["riskScore"]),
                detected_elements=_string_list(data, "detectedElements"),
            )
        except (TypeError, ValueError) as e:
            raise DetectionError(f"Malformed risk assessment: {e}") from e

    def detect(
        self,
        image: np.ndarray,
        brand_hints: list[str] | None = None,
    ) -> list[DetectedRegion]:
        h, w = image.shape[:2]
        data = self._ask(image, _region_prompt(brand_hints))

        items = data.get("regions") or []
        if not isinstance(items, list):
            raise DetectionError(f"Detector field 'regions' must be a list, got {type(items).__name__}")

        candidates = []
        try:
            for item in items:
                if not isinstance(item, dict):
                    raise DetectionError(f"Region must be an object, got {item!r}")
                kind = "text" if item.get("type") == "text" else "logo"
                bbox = box_2d_to_bbox(item["box_2d"], w, h)
                candidates.append(
                    (kind, str(item.get("label", "")), _normalize_confidence(item.get("confidence", 1.0)), bbox)
                )
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise DetectionError(f"Malformed region in detector response: {e}") from e

        return normalize_regions(candidates, w, h, self.min_region_size)


class CloudVisionDetector(BrandDetector):
    """Detection through Google Cloud Vision LOGO_DETECTION + TEXT_DETECTION.

    Risk is derived from detection counts: each logo adds 40 (capped at 60)
    and each text block adds 20 (capped at 40).
    """

    API_URL = "https://vision.googleapis.com/v1/images:annotate"
    MAX_DIMENSION = 4096

    def __init__(
        self,
        api_key: str | None = None,
        max_results: int = 10,
        timeout_s: float = 60.0,
        min_region_size: int = 10,
        retry: RetryPolicy | None = None,
    ):
        super().__init__(min_region_size=min_region_size, retry=retry)
        self.api_key = api_key or os.environ.get("GOOGLE_VISION_API_KEY")
        self.max_results = max_results
        self.timeout_s = timeout_s

    def _annotate(self, image: np.ndarray) -> tuple[dict, float]:
        """Call the Vision API; returns the annotation and pixel scale factor."""
        if not self.api_key:
            raise DetectionError("GOOGLE_VISION_API_KEY not set")

        h, w = image.shape[:2]
        scale = max(h, w) / self.MAX_DIMENSION if max(h, w) > self.MAX_DIMENSION else 1.0
        payload = {
            "requests": [
                {
                    "image": {"content": image_to_base64(image, max_dimension=self.MAX_DIMENSION)},
                    "features": [
                        {"type": "LOGO_DETECTION", "maxResults": self.max_results},
                        {"type": "TEXT_DETECTION", "maxResults": self.max_results},
                    ],
                }
            ]
        }

        def _once() -> dict:
            try:
                resp = requests.post(
                    self.API_URL,
                    params={"key": self.api_key},
                    json=payload,
                    timeout=self.timeout_s,
                )
                resp.raise_for_status()
                data = resp.json()
            except requests.RequestException as e:
                raise DetectionError(f"Vision API request failed: {e}") from e
            except ValueError as e:
                raise DetectionError(f"Vision API returned invalid JSON: {e}") from e

            if not isinstance(data, dict):
                raise DetectionError(f"Vision API response is not a JSON object: {type(data).__name__}")
            responses = data.get("responses") or []
            if not isinstance(responses, list) or not responses:
                raise DetectionError("Vision API returned no responses")
            annotation = responses[0] or {}
            if not isinstance(annotation, dict):
                raise DetectionError(f"Vision API annotation is not an object: {annotation!r}")
            if "error" in annotation:
                error = annotation["error"]
                message = error.get("message", error) if isinstance(error, dict) else error
                raise DetectionError(f"Vision API error: {message}")
            return annotation

        return self.retry.call(_once, description="Vision API detection"), scale

    @staticmethod
    def _poly_to_bbox(poly: dict, scale: float) -> BoundingBox:
        vertices = poly.get("vertices") or []
        if not vertices:
            raise DetectionError("Annotation has no bounding polygon")
        xs = [v.get("x", 0) * scale for v in vertices]
        ys = [v.get("y", 0) * scale for v in vertices]
        return BoundingBox.from_corners(min(xs), min(ys), max(xs), max(ys))

    @staticmethod
    def _split(annotation: dict) -> tuple[list[dict], list[dict]]:
        groups = []
        for key in ("logoAnnotations", "textAnnotations"):
            items = annotation.get(key) or []
            if not isinstance(items, list) or not all(isinstance(i, dict) for i in items):
                raise DetectionError(f"Vision API field {key!r} must be a list of objects")
            groups.append(items)
        logos, texts = groups
        # The first text annotation is the full concatenated text
        return logos, texts[1:]

    def detect(
        self,
        image: np.ndarray,
        brand_hints: list[str] | None = None,
    ) -> list[DetectedRegion]:
        """Return every logo and text region.

        ``brand_hints`` are not used: all detections are reported, whether or
        not they match a previously seen brand.
        """
        h, w = image.shape[:2]
        annotation, scale = self._annotate(image)
        logos, texts = self._split(annotation)

        candidates = []
        try:
            for logo in logos:
                bbox = self._poly_to_bbox(logo.get("boundingPoly") or {}, scale)
                candidates.append(("logo", str(logo.get("description", "")), float(logo.get("score", 1.0)), bbox))
            for text in texts:
                bbox = self._poly_to_bbox(text.get("boundingPoly") or {}, scale)
                # TEXT_DETECTION does not report a confidence
                candidates.append(("text", str(text.get("description", "")), 1.0, bbox))
        except (AttributeError, TypeError, ValueError) as e:
            raise DetectionError(f"Malformed annotation in Vision API response: {e}") from e

        return normalize_regions(candidates, w, h, self.min_region_size)

    def assess_risk(self, image: np.ndarray) -> RiskAssessment:
        annotation, _ = self._annotate(image)
        logos, texts = self._split(annotation)

        logo_risk = min(len(logos) * 40, 60)
        text_risk = min(len(texts) * 20, 40)

        brands = list(dict.fromkeys(
            [str(logo.get("description", "")) for logo in logos]
            + [str(text.get("description", "")) for text in texts]
        ))
        elements = (
            [f"{logo.get('description', '')} logo" for logo in logos]
            + [f"{text.get('description', '')} text" for text in texts]
        )
        return RiskAssessment(
            brands=[b for b in brands if b],
            risk_score=min(logo_risk + text_risk, 100),
            detected_elements=elements,
        )


def create_detector(config: Config) -> BrandDetector:
    """Build the detector named by ``config.detector``."""
    retry = RetryPolicy.from_config(config, retry_on=(DetectionError,))
    if config.detector == "cloud_vision":
        return CloudVisionDetector(
            timeout_s=config.request_timeout_s,
            min_region_size=config.min_region_size,
            retry=retry,
        )
    return ClaudeBrandDetector(
        model=config.detection_model,
        min_region_size=config.min_region_size,
        retry=retry,
    )
