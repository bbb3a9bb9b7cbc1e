"""Error taxonomy for the sanitization pipeline."""


class SanitizerError(Exception):
    """Base class for all per-item pipeline errors."""


class DecodeError(SanitizerError):
    """Image bytes could not be decoded."""


class DetectionError(SanitizerError):
    """Remote detector unreachable or returned a malformed response."""


class EditError(SanitizerError):
    """Remote generative editor failed."""


class ExhaustedPasses(SanitizerError):
    """Verification reached its pass limit while the image was still flagged."""

    def __init__(self, passes: int, risk_score: int, brands: list[str]):
        self.passes = passes
        self.risk_score = risk_score
        self.brands = brands
        remaining = ", ".join(brands) if brands else "none reported"
        super().__init__(
            f"Exhausted {passes} verification pass(es); "
            f"risk score {risk_score} remains (brands: {remaining})"
        )


class PipelineCancelled(SanitizerError):
    """Processing was cancelled between passes or batch items."""
