"""Detect, edit and re-detect until a photograph is clean or the pass budget runs out.

State machine::

    DETECTING -> CLEAN
              -> NEEDS_EDIT -> EDITING -> RE_DETECTING -> CLEAN
                                                       -> NEEDS_ANOTHER_PASS -> NEEDS_EDIT
                                                       -> GIVE_UP -> CLEAN | NEEDS_REVIEW

An edit that fails the structural comparison against the input photograph is
discarded and goes straight to NEEDS_ANOTHER_PASS (or GIVE_UP when the budget
is spent) without re-detecting.

At most ``max_passes`` generative edits run. ``GIVE_UP`` optionally applies
the deterministic region blur as a last resort and verifies once more.
"""

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

import numpy as np

from .config import Config
from .detection import BrandDetector
from .editor import ImageEditor
from .exceptions import PipelineCancelled
from .masking import apply_region_blur, valid_regions
from .models import EditStrategy, RiskAssessment
from .strategy import build_instruction, classify
from .structure import validate_structure


class LoopState(str, Enum):
    DETECTING = "detecting"
    NEEDS_EDIT = "needs_edit"
    EDITING = "editing"
    RE_DETECTING = "re_detecting"
    NEEDS_ANOTHER_PASS = "needs_another_pass"
    GIVE_UP = "give_up"
    CLEAN = "clean"
    NEEDS_REVIEW = "needs_review"


TERMINAL_STATES = {LoopState.CLEAN, LoopState.NEEDS_REVIEW}


@dataclass
class VerificationOutcome:
    state: LoopState
    image: np.ndarray
    initial: RiskAssessment
    final: RiskAssessment
    passes_used: int = 0
    fallback_blur_used: bool = False
    strategies: list[EditStrategy] = field(default_factory=list)
    instructions: list[str] = field(default_factory=list)
    risk_history: list[int] = field(default_factory=list)
    transitions: list[LoopState] = field(default_factory=list)
    rejected_edits: list[str] = field(default_factory=list)

    @property
    def is_clean(self) -> bool:
        return self.state is LoopState.CLEAN


class VerificationLoop:
    """Drives one photograph through the verification state machine."""

    def __init__(
        self,
        detector: BrandDetector,
        editor: ImageEditor,
        config: Config | None = None,
        cancel_event: threading.Event | None = None,
        on_transition: Callable[[LoopState], None] | None = None,
    ):
        self.detector = detector
        self.editor = editor
        self.config = config or Config()
        self.cancel_event = cancel_event
        self.on_transition = on_transition

    def _check_cancelled(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise PipelineCancelled("Verification cancelled between passes")

    def _is_clean(self, assessment: RiskAssessment) -> bool:
        return assessment.is_clean(self.config.clean_risk_threshold)

    def run(self, image: np.ndarray, category: str = "product") -> VerificationOutcome:
        """Run the loop to a terminal state.

        Raises:
            DetectionError: the detector failed
            EditError: the generative editor failed
            PipelineCancelled: the cancel event was set between passes
        """
        max_passes = max(0, self.config.max_passes)
        # Each pass takes four transitions; the fallback adds two more.
        step_budget = 4 * max_passes + 6

        state = LoopState.DETECTING
        current = image
        passes = 0
        instruction = ""
        initial: RiskAssessment | None = None
        assessment: RiskAssessment | None = None
        strategies: list[EditStrategy] = []
        outcome_fields = {
            "instructions": [],
            "risk_history": [],
            "transitions": [],
            "rejected_edits": [],
        }
        fallback_used = False

        def assess(img: np.ndarray) -> RiskAssessment:
            result = self.detector.assess_risk(img)
            outcome_fields["risk_history"].append(result.risk_score)
            return result

        for _ in range(step_budget):
            if state in TERMINAL_STATES:
                break
            outcome_fields["transitions"].append(state)
            if self.on_transition:
                self.on_transition(state)

            if state is LoopState.DETECTING:
                assessment = initial = assess(current)
                if self._is_clean(assessment):
                    state = LoopState.CLEAN
                elif max_passes == 0:
                    state = LoopState.GIVE_UP
                else:
                    state = LoopState.NEEDS_EDIT

            elif state is LoopState.NEEDS_EDIT:
                self._check_cancelled()
                if passes == 0 or self.config.narrow_instructions:
                    labels = assessment.detected_elements
                else:
                    labels = initial.detected_elements
                pass_strategies = classify(labels)
                if passes == 0:
                    strategies = pass_strategies
                instruction = build_instruction(
                    pass_strategies,
                    brands=assessment.brands,
                    category=category,
                    pass_index=passes,
                )
                outcome_fields["instructions"].append(instruction)
                state = LoopState.EDITING

            elif state is LoopState.EDITING:
                edited = self.editor.edit(current, instruction, category)
                passes += 1
                rejection = self._structure_rejection(image, edited)
                if rejection:
                    # Edit discarded; the previous image stays current
                    outcome_fields["rejected_edits"].append(rejection)
                    if passes < max_passes:
                        state = LoopState.NEEDS_ANOTHER_PASS
                    else:
                        state = LoopState.GIVE_UP
                else:
                    current = edited
                    state = LoopState.RE_DETECTING

            elif state is LoopState.RE_DETECTING:
                assessment = assess(current)
                if self._is_clean(assessment):
                    state = LoopState.CLEAN
                elif passes < max_passes:
                    state = LoopState.NEEDS_ANOTHER_PASS
                else:
                    state = LoopState.GIVE_UP

            elif state is LoopState.NEEDS_ANOTHER_PASS:
                self._check_cancelled()
                state = LoopState.NEEDS_EDIT

            elif state is LoopState.GIVE_UP:
                state = LoopState.NEEDS_REVIEW
                if self.config.fallback_blur:
                    blurred, applied = self._fallback_blur(current, assessment)
                    if applied:
                        current = blurred
                        fallback_used = True
                        assessment = assess(current)
                        if self._is_clean(assessment):
                            state = LoopState.CLEAN

        if state not in TERMINAL_STATES:
            # Step budget exhausted
            state = LoopState.NEEDS_REVIEW

        return VerificationOutcome(
            state=state,
            image=current,
            initial=initial,
            final=assessment,
            passes_used=passes,
            fallback_blur_used=fallback_used,
            strategies=strategies,
            **outcome_fields,
        )

    def _structure_rejection(self, original: np.ndarray, edited: np.ndarray) -> str:
        """Reason the edit must be discarded, or an empty string."""
        cfg = self.config
        if not cfg.validate_structure:
            return ""
        check = validate_structure(
            original,
            edited,
            max_dimension=cfg.structure_max_dimension,
            mean_diff_threshold=cfg.structure_mean_diff_threshold,
            pixel_diff_threshold=cfg.structure_pixel_diff_threshold,
            changed_fraction_threshold=cfg.structure_changed_fraction_threshold,
        )
        return "" if check.is_valid else check.reason

    def _fallback_blur(self, image: np.ndarray, assessment: RiskAssessment) -> tuple[np.ndarray, bool]:
        """Blur detected regions; returns the image and whether anything changed."""
        cfg = self.config
        regions = self.detector.detect(image, brand_hints=assessment.brands)
        h, w = image.shape[:2]
        usable = valid_regions(regions, w, h, cfg.min_region_size, cfg.region_padding)
        if not usable and cfg.fallback_mode == "copy":
            return image, False

        blurred = apply_region_blur(
            image,
            usable,
            intensity=cfg.blur_intensity,
            min_region_size=cfg.min_region_size,
            fallback=cfg.fallback_mode,
            full_frame_intensity=cfg.full_frame_blur_intensity,
        )
        return blurred, True
