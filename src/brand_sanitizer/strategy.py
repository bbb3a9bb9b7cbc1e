"""Turn detected element labels into targeted edit instructions.

Classification is driven by the ``RULES`` table: each rule names a keyword
family and the strategy it produces. Rules are tried in order and the first
rule with a keyword starting a word of the label wins (case-insensitive).
Labels that no rule matches become ``unknown`` strategies flagged for manual
review.
"""

import re
from dataclasses import dataclass

from .models import EditStrategy

PRIORITY_ORDER = {"high": 0, "medium": 1, "low": 2}
APPROACH_ORDER = {"remove": 0, "subtle": 1, "ignore": 2, "review": 3}


@dataclass(frozen=True)
class StrategyRule:
    keywords: tuple[str, ...]
    type: str
    priority: str
    approach: str
    instruction: str

    def matches(self, label: str) -> bool:
        return any(
            re.search(rf"\b{re.escape(keyword)}", label, re.IGNORECASE)
            for keyword in self.keywords
        )

    def to_strategy(self, label: str) -> EditStrategy:
        return EditStrategy(
            type=self.type,
            priority=self.priority,
            approach=self.approach,
            instruction=self.instruction,
            label=label,
        )


RULES: tuple[StrategyRule, ...] = (
    StrategyRule(
        keywords=("swoosh", "blend", "checkmark"),
        type="swoosh",
        priority="high",
        approach="subtle",
        instruction=(
            "SUBTLY blend the brand mark into the surrounding material. Maintain the "
            "panel shape and stitching lines, but COMPLETELY remove the mark itself. "
            "Match the exact color and texture of the surrounding material."
        ),
    ),
    StrategyRule(
        keywords=("wings", "jumpman", "logo", "emblem", "trefoil", "badge"),
        type="logo",
        priority="high",
        approach="remove",
        instruction=(
            "COMPLETELY REMOVE the logo. Fill the area with matching material texture "
            "and color. Ensure NO traces of the logo remain."
        ),
    ),
    StrategyRule(
        keywords=("text", "wordmark", "lettering", "sply", "nike air", "tag", "label"),
        type="text",
        priority="high",
        approach="remove",
        instruction=(
            "COMPLETELY REMOVE all visible text and wordmarks. Replace with matching "
            "material texture. NO text should remain visible."
        ),
    ),
    StrategyRule(
        keywords=("monogram", "louis vuitton", "lv", "stripe", "pattern", "print"),
        type="pattern",
        priority="high",
        approach="remove",
        instruction=(
            "REMOVE the brand pattern (monograms, repeated symbols, signature stripes). "
            "Replace with solid color matching the base material. Maintain material "
            "texture but REMOVE all brand patterns."
        ),
    ),
    StrategyRule(
        keywords=("silhouette", "shape", "design"),
        type="silhouette",
        priority="low",
        approach="ignore",
        instruction=(
            "DO NOT alter the product silhouette or overall design. This is product "
            "design, not branding."
        ),
    ),
)

UNKNOWN_INSTRUCTION = "Unrecognized element; route to manual review."

GENERIC_INSTRUCTION = (
    "Remove all brand elements from this {category} while maintaining design integrity."
)

INTENSITY_LEVELS = (
    "Apply careful brand removal with subtle inpainting.",
    "Use stronger brand elimination with enhanced texture matching.",
    "Execute aggressive brand removal ensuring complete elimination.",
)


def classify_label(label: str, rules: tuple[StrategyRule, ...] = RULES) -> EditStrategy:
    for rule in rules:
        if rule.matches(label):
            return rule.to_strategy(label)
    return EditStrategy(
        type="unknown",
        priority="low",
        approach="review",
        instruction=UNKNOWN_INSTRUCTION,
        label=label,
    )


def classify(labels: list[str], rules: tuple[StrategyRule, ...] = RULES) -> list[EditStrategy]:
    """Classify every label, keeping input order. Blank labels are skipped."""
    return [classify_label(label, rules) for label in labels if label.strip()]


def active_strategies(strategies: list[EditStrategy]) -> list[EditStrategy]:
    """Strategies to send to the editor, most urgent first.

    Sorted by priority, then ``remove`` before ``subtle``; ties keep input order.
    """
    active = [s for s in strategies if s.is_active]
    return sorted(
        active,
        key=lambda s: (PRIORITY_ORDER[s.priority], APPROACH_ORDER[s.approach]),
    )


def review_labels(strategies: list[EditStrategy]) -> list[str]:
    return [s.label for s in strategies if s.approach == "review"]


def build_instruction(
    strategies: list[EditStrategy],
    brands: list[str],
    category: str = "product",
    pass_index: int = 0,
) -> str:
    """Build the natural-language instruction block for the generative editor."""
    active = active_strategies(strategies)
    intensity = INTENSITY_LEVELS[min(pass_index, len(INTENSITY_LEVELS) - 1)]

    if not active:
        return f"{GENERIC_INSTRUCTION.format(category=category)} {intensity}"

    edits = "\n\n".join(
        f"{i}. [{s.type.upper()}] {s.instruction}" for i, s in enumerate(active, 1)
    )
    detected = ", ".join(brands) if brands else "unspecified"

    return f"""TARGETED BRAND REMOVAL from {category}:

Detected brands: {detected}

SPECIFIC EDITS REQUIRED (in order of priority):

{edits}

CRITICAL RULES:
- Maintain overall product design and silhouette
- Match exact colors and textures of surrounding materials
- Preserve stitching lines, panel shapes, and construction details
- ONLY edit brand elements, NOT design elements
- Result must look natural and unedited
- {intensity}

OUTPUT: A {category} with ALL brand elements removed but design integrity preserved."""


def infer_category(product_name: str) -> str:
    """Guess a category hint for the editor from the product name."""
    lower = product_name.lower()
    if any(word in lower for word in ("sneaker", "shoe", "tênis", "dunk", "jordan", "yeezy")):
        return "sneaker"
    if any(word in lower for word in ("shirt", "hoodie", "jacket", "pants", "dress", "t-shirt")):
        return "clothing"
    if any(word in lower for word in ("bag", "wallet", "belt", "cap", "hat", "watch")):
        return "accessory"
    return "product"
