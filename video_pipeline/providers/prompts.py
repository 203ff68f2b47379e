"""
Prompt Preparation
==================

Text-to-video prompts are scrubbed of anything that would make the model
paint text, logos or UI into the frame; those elements are added later as
overlays. Image-to-video prompts are never scrubbed: the source image already
carries the real product and branding, and a "no text, no logos" prompt makes
the model try to erase them.
"""

import re
import logging
from dataclasses import dataclass, field
from typing import List, Sequence, Pattern

logger = logging.getLogger(__name__)


NO_TEXT_SUFFIX = (
    " IMPORTANT: Do not include any text, words, letters, numbers, logos, "
    "watermarks, labels, buttons, badges, banners, or UI elements. Generate only "
    "the pure visual scene without any overlaid text or graphics."
)

# Preservation instructions for animating an existing frame, keyed by style
ANIMATION_SUFFIXES = {
    "product-static": (
        "IMPORTANT: The product shown in this image must remain exactly as depicted - "
        "preserve all labels, text, and packaging details. Only add subtle ambient "
        "lighting shifts. Do not alter the product appearance."
    ),
    "product-hero": (
        "IMPORTANT: Keep the product from this image prominently featured and centered. "
        "Preserve all product details, labels, and packaging exactly as shown. Add smooth, "
        "gentle cinematic camera motion around the product."
    ),
    "subtle-motion": (
        "IMPORTANT: The product in this image must remain exactly as shown and stay in sharp "
        "focus. Add subtle environmental motion like gentle atmospheric particles and soft "
        "lighting shifts around it."
    ),
    "dynamic": (
        "IMPORTANT: Preserve all product details and labels from this image exactly. Add "
        "dynamic, energetic camera motion around the product in professional commercial style."
    ),
}
DEFAULT_ANIMATION_STYLE = "product-hero"

REFERENCE_SUFFIX = (
    "Use the reference image for the product's exact appearance: keep its shape, "
    "colors, labels and packaging unchanged while generating the described scene around it."
)


# =============================================================================
# Text-to-video sanitization
# =============================================================================


@dataclass
class SanitizedPrompt:
    """Result of the visual sanitization pass."""

    clean_prompt: str
    original_prompt: str
    removed_elements: List[str] = field(default_factory=list)
    extracted_text: List[str] = field(default_factory=list)
    extracted_logos: List[str] = field(default_factory=list)


_CAPTURING_TEXT_PATTERNS: Sequence[Pattern] = [
    re.compile(r"(?:text\s+)?overlay\s+(?:with|showing|displaying)\s+[\"']?([^\"',.]+)[\"']?", re.I),
    re.compile(r"(?:showing\s+)?text\s+(?:with|saying|reading|displaying)\s+[\"']?([^\"',.]+)[\"']?", re.I),
    re.compile(r"[\"']([^\"']+)[\"']\s*(?:text|title|heading|caption|label)", re.I),
    re.compile(r"(?:text|title|heading|caption|label)\s*(?::|of|with|showing|reading)?\s*[\"']([^\"']+)[\"']", re.I),
]

# Quotes must not touch word characters, so apostrophes ("Mom's") are not quotes
_STANDALONE_QUOTED = re.compile(r"(?<!\w)[\"']([^\"']{3,50})[\"'](?!\w)")

_LOGO_PATTERN = re.compile(
    r"(?:(\w+(?:\s+\w+){0,3})\s+logo|logo\s+(?:of|for)\s+(\w+(?:\s+\w+){0,3}))", re.I
)

_BUTTON_PATTERNS: Sequence[Pattern] = [
    re.compile(p, re.I)
    for p in (
        r"book\s+now\s*(?:button|cta)?",
        r"learn\s+more\s*(?:button|cta)?",
        r"get\s+started\s*(?:button|cta)?",
        r"contact\s+us\s*(?:button|cta)?",
        r"call\s+now\s*(?:button|cta)?",
        r"shop\s+now\s*(?:button|cta)?",
        r"order\s+now\s*(?:button|cta)?",
        r"sign\s+up\s*(?:button|cta)?",
        r"subscribe\s*(?:button|cta)?",
        r"schedule\s+(?:now|today|consultation)\s*(?:button|cta)?",
    )
]

_GENERIC_TEXT_PATTERNS: Sequence[Pattern] = [
    re.compile(p, re.I)
    for p in (
        r"(?:with\s+)?\b(?:title|headline|heading|subtitle)s?\b\s*(?:overlay)?",
        r"(?:with\s+)?\b(?:caption|badge)s?\b\s*(?:overlay)?",
        r"(?:with\s+)?\btext\b\s*(?:overlay|element)?s?",
        r"(?:with\s+)?(?:company\s+)?\b(?:watermark|stamp)s?\b",
        r"(?:show(?:ing)?|display(?:ing)?)\s+(?:text|words|letters)",
        r"(?:with\s+)?\blabels?\b\s*(?:overlay)?",
    )
]

_UI_PATTERNS: Sequence[Pattern] = [
    re.compile(p, re.I)
    for p in (
        r"(?:with\s+)?\b(?:ui|user interface)\b\s*(?:element)?s?",
        r"(?:with\s+)?\bbuttons?\b",
        r"(?:with\s+)?\bicons?\b",
        r"(?:with\s+)?\bbanners?\b",
        r"(?:with\s+)?\boverlays?\b",
        r"(?:with\s+)?\bgraphics?\b",
        r"(?:with\s+)?\bbranding\s+(?:elements?|assets?)\b",
        r"(?:and\s+)?\bbranding\b",
    )
]


def sanitize_visual_prompt(
    prompt: str,
    brand_names: Sequence[str] = (),
    brand_replacement: str = "the business",
    add_no_text_suffix: bool = True,
) -> SanitizedPrompt:
    """
    Remove on-screen text, logo, CTA and UI requests from a text-to-video prompt.

    Args:
        prompt: Visual direction for the scene
        brand_names: Brand names to replace with a neutral phrase
        brand_replacement: Phrase used in place of brand names
        add_no_text_suffix: Append the explicit "no text" instruction

    Returns:
        SanitizedPrompt with the clean prompt and everything that was removed
    """
    result = SanitizedPrompt(clean_prompt="", original_prompt=prompt or "")
    if not prompt:
        return result

    clean = prompt

    # Explicit text requests; the captured text is kept for overlays
    for pattern in _CAPTURING_TEXT_PATTERNS:
        for match in pattern.finditer(clean):
            text = match.group(1).strip()
            if text:
                result.extracted_text.append(text)
            result.removed_elements.append(match.group(0))
        clean = pattern.sub("", clean)

    for match in _STANDALONE_QUOTED.finditer(clean):
        text = match.group(1).strip()
        lowered = f" {text.lower()} "
        if not any(word in lowered for word in (" of ", " with ", " in ")):
            result.extracted_text.append(text)
            result.removed_elements.append(match.group(0))
            clean = clean.replace(match.group(0), "")

    for match in _LOGO_PATTERN.finditer(clean):
        name = (match.group(1) or match.group(2) or "").strip()
        if name:
            result.extracted_logos.append(name)
        result.removed_elements.append(match.group(0))
    clean = _LOGO_PATTERN.sub("", clean)

    for brand in brand_names:
        brand_re = re.compile(re.escape(brand), re.I)
        if brand_re.search(clean):
            result.extracted_logos.append(brand)
            result.removed_elements.append(brand)
            clean = brand_re.sub(brand_replacement, clean)

    for pattern in _BUTTON_PATTERNS:
        for match in pattern.finditer(clean):
            result.extracted_text.append(re.sub(r"\s*(button|cta)\s*$", "", match.group(0), flags=re.I).strip())
            result.removed_elements.append(match.group(0))
        clean = pattern.sub("", clean)

    for pattern in list(_GENERIC_TEXT_PATTERNS) + list(_UI_PATTERNS):
        result.removed_elements.extend(m.group(0) for m in pattern.finditer(clean) if m.group(0).strip())
        clean = pattern.sub("", clean)

    clean = _tidy(clean)

    if clean and add_no_text_suffix:
        if not clean.endswith((".", "!", "?")):
            clean += "."
        clean += NO_TEXT_SUFFIX

    if result.removed_elements:
        logger.debug(f"Removed {len(result.removed_elements)} text/branding elements from prompt")

    result.clean_prompt = clean
    return result


def _tidy(text: str) -> str:
    text = re.sub(r"\s+", " ", text).strip()
    text = re.sub(r"\s+([,.])", r"\1", text)
    text = re.sub(r",\s*,", ",", text)
    text = re.sub(r",\s*\.", ".", text)
    text = re.sub(r"\.\s*\.", ".", text)
    text = re.sub(r"^\s*[,.]\s*", "", text)
    text = re.sub(r"\s*,\s*$", "", text)
    return text.strip()


# =============================================================================
# Image-to-video prompts
# =============================================================================


_NEW_SUBJECT_RE = re.compile(
    r"\b(?:person|people|man|men|woman|women|girl|boy|child|children|kids?|family|"
    r"customer|customers|couple|someone|crowd|team|staff|employee|chef|athlete|"
    r"mother|father|friends|hands?)\b",
    re.I,
)

_NEW_ACTIVITY_RE = re.compile(
    r"\b(?:holding|walking|running|using|pouring|drinking|eating|cooking|smiling|"
    r"laughing|talking|dancing|reaching|picking up|opening|applying|shopping|"
    r"working|playing|exercising|hiking|sitting|standing)\b",
    re.I,
)


def describes_new_content(prompt: str) -> bool:
    """
    True when an image-to-video prompt asks for subjects or activity that are
    not in the source image (people, hands, actions), as opposed to animating
    the existing frame.
    """
    if not prompt:
        return False
    return bool(_NEW_SUBJECT_RE.search(prompt) or _NEW_ACTIVITY_RE.search(prompt))


def build_reference_prompt(prompt: str) -> str:
    """Composite prompt: generate the described scene around the referenced product."""
    prompt = prompt.strip().rstrip(".")
    return f"{prompt}. {REFERENCE_SUFFIX}"


def build_animation_prompt(prompt: str, animation_style: str = DEFAULT_ANIMATION_STYLE) -> str:
    """First-frame prompt: animate the existing image and preserve its contents."""
    suffix = ANIMATION_SUFFIXES.get(animation_style, ANIMATION_SUFFIXES["dynamic"])
    prompt = (prompt or "").strip().rstrip(".")
    if not prompt:
        return suffix
    return f"{prompt}. {suffix}"
