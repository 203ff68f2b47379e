"""
Provider Selection
==================

Static rule table that ranks providers for a scene, plus the protocol for an
external recommendation collaborator.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Protocol

from ..providers.catalog import PROVIDERS, get_descriptor


# =============================================================================
# Rule Table
# =============================================================================


BASE_SCORE = 100
PRIORITY_PENALTY = 10
STRENGTH_BONUS = 50

# (pattern, providers, bonus) applied to the scene's content text
CONTENT_BOOSTS = (
    (re.compile(r"\b(?:people|person|man|woman|family|customer|team|face|smiling)s?\b", re.I), ("kling",), 30),
    (re.compile(r"\b(?:cinematic|dramatic|epic)\b", re.I), ("runway", "veo"), 30),
    (re.compile(r"\bproducts?\b", re.I), ("luma",), 30),
    (re.compile(r"\b(?:nature|landscape|ocean|forest|mountains?|sky|sunset)\b", re.I), ("hailuo", "hunyuan"), 20),
)

# scene type -> (providers, bonus)
SCENE_TYPE_BOOSTS = {
    "cta": (("runway",), 40),
    "outro": (("runway",), 40),
    "hook": (("runway", "veo"), 30),
}

STYLE_BOOSTS = {
    "cinematic": (("runway", "veo"), 15),
}


def score_provider(
    key: str,
    scene_type: Optional[str] = None,
    content: str = "",
    visual_style: Optional[str] = None,
) -> int:
    """
    Rule-table score for one provider.

    Args:
        key: Provider key
        scene_type: Scene type (hook, cta, product, ...)
        content: Prompt and any other scene text to scan for keywords
        visual_style: Overall visual style of the video

    Returns:
        Score (higher is better); 0 for unknown providers
    """
    descriptor = get_descriptor(key)
    if descriptor is None:
        return 0

    scene_type = (scene_type or "").lower()
    score = BASE_SCORE - descriptor.priority * PRIORITY_PENALTY

    if scene_type and scene_type in descriptor.strengths:
        score += STRENGTH_BONUS

    for pattern, providers, bonus in CONTENT_BOOSTS:
        if key in providers and pattern.search(content or ""):
            score += bonus

    providers, bonus = SCENE_TYPE_BOOSTS.get(scene_type, ((), 0))
    if key in providers:
        score += bonus

    providers, bonus = STYLE_BOOSTS.get((visual_style or "").lower(), ((), 0))
    if key in providers:
        score += bonus

    return score


def rank_providers(
    candidates: Iterable[str],
    scene_type: Optional[str] = None,
    content: str = "",
    visual_style: Optional[str] = None,
) -> List[str]:
    """Order candidates by rule-table score, breaking ties by catalog priority."""
    scored = [
        (score_provider(key, scene_type, content, visual_style), key)
        for key in candidates
        if key in PROVIDERS
    ]
    scored.sort(key=lambda item: (-item[0], PROVIDERS[item[1]].priority, item[1]))
    return [key for _, key in scored]


# =============================================================================
# Recommendation Collaborator
# =============================================================================


@dataclass
class RecommendationContext:
    """Scene context handed to an external recommender."""

    scene_type: str
    narration: str
    visual_direction: str
    duration: int
    visual_style: Optional[str] = None
    available_providers: List[str] = field(default_factory=list)


@dataclass
class ProviderRecommendation:
    """Primary and fallback provider chosen by a recommender."""

    primary: str
    fallback: Optional[str] = None
    reasoning: Optional[str] = None
    scores: Dict[str, float] = field(default_factory=dict)


class ProviderRecommender(Protocol):
    """External provider-intelligence collaborator."""

    async def recommend(self, context: RecommendationContext) -> Optional[ProviderRecommendation]:
        ...
