"""
Provider Catalog
================

Static, process-wide provider descriptors and the quality-tier table that
maps a provider key to a concrete versioned model variant.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Dict, Tuple, FrozenSet


DEFAULT_COST_PER_SECOND = 0.04


class ProviderKind(Enum):
    """Adapter family: calls the provider directly or through a gateway."""

    DIRECT = "direct"
    AGGREGATOR = "aggregator"


class GenerationMode(Enum):
    """Generation mode of a request."""

    TEXT_TO_VIDEO = "t2v"
    IMAGE_TO_VIDEO = "i2v"


class QualityTier(Enum):
    """Caller-selected quality/cost level."""

    ULTRA = "ultra"
    PREMIUM = "premium"
    STANDARD = "standard"

    @classmethod
    def from_value(cls, value: Optional[str]) -> "QualityTier":
        """Parse a tier name, defaulting to STANDARD for unknown values."""
        if isinstance(value, cls):
            return value
        try:
            return cls((value or "").lower().strip())
        except ValueError:
            return cls.STANDARD


@dataclass(frozen=True)
class ProviderDescriptor:
    """Immutable description of one generation provider."""

    key: str
    name: str
    kind: ProviderKind
    cost_per_second: float
    max_duration: int
    modes: FrozenSet[GenerationMode]
    priority: int
    env_key: str
    strengths: Tuple[str, ...] = ()

    def supports(self, mode: GenerationMode) -> bool:
        return mode in self.modes


@dataclass(frozen=True)
class ModelVariant:
    """A concrete, versioned model for one provider key."""

    provider_key: str
    model: str
    version: Optional[str] = None
    mode: Optional[str] = None
    options: Dict[str, object] = field(default_factory=dict, hash=False, compare=False)

    @property
    def label(self) -> str:
        parts = [self.model]
        if self.version:
            parts.append(f"v{self.version}")
        if self.mode:
            parts.append(self.mode)
        return "-".join(parts)


BOTH_MODES = frozenset({GenerationMode.TEXT_TO_VIDEO, GenerationMode.IMAGE_TO_VIDEO})


# =============================================================================
# Provider Table
# =============================================================================


PROVIDERS: Dict[str, ProviderDescriptor] = {
    "runway": ProviderDescriptor(
        key="runway",
        name="Runway Gen-4",
        kind=ProviderKind.DIRECT,
        cost_per_second=0.05,
        max_duration=10,
        modes=BOTH_MODES,
        priority=1,
        env_key="RUNWAY_API_KEY",
        strengths=("cinematic", "hook", "cta", "product", "dramatic"),
    ),
    "kling": ProviderDescriptor(
        key="kling",
        name="Kling AI",
        kind=ProviderKind.AGGREGATOR,
        cost_per_second=0.03,
        max_duration=10,
        modes=BOTH_MODES,
        priority=1,
        env_key="PIAPI_API_KEY",
        strengths=("people", "lifestyle", "testimonial", "explanation", "story"),
    ),
    "luma": ProviderDescriptor(
        key="luma",
        name="Luma Dream Machine",
        kind=ProviderKind.AGGREGATOR,
        cost_per_second=0.04,
        max_duration=5,
        modes=BOTH_MODES,
        priority=2,
        env_key="PIAPI_API_KEY",
        strengths=("product", "benefit", "feature", "showcase"),
    ),
    "hailuo": ProviderDescriptor(
        key="hailuo",
        name="Hailuo (MiniMax)",
        kind=ProviderKind.AGGREGATOR,
        cost_per_second=0.02,
        max_duration=6,
        modes=BOTH_MODES,
        priority=3,
        env_key="PIAPI_API_KEY",
        strengths=("nature", "broll", "ambient", "transition"),
    ),
    "hunyuan": ProviderDescriptor(
        key="hunyuan",
        name="Hunyuan",
        kind=ProviderKind.AGGREGATOR,
        cost_per_second=0.025,
        max_duration=5,
        modes=frozenset({GenerationMode.TEXT_TO_VIDEO}),
        priority=4,
        env_key="PIAPI_API_KEY",
        strengths=("nature", "landscape", "broll"),
    ),
    "veo": ProviderDescriptor(
        key="veo",
        name="Veo 3.1 (Google)",
        kind=ProviderKind.AGGREGATOR,
        cost_per_second=0.06,
        max_duration=8,
        modes=BOTH_MODES,
        priority=2,
        env_key="PIAPI_API_KEY",
        strengths=("cinematic", "hook", "cta", "people"),
    ),
}


# =============================================================================
# Quality Tier Variants
# =============================================================================


TIER_VARIANTS: Dict[str, Dict[QualityTier, ModelVariant]] = {
    "runway": {
        QualityTier.ULTRA: ModelVariant("runway", "gen4_turbo"),
        QualityTier.PREMIUM: ModelVariant("runway", "gen4_turbo"),
        QualityTier.STANDARD: ModelVariant("runway", "gen3a_turbo"),
    },
    "kling": {
        QualityTier.ULTRA: ModelVariant("kling", "kling", version="2.6", mode="pro"),
        QualityTier.PREMIUM: ModelVariant("kling", "kling", version="2.6", mode="pro"),
        QualityTier.STANDARD: ModelVariant("kling", "kling", version="2.5", mode="std"),
    },
    "veo": {
        QualityTier.ULTRA: ModelVariant("veo", "veo3.1", options={"quality": "high"}),
        QualityTier.PREMIUM: ModelVariant("veo", "veo3.1"),
        QualityTier.STANDARD: ModelVariant("veo", "veo3", options={"fast": True}),
    },
}

# Variant used when a provider has no tier table
BASE_VARIANTS: Dict[str, ModelVariant] = {
    "runway": ModelVariant("runway", "gen4_turbo"),
    "kling": ModelVariant("kling", "kling", version="1.6", mode="std"),
    "luma": ModelVariant("luma", "luma"),
    "hailuo": ModelVariant("hailuo", "hailuo", options={"model": "t2v-01"}),
    "hunyuan": ModelVariant("hunyuan", "hunyuan"),
    "veo": ModelVariant("veo", "veo3"),
}


def get_descriptor(key: str) -> Optional[ProviderDescriptor]:
    """Look up a provider descriptor by key (case-insensitive)."""
    return PROVIDERS.get((key or "").lower())


def resolve_variant(key: str, tier: Optional[str] = None) -> ModelVariant:
    """
    Map a provider key and quality tier to a concrete model variant.

    Args:
        key: Provider key (e.g. ``kling``)
        tier: ``ultra``, ``premium`` or ``standard``; None uses the base variant

    Returns:
        The tier-specific variant, or the provider's base variant
    """
    key = (key or "").lower()
    if tier is not None and key in TIER_VARIANTS:
        return TIER_VARIANTS[key][QualityTier.from_value(tier)]
    if key in BASE_VARIANTS:
        return BASE_VARIANTS[key]
    return ModelVariant(key, key)


def estimate_cost(
    key: str,
    duration: float,
    default_rate: float = DEFAULT_COST_PER_SECOND,
) -> float:
    """Cost estimate: duration times the provider's per-second rate."""
    descriptor = get_descriptor(key)
    rate = descriptor.cost_per_second if descriptor else default_rate
    return round(duration * rate, 4)


def providers_by_priority() -> Tuple[str, ...]:
    """Provider keys ordered by priority, then by key for stable ties."""
    return tuple(
        d.key for d in sorted(PROVIDERS.values(), key=lambda d: (d.priority, d.key))
    )
