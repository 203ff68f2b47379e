"""
Workflow module: provider selection and orchestrated generation.
"""

from .orchestrator import (
    OrchestrationRequest,
    OrchestrationResult,
    ProviderAttempt,
    ProviderOrchestrator,
)
from .selection import (
    ProviderRecommendation,
    ProviderRecommender,
    RecommendationContext,
    rank_providers,
    score_provider,
)

__all__ = [
    "OrchestrationRequest",
    "OrchestrationResult",
    "ProviderAttempt",
    "ProviderOrchestrator",
    "ProviderRecommendation",
    "ProviderRecommender",
    "RecommendationContext",
    "rank_providers",
    "score_provider",
]
