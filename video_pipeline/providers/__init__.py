"""
Provider adapters for AI video generation.
"""

from .base import (
    BaseVideoProvider,
    GenerationRequest,
    GenerationStatus,
    ImageRole,
    PreparedPrompt,
    TaskStatus,
    VideoGenerationResult,
    prepare_prompt,
)
from .catalog import (
    DEFAULT_COST_PER_SECOND,
    PROVIDERS,
    GenerationMode,
    ModelVariant,
    ProviderDescriptor,
    ProviderKind,
    QualityTier,
    estimate_cost,
    get_descriptor,
    providers_by_priority,
    resolve_variant,
)
from .extractors import extract_media_url
from .factory import create_adapter, get_adapter_class, get_provider, list_providers, register_provider
from .piapi import PiAPIProvider
from .prompts import (
    SanitizedPrompt,
    build_animation_prompt,
    build_reference_prompt,
    describes_new_content,
    sanitize_visual_prompt,
)
from .runway import RunwayProvider

__all__ = [
    "BaseVideoProvider",
    "GenerationRequest",
    "GenerationStatus",
    "ImageRole",
    "PreparedPrompt",
    "TaskStatus",
    "VideoGenerationResult",
    "prepare_prompt",
    "DEFAULT_COST_PER_SECOND",
    "PROVIDERS",
    "GenerationMode",
    "ModelVariant",
    "ProviderDescriptor",
    "ProviderKind",
    "QualityTier",
    "estimate_cost",
    "get_descriptor",
    "providers_by_priority",
    "resolve_variant",
    "extract_media_url",
    "create_adapter",
    "get_adapter_class",
    "get_provider",
    "list_providers",
    "register_provider",
    "PiAPIProvider",
    "SanitizedPrompt",
    "build_animation_prompt",
    "build_reference_prompt",
    "describes_new_content",
    "sanitize_visual_prompt",
    "RunwayProvider",
]
