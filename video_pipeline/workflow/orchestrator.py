"""
Provider Orchestrator
=====================

Picks an ordered list of providers for a scene and tries them one after
another until one returns a usable video.

Usage:
    orchestrator = ProviderOrchestrator(config.providers, storage=storage)

    result = await orchestrator.generate(OrchestrationRequest(
        prompt="Slow dolly shot across a sunlit bakery counter",
        scene_type="hook",
        quality_tier="premium",
    ))
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any

import httpx

from ..core.config import ProvidersConfig
from ..core.exceptions import ConfigurationError, VideoPipelineError
from ..core.security import is_http_url, redact_api_key
from ..providers.base import BaseVideoProvider, GenerationRequest
from ..providers.catalog import (
    GenerationMode,
    ProviderKind,
    estimate_cost,
    get_descriptor,
    providers_by_priority,
    resolve_variant,
)
from ..providers.factory import create_adapter
from ..providers.prompts import DEFAULT_ANIMATION_STYLE
from ..utils.storage import ObjectStorage
from .selection import ProviderRecommender, RecommendationContext, rank_providers

logger = logging.getLogger(__name__)


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class OrchestrationRequest:
    """A scene to generate."""

    prompt: str
    scene_type: str = "scene"
    duration: int = 6
    aspect_ratio: str = "16:9"
    negative_prompt: Optional[str] = None

    provider: Optional[str] = None
    quality_tier: Optional[str] = None

    source_image_url: Optional[str] = None
    animation_style: str = DEFAULT_ANIMATION_STYLE
    fallback_prompt: Optional[str] = None

    # Rich scene context for the recommender
    narration: Optional[str] = None
    visual_direction: Optional[str] = None
    visual_style: Optional[str] = None

    brand_names: List[str] = field(default_factory=list)

    @property
    def mode(self) -> GenerationMode:
        if self.source_image_url:
            return GenerationMode.IMAGE_TO_VIDEO
        return GenerationMode.TEXT_TO_VIDEO


@dataclass
class ProviderAttempt:
    """One provider try."""

    provider: str
    success: bool
    model: Optional[str] = None
    error: Optional[str] = None
    duration_ms: int = 0
    prompt_kind: str = "primary"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider,
            "success": self.success,
            "model": self.model,
            "error": self.error,
            "duration_ms": self.duration_ms,
            "prompt_kind": self.prompt_kind,
        }


@dataclass
class OrchestrationResult:
    """Outcome of an orchestrated generation."""

    success: bool
    media_url: Optional[str] = None
    original_url: Optional[str] = None
    cost: float = 0.0
    duration_ms: int = 0
    provider_used: Optional[str] = None
    model_used: Optional[str] = None
    task_id: Optional[str] = None
    error: Optional[str] = None
    attempts: List[ProviderAttempt] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "media_url": self.media_url,
            "original_url": self.original_url,
            "cost": self.cost,
            "duration_ms": self.duration_ms,
            "provider_used": self.provider_used,
            "model_used": self.model_used,
            "task_id": self.task_id,
            "error": self.error,
            "attempts": [a.to_dict() for a in self.attempts],
        }


# =============================================================================
# Orchestrator
# =============================================================================


class ProviderOrchestrator:
    """
    Sequential multi-provider generation with fallback.

    Adapters are created per provider kind on first use and shared by every
    catalog key of that kind.
    """

    def __init__(
        self,
        config: Optional[ProvidersConfig] = None,
        storage: Optional[ObjectStorage] = None,
        recommender: Optional[ProviderRecommender] = None,
        adapters: Optional[Dict[ProviderKind, BaseVideoProvider]] = None,
        storage_prefix: str = "ai-videos",
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            config: Provider settings
            storage: Durable storage passed to adapters for re-hosting
            recommender: Optional provider-intelligence collaborator
            adapters: Pre-built adapters by kind (otherwise built from config)
            storage_prefix: Key prefix for re-hosted media
            client: Shared HTTP client for adapters built here
        """
        self.config = config or ProvidersConfig()
        self.storage = storage
        self.recommender = recommender
        self.storage_prefix = storage_prefix
        self._client = client
        self._adapters: Dict[ProviderKind, BaseVideoProvider] = dict(adapters or {})
        self._owned: List[ProviderKind] = []

    # -------------------------------------------------------------------------
    # Adapters
    # -------------------------------------------------------------------------

    def adapter_for(self, key: str) -> BaseVideoProvider:
        """Adapter serving a catalog provider key."""
        descriptor = get_descriptor(key)
        if descriptor is None:
            raise ConfigurationError(f"Unknown provider: {key}", config_key="provider")

        adapter = self._adapters.get(descriptor.kind)
        if adapter is None:
            adapter = create_adapter(
                descriptor.kind,
                config=self.config,
                storage=self.storage,
                storage_prefix=self.storage_prefix,
                client=self._client,
            )
            self._adapters[descriptor.kind] = adapter
            self._owned.append(descriptor.kind)
        return adapter

    def configured_providers(self, mode: Optional[GenerationMode] = None) -> List[str]:
        """
        Enabled providers with credentials, in catalog priority order.

        Args:
            mode: Only keep providers supporting this generation mode
        """
        enabled = {key.lower() for key in self.config.enabled}
        configured = []
        for key in providers_by_priority():
            if key not in enabled:
                continue
            descriptor = get_descriptor(key)
            if mode is not None and not descriptor.supports(mode):
                continue
            if self.adapter_for(key).is_configured:
                configured.append(key)
        return configured

    def estimate_cost(self, provider: str, duration: float) -> float:
        """Duration times the provider's per-second rate."""
        return estimate_cost(provider, duration, self.config.default_cost_per_second)

    # -------------------------------------------------------------------------
    # Selection
    # -------------------------------------------------------------------------

    async def select_providers(self, request: OrchestrationRequest) -> List[str]:
        """
        Ordered provider keys to try for a request.

        An explicit provider goes first even when it is not configured, so
        the attempt list records why it was skipped.
        """
        available = self.configured_providers(request.mode)

        if request.provider:
            explicit = request.provider.lower()
            return [explicit] + [key for key in available if key != explicit]

        if request.narration and request.visual_direction and self.recommender is not None:
            recommended = await self._recommend(request, available)
            if recommended:
                return recommended + [key for key in available if key not in recommended]

        content = " ".join(filter(None, [request.prompt, request.visual_direction, request.narration]))
        return rank_providers(
            available,
            scene_type=request.scene_type,
            content=content,
            visual_style=request.visual_style,
        )

    async def _recommend(self, request: OrchestrationRequest, available: List[str]) -> List[str]:
        context = RecommendationContext(
            scene_type=request.scene_type,
            narration=request.narration,
            visual_direction=request.visual_direction,
            duration=request.duration,
            visual_style=request.visual_style,
            available_providers=list(available),
        )
        try:
            recommendation = await self.recommender.recommend(context)
        except VideoPipelineError as e:
            logger.warning(f"Provider recommendation failed, using rule table: {e.message}")
            return []
        except Exception:
            logger.exception("Provider recommender raised, using rule table")
            return []

        if recommendation is None:
            return []

        ordered = []
        for key in (recommendation.primary, recommendation.fallback):
            if key and key.lower() in available and key.lower() not in ordered:
                ordered.append(key.lower())

        if ordered:
            logger.info(f"Recommender chose {ordered} for {request.scene_type} scene")
        return ordered

    # -------------------------------------------------------------------------
    # Generation
    # -------------------------------------------------------------------------

    async def generate(self, request: OrchestrationRequest) -> OrchestrationResult:
        """
        Generate a scene, trying providers in order until one succeeds.

        Args:
            request: Scene to generate

        Returns:
            OrchestrationResult; ``success`` is False when every provider failed
        """
        started = time.monotonic()
        result = OrchestrationResult(success=False)

        candidates = await self.select_providers(request)
        if not candidates:
            result.error = "No video providers configured"
            result.duration_ms = _elapsed_ms(started)
            logger.error(result.error)
            return result

        logger.info(f"Generating {request.scene_type} scene, candidates: {candidates}")

        passes = [("primary", request.prompt)]
        if request.fallback_prompt and request.fallback_prompt != request.prompt:
            passes.append(("fallback", request.fallback_prompt))

        for prompt_kind, prompt in passes:
            for key in candidates:
                if await self._try_provider(key, request, prompt, prompt_kind, result):
                    result.duration_ms = _elapsed_ms(started)
                    return result
            if prompt_kind == "primary" and len(passes) > 1:
                logger.info("All providers failed with the primary prompt, retrying with fallback prompt")

        result.error = f"All providers failed for {request.scene_type} scene"
        result.duration_ms = _elapsed_ms(started)
        logger.error(result.error)
        return result

    async def _try_provider(
        self,
        key: str,
        request: OrchestrationRequest,
        prompt: str,
        prompt_kind: str,
        result: OrchestrationResult,
    ) -> bool:
        attempt_started = time.monotonic()
        attempt = ProviderAttempt(provider=key, success=False, prompt_kind=prompt_kind)
        result.attempts.append(attempt)

        try:
            adapter = self.adapter_for(key)
            variant = resolve_variant(key, request.quality_tier)
            attempt.model = variant.label

            generation = await adapter.generate(GenerationRequest(
                prompt=prompt,
                duration=request.duration,
                aspect_ratio=request.aspect_ratio,
                negative_prompt=request.negative_prompt,
                source_image_url=request.source_image_url,
                animation_style=request.animation_style,
                variant=variant,
                scene_type=request.scene_type,
                brand_names=list(request.brand_names),
            ))
        except ConfigurationError as e:
            attempt.error = f"{key} provider not configured" if "not configured" in e.message else e.message
            attempt.duration_ms = _elapsed_ms(attempt_started)
            logger.warning(f"Skipping {key}: {attempt.error}")
            return False
        except VideoPipelineError as e:
            attempt.error = redact_api_key(e.message)
            attempt.duration_ms = _elapsed_ms(attempt_started)
            logger.warning(f"{key} failed: {attempt.error}")
            return False

        attempt.duration_ms = _elapsed_ms(attempt_started)

        if not generation.is_complete():
            attempt.error = generation.error_message or "Generation failed"
            logger.warning(f"{key} failed: {attempt.error}")
            return False

        if not is_http_url(generation.original_url or generation.video_url):
            attempt.error = "Provider returned no http(s) media URL"
            logger.warning(f"{key} failed: {attempt.error}")
            return False

        attempt.success = True
        result.success = True
        result.media_url = generation.video_url
        result.original_url = generation.original_url
        result.provider_used = key
        result.model_used = variant.label
        result.task_id = generation.job_id
        result.cost = (
            generation.cost_usd
            if generation.cost_usd is not None
            else self.estimate_cost(key, request.duration)
        )
        logger.info(f"{key} succeeded for {request.scene_type} scene (${result.cost:.2f})")
        return True

    async def close(self) -> None:
        """Close adapters created by this orchestrator."""
        for kind in self._owned:
            await self._adapters[kind].close()
        self._owned.clear()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
