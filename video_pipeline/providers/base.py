"""
Base Video Provider
===================

Shared adapter machinery: request preparation, task submission, bounded
status polling, result URL extraction and re-hosting of finished media on
durable storage.
"""

import asyncio
import logging
import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any, Tuple

import httpx

from ..core.exceptions import (
    ConfigurationError,
    ProviderError,
    RateLimitError,
    StorageError,
    TimeoutError,
)
from ..core.security import sanitize_prompt, redact_api_key
from ..utils.storage import ObjectStorage, build_media_key
from .catalog import (
    GenerationMode,
    ModelVariant,
    ProviderKind,
    estimate_cost,
    get_descriptor,
    resolve_variant,
)
from .extractors import Extractor, extract_media_url
from .prompts import (
    DEFAULT_ANIMATION_STYLE,
    build_animation_prompt,
    build_reference_prompt,
    describes_new_content,
    sanitize_visual_prompt,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================


DEFAULT_TIMEOUT = 60
DEFAULT_POLL_INTERVAL = 5.0
DEFAULT_MAX_POLL_ATTEMPTS = 120


# =============================================================================
# Data Classes
# =============================================================================


class GenerationStatus(Enum):
    """Normalized status of a provider task."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @classmethod
    def from_provider_status(cls, status: Optional[str]) -> "GenerationStatus":
        """Normalize provider-specific status strings to GenerationStatus."""
        status_lower = (status or "").lower().strip()

        if status_lower in ("completed", "succeeded", "done", "success", "finished"):
            return cls.COMPLETED

        if status_lower in ("failed", "error", "failure", "errored"):
            return cls.FAILED

        if status_lower in ("cancelled", "canceled", "aborted", "stopped"):
            return cls.CANCELLED

        if status_lower in ("pending", "queued", "in_queue", "waiting", "scheduled", "staged"):
            return cls.PENDING

        return cls.PROCESSING

    @property
    def is_terminal(self) -> bool:
        return self in (GenerationStatus.COMPLETED, GenerationStatus.FAILED, GenerationStatus.CANCELLED)


class ImageRole(Enum):
    """How a source image is handed to the provider."""

    FIRST_FRAME = "first_frame"
    REFERENCE = "reference"


@dataclass
class GenerationRequest:
    """Provider-neutral generation request."""

    prompt: str
    duration: int = 6
    aspect_ratio: str = "16:9"
    negative_prompt: Optional[str] = None

    # Image-to-video when set
    source_image_url: Optional[str] = None
    animation_style: str = DEFAULT_ANIMATION_STYLE

    # Concrete model; adapters fall back to their default variant
    variant: Optional[ModelVariant] = None

    scene_type: Optional[str] = None
    brand_names: List[str] = field(default_factory=list)
    extra_params: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.prompt = sanitize_prompt(self.prompt)
        if self.negative_prompt:
            self.negative_prompt = sanitize_prompt(self.negative_prompt)

    @property
    def mode(self) -> GenerationMode:
        if self.source_image_url:
            return GenerationMode.IMAGE_TO_VIDEO
        return GenerationMode.TEXT_TO_VIDEO


@dataclass
class PreparedPrompt:
    """Prompt text and image handling chosen for one request."""

    text: str
    mode: GenerationMode
    image_role: Optional[ImageRole] = None
    removed_elements: List[str] = field(default_factory=list)


def prepare_prompt(request: GenerationRequest) -> PreparedPrompt:
    """
    Choose the prompt treatment for a request.

    Text-to-video prompts go through the visual sanitizer. Image-to-video
    prompts skip it and branch on whether they describe new content
    (reference input, composite phrasing) or only animate the source image
    (first-frame input, preservation phrasing).
    """
    if request.mode is GenerationMode.TEXT_TO_VIDEO:
        sanitized = sanitize_visual_prompt(request.prompt, brand_names=request.brand_names)
        return PreparedPrompt(
            text=sanitized.clean_prompt,
            mode=GenerationMode.TEXT_TO_VIDEO,
            removed_elements=sanitized.removed_elements,
        )

    if describes_new_content(request.prompt):
        return PreparedPrompt(
            text=build_reference_prompt(request.prompt),
            mode=GenerationMode.IMAGE_TO_VIDEO,
            image_role=ImageRole.REFERENCE,
        )

    return PreparedPrompt(
        text=build_animation_prompt(request.prompt, request.animation_style),
        mode=GenerationMode.IMAGE_TO_VIDEO,
        image_role=ImageRole.FIRST_FRAME,
    )


@dataclass
class TaskStatus:
    """One poll of a provider task."""

    task_id: str
    status: GenerationStatus
    payload: Dict[str, Any] = field(default_factory=dict)
    error_message: Optional[str] = None


@dataclass
class VideoGenerationResult:
    """Result of a generation attempt on one adapter."""

    video_url: Optional[str] = None
    original_url: Optional[str] = None
    status: GenerationStatus = GenerationStatus.PENDING

    job_id: Optional[str] = None
    provider: Optional[str] = None
    model: Optional[str] = None

    created_at: datetime = field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None
    duration_seconds: Optional[float] = None
    video_duration: Optional[int] = None

    prompt: Optional[str] = None
    generation_params: Dict[str, Any] = field(default_factory=dict)

    error_message: Optional[str] = None
    error_code: Optional[str] = None

    cost_usd: Optional[float] = None

    def is_complete(self) -> bool:
        """Check if generation completed successfully."""
        return self.status == GenerationStatus.COMPLETED and self.video_url is not None

    def is_failed(self) -> bool:
        """Check if generation failed."""
        return self.status in (GenerationStatus.FAILED, GenerationStatus.CANCELLED)

    @property
    def is_rehosted(self) -> bool:
        return bool(self.video_url and self.original_url and self.video_url != self.original_url)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "video_url": self.video_url,
            "original_url": self.original_url,
            "status": self.status.value,
            "job_id": self.job_id,
            "provider": self.provider,
            "model": self.model,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
            "video_duration": self.video_duration,
            "prompt": self.prompt,
            "generation_params": self.generation_params,
            "error_message": self.error_message,
            "error_code": self.error_code,
            "cost_usd": self.cost_usd,
        }


# =============================================================================
# Base Provider Class
# =============================================================================


class BaseVideoProvider(ABC):
    """
    Abstract base class for provider adapters.

    Subclasses implement ``create_task`` and ``poll_status`` for their wire
    protocol and list their result extractors; ``generate`` runs the shared
    submit/poll/extract/re-host sequence.
    """

    extractors: Tuple[Extractor, ...] = ()

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: int = DEFAULT_TIMEOUT,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        max_poll_attempts: int = DEFAULT_MAX_POLL_ATTEMPTS,
        storage: Optional[ObjectStorage] = None,
        storage_prefix: str = "ai-videos",
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the provider.

        Args:
            api_key: API key (or read from environment)
            base_url: Base URL for the API
            timeout: Request timeout in seconds
            poll_interval: Seconds between status polls
            max_poll_attempts: Polls before the task is declared timed out
            storage: Durable storage for re-hosting results (None keeps provider URLs)
            storage_prefix: Key prefix for re-hosted media
            client: Shared HTTP client (created lazily when omitted)
        """
        self.api_key = api_key or self._get_api_key_from_env()
        self.base_url = (base_url or self._get_default_base_url()).rstrip("/")
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.max_poll_attempts = max_poll_attempts
        self.storage = storage
        self.storage_prefix = storage_prefix

        self._client = client
        self._client_lock = asyncio.Lock()

        if not self.api_key:
            logger.warning(
                f"No API key found for {self.provider_name}. "
                f"Set {self.env_key_name} environment variable or pass api_key parameter."
            )

    # -------------------------------------------------------------------------
    # Abstract Methods (must be implemented by subclasses)
    # -------------------------------------------------------------------------

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Human-readable provider name."""

    @property
    @abstractmethod
    def kind(self) -> ProviderKind:
        """Adapter family."""

    @property
    @abstractmethod
    def env_key_name(self) -> str:
        """Environment variable holding the API key."""

    @property
    @abstractmethod
    def default_provider_key(self) -> str:
        """Catalog key used when a request carries no variant."""

    @abstractmethod
    def _get_default_base_url(self) -> str:
        """Default base URL for this provider."""

    @abstractmethod
    async def create_task(self, request: GenerationRequest) -> str:
        """
        Submit a generation task.

        Args:
            request: Generation request

        Returns:
            Provider task id

        Raises:
            ProviderError: HTTP failure or no task id in the response
        """

    @abstractmethod
    async def poll_status(self, task_id: str) -> TaskStatus:
        """Fetch and normalize the status of a task."""

    # -------------------------------------------------------------------------
    # Shared Implementation
    # -------------------------------------------------------------------------

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def variant_for(self, request: GenerationRequest) -> ModelVariant:
        return request.variant or resolve_variant(self.default_provider_key)

    def effective_duration(self, request: GenerationRequest) -> int:
        """Requested duration clamped to the model's maximum."""
        descriptor = get_descriptor(self.variant_for(request).provider_key)
        if descriptor is None:
            return request.duration
        return max(1, min(request.duration, descriptor.max_duration))

    def estimate_cost(self, request: GenerationRequest) -> float:
        return estimate_cost(self.variant_for(request).provider_key, self.effective_duration(request))

    def extract_result(self, payload: Dict[str, Any]) -> Optional[str]:
        """Media URL from a completion payload, or None."""
        return extract_media_url(payload, self.extractors)

    async def generate(self, request: GenerationRequest) -> VideoGenerationResult:
        """
        Run one generation end to end.

        Provider failures, timeouts and missing media URLs produce a FAILED
        result; only a missing API key raises.

        Args:
            request: Generation request

        Returns:
            VideoGenerationResult

        Raises:
            ConfigurationError: If the provider has no API key
        """
        self._require_api_key()

        variant = self.variant_for(request)
        result = VideoGenerationResult(
            provider=variant.provider_key,
            model=variant.label,
            prompt=request.prompt,
            video_duration=self.effective_duration(request),
            generation_params={
                "mode": request.mode.value,
                "aspect_ratio": request.aspect_ratio,
                "adapter": self.provider_name,
            },
        )
        started = time.monotonic()

        try:
            logger.info(f"Generating {request.mode.value} video with {self.provider_name} ({variant.label})")
            task_id = await self.create_task(request)
            result.job_id = task_id

            final = await self.wait_for_completion(task_id)
            if final.status != GenerationStatus.COMPLETED:
                result.status = GenerationStatus.FAILED
                result.error_message = final.error_message or f"Task {final.status.value}"
                return result

            media_url = self.extract_result(final.payload)
            if not media_url:
                result.status = GenerationStatus.FAILED
                result.error_message = "No video URL in response"
                return result

            result.original_url = media_url
            result.video_url = await self._rehost(media_url, task_id, variant)
            result.status = GenerationStatus.COMPLETED
            result.completed_at = datetime.now()
            result.cost_usd = self.estimate_cost(request)
            return result

        except TimeoutError as e:
            result.status = GenerationStatus.FAILED
            result.error_message = e.message
            result.error_code = e.code
            return result

        except ProviderError as e:
            logger.warning(f"{self.provider_name} error: {redact_api_key(e.message)}")
            result.status = GenerationStatus.FAILED
            result.error_message = redact_api_key(e.message)
            result.error_code = e.code
            return result

        except httpx.HTTPError as e:
            logger.warning(f"{self.provider_name} transport error: {redact_api_key(str(e))}")
            result.status = GenerationStatus.FAILED
            result.error_message = redact_api_key(str(e)) or e.__class__.__name__
            result.error_code = "HTTPError"
            return result

        finally:
            result.duration_seconds = round(time.monotonic() - started, 3)

    async def wait_for_completion(self, task_id: str) -> TaskStatus:
        """
        Poll a task until it reaches a terminal status.

        Transient provider errors during polling are logged and the poll is
        retried on the next tick.

        Raises:
            TimeoutError: After ``max_poll_attempts`` polls without a terminal status
        """
        for attempt in range(1, self.max_poll_attempts + 1):
            try:
                status = await self.poll_status(task_id)
            except ProviderError as e:
                if not e.recoverable:
                    raise
                logger.warning(f"Poll {attempt} for {task_id} failed: {redact_api_key(e.message)}")
            except httpx.TransportError as e:
                logger.warning(f"Poll {attempt} for {task_id} failed: {e}")
            else:
                if status.status.is_terminal:
                    return status
                logger.debug(f"Task {task_id} status: {status.status.value} ({attempt}/{self.max_poll_attempts})")

            if attempt < self.max_poll_attempts:
                await asyncio.sleep(self.poll_interval)

        raise TimeoutError(
            f"Task {task_id} did not finish after {self.max_poll_attempts} polls",
            operation="wait_for_completion",
            timeout_seconds=self.max_poll_attempts * self.poll_interval,
        )

    async def _rehost(self, media_url: str, task_id: str, variant: ModelVariant) -> str:
        """Copy provider media to durable storage; keep the provider URL on failure."""
        if self.storage is None:
            return media_url

        key = build_media_key(variant.provider_key, variant.label, task_id, prefix=self.storage_prefix)
        try:
            client = await self._get_client()
            response = await client.get(media_url, follow_redirects=True)
            response.raise_for_status()
            stored_url = await self.storage.put(response.content, key)
            logger.info(f"Re-hosted {self.provider_name} result at {key}")
            return stored_url
        except (httpx.HTTPError, StorageError, OSError) as e:
            logger.warning(f"Re-hosting failed for {task_id}, using provider URL: {e}")
            return media_url

    # -------------------------------------------------------------------------
    # Helper Methods
    # -------------------------------------------------------------------------

    def _get_api_key_from_env(self) -> Optional[str]:
        return os.getenv(self.env_key_name)

    def _require_api_key(self) -> None:
        if not self.api_key:
            raise ConfigurationError(
                f"{self.provider_name} provider not configured",
                config_key=self.env_key_name,
            )

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout))
            return self._client

    def _get_headers(self) -> Dict[str, str]:
        """Auth headers, sent on API calls only (never on media downloads)."""
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def _request_json(
        self,
        method: str,
        url: str,
        json: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Make an authenticated API call and decode the JSON body.

        Raises:
            RateLimitError: On HTTP 429
            ProviderError: On any other non-2xx status or a non-JSON body
        """
        client = await self._get_client()
        response = await client.request(method, url, json=json, headers=self._get_headers())

        if response.status_code == 429:
            retry_after = response.headers.get("retry-after")
            raise RateLimitError(
                f"{self.provider_name} rate limit exceeded",
                provider=self.provider_name,
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
            )

        if response.status_code >= 400:
            raise ProviderError(
                f"{self.provider_name} API error: {response.status_code}",
                provider=self.provider_name,
                status_code=response.status_code,
                response_body=redact_api_key(response.text),
            )

        try:
            data = response.json()
        except ValueError:
            raise ProviderError(
                f"{self.provider_name} returned a non-JSON response",
                provider=self.provider_name,
                status_code=response.status_code,
                response_body=response.text,
            )
        if not isinstance(data, dict):
            raise ProviderError(
                f"{self.provider_name} returned an unexpected payload",
                provider=self.provider_name,
            )
        return data

    # -------------------------------------------------------------------------
    # Context Manager Protocol
    # -------------------------------------------------------------------------

    async def close(self) -> None:
        """Close the HTTP client."""
        async with self._client_lock:
            if self._client:
                await self._client.aclose()
                self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
