"""
PiAPI Provider
==============

Aggregator adapter: Kling, Luma, Hailuo, Hunyuan and Veo through the PiAPI
task gateway.

Key Features:
- One ``POST /task`` endpoint for every hosted model
- Per-model payload overrides (Kling mode/version, Luma loop, ...)
- Image-to-video as a first frame (``image_url``) or as a reference (``elements``)
"""

import logging
from typing import Any, Callable, Dict, Optional

from ..core.exceptions import ProviderError
from .base import (
    BaseVideoProvider,
    GenerationRequest,
    GenerationStatus,
    ImageRole,
    PreparedPrompt,
    TaskStatus,
    prepare_prompt,
)
from .catalog import GenerationMode, ModelVariant, ProviderKind, get_descriptor
from .extractors import GATEWAY_EXTRACTORS
from .factory import register_provider

logger = logging.getLogger(__name__)


DEFAULT_NEGATIVE_PROMPT = "blurry, low quality, distorted, ugly, watermark, text"


# -----------------------------------------------------------------------------
# Per-model payload overrides
# -----------------------------------------------------------------------------


def _kling(variant: ModelVariant, payload: Dict[str, Any]) -> None:
    payload["input"]["mode"] = variant.mode or "std"
    payload["input"]["version"] = variant.version or "1.6"


def _luma(variant: ModelVariant, payload: Dict[str, Any]) -> None:
    payload["input"]["loop"] = False


def _hailuo(variant: ModelVariant, payload: Dict[str, Any]) -> None:
    payload["input"]["model"] = variant.options.get("model", "t2v-01")


def _hunyuan(variant: ModelVariant, payload: Dict[str, Any]) -> None:
    payload["task_type"] = "txt2video"


def _veo(variant: ModelVariant, payload: Dict[str, Any]) -> None:
    payload["model"] = variant.model
    for key, value in variant.options.items():
        payload["input"][key] = value


MODEL_OVERRIDES: Dict[str, Callable[[ModelVariant, Dict[str, Any]], None]] = {
    "kling": _kling,
    "luma": _luma,
    "hailuo": _hailuo,
    "hunyuan": _hunyuan,
    "veo": _veo,
}


@register_provider(ProviderKind.AGGREGATOR)
class PiAPIProvider(BaseVideoProvider):
    """
    PiAPI aggregator provider.

    The request's variant selects the hosted model; requests without one
    use Kling's base variant.
    """

    extractors = GATEWAY_EXTRACTORS

    @property
    def provider_name(self) -> str:
        return "PiAPI"

    @property
    def kind(self) -> ProviderKind:
        return ProviderKind.AGGREGATOR

    @property
    def env_key_name(self) -> str:
        return "PIAPI_API_KEY"

    @property
    def default_provider_key(self) -> str:
        return "kling"

    def _get_default_base_url(self) -> str:
        return "https://api.piapi.ai/api/v1"

    def _get_headers(self) -> Dict[str, str]:
        return {
            "X-API-Key": self.api_key or "",
            "Content-Type": "application/json",
        }

    async def create_task(self, request: GenerationRequest) -> str:
        """Submit a task to the gateway and return its task id."""
        variant = self.variant_for(request)
        descriptor = get_descriptor(variant.provider_key)
        if descriptor and not descriptor.supports(request.mode):
            raise ProviderError(
                f"{descriptor.name} does not support {request.mode.value}",
                provider=self.provider_name,
                recoverable=False,
            )

        prepared = prepare_prompt(request)
        payload = self.build_payload(request, prepared)

        logger.debug(f"Submitting {payload['model']} task ({payload['task_type']})")
        data = await self._request_json("POST", f"{self.base_url}/task", json=payload)

        task_id = _task_id(data)
        if not task_id:
            raise ProviderError(
                "No task ID in response",
                provider=self.provider_name,
                response_body=str(data),
            )

        logger.info(f"PiAPI task created: {task_id}")
        return task_id

    def build_payload(self, request: GenerationRequest, prepared: PreparedPrompt) -> Dict[str, Any]:
        """Build the gateway task payload."""
        variant = self.variant_for(request)

        payload: Dict[str, Any] = {
            "model": variant.model,
            "task_type": "video_generation",
            "input": {
                "prompt": prepared.text,
                "negative_prompt": request.negative_prompt or DEFAULT_NEGATIVE_PROMPT,
                "duration": self.effective_duration(request),
                "aspect_ratio": request.aspect_ratio,
            },
        }

        override = MODEL_OVERRIDES.get(variant.provider_key)
        if override:
            override(variant, payload)

        if prepared.mode is GenerationMode.IMAGE_TO_VIDEO:
            if prepared.image_role is ImageRole.REFERENCE:
                payload["input"]["elements"] = [{"image_url": request.source_image_url}]
            else:
                payload["input"]["image_url"] = request.source_image_url

        payload["input"].update(request.extra_params)
        return payload

    async def poll_status(self, task_id: str) -> TaskStatus:
        """Fetch the gateway task and normalize its status."""
        data = await self._request_json("GET", f"{self.base_url}/task/{task_id}")

        task = data.get("data") if isinstance(data.get("data"), dict) else data
        status = GenerationStatus.from_provider_status(task.get("status"))

        error_message = None
        if status == GenerationStatus.FAILED:
            error_message = _error_message(task) or "Generation failed"

        return TaskStatus(task_id=task_id, status=status, payload=data, error_message=error_message)


def _task_id(data: Dict[str, Any]) -> Optional[str]:
    inner = data.get("data")
    if isinstance(inner, dict) and inner.get("task_id"):
        return str(inner["task_id"])
    if data.get("task_id"):
        return str(data["task_id"])
    return None


def _error_message(task: Dict[str, Any]) -> Optional[str]:
    error = task.get("error")
    if isinstance(error, dict):
        return error.get("message") or error.get("raw_message") or None
    if isinstance(error, str) and error:
        return error
    return None
