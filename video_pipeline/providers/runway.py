"""
Runway Provider
===============

Direct adapter for Runway's video API.

Key Features:
- Image-to-video with Gen-4 Turbo (first frame or reference image)
- Text-to-video with Veo 3.1 hosted by Runway
- 4, 6 or 8 second durations
"""

import logging
import re
from typing import Any, Dict, Optional, Tuple

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
from .catalog import GenerationMode, ProviderKind
from .extractors import DIRECT_EXTRACTORS
from .factory import register_provider

logger = logging.getLogger(__name__)


TEXT_TO_VIDEO_MODEL = "veo3.1"
SUPPORTED_DURATIONS = (4, 6, 8)
MAX_PROMPT_LENGTH = 1000

IMAGE_TO_VIDEO_COST_PER_SECOND = 0.05
TEXT_TO_VIDEO_COST_PER_SECOND = 0.10

IMAGE_TO_VIDEO_RATIOS = {
    "16:9": "1280:720",
    "9:16": "720:1280",
    "1:1": "960:960",
}
TEXT_TO_VIDEO_RATIOS = {
    "16:9": "1280:720",
    "9:16": "720:1280",
    "1:1": "1280:720",
}

_PROMPT_REWRITES = (
    (re.compile(r"\bcaptured from\b", re.I), ""),
    (re.compile(r"\bthe camera\b", re.I), ""),
    (re.compile(r"\bcamera slowly\b", re.I), "slowly"),
    (re.compile(r"\bcreating an?\b", re.I), ""),
)


def format_prompt(prompt: str) -> str:
    """Drop camera-narration phrases Runway handles poorly and cap the length."""
    formatted = prompt
    for pattern, replacement in _PROMPT_REWRITES:
        formatted = pattern.sub(replacement, formatted)
    formatted = re.sub(r"\s{2,}", " ", formatted).strip()

    if len(formatted) > MAX_PROMPT_LENGTH:
        formatted = formatted[: MAX_PROMPT_LENGTH - 3] + "..."
    return formatted


def snap_duration(duration: int) -> int:
    """Nearest supported duration; ties go to the shorter clip."""
    return min(SUPPORTED_DURATIONS, key=lambda d: (abs(d - duration), d))


@register_provider(ProviderKind.DIRECT)
class RunwayProvider(BaseVideoProvider):
    """
    Runway direct provider.

    Image-to-video requests use the variant's Gen-4 model; text-to-video
    requests always use Veo 3.1.
    """

    extractors = DIRECT_EXTRACTORS

    def __init__(self, *args, api_version: str = "2024-11-06", **kwargs):
        self.api_version = api_version
        super().__init__(*args, **kwargs)

    @property
    def provider_name(self) -> str:
        return "Runway"

    @property
    def kind(self) -> ProviderKind:
        return ProviderKind.DIRECT

    @property
    def env_key_name(self) -> str:
        return "RUNWAY_API_KEY"

    @property
    def default_provider_key(self) -> str:
        return "runway"

    def _get_default_base_url(self) -> str:
        return "https://api.dev.runwayml.com/v1"

    def _get_headers(self) -> Dict[str, str]:
        headers = super()._get_headers()
        headers["X-Runway-Version"] = self.api_version
        return headers

    def effective_duration(self, request: GenerationRequest) -> int:
        return snap_duration(request.duration)

    def estimate_cost(self, request: GenerationRequest) -> float:
        if request.mode is GenerationMode.IMAGE_TO_VIDEO:
            rate = IMAGE_TO_VIDEO_COST_PER_SECOND
        else:
            rate = TEXT_TO_VIDEO_COST_PER_SECOND
        return round(self.effective_duration(request) * rate, 4)

    async def create_task(self, request: GenerationRequest) -> str:
        """Submit an image-to-video or text-to-video task."""
        if request.source_image_url and not request.source_image_url.startswith("https://"):
            raise ProviderError(
                "Runway requires an https source image URL",
                provider=self.provider_name,
                recoverable=False,
            )
        if request.negative_prompt:
            logger.debug(f"Runway ignores negative prompts ({len(request.negative_prompt.split(','))} terms)")

        prepared = prepare_prompt(request)
        endpoint, payload = self.build_payload(request, prepared)

        logger.info(f"Runway {endpoint} with {payload['model']}, ratio {payload['ratio']}, {payload['duration']}s")
        data = await self._request_json("POST", f"{self.base_url}{endpoint}", json=payload)

        task_id = data.get("id")
        if not task_id:
            raise ProviderError(
                "No task ID in response",
                provider=self.provider_name,
                response_body=str(data),
            )
        return str(task_id)

    def build_payload(
        self,
        request: GenerationRequest,
        prepared: PreparedPrompt,
    ) -> Tuple[str, Dict[str, Any]]:
        """Endpoint path and payload for a request."""
        duration = self.effective_duration(request)
        prompt_text = format_prompt(prepared.text)

        if prepared.mode is GenerationMode.TEXT_TO_VIDEO:
            return "/text_to_video", {
                "model": TEXT_TO_VIDEO_MODEL,
                "promptText": prompt_text,
                "ratio": TEXT_TO_VIDEO_RATIOS.get(request.aspect_ratio, "1280:720"),
                "duration": duration,
            }

        payload: Dict[str, Any] = {
            "model": self.variant_for(request).model,
            "promptText": prompt_text,
            "ratio": IMAGE_TO_VIDEO_RATIOS.get(request.aspect_ratio, "1280:720"),
            "duration": duration,
        }
        if prepared.image_role is ImageRole.REFERENCE:
            payload["referenceImages"] = [{"uri": request.source_image_url, "tag": "product"}]
        else:
            payload["promptImage"] = request.source_image_url
        return "/image_to_video", payload

    async def poll_status(self, task_id: str) -> TaskStatus:
        """Fetch a task and normalize its status."""
        data = await self._request_json("GET", f"{self.base_url}/tasks/{task_id}")
        status = GenerationStatus.from_provider_status(data.get("status"))

        error_message: Optional[str] = None
        if status == GenerationStatus.FAILED:
            error_message = data.get("failure") or data.get("error") or "Generation failed"

        return TaskStatus(task_id=task_id, status=status, payload=data, error_message=error_message)
