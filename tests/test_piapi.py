"""Unit tests for the PiAPI aggregator adapter.

All HTTP traffic goes through httpx.MockTransport.
"""

import json

import httpx
import pytest

from video_pipeline.core.exceptions import ConfigurationError
from video_pipeline.providers.base import GenerationRequest, GenerationStatus, prepare_prompt
from video_pipeline.providers.catalog import resolve_variant
from video_pipeline.providers.piapi import DEFAULT_NEGATIVE_PROMPT, PiAPIProvider
from video_pipeline.utils.storage import LocalObjectStorage

BASE = "https://api.piapi.ai/api/v1"
MEDIA_URL = "https://cdn.piapi.ai/results/clip.mp4"


def gateway_handler(statuses, seen):
    """Handler that creates task t-1 and answers polls with ``statuses`` in order."""
    polls = iter(statuses)

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.method == "POST" and request.url.path == "/api/v1/task":
            return httpx.Response(200, json={"code": 200, "data": {"task_id": "t-1"}})
        if request.url.path == "/api/v1/task/t-1":
            status = next(polls)
            if isinstance(status, httpx.Response):
                return status
            body = {"data": {"task_id": "t-1", "status": status}}
            if status == "completed":
                body["data"]["output"] = {"video_url": MEDIA_URL}
            if status == "failed":
                body["data"]["error"] = {"message": "content policy violation"}
            return httpx.Response(200, json=body)
        if str(request.url) == MEDIA_URL:
            return httpx.Response(200, content=b"mp4-bytes")
        return httpx.Response(404)

    return handler


def make_provider(client, **kwargs):
    return PiAPIProvider(api_key="pk_test", client=client, poll_interval=0, **kwargs)


class TestPayload:
    """Tests for build_payload."""

    def test_kling_text_to_video(self):
        provider = PiAPIProvider(api_key="pk_test")
        request = GenerationRequest(
            prompt="Barista steaming milk in a sunlit cafe",
            duration=8,
            variant=resolve_variant("kling", "premium"),
        )
        payload = provider.build_payload(request, prepare_prompt(request))

        assert payload["model"] == "kling"
        assert payload["task_type"] == "video_generation"
        assert payload["input"]["mode"] == "pro"
        assert payload["input"]["version"] == "2.6"
        assert payload["input"]["duration"] == 8
        assert payload["input"]["negative_prompt"] == DEFAULT_NEGATIVE_PROMPT
        assert "image_url" not in payload["input"]

    def test_duration_clamped_to_model_maximum(self):
        provider = PiAPIProvider(api_key="pk_test")
        request = GenerationRequest(prompt="Waves at dusk", duration=10, variant=resolve_variant("luma"))
        payload = provider.build_payload(request, prepare_prompt(request))
        assert payload["input"]["duration"] == 5
        assert payload["input"]["loop"] is False

    def test_first_frame_image(self):
        provider = PiAPIProvider(api_key="pk_test")
        request = GenerationRequest(
            prompt="Slow push-in on the jar",
            source_image_url="https://cdn.example.com/jar.png",
            variant=resolve_variant("kling"),
        )
        payload = provider.build_payload(request, prepare_prompt(request))
        assert payload["input"]["image_url"] == "https://cdn.example.com/jar.png"
        assert "elements" not in payload["input"]

    def test_reference_image(self):
        provider = PiAPIProvider(api_key="pk_test")
        request = GenerationRequest(
            prompt="Chef holding the jar in a busy kitchen",
            source_image_url="https://cdn.example.com/jar.png",
            variant=resolve_variant("kling"),
        )
        payload = provider.build_payload(request, prepare_prompt(request))
        assert payload["input"]["elements"] == [{"image_url": "https://cdn.example.com/jar.png"}]
        assert "image_url" not in payload["input"]

    def test_hunyuan_task_type(self):
        provider = PiAPIProvider(api_key="pk_test")
        request = GenerationRequest(prompt="Misty forest", variant=resolve_variant("hunyuan"))
        payload = provider.build_payload(request, prepare_prompt(request))
        assert payload["task_type"] == "txt2video"

    def test_veo_options(self):
        provider = PiAPIProvider(api_key="pk_test")
        request = GenerationRequest(prompt="City skyline", variant=resolve_variant("veo", "ultra"))
        payload = provider.build_payload(request, prepare_prompt(request))
        assert payload["model"] == "veo3.1"
        assert payload["input"]["quality"] == "high"

    def test_extra_params_merged(self):
        provider = PiAPIProvider(api_key="pk_test")
        request = GenerationRequest(prompt="Rain on glass", extra_params={"cfg_scale": 0.5})
        payload = provider.build_payload(request, prepare_prompt(request))
        assert payload["input"]["cfg_scale"] == 0.5


class TestGenerate:
    """End-to-end adapter runs against a mock gateway."""

    async def test_completed_task(self, mock_client):
        seen = []
        provider = make_provider(mock_client(gateway_handler(["processing", "completed"], seen)))

        result = await provider.generate(GenerationRequest(prompt="Fresh croissants on a tray"))

        assert result.status == GenerationStatus.COMPLETED
        assert result.video_url == MEDIA_URL
        assert result.original_url == MEDIA_URL
        assert result.job_id == "t-1"
        assert result.provider == "kling"
        assert result.cost_usd == pytest.approx(0.18)

        submit = seen[0]
        assert submit.headers["X-API-Key"] == "pk_test"
        assert json.loads(submit.content)["model"] == "kling"
        await provider.close()

    async def test_failed_task(self, mock_client):
        provider = make_provider(mock_client(gateway_handler(["failed"], [])))
        result = await provider.generate(GenerationRequest(prompt="Mountain lake"))
        assert result.is_failed()
        assert result.error_message == "content policy violation"

    async def test_poll_timeout(self, mock_client):
        provider = make_provider(
            mock_client(gateway_handler(["processing"] * 3, [])),
            max_poll_attempts=3,
        )
        result = await provider.generate(GenerationRequest(prompt="Mountain lake"))
        assert result.status == GenerationStatus.FAILED
        assert "did not finish after 3 polls" in result.error_message

    async def test_transient_poll_error_is_retried(self, mock_client):
        provider = make_provider(mock_client(gateway_handler([httpx.Response(503), "completed"], [])))
        result = await provider.generate(GenerationRequest(prompt="Mountain lake"))
        assert result.is_complete()

    async def test_rate_limit_fails_result(self, mock_client):
        def handler(request):
            return httpx.Response(429, headers={"retry-after": "30"})

        provider = make_provider(mock_client(handler))
        result = await provider.generate(GenerationRequest(prompt="Mountain lake"))
        assert result.status == GenerationStatus.FAILED
        assert "rate limit" in result.error_message

    async def test_unsupported_mode(self, mock_client):
        seen = []
        provider = make_provider(mock_client(gateway_handler(["completed"], seen)))
        result = await provider.generate(GenerationRequest(
            prompt="Slow pan",
            source_image_url="https://cdn.example.com/still.jpg",
            variant=resolve_variant("hunyuan"),
        ))
        assert result.status == GenerationStatus.FAILED
        assert "does not support i2v" in result.error_message
        assert seen == []

    async def test_missing_task_id(self, mock_client):
        provider = make_provider(mock_client(lambda request: httpx.Response(200, json={"data": {}})))
        result = await provider.generate(GenerationRequest(prompt="Mountain lake"))
        assert result.error_message == "No task ID in response"

    async def test_missing_api_key_raises(self):
        provider = PiAPIProvider()
        assert not provider.is_configured
        with pytest.raises(ConfigurationError, match="not configured"):
            await provider.generate(GenerationRequest(prompt="Mountain lake"))

    async def test_rehost_to_storage(self, mock_client, temp_dir):
        seen = []
        storage = LocalObjectStorage(temp_dir, public_base_url="https://media.example.com")
        provider = make_provider(mock_client(gateway_handler(["completed"], seen)), storage=storage)

        result = await provider.generate(GenerationRequest(prompt="Mountain lake"))

        assert result.original_url == MEDIA_URL
        assert result.video_url.startswith("https://media.example.com/ai-videos/kling/")
        assert result.is_rehosted
        stored = list(temp_dir.rglob("*.mp4"))
        assert len(stored) == 1
        assert stored[0].read_bytes() == b"mp4-bytes"

        download = [r for r in seen if str(r.url) == MEDIA_URL][0]
        assert "X-API-Key" not in download.headers
        assert "Authorization" not in download.headers

    async def test_rehost_to_unwritable_storage_keeps_provider_url(self, mock_client, temp_dir):
        blocker = temp_dir / "media"
        blocker.write_bytes(b"")
        storage = LocalObjectStorage(blocker)
        provider = make_provider(mock_client(gateway_handler(["completed"], [])), storage=storage)

        result = await provider.generate(GenerationRequest(prompt="Mountain lake"))

        assert result.is_complete()
        assert result.video_url == MEDIA_URL
        assert not result.is_rehosted

    async def test_rehost_failure_keeps_provider_url(self, mock_client, memory_storage):
        def handler(request):
            if request.method == "POST":
                return httpx.Response(200, json={"data": {"task_id": "t-2"}})
            if request.url.path.endswith("/task/t-2"):
                return httpx.Response(200, json={"data": {"status": "completed", "output": {"video_url": MEDIA_URL}}})
            return httpx.Response(500)

        provider = make_provider(mock_client(handler), storage=memory_storage)
        result = await provider.generate(GenerationRequest(prompt="Mountain lake"))

        assert result.is_complete()
        assert result.video_url == MEDIA_URL
        assert memory_storage.objects == {}
