"""Shared pytest fixtures for video pipeline tests."""

import tempfile
from pathlib import Path
from typing import Callable, Dict, Generator, List, Optional

import httpx
import pytest

from video_pipeline.core.exceptions import ConfigurationError
from video_pipeline.providers.base import GenerationRequest, GenerationStatus, VideoGenerationResult


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture(autouse=True)
def no_provider_keys(monkeypatch):
    """Keep real credentials in the environment out of tests."""
    for name in ("PIAPI_API_KEY", "RUNWAY_API_KEY"):
        monkeypatch.delenv(name, raising=False)


class MemoryStorage:
    """In-memory ObjectStorage."""

    def __init__(self, base_url: str = "https://media.example.com"):
        self.base_url = base_url
        self.objects: Dict[str, bytes] = {}

    async def put(self, data: bytes, key: str, content_type: str = "video/mp4") -> str:
        self.objects[key] = data
        return f"{self.base_url}/{key}"


@pytest.fixture
def memory_storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def mock_client() -> Callable[[Callable[[httpx.Request], httpx.Response]], httpx.AsyncClient]:
    """Factory for httpx clients served by a handler function."""

    def factory(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return factory


class FakeAdapter:
    """
    Stand-in provider adapter.

    ``outcomes`` maps a catalog key (the request variant's provider key) to
    ``"ok"``, ``"fail"`` or an exception instance. Keys not listed succeed.
    """

    def __init__(
        self,
        outcomes: Optional[Dict[str, object]] = None,
        configured: bool = True,
        name: str = "Fake",
        media_url: Optional[str] = None,
        succeed_on_prompt: Optional[str] = None,
    ):
        self.outcomes = outcomes or {}
        self.configured = configured
        self.name = name
        self.media_url = media_url
        self.succeed_on_prompt = succeed_on_prompt
        self.requests: List[GenerationRequest] = []
        self.closed = False

    @property
    def is_configured(self) -> bool:
        return self.configured

    async def generate(self, request: GenerationRequest) -> VideoGenerationResult:
        if not self.configured:
            raise ConfigurationError(f"{self.name} provider not configured")

        self.requests.append(request)
        key = request.variant.provider_key
        outcome = self.outcomes.get(key, "ok")
        if self.succeed_on_prompt is not None:
            outcome = "ok" if request.prompt == self.succeed_on_prompt else "fail"

        if isinstance(outcome, Exception):
            raise outcome
        if outcome == "fail":
            return VideoGenerationResult(
                status=GenerationStatus.FAILED,
                provider=key,
                error_message=f"{key} generation failed",
            )

        url = self.media_url or f"https://cdn.example.com/{key}.mp4"
        return VideoGenerationResult(
            video_url=url,
            original_url=url,
            status=GenerationStatus.COMPLETED,
            job_id=f"task-{key}",
            provider=key,
            model=request.variant.label,
            cost_usd=0.12,
        )

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_adapter_factory():
    return FakeAdapter
