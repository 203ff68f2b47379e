"""Unit tests for media storage backends."""

from unittest.mock import Mock

import pytest
from botocore.exceptions import ClientError

from video_pipeline.core.config import StorageConfig
from video_pipeline.core.exceptions import StorageError
from video_pipeline.utils.storage import (
    LocalObjectStorage,
    S3ObjectStorage,
    build_media_key,
    create_storage,
    format_file_size,
    get_file_size,
)


class TestLocalStorage:
    async def test_put_returns_file_uri(self, temp_dir):
        storage = LocalObjectStorage(temp_dir)
        url = await storage.put(b"video", "ai-videos/kling/clip.mp4")

        path = temp_dir / "ai-videos" / "kling" / "clip.mp4"
        assert path.read_bytes() == b"video"
        assert url == path.resolve().as_uri()

    async def test_put_with_public_base_url(self, temp_dir):
        storage = LocalObjectStorage(temp_dir, public_base_url="https://media.example.com/")
        url = await storage.put(b"video", "a/b.mp4")
        assert url == "https://media.example.com/a/b.mp4"

    async def test_unwritable_base_path_raises_storage_error(self, temp_dir):
        blocker = temp_dir / "not-a-dir"
        blocker.write_bytes(b"")
        storage = LocalObjectStorage(blocker)

        with pytest.raises(StorageError):
            await storage.put(b"video", "ai-videos/kling/clip.mp4")


class TestS3Storage:
    def make_storage(self, **kwargs):
        client = Mock()
        return S3ObjectStorage(bucket="promo-media", client=client, **kwargs), client

    async def test_put_uploads(self):
        storage, client = self.make_storage(region="eu-west-1")
        url = await storage.put(b"video", "ai-videos/luma/x.mp4")

        client.put_object.assert_called_once_with(
            Bucket="promo-media",
            Key="ai-videos/luma/x.mp4",
            Body=b"video",
            ContentType="video/mp4",
        )
        assert url == "https://promo-media.s3.eu-west-1.amazonaws.com/ai-videos/luma/x.mp4"

    async def test_upload_error(self):
        storage, client = self.make_storage()
        client.put_object.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "denied"}}, "PutObject"
        )
        with pytest.raises(StorageError):
            await storage.put(b"video", "k.mp4")

    def test_public_url_variants(self):
        storage, _ = self.make_storage(endpoint_url="https://r2.example.com/")
        assert storage.public_url("k.mp4") == "https://r2.example.com/promo-media/k.mp4"

        storage, _ = self.make_storage(public_base_url="https://cdn.example.com")
        assert storage.public_url("k.mp4") == "https://cdn.example.com/k.mp4"


class TestHelpers:
    def test_create_local_storage(self, temp_dir):
        storage = create_storage(StorageConfig(local_path=str(temp_dir)))
        assert isinstance(storage, LocalObjectStorage)

    def test_build_media_key_deterministic(self):
        first = build_media_key("kling", "Kling 2.1 Pro", "task-123")
        second = build_media_key("kling", "Kling 2.1 Pro", "task-123")
        assert first == second
        assert first.startswith("ai-videos/kling/")
        assert first.endswith(".mp4")
        assert build_media_key("kling", "Kling 2.1 Pro", "task-456") != first

    def test_build_media_key_prefix(self):
        assert build_media_key("runway", "gen4", "t", prefix="promo").startswith("promo/runway/")

    def test_format_file_size(self):
        assert format_file_size(512) == "512.0 B"
        assert format_file_size(1536) == "1.5 KB"
        assert format_file_size(5 * 1024 * 1024) == "5.0 MB"

    def test_get_file_size(self, temp_dir):
        path = temp_dir / "clip.mp4"
        path.write_bytes(b"\x00" * 100)
        assert get_file_size(path) == 100
        assert get_file_size(temp_dir / "missing.mp4") is None
