"""Unit tests for completion payload extractors."""

from video_pipeline.providers.extractors import (
    DIRECT_EXTRACTORS,
    GATEWAY_EXTRACTORS,
    extract_media_url,
)


class TestGatewayExtractors:
    def test_output_video_url(self):
        payload = {"data": {"status": "completed", "output": {"video_url": "https://cdn.piapi.ai/a.mp4"}}}
        assert extract_media_url(payload, GATEWAY_EXTRACTORS) == "https://cdn.piapi.ai/a.mp4"

    def test_kling_works_prefers_unwatermarked(self):
        payload = {
            "data": {
                "output": {
                    "works": [{
                        "video": {
                            "resource": "https://cdn.piapi.ai/wm.mp4",
                            "resource_without_watermark": "https://cdn.piapi.ai/clean.mp4",
                        }
                    }]
                }
            }
        }
        assert extract_media_url(payload, GATEWAY_EXTRACTORS) == "https://cdn.piapi.ai/clean.mp4"

    def test_output_list(self):
        payload = {"data": {"output": [{"thumbnail": "x"}, {"url": "https://cdn.piapi.ai/list.mp4"}]}}
        assert extract_media_url(payload, GATEWAY_EXTRACTORS) == "https://cdn.piapi.ai/list.mp4"

    def test_skips_non_http_values(self):
        payload = {
            "data": {"output": {"video_url": "s3://bucket/private.mp4"}},
            "video_url": "https://cdn.piapi.ai/public.mp4",
        }
        assert extract_media_url(payload, GATEWAY_EXTRACTORS) == "https://cdn.piapi.ai/public.mp4"

    def test_no_match(self):
        assert extract_media_url({"data": {"output": {}}}, GATEWAY_EXTRACTORS) is None

    def test_non_dict_payload(self):
        assert extract_media_url(["https://cdn.piapi.ai/a.mp4"], GATEWAY_EXTRACTORS) is None


class TestDirectExtractors:
    def test_output_first_item(self):
        payload = {"status": "SUCCEEDED", "output": ["https://dnznrvs05pmza.cloudfront.net/v.mp4"]}
        assert extract_media_url(payload, DIRECT_EXTRACTORS) == "https://dnznrvs05pmza.cloudfront.net/v.mp4"

    def test_artifacts(self):
        payload = {"artifacts": [{"url": "https://runway.example.com/art.mp4"}]}
        assert extract_media_url(payload, DIRECT_EXTRACTORS) == "https://runway.example.com/art.mp4"

    def test_empty_output_list(self):
        assert extract_media_url({"output": []}, DIRECT_EXTRACTORS) is None
